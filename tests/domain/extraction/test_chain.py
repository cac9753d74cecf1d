"""Tests for the sequential extraction fallback chain."""

import httpx
import pytest

from melodia.domain.extraction.backends import CobaltBackend, PipedBackend
from melodia.domain.extraction.chain import ExtractionChain
from melodia.domain.extraction.remote import RemoteExtractor

VIDEO_ID = "dQw4w9WgXcQ"

PIPED_OK = {
    "title": "Never Gonna Give You Up",
    "thumbnailUrl": "https://thumbs/rick.jpg",
    "audioStreams": [{"url": "https://piped-cdn/audio.m4a", "mimeType": "audio/mp4", "bitrate": 128000}],
}


def make_chain(routes: dict[str, object], backends) -> tuple[ExtractionChain, list[str]]:
    """Chain whose HTTP traffic is answered from ``routes`` (host -> response)."""
    contacted: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        host = request.url.host
        contacted.append(host)
        route = routes[host]
        if isinstance(route, Exception):
            raise route
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ExtractionChain(backends, client=client), contacted


@pytest.mark.anyio
class TestFallbackChain:
    """Ordering, short-circuiting and failure classes."""

    async def test_first_success_wins(self) -> None:
        chain, contacted = make_chain(
            {
                "c1": {"status": "tunnel", "url": "https://tunnel/1.mp3", "filename": "One"},
                "p1": PIPED_OK,
            },
            [CobaltBackend("https://c1"), PipedBackend("https://p1")],
        )

        result = await chain.extract(VIDEO_ID)

        assert result.audio_url == "https://tunnel/1.mp3"
        assert contacted == ["c1"]

    async def test_last_backend_after_every_failure_class(self) -> None:
        """N-1 failures (timeout, error flag, empty, non-2xx, bad JSON) then success."""
        chain, contacted = make_chain(
            {
                "c1": httpx.ConnectTimeout("timed out"),
                "c2": {"status": "error", "error": {"code": "content.video.unavailable"}},
                "p1": {"audioStreams": []},
                "p2": httpx.Response(502, text="bad gateway"),
                "p3": httpx.Response(200, text="<html>not json</html>"),
                "p4": PIPED_OK,
                "p5": PIPED_OK,
            },
            [
                CobaltBackend("https://c1"),
                CobaltBackend("https://c2"),
                PipedBackend("https://p1"),
                PipedBackend("https://p2"),
                PipedBackend("https://p3"),
                PipedBackend("https://p4"),
                PipedBackend("https://p5"),
            ],
        )

        result = await chain.extract(VIDEO_ID)

        assert result is not None
        assert result.audio_url == "https://piped-cdn/audio.m4a"
        assert result.title == "Never Gonna Give You Up"
        assert contacted == ["c1", "c2", "p1", "p2", "p3", "p4"]

    async def test_exhaustion_returns_none(self) -> None:
        chain, contacted = make_chain(
            {"c1": httpx.ConnectError("refused"), "p1": {"error": "blocked"}},
            [CobaltBackend("https://c1"), PipedBackend("https://p1")],
        )

        assert await chain.extract(VIDEO_ID) is None
        assert contacted == ["c1", "p1"]

    async def test_backends_are_not_retried(self) -> None:
        chain, contacted = make_chain(
            {"c1": httpx.ReadTimeout("slow")},
            [CobaltBackend("https://c1")],
        )

        await chain.extract(VIDEO_ID)

        assert contacted == ["c1"]

    async def test_empty_audio_url_is_skipped(self) -> None:
        chain, contacted = make_chain(
            {
                "p1": {"audioStreams": [{"url": "", "mimeType": "audio/mp4"}]},
                "p2": PIPED_OK,
            },
            [PipedBackend("https://p1"), PipedBackend("https://p2")],
        )

        result = await chain.extract(VIDEO_ID)

        assert result.audio_url == "https://piped-cdn/audio.m4a"
        assert contacted == ["p1", "p2"]

    async def test_non_numeric_bitrate_does_not_abort(self) -> None:
        chain, contacted = make_chain(
            {
                "p1": {"audioStreams": [
                    {"url": "https://s/odd", "mimeType": "audio/mp4", "bitrate": "128k"},
                    {"url": "https://s/ok", "mimeType": "audio/mp4", "bitrate": 64000},
                ]},
                "p2": PIPED_OK,
            },
            [PipedBackend("https://p1"), PipedBackend("https://p2")],
        )

        result = await chain.extract(VIDEO_ID)

        assert result.audio_url == "https://s/ok"
        assert contacted == ["p1"]

    async def test_parse_errors_are_skipped(self) -> None:
        class ExplodingBackend(PipedBackend):
            def parse(self, video_id, payload):
                return super().parse(video_id, payload["missing"])

        chain, contacted = make_chain(
            {"p1": {"audioStreams": []}, "p2": PIPED_OK},
            [ExplodingBackend("https://p1"), PipedBackend("https://p2")],
        )

        result = await chain.extract(VIDEO_ID)

        assert result.audio_url == "https://piped-cdn/audio.m4a"
        assert contacted == ["p1", "p2"]

    async def test_cobalt_request_shape(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"status": "redirect", "url": "https://r/1"})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        chain = ExtractionChain([CobaltBackend("https://c1")], client=client)

        await chain.extract(VIDEO_ID)

        request = seen[0]
        assert request.method == "POST"
        assert request.headers["accept"] == "application/json"
        assert b'"downloadMode":"audio"' in request.content.replace(b" ", b"")
        assert f"watch?v={VIDEO_ID}".encode() in request.content

    async def test_empty_video_id(self) -> None:
        chain, contacted = make_chain({}, [PipedBackend("https://p1")])
        assert await chain.extract("") is None
        assert contacted == []


@pytest.mark.anyio
class TestCache:
    """Short-lived result cache."""

    async def test_cache_hit_skips_network(self) -> None:
        chain, contacted = make_chain({"p1": PIPED_OK}, [PipedBackend("https://p1")])

        first = await chain.extract(VIDEO_ID)
        second = await chain.extract(VIDEO_ID)

        assert first == second
        assert contacted == ["p1"]

    async def test_failures_are_not_cached(self) -> None:
        chain, contacted = make_chain({"p1": {"error": "nope"}}, [PipedBackend("https://p1")])

        await chain.extract(VIDEO_ID)
        await chain.extract(VIDEO_ID)

        assert contacted == ["p1", "p1"]

    async def test_clear_cache(self) -> None:
        chain, contacted = make_chain({"p1": PIPED_OK}, [PipedBackend("https://p1")])

        await chain.extract(VIDEO_ID)
        chain.clear_cache()
        await chain.extract(VIDEO_ID)

        assert contacted == ["p1", "p1"]

    async def test_expired_entries_are_pruned(self) -> None:
        chain, contacted = make_chain({"p1": PIPED_OK}, [PipedBackend("https://p1")])
        chain._cache_ttl = 0

        await chain.extract(VIDEO_ID)

        assert chain.prune_expired_cache() == 1
        await chain.extract(VIDEO_ID)
        assert contacted == ["p1", "p1"]


@pytest.mark.anyio
class TestRemoteExtractor:
    """Client for the /api/youtube-audio endpoint."""

    async def test_success(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/youtube-audio"
            return httpx.Response(200, json={
                "audioUrl": "https://cdn/a.m4a", "title": "A", "thumbnail": "https://t/a.jpg"
            })

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        extractor = RemoteExtractor("http://melodia.local/", client=client)

        result = await extractor.extract(VIDEO_ID)

        assert result.audio_url == "https://cdn/a.m4a"
        assert result.thumbnail == "https://t/a.jpg"

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(404, json={"error": "Could not extract audio."}),
            httpx.Response(200, text="oops"),
            httpx.Response(200, json={"title": "no url"}),
        ],
    )
    async def test_failures_map_to_none(self, response: httpx.Response) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: response))
        extractor = RemoteExtractor("http://melodia.local", client=client)

        assert await extractor.extract(VIDEO_ID) is None

    async def test_network_error_maps_to_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        extractor = RemoteExtractor("http://melodia.local", client=client)

        assert await extractor.extract(VIDEO_ID) is None
