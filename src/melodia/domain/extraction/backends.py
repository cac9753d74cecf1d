"""
Audio extraction backends.

Each backend is one third-party service instance with its own request and
response shape. A backend knows how to ask for a video and how to turn the
raw JSON it gets back into an ``Ok`` or ``Skip`` outcome.

Two backend families are supported:

- Cobalt instances return a single best-match stream per request
  (``tunnel``/``redirect``) or a short picker list.
- Piped instances return a ranked list of audio streams from which we pick
  one deterministically (preferred container first, then highest bitrate).
"""

from typing import Any, Optional, Protocol

import httpx

from .models import AudioResult, ExtractionOutcome, Ok, Skip, default_thumbnail

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_COBALT_INSTANCES = [
    "https://api.cobalt.tools",
    "https://co.wuk.sh",
]

DEFAULT_PIPED_INSTANCES = [
    "https://pipedapi.kavin.rocks",
    "https://pipedapi.adminforge.de",
    "https://pipedapi.moomoo.me",
]


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


class ExtractionBackend(Protocol):
    """One extraction service instance."""

    name: str
    timeout: float

    async def fetch(self, client: httpx.AsyncClient, video_id: str) -> httpx.Response:
        ...

    def parse(self, video_id: str, payload: Any) -> ExtractionOutcome:
        ...


class CobaltBackend:
    """Cobalt API instance (POST with the watch URL, audio-only mode)."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.name = f"cobalt:{self.base_url}"
        self.timeout = timeout
        self.user_agent = user_agent

    async def fetch(self, client: httpx.AsyncClient, video_id: str) -> httpx.Response:
        return await client.post(
            self.base_url,
            json={
                "url": watch_url(video_id),
                "downloadMode": "audio",
                "audioFormat": "mp3",
                "audioBitrate": "320",
            },
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "User-Agent": self.user_agent,
            },
            timeout=self.timeout,
        )

    def parse(self, video_id: str, payload: Any) -> ExtractionOutcome:
        if not isinstance(payload, dict):
            return Skip("response is not an object")

        status = payload.get("status")
        if status == "error":
            error = payload.get("error")
            code = error.get("code") if isinstance(error, dict) else None
            return Skip(f"error flagged: {code or payload.get('text') or 'unknown'}")

        title = payload.get("filename") or "Unknown"

        if status in ("tunnel", "redirect") and payload.get("url"):
            return Ok(AudioResult(
                audio_url=payload["url"],
                title=title,
                thumbnail=default_thumbnail(video_id),
            ))

        if status == "picker":
            item = select_picker_item(payload.get("picker"))
            if item is None:
                return Skip("empty picker")
            return Ok(AudioResult(
                audio_url=item["url"],
                title=title,
                thumbnail=default_thumbnail(video_id),
            ))

        return Skip(f"unexpected status: {status!r}")


def select_picker_item(picker: Any) -> Optional[dict[str, Any]]:
    """Pick the audio entry from a Cobalt picker list.

    Prefers an item typed ``audio`` (or whose url mentions audio), else the
    first item. Returns None when the list is empty or the first item has no url.
    """
    if not isinstance(picker, list) or not picker:
        return None
    items = [item for item in picker if isinstance(item, dict)]
    if not items or not items[0].get("url"):
        return None

    for item in items:
        url = item.get("url") or ""
        if url and (item.get("type") == "audio" or "audio" in url):
            return item
    return items[0]


class PipedBackend:
    """Piped API instance (GET /streams/<id>, ranked audio stream list)."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 8.0,
        preferred_mime: str = "audio/mp4",
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.name = f"piped:{self.base_url}"
        self.timeout = timeout
        self.preferred_mime = preferred_mime
        self.user_agent = user_agent

    async def fetch(self, client: httpx.AsyncClient, video_id: str) -> httpx.Response:
        return await client.get(
            f"{self.base_url}/streams/{video_id}",
            headers={"Accept": "application/json", "User-Agent": self.user_agent},
            timeout=self.timeout,
        )

    def parse(self, video_id: str, payload: Any) -> ExtractionOutcome:
        if not isinstance(payload, dict):
            return Skip("response is not an object")
        if payload.get("error"):
            return Skip(f"error flagged: {payload['error']}")

        streams = payload.get("audioStreams")
        if not isinstance(streams, list) or not streams:
            return Skip("no audio streams")

        best = select_best_stream(streams, self.preferred_mime)
        if best is None:
            return Skip("no valid audio streams")

        return Ok(AudioResult(
            audio_url=best["url"],
            title=payload.get("title") or "Unknown",
            thumbnail=payload.get("thumbnailUrl") or default_thumbnail(video_id),
        ))


def _bitrate(stream: dict[str, Any]) -> int:
    """Numeric bitrate of a stream entry, 0 when missing or not a number."""
    try:
        return int(stream.get("bitrate") or 0)
    except (TypeError, ValueError):
        return 0


def select_best_stream(
    streams: list[Any], preferred_mime: str = "audio/mp4"
) -> Optional[dict[str, Any]]:
    """Pick one stream from a Piped ``audioStreams`` list.

    Only entries with a url and an ``audio/*`` mime type qualify. Streams in the
    preferred container rank first; ties break by bitrate, highest first.
    """
    candidates = [
        s for s in streams
        if isinstance(s, dict)
        and s.get("url")
        and str(s.get("mimeType") or "").startswith("audio/")
    ]
    if not candidates:
        return None

    def rank(stream: dict[str, Any]) -> tuple[int, int]:
        preferred = 0 if str(stream["mimeType"]).startswith(preferred_mime) else 1
        return (preferred, -_bitrate(stream))

    return sorted(candidates, key=rank)[0]


def build_default_backends(
    cobalt_instances: Optional[list[str]] = None,
    piped_instances: Optional[list[str]] = None,
    cobalt_timeout: float = 10.0,
    piped_timeout: float = 8.0,
    preferred_mime: str = "audio/mp4",
    user_agent: str = DEFAULT_USER_AGENT,
) -> list[ExtractionBackend]:
    """Build the ordered backend list: Cobalt instances first, then Piped."""
    cobalt = cobalt_instances if cobalt_instances is not None else DEFAULT_COBALT_INSTANCES
    piped = piped_instances if piped_instances is not None else DEFAULT_PIPED_INSTANCES

    backends: list[ExtractionBackend] = [
        CobaltBackend(url, timeout=cobalt_timeout, user_agent=user_agent) for url in cobalt
    ]
    backends.extend(
        PipedBackend(
            url,
            timeout=piped_timeout,
            preferred_mime=preferred_mime,
            user_agent=user_agent,
        )
        for url in piped
    )
    return backends
