"""Shared fixtures: fake audio handles, a controllable extractor and songs."""

import asyncio
import random
from typing import Optional

import pytest

from melodia.domain.extraction.models import AudioResult
from melodia.domain.library.models import Song, SongSource, youtube_song
from melodia.domain.playback.engine import TransportEngine
from melodia.domain.playback.exceptions import LoadError, PlayError, PlayerUnavailableError
from melodia.domain.playback.player import Player
from melodia.domain.playback.resolver import TrackSourceResolver
from melodia.domain.playback.store import SessionStore
from melodia.domain.sync.channel import LocalBroadcastHub


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class FakeHandle:
    """In-memory AudioHandle."""

    def __init__(self, url: str, fail_load: bool = False, fail_play: bool = False) -> None:
        self.url = url
        self.fail_load = fail_load
        self.fail_play = fail_play
        self.gate: Optional[asyncio.Future] = None
        self.loaded = False
        self.unloaded = False
        self.is_playing = False
        self.pos = 0.0
        self.length = 180.0
        self.is_ended = False
        self.volume: Optional[float] = None
        self.seeks: list[float] = []
        self.refreshes = 0

    async def load(self) -> None:
        if self.gate is not None:
            await self.gate
        if self.fail_load:
            raise LoadError(f"cannot decode {self.url}")
        self.loaded = True

    async def refresh(self) -> None:
        self.refreshes += 1

    def play(self) -> None:
        if self.unloaded or self.fail_play:
            raise PlayError(f"cannot play {self.url}")
        self.is_playing = True

    def pause(self) -> None:
        self.is_playing = False

    def unload(self) -> None:
        self.unloaded = True
        self.is_playing = False

    def seek(self, seconds: float) -> None:
        self.pos = seconds
        self.is_ended = False
        self.seeks.append(seconds)

    def position(self) -> float:
        return self.pos

    def duration(self) -> float:
        return self.length

    def playing(self) -> bool:
        return self.is_playing and not self.unloaded

    def ended(self) -> bool:
        return self.is_ended

    def set_volume(self, volume: float) -> None:
        self.volume = volume

    def finish(self) -> None:
        """Simulate the track playing to its end."""
        self.pos = self.length
        self.is_playing = False
        self.is_ended = True


class FakeHandleFactory:
    """HandleFactory that records every handle it creates."""

    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []
        self.failing_urls: set[str] = set()
        self.unavailable = False

    def __call__(self, url: str) -> FakeHandle:
        if self.unavailable:
            raise PlayerUnavailableError("player is not running")
        handle = FakeHandle(url, fail_load=url in self.failing_urls)
        self.handles.append(handle)
        return handle

    @property
    def live(self) -> list[FakeHandle]:
        return [h for h in self.handles if not h.unloaded]

    @property
    def last(self) -> FakeHandle:
        return self.handles[-1]


class FakeExtractor:
    """Extractor whose results (or pending futures) are set per video id."""

    def __init__(self) -> None:
        self.results: dict[str, Optional[AudioResult]] = {}
        self.pending: dict[str, asyncio.Future] = {}
        self.calls: list[str] = []

    async def extract(self, video_id: str) -> Optional[AudioResult]:
        self.calls.append(video_id)
        if video_id in self.pending:
            return await self.pending[video_id]
        return self.results.get(video_id)

    def hold(self, video_id: str) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        self.pending[video_id] = future
        return future

    def succeed(self, video_id: str) -> AudioResult:
        result = audio_result(video_id)
        self.results[video_id] = result
        return result


def audio_result(video_id: str) -> AudioResult:
    return AudioResult(
        audio_url=f"https://cdn.example.com/{video_id}.m4a",
        title=f"Video {video_id}",
        thumbnail=f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg",
    )


def make_song(key: str, duration: float = 200.0) -> Song:
    return Song(
        id=f"jam-{key}",
        title=f"Song {key}",
        artist="Test Artist",
        url=f"https://audio.example.com/{key}.mp3",
        source=SongSource.ONLINE,
        duration=duration,
    )


@pytest.fixture
def song_a() -> Song:
    return make_song("a")


@pytest.fixture
def song_b() -> Song:
    return make_song("b")


@pytest.fixture
def song_c() -> Song:
    return make_song("c")


@pytest.fixture
def yt_song() -> Song:
    return youtube_song("dQw4w9WgXcQ", title="Never Gonna Give You Up", artist="Rick Astley")


@pytest.fixture
def handles() -> FakeHandleFactory:
    return FakeHandleFactory()


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def notices() -> list[str]:
    return []


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture
async def engine(store, extractor, handles, notices):
    # Long poll interval: tests drive sampling through engine.tick()
    engine = TransportEngine(
        store,
        TrackSourceResolver(extractor),
        handles,
        notify=notices.append,
        poll_interval=60.0,
    )
    yield engine
    await engine.close()


@pytest.fixture
async def player(store, engine):
    player = Player(store, engine, rng=random.Random(1234))
    yield player
    await player.close()


@pytest.fixture
def hub() -> LocalBroadcastHub:
    return LocalBroadcastHub()
