"""
Music library domain models.

Contains the Song value object shared by the player, the extraction chain
and sync sessions.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional

YOUTUBE_ID_PREFIX = "yt-"
LOCAL_ID_PREFIX = "local-"


class SongSource(str, Enum):
    """Where a song's audio comes from."""

    LOCAL = "local"
    ONLINE = "online"


@dataclass(frozen=True)
class Song:
    """Represents a playable song.

    Songs are immutable records. Updates replace the reference instead of
    mutating it.

    The id prefix identifies the origin: ``yt-`` for YouTube videos (the url
    is a watch page until audio is extracted), ``local-`` for imported files,
    anything else for online catalog songs with a direct (proxied) url.
    """

    id: str
    title: str
    artist: str
    url: str
    source: SongSource = SongSource.ONLINE
    duration: float = 0.0  # in seconds, 0 when unknown
    album: Optional[str] = None
    artwork: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = None

    @property
    def is_youtube(self) -> bool:
        return self.id.startswith(YOUTUBE_ID_PREFIX)

    @property
    def is_local(self) -> bool:
        return self.source == SongSource.LOCAL

    @property
    def youtube_video_id(self) -> Optional[str]:
        """Video id for YouTube songs, None for everything else."""
        if not self.is_youtube:
            return None
        return self.id[len(YOUTUBE_ID_PREFIX):]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict (used in broadcast payloads)."""
        data = asdict(self)
        data["source"] = self.source.value
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Song":
        """Build a Song from a broadcast payload or API response.

        Raises:
            ValueError: If a required field is missing
        """
        missing = [key for key in ("id", "title", "url") if not data.get(key)]
        if missing:
            raise ValueError(f"Song payload missing fields: {missing}")

        year = data.get("year")
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            artist=str(data.get("artist") or "Unknown Artist"),
            url=str(data["url"]),
            source=SongSource(data.get("source", SongSource.ONLINE.value)),
            duration=float(data.get("duration") or 0.0),
            album=data.get("album"),
            artwork=data.get("artwork"),
            genre=data.get("genre"),
            year=int(year) if year else None,
        )


def youtube_song(video_id: str, title: str, artist: str, **kwargs: Any) -> Song:
    """Build a YouTube-sourced Song whose url is the watch page."""
    return Song(
        id=f"{YOUTUBE_ID_PREFIX}{video_id}",
        title=title,
        artist=artist,
        url=f"https://www.youtube.com/watch?v={video_id}",
        source=SongSource.ONLINE,
        **kwargs,
    )
