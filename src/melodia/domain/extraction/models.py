"""
Extraction domain models.

Backends turn their raw responses into an ``Ok`` or ``Skip`` outcome; the
chain driver only ever looks at outcomes.
"""

from dataclasses import dataclass
from typing import Any, Union


def default_thumbnail(video_id: str) -> str:
    return f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"


@dataclass(frozen=True)
class AudioResult:
    """A direct playable audio URL for a YouTube video."""

    audio_url: str
    title: str
    thumbnail: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "audioUrl": self.audio_url,
            "title": self.title,
            "thumbnail": self.thumbnail,
        }


@dataclass(frozen=True)
class Ok:
    """Backend produced a usable result."""

    result: AudioResult


@dataclass(frozen=True)
class Skip:
    """Backend could not produce a result; the chain moves on."""

    reason: str


ExtractionOutcome = Union[Ok, Skip]
