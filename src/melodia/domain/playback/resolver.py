"""
Playback source resolution for multi-source songs.

Direct songs (local files, proxied online URLs) play their own url. YouTube
songs need a direct audio URL from an extractor first; when extraction fails
the resolver returns None and the caller falls back to the video embed.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from loguru import logger

from ..extraction.models import AudioResult
from ..library.models import Song


class Extractor(Protocol):
    async def extract(self, video_id: str) -> Optional[AudioResult]:
        ...


@dataclass(frozen=True)
class ResolvedSource:
    """A URL the audio handle can open."""

    url: str


class TrackSourceResolver:
    """Resolve a Song to a playable URL."""

    def __init__(self, extractor: Extractor) -> None:
        self._extractor = extractor

    async def resolve(self, song: Song) -> Optional[ResolvedSource]:
        """Resolve ``song`` to a playable source.

        Returns:
            The source to play, or None when a YouTube song could not be
            extracted (the caller then uses the video embed)
        """
        video_id = song.youtube_video_id
        if video_id is None:
            return ResolvedSource(url=song.url)

        logger.info(f"Extracting audio for YouTube video: {video_id}")
        try:
            result = await self._extractor.extract(video_id)
        except Exception:
            logger.exception(f"Unexpected error extracting audio for {video_id}")
            return None

        if result is None or not result.audio_url:
            logger.warning(f"Failed to extract YouTube audio for {video_id}")
            return None

        logger.debug(f"Got audio URL for {video_id}")
        return ResolvedSource(url=result.audio_url)
