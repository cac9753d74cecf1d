"""Local file import: build Songs from audio files on disk using mutagen."""

import asyncio
import hashlib
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from mutagen import File as MutagenFile
from mutagen import MutagenError

from .models import LOCAL_ID_PREFIX, Song, SongSource


def get_tag_value(audio_file: Any, tag_names: list[str]) -> Optional[str]:
    """Get tag value, trying multiple possible tag names."""
    for tag_name in tag_names:
        try:
            value = audio_file.get(tag_name)
            if value:
                if isinstance(value, list) and value:
                    return str(value[0])
                return str(value)
        except (KeyError, ValueError):
            # Vorbis raises ValueError for non-existent keys
            continue
    return None


def parse_filename(path: Path) -> tuple[str, Optional[str]]:
    """Split an "Artist - Title" filename into (title, artist)."""
    title = path.stem
    if " - " in title:
        artist, title = title.split(" - ", 1)
        return title.strip(), artist.strip()
    return title, None


def local_song_id(path: Path) -> str:
    """Stable id for a local file, derived from its absolute path."""
    digest = hashlib.sha1(str(path.resolve()).encode("utf-8")).hexdigest()[:12]
    return f"{LOCAL_ID_PREFIX}{digest}"


def song_from_file(local_path: str) -> Song:
    """Extract metadata from an audio file and build a local Song.

    Falls back to the filename when mutagen cannot read the file.
    """
    path = Path(local_path).expanduser()
    fallback_title, fallback_artist = parse_filename(path)

    try:
        audio_file = MutagenFile(str(path))
    except (MutagenError, OSError) as e:
        logger.warning(f"Could not read metadata from {path}: {e}")
        audio_file = None

    if audio_file is None:
        return Song(
            id=local_song_id(path),
            title=fallback_title,
            artist=fallback_artist or "Unknown Artist",
            url=str(path),
            source=SongSource.LOCAL,
        )

    # ID3 (MP3), MP4 and Vorbis/Opus tag names
    title = get_tag_value(audio_file, ["TIT2", "\xa9nam", "TITLE", "title"])
    artist = get_tag_value(audio_file, ["TPE1", "\xa9ART", "ARTIST", "artist"])
    album = get_tag_value(audio_file, ["TALB", "\xa9alb", "ALBUM", "album"])
    genre = get_tag_value(audio_file, ["TCON", "\xa9gen", "GENRE", "genre"])

    year = None
    year_str = get_tag_value(audio_file, ["TDRC", "\xa9day", "DATE", "YEAR", "date", "year"])
    if year_str:
        try:
            year = int(str(year_str).split("-")[0])
        except ValueError:
            pass

    duration = 0.0
    if getattr(audio_file, "info", None) is not None:
        duration = float(getattr(audio_file.info, "length", 0.0) or 0.0)

    return Song(
        id=local_song_id(path),
        title=title or fallback_title,
        artist=artist or fallback_artist or "Unknown Artist",
        url=str(path),
        source=SongSource.LOCAL,
        duration=duration,
        album=album,
        genre=genre,
        year=year,
    )


async def import_local_file(local_path: str) -> Song:
    """Read a local file's metadata off the event loop."""
    return await asyncio.to_thread(song_from_file, local_path)
