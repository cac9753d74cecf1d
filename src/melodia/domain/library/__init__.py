"""Library domain - the Song value object and local file import."""

from .local import import_local_file, song_from_file
from .models import LOCAL_ID_PREFIX, YOUTUBE_ID_PREFIX, Song, SongSource, youtube_song

__all__ = [
    "Song",
    "SongSource",
    "YOUTUBE_ID_PREFIX",
    "LOCAL_ID_PREFIX",
    "youtube_song",
    "song_from_file",
    "import_local_file",
]
