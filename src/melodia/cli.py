"""
Melodia CLI - Entry point

Subcommands:
    serve     Run the extraction + sync relay web service
    extract   Resolve one YouTube video id to a direct audio URL
    play      Play local files or URLs as a queue through mpv
"""

import argparse
import asyncio
import hashlib
import json
import re
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from melodia.core.config import Config, load_config
from melodia.core.output import setup_loguru
from melodia.domain.library import Song, SongSource, import_local_file, youtube_song
from melodia.domain.playback import Player, PlayerIntent, PlayerUnavailableError, state

YOUTUBE_URL_PATTERN = re.compile(
    r"(?:youtube\.com/(?:watch\?(?:.*&)?v=|embed/|shorts/)|youtu\.be/)([A-Za-z0-9_-]{11})"
)


def youtube_video_id(value: str) -> Optional[str]:
    """Extract the video id from a YouTube URL, None for anything else."""
    match = YOUTUBE_URL_PATTERN.search(value)
    return match.group(1) if match else None


async def song_from_argument(value: str) -> Song:
    """Turn a CLI argument (file path, YouTube URL or direct URL) into a Song."""
    path = Path(value).expanduser()
    if path.exists():
        return await import_local_file(str(path))

    video_id = youtube_video_id(value)
    if video_id:
        return youtube_song(video_id, title=video_id, artist="YouTube")

    digest = hashlib.sha1(value.encode("utf-8")).hexdigest()[:12]
    return Song(
        id=f"url-{digest}",
        title=value.rsplit("/", 1)[-1] or value,
        artist="Unknown Artist",
        url=value,
        source=SongSource.ONLINE,
    )


def run_serve(config: Config, host: Optional[str], port: Optional[int]) -> int:
    import uvicorn

    from melodia.web import create_app

    setup_loguru(None, level=config.logging.level)
    app = create_app(config)
    uvicorn.run(app, host=host or config.web.host, port=port or config.web.port)
    return 0


async def run_extract(config: Config, video_id: str) -> int:
    from melodia.app import build_extractor

    setup_loguru(None, level=config.logging.level)
    extractor = build_extractor(config.extraction)
    try:
        result = await extractor.extract(video_id)
    finally:
        await extractor.aclose()

    if result is None:
        print(
            json.dumps({"error": "Could not extract audio. All sources are down. Try again later."})
        )
        return 1

    print(json.dumps(result.to_dict(), indent=2))
    return 0


async def play_queue(player: Player, songs: list[Song]) -> None:
    """Play ``songs`` as a queue until it runs out.

    Songs whose audio cannot be loaded are skipped, and the video embed does
    not count as playable here. Returns once every song in the queue has
    failed in a row.
    """
    events: asyncio.Queue[Optional[Song]] = asyncio.Queue()  # None = exhausted
    failures = 0

    def on_intent(intent: PlayerIntent) -> None:
        nonlocal failures
        if intent.kind == "play":
            failures = 0

    player.set_exhausted_handler(lambda: events.put_nowait(None))
    player.set_unplayable_handler(events.put_nowait)
    remove_listener = player.add_intent_listener(on_intent)
    try:
        await player.play_playlist(songs)
        if not player.state.queue:
            return
        while True:
            song = await events.get()
            if song is None:
                return
            failures += 1
            print(f"Skipping {song.artist} - {song.title}: audio unavailable", file=sys.stderr)
            session = player.state
            if failures >= len(session.queue) or state.next_index(session, auto=True) is None:
                return
            await player.next()
    finally:
        remove_listener()
        player.set_exhausted_handler(None)
        player.set_unplayable_handler(None)


async def run_play(config: Config, items: list[str]) -> int:
    from melodia.app import MelodiaApp

    songs = [await song_from_argument(item) for item in items]

    try:
        async with MelodiaApp(config) as app:
            shown: list[str] = []

            def show(session) -> None:
                song = session.current_song
                if song is None or not session.is_playing:
                    return
                if not shown or shown[-1] != song.id:
                    shown.append(song.id)
                    print(f"▶ {song.artist} - {song.title}")
                    if session.video_mode:
                        print("  (audio unavailable, video embed only)")

            app.store.subscribe(show)
            await play_queue(app.player, songs)
    except PlayerUnavailableError as e:
        logger.error(f"Player unavailable: {e}")
        print(f"Error: {e}. Is mpv installed?", file=sys.stderr)
        return 1
    return 0


def main() -> None:
    """Main entry point for the melodia command."""
    parser = argparse.ArgumentParser(
        description="Melodia - multi-source music player core",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.toml (default: auto-detected)",
    )
    subparsers = parser.add_subparsers(dest="subcommand", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the extraction and sync relay service")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Port")

    extract_parser = subparsers.add_parser("extract", help="Resolve a YouTube video id to audio")
    extract_parser.add_argument("video_id", help="YouTube video id")

    play_parser = subparsers.add_parser("play", help="Play files or URLs as a queue")
    play_parser.add_argument("items", nargs="+", help="File paths, YouTube URLs or direct URLs")

    args = parser.parse_args()
    if not args.subcommand:
        parser.print_help()
        sys.exit(1)

    config = load_config(args.config)

    try:
        if args.subcommand == "serve":
            sys.exit(run_serve(config, args.host, args.port))
        elif args.subcommand == "extract":
            sys.exit(asyncio.run(run_extract(config, args.video_id)))
        elif args.subcommand == "play":
            sys.exit(asyncio.run(run_play(config, args.items)))
    except KeyboardInterrupt:
        print("\nStopped")
        sys.exit(130)


if __name__ == "__main__":
    main()
