"""
Application root: builds the player stack once and tears it down in order.

    async with MelodiaApp() as app:
        await app.player.play_playlist(songs)

Construction order is config, logging, audio backend, extractor, resolver,
engine, player, sync controller. ``close`` disposes them in reverse.
"""

import asyncio
from typing import Optional

from loguru import logger

from melodia.core.config import Config, ExtractionConfig, get_data_dir, load_config
from melodia.core.output import setup_loguru
from melodia.domain.extraction import ExtractionChain, RemoteExtractor, build_default_backends
from melodia.domain.playback import (
    HandleFactory,
    MpvBackend,
    PlaybackSession,
    Player,
    SessionStore,
    TrackSourceResolver,
    TransportEngine,
)
from melodia.domain.playback.resolver import Extractor
from melodia.domain.sync import ChannelFactory, SyncController, websocket_channel_factory
from melodia.notifications import configure_notifications, notify_error


def build_extraction_chain(extraction: ExtractionConfig) -> ExtractionChain:
    """Extraction chain over the configured Cobalt and Piped instances."""
    backends = build_default_backends(
        cobalt_instances=extraction.cobalt_instances,
        piped_instances=extraction.piped_instances,
        cobalt_timeout=extraction.cobalt_timeout,
        piped_timeout=extraction.piped_timeout,
        preferred_mime=extraction.preferred_mime,
        user_agent=extraction.user_agent,
    )
    return ExtractionChain(backends, cache_ttl=extraction.cache_ttl_seconds)


def build_extractor(extraction: ExtractionConfig):
    """Remote service when ``service_url`` is set, else the in-process chain."""
    if extraction.service_url:
        logger.info(f"Using extraction service at {extraction.service_url}")
        return RemoteExtractor(extraction.service_url)
    return build_extraction_chain(extraction)


def _log_only(message: str) -> None:
    logger.error(message)


class MelodiaApp:
    """Owns the one player, engine and sync controller of this process.

    Collaborators can be injected (tests, embedding UIs); anything not
    injected is built from config. Only built collaborators are closed.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        handle_factory: Optional[HandleFactory] = None,
        extractor: Optional[Extractor] = None,
        channel_factory: Optional[ChannelFactory] = None,
        configure_logging: bool = True,
    ) -> None:
        self.config = config
        self._handle_factory = handle_factory
        self._extractor = extractor
        self._channel_factory = channel_factory
        self._configure_logging = configure_logging

        self.mpv: Optional[MpvBackend] = None
        self.extractor: Optional[Extractor] = None
        self._owned_extractor = None
        self.store: Optional[SessionStore] = None
        self.engine: Optional[TransportEngine] = None
        self.player: Optional[Player] = None
        self.sync: Optional[SyncController] = None

    async def __aenter__(self) -> "MelodiaApp":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        """Build the stack.

        Raises:
            PlayerUnavailableError: If mpv is needed and cannot be started
        """
        if self.config is None:
            self.config = load_config()
        config = self.config

        if self._configure_logging:
            log_file = config.logging.log_file or str(get_data_dir() / "melodia.log")
            setup_loguru(
                log_file,
                level=config.logging.level,
                max_file_size_mb=config.logging.max_file_size_mb,
                backup_count=config.logging.backup_count,
                console_output=config.logging.console_output,
            )
        configure_notifications(config.notifications.enabled)

        handle_factory = self._handle_factory
        if handle_factory is None:
            self.mpv = MpvBackend(config.player.mpv_socket_path, volume=config.player.volume)
            await asyncio.to_thread(self.mpv.start)
            handle_factory = self.mpv.create_handle

        if self._extractor is not None:
            self.extractor = self._extractor
        else:
            self._owned_extractor = build_extractor(config.extraction)
            self.extractor = self._owned_extractor

        self.store = SessionStore(PlaybackSession(volume=config.player.volume))
        self.engine = TransportEngine(
            self.store,
            TrackSourceResolver(self.extractor),
            handle_factory,
            notify=notify_error if config.notifications.show_errors else _log_only,
            poll_interval=config.player.poll_interval,
        )
        self.player = Player(
            self.store, self.engine, restart_threshold=config.player.restart_threshold
        )
        self.sync = SyncController(
            self.player,
            self._channel_factory or websocket_channel_factory(config.sync.relay_url),
            user_name=config.sync.user_name,
            channel_prefix=config.sync.channel_prefix,
        )
        logger.info("Melodia started")

    async def close(self) -> None:
        """Dispose in reverse construction order."""
        if self.sync is not None:
            await self.sync.close()
            self.sync = None
        if self.player is not None:
            await self.player.close()
            self.player = None
            self.engine = None
        if self._owned_extractor is not None:
            await self._owned_extractor.aclose()
            self._owned_extractor = None
        if self.mpv is not None:
            await asyncio.to_thread(self.mpv.stop)
            self.mpv = None
        logger.info("Melodia stopped")
