from fastapi.requests import HTTPConnection

from melodia.domain.playback.resolver import Extractor

from .relay import SyncRelay


def get_extractor(conn: HTTPConnection) -> Extractor:
    """FastAPI dependency for the audio extractor."""
    return conn.app.state.extractor


def get_relay(conn: HTTPConnection) -> SyncRelay:
    """FastAPI dependency for the sync relay (HTTP and WebSocket routes)."""
    return conn.app.state.relay
