"""Single-writer holder for the process-wide PlaybackSession."""

from dataclasses import replace
from typing import Any, Callable, Optional

from loguru import logger

from .state import PlaybackSession

SessionListener = Callable[[PlaybackSession], None]


class SessionStore:
    """Holds the current session and swaps it atomically on every update.

    Listeners (UI surfaces) are notified after each swap with the new value.
    """

    def __init__(self, initial: Optional[PlaybackSession] = None) -> None:
        self._session = initial or PlaybackSession()
        self._listeners: list[SessionListener] = []

    @property
    def session(self) -> PlaybackSession:
        return self._session

    def update(self, **changes: Any) -> PlaybackSession:
        """Apply field changes as one replacement."""
        return self.set(replace(self._session, **changes))

    def set(self, session: PlaybackSession) -> PlaybackSession:
        if session == self._session:
            return session
        self._session = session
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                logger.exception("Session listener failed")
        return session

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
