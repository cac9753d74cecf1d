"""
Audio handles: one loaded, playable source.

The Transport Engine only talks to the ``AudioHandle`` protocol. The concrete
implementation drives an ``mpv`` process over its JSON IPC socket; the engine
unloads the previous handle before asking the backend for a new one, so at
most one source ever sounds.
"""

import asyncio
import json
import os
import socket
import subprocess
import tempfile
import time
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import Any, Callable, Optional, Protocol, TypeVar

from loguru import logger

from .exceptions import LoadError, PlayError, PlayerUnavailableError

# Seconds to wait for mpv to report a loaded file
LOAD_TIMEOUT = 8.0
LOAD_POLL_INTERVAL = 0.05

T = TypeVar("T")


class AudioHandle(Protocol):
    """A single loaded audio source (volume is 0..1)."""

    async def load(self) -> None:
        ...

    async def refresh(self) -> None:
        """Re-read live transport state (position, pause, end) from the player."""
        ...

    def play(self) -> None:
        ...

    def pause(self) -> None:
        ...

    def unload(self) -> None:
        ...

    def seek(self, seconds: float) -> None:
        ...

    def position(self) -> float:
        ...

    def duration(self) -> float:
        ...

    def playing(self) -> bool:
        ...

    def ended(self) -> bool:
        ...

    def set_volume(self, volume: float) -> None:
        ...


HandleFactory = Callable[[str], AudioHandle]


class MpvBackend:
    """One idle mpv process controlled through JSON IPC."""

    def __init__(self, socket_path: Optional[str] = None, volume: float = 0.7) -> None:
        self.socket_path = socket_path or str(
            Path(tempfile.gettempdir()) / f"melodia-mpv-{os.getpid()}"
        )
        self.initial_volume = volume
        self.process: Optional[subprocess.Popen] = None
        self._executor: Optional[ThreadPoolExecutor] = None

    def start(self, timeout: float = 5.0) -> None:
        """Start mpv and wait for its IPC socket.

        Raises:
            PlayerUnavailableError: If mpv cannot be started
        """
        logger.info(f"Starting MPV player with socket: {self.socket_path}")

        if os.path.exists(self.socket_path):
            logger.debug(f"Removing existing socket: {self.socket_path}")
            os.unlink(self.socket_path)

        cmd = [
            "mpv",
            "--idle=yes",
            "--no-video",
            "--no-terminal",
            f"--input-ipc-server={self.socket_path}",
            f"--volume={int(self.initial_volume * 100)}",
            "--keep-open=yes",
            "--load-scripts=no",
        ]

        try:
            self.process = subprocess.Popen(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                stdin=subprocess.DEVNULL,
            )
        except OSError as e:
            raise PlayerUnavailableError(f"Failed to start MPV: {e}") from e

        start_time = time.time()
        while not os.path.exists(self.socket_path):
            if time.time() - start_time > timeout:
                self.process.kill()
                raise PlayerUnavailableError(f"MPV socket creation timeout after {timeout}s")
            time.sleep(0.1)

        if not self.send_command(["get_property", "idle-active"]):
            self.process.kill()
            raise PlayerUnavailableError("MPV socket connection test failed")

        logger.info("MPV started successfully")

    def stop(self) -> None:
        """Stop the mpv process and remove its socket."""
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

        if self.process:
            try:
                self.process.kill()
                self.process.wait(timeout=2.0)
            except (OSError, subprocess.TimeoutExpired):
                pass  # already gone
            self.process = None

        if os.path.exists(self.socket_path):
            try:
                os.unlink(self.socket_path)
            except OSError:
                pass

    def is_running(self) -> bool:
        if not self.process or self.process.poll() is not None:
            return False
        return os.path.exists(self.socket_path)

    def _request(self, command: list[Any]) -> Optional[dict[str, Any]]:
        if not os.path.exists(self.socket_path):
            return None

        try:
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            sock.settimeout(2.0)
            sock.connect(self.socket_path)
            sock.send((json.dumps({"command": command}) + "\n").encode("utf-8"))
            response = sock.recv(4096).decode("utf-8").strip()
            sock.close()
        except OSError:
            return None

        # mpv may interleave event lines with the reply
        for line in response.splitlines():
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                continue
            if "error" in data:
                return data
        return None

    def send_command(self, command: list[Any]) -> bool:
        """Send a JSON IPC command; True when mpv reports success."""
        reply = self._request(command)
        return bool(reply) and reply.get("error") == "success"

    def get_property(self, name: str) -> Any:
        reply = self._request(["get_property", name])
        if reply and reply.get("error") == "success":
            return reply.get("data")
        return None

    # The socket calls above block, so everything issued from the event loop
    # goes through one worker thread. A single worker keeps commands in order.

    def _ipc(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="mpv-ipc")
        return self._executor

    async def call(self, fn: Callable[..., T], *args: Any) -> T:
        """Run blocking ``fn(*args)`` on the IPC thread and await its result."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._ipc(), partial(fn, *args))

    def submit(self, command: list[Any]) -> None:
        """Queue a command without waiting for mpv's reply."""
        future = self._ipc().submit(self.send_command, command)

        def check(done: Future) -> None:
            if done.cancelled():
                return
            error = done.exception()
            if error is not None:
                logger.warning(f"MPV command {command[0]} failed: {error}")
            elif not done.result():
                logger.warning(f"MPV rejected command: {command}")

        future.add_done_callback(check)

    def create_handle(self, url: str) -> "MpvHandle":
        if not self.is_running():
            raise PlayerUnavailableError("MPV is not running")
        return MpvHandle(self, url)


class MpvHandle:
    """The file currently loaded in mpv.

    Transport commands are queued to the backend's IPC thread and return at
    once. Reads are served from the last ``refresh``, which the engine awaits
    before every position sample.
    """

    def __init__(self, backend: MpvBackend, url: str) -> None:
        self._backend = backend
        self.url = url
        self._loaded = False
        self._unloaded = False
        self._paused = True
        self._position = 0.0
        self._duration = 0.0
        self._eof = False
        self._revision = 0  # bumped by local transport commands

    async def load(self) -> None:
        await self._backend.call(self._load_blocking)

    def _load_blocking(self) -> None:
        backend = self._backend
        # Load paused; the engine decides when to start
        backend.send_command(["set_property", "pause", True])
        if not backend.send_command(["loadfile", self.url, "replace"]):
            raise LoadError(f"mpv refused to load {self.url}")

        elapsed = 0.0
        while elapsed < LOAD_TIMEOUT:
            if self._unloaded:
                raise LoadError("load superseded")
            duration = backend.get_property("duration")
            if duration is not None:
                self._duration = float(duration)
                self._loaded = True
                logger.debug(f"Loaded {self.url}")
                return
            time.sleep(LOAD_POLL_INTERVAL)
            elapsed += LOAD_POLL_INTERVAL

        # Live streams may never report a duration
        if backend.get_property("path") and not backend.get_property("idle-active"):
            self._loaded = True
            return
        raise LoadError(f"mpv could not open {self.url}")

    async def refresh(self) -> None:
        if self._unloaded or not self._loaded:
            return
        revision = self._revision
        position, paused, eof = await self._backend.call(self._read_state)
        # A local command issued meanwhile is newer than what was read
        if self._unloaded or revision != self._revision:
            return
        self._position = float(position or 0.0)
        self._paused = paused is not False
        self._eof = eof is True

    def _read_state(self) -> tuple[Any, Any, Any]:
        backend = self._backend
        return (
            backend.get_property("time-pos"),
            backend.get_property("pause"),
            backend.get_property("eof-reached"),
        )

    def _require_live(self) -> None:
        if self._unloaded:
            raise PlayError("handle already unloaded")
        if not self._backend.is_running():
            raise PlayerUnavailableError("MPV is not running")

    def play(self) -> None:
        self._require_live()
        self._revision += 1
        self._paused = False
        self._backend.submit(["set_property", "pause", False])

    def pause(self) -> None:
        self._require_live()
        self._paused = True
        self._revision += 1
        self._backend.submit(["set_property", "pause", True])

    def unload(self) -> None:
        if self._unloaded:
            return
        self._unloaded = True
        self._paused = True
        if self._loaded and self._backend.is_running():
            self._backend.submit(["stop"])

    def seek(self, seconds: float) -> None:
        self._require_live()
        self._position = float(seconds)
        self._revision += 1
        self._eof = False
        self._backend.submit(["seek", float(seconds), "absolute"])

    def position(self) -> float:
        return 0.0 if self._unloaded else self._position

    def duration(self) -> float:
        return 0.0 if self._unloaded else self._duration

    def playing(self) -> bool:
        if self._unloaded or not self._loaded:
            return False
        return not self._paused

    def ended(self) -> bool:
        if self._unloaded or not self._loaded:
            return False
        return self._eof

    def set_volume(self, volume: float) -> None:
        if self._unloaded:
            return
        self._backend.submit(["set_property", "volume", round(volume * 100)])
