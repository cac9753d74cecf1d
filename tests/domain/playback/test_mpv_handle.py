"""Tests for the mpv IPC handle, against a backend that records commands."""

import asyncio
import threading
from typing import Any, Optional

import pytest

from melodia.domain.playback.handle import MpvBackend, MpvHandle


class RecordingBackend(MpvBackend):
    """MpvBackend whose socket round-trip is answered in memory."""

    def __init__(self) -> None:
        super().__init__(socket_path="/nonexistent/melodia-test.sock")
        self.commands: list[list[Any]] = []
        self.threads: list[str] = []
        self.properties: dict[str, Any] = {
            "duration": 180.0,
            "time-pos": 0.0,
            "pause": True,
            "eof-reached": False,
        }
        self.read_gate: Optional[threading.Event] = None

    def is_running(self) -> bool:
        return True

    def _request(self, command: list[Any]) -> Optional[dict[str, Any]]:
        self.threads.append(threading.current_thread().name)
        self.commands.append(command)
        if command[0] == "get_property":
            if self.read_gate is not None:
                self.read_gate.wait(1.0)
            return {"error": "success", "data": self.properties.get(command[1])}
        if command[:2] == ["set_property", "pause"]:
            self.properties["pause"] = command[2]
        return {"error": "success"}

    async def flush(self) -> None:
        await self.call(lambda: None)


@pytest.fixture
def backend():
    backend = RecordingBackend()
    yield backend
    backend.stop()


@pytest.fixture
async def handle(backend: RecordingBackend) -> MpvHandle:
    handle = backend.create_handle("https://audio.example.com/a.mp3")
    await handle.load()
    return handle


@pytest.mark.anyio
class TestMpvHandle:
    """Commands are queued off the event loop; reads come from refresh()."""

    async def test_load_reads_duration(self, handle: MpvHandle, backend: RecordingBackend) -> None:
        assert handle.duration() == 180.0
        assert ["loadfile", "https://audio.example.com/a.mp3", "replace"] in backend.commands

    async def test_commands_run_on_ipc_thread_in_order(
        self, handle: MpvHandle, backend: RecordingBackend
    ) -> None:
        handle.play()
        handle.seek(10.0)
        handle.set_volume(0.5)
        await backend.flush()

        assert all(name.startswith("mpv-ipc") for name in backend.threads)
        assert backend.commands[-3:] == [
            ["set_property", "pause", False],
            ["seek", 10.0, "absolute"],
            ["set_property", "volume", 50],
        ]

    async def test_reads_are_cached_until_refresh(
        self, handle: MpvHandle, backend: RecordingBackend
    ) -> None:
        handle.play()
        backend.properties["time-pos"] = 33.0
        await backend.flush()

        assert handle.position() == 0.0

        await handle.refresh()

        assert handle.position() == 33.0
        assert handle.playing()
        assert not handle.ended()

    async def test_refresh_does_not_undo_newer_pause(
        self, handle: MpvHandle, backend: RecordingBackend
    ) -> None:
        handle.play()
        await backend.flush()
        backend.read_gate = threading.Event()

        refresh = asyncio.create_task(handle.refresh())
        await asyncio.sleep(0.01)
        handle.pause()
        backend.read_gate.set()
        await refresh

        assert not handle.playing()

    async def test_end_of_file_is_seen_after_refresh(
        self, handle: MpvHandle, backend: RecordingBackend
    ) -> None:
        handle.play()
        backend.properties["eof-reached"] = True
        await handle.refresh()

        assert handle.ended()

        handle.seek(0.0)
        assert not handle.ended()

    async def test_unload_sends_stop_once(
        self, handle: MpvHandle, backend: RecordingBackend
    ) -> None:
        handle.unload()
        handle.unload()
        await backend.flush()

        assert backend.commands.count(["stop"]) == 1
        assert not handle.playing()
        assert handle.position() == 0.0
