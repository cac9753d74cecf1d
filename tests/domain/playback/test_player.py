"""Tests for the Player facade: queue navigation, end-of-track policy, intents."""

import asyncio

import pytest

from conftest import make_song
from melodia.domain.playback.player import PlayerIntent
from melodia.domain.playback.state import RepeatMode


@pytest.fixture
def intents(player) -> list[PlayerIntent]:
    seen: list[PlayerIntent] = []
    player.add_intent_listener(seen.append)
    return seen


@pytest.mark.anyio
class TestNavigation:
    """next() and previous() scenarios."""

    async def test_next_walks_queue_then_stops(self, player, song_a, song_b, song_c) -> None:
        await player.play_playlist([song_a, song_b, song_c])

        await player.next()
        assert player.state.queue_index == 1
        assert player.state.current_song == song_b

        await player.next()
        assert player.state.queue_index == 2
        assert player.state.current_song == song_c

        await player.next()
        assert player.state.queue_index == 2
        assert player.state.current_song == song_c

    async def test_next_wraps_with_repeat_all(self, player, song_a, song_b, song_c) -> None:
        await player.play_playlist([song_a, song_b, song_c])
        player.set_repeat(RepeatMode.ALL)

        await player.next()
        await player.next()
        await player.next()

        assert player.state.queue_index == 0
        assert player.state.current_song == song_a

    async def test_next_on_empty_queue_is_noop(self, player, handles) -> None:
        await player.next()
        assert player.state.current_song is None
        assert handles.handles == []

    async def test_repeat_all_cycle_returns_to_start(self, player) -> None:
        songs = [make_song(str(i)) for i in range(4)]
        await player.play_playlist(songs, start_index=1)
        player.set_repeat("all")

        for _ in songs:
            await player.next()

        assert player.state.queue_index == 1

    async def test_shuffle_next_changes_index(self, player) -> None:
        songs = [make_song(str(i)) for i in range(5)]
        await player.play_playlist(songs)
        player.toggle_shuffle()

        for _ in range(20):
            before = player.state.queue_index
            await player.next()
            assert player.state.queue_index != before

    async def test_shuffle_single_song_stays_put(self, player, song_a) -> None:
        await player.play_playlist([song_a])
        player.toggle_shuffle()

        await player.next()

        assert player.state.queue_index == 0
        assert player.state.current_song == song_a

    async def test_previous_restarts_after_threshold(self, player, handles, song_a, song_b) -> None:
        await player.play_playlist([song_a, song_b], start_index=1)
        player.store.update(current_time=42.0)

        await player.previous()

        assert player.state.queue_index == 1
        assert player.state.current_time == 0.0
        assert handles.last.seeks == [0.0]
        assert player.state.current_song == song_b

    async def test_previous_steps_back_within_threshold(self, player, song_a, song_b) -> None:
        await player.play_playlist([song_a, song_b], start_index=1)
        player.store.update(current_time=3.0)

        await player.previous()

        assert player.state.queue_index == 0
        assert player.state.current_song == song_a

    async def test_previous_at_start_clamps(self, player, song_a, song_b) -> None:
        await player.play_playlist([song_a, song_b])

        await player.previous()

        assert player.state.queue_index == 0

    async def test_previous_wraps_with_repeat_all(self, player, song_a, song_b, song_c) -> None:
        await player.play_playlist([song_a, song_b, song_c])
        player.set_repeat(RepeatMode.ALL)

        await player.previous()

        assert player.state.queue_index == 2
        assert player.state.current_song == song_c

    async def test_navigation_uses_queue_index_not_current_song(
        self, player, song_a, song_b, song_c
    ) -> None:
        await player.play_playlist([song_a, song_b])
        outside = make_song("outside")
        await player.play(outside)
        assert player.state.current_song == outside
        assert player.state.queue_index == 0

        await player.next()

        assert player.state.current_song == song_b


@pytest.mark.anyio
class TestEndOfTrack:
    """Auto-advance driven by the engine."""

    async def test_advances_to_next_song(self, player, engine, handles, song_a, song_b) -> None:
        await player.play_playlist([song_a, song_b])

        handles.last.finish()
        await engine.tick()

        assert player.state.queue_index == 1
        assert player.state.current_song == song_b
        assert player.state.is_playing

    async def test_repeat_one_replays_same_index(
        self, player, engine, handles, song_a, song_b
    ) -> None:
        await player.play_playlist([song_a, song_b])
        player.set_repeat(RepeatMode.ONE)
        handle = handles.last

        handle.finish()
        await engine.tick()

        assert player.state.queue_index == 0
        assert player.state.current_song == song_a
        assert player.state.is_playing
        assert handle.seeks == [0.0]
        assert handle.is_playing
        assert len(handles.handles) == 1

    async def test_repeat_one_replays_again_on_next_end(
        self, player, engine, handles, song_a
    ) -> None:
        await player.play_playlist([song_a])
        player.set_repeat(RepeatMode.ONE)

        for _ in range(3):
            handles.last.finish()
            await engine.tick()

        assert handles.last.seeks == [0.0, 0.0, 0.0]
        assert player.state.is_playing

    async def test_exhausted_queue_stops(self, player, engine, handles, song_a, song_b) -> None:
        finished = []
        player.set_exhausted_handler(lambda: finished.append(True))
        await player.play_playlist([song_a, song_b], start_index=1)

        handles.last.finish()
        await engine.tick()

        assert player.state.queue_index == 1
        assert player.state.current_song == song_b
        assert not player.state.is_playing
        assert finished == [True]

    async def test_repeat_all_wraps_at_end(self, player, engine, handles, song_a, song_b) -> None:
        await player.play_playlist([song_a, song_b], start_index=1)
        player.set_repeat(RepeatMode.ALL)

        handles.last.finish()
        await engine.tick()

        assert player.state.queue_index == 0
        assert player.state.current_song == song_a


@pytest.mark.anyio
class TestQueueEditing:
    """add/remove/clear/play_playlist through the player."""

    async def test_add_to_queue_does_not_interrupt(self, player, handles, song_a, song_b) -> None:
        await player.play_playlist([song_a])
        handle = handles.last

        player.add_to_queue(song_b)

        assert player.state.queue == (song_a, song_b)
        assert player.state.queue_index == 0
        assert handle.is_playing
        assert len(handles.handles) == 1

    async def test_remove_before_current(self, player, song_a, song_b, song_c) -> None:
        await player.play_playlist([song_a, song_b, song_c], start_index=2)

        player.remove_from_queue(0)

        assert player.state.queue_index == 1
        assert player.state.queue[1] == song_c

    async def test_remove_after_current(self, player, song_a, song_b, song_c) -> None:
        await player.play_playlist([song_a, song_b, song_c])

        player.remove_from_queue(2)

        assert player.state.queue_index == 0
        assert player.state.queue == (song_a, song_b)

    async def test_remove_current_keeps_playing(self, player, handles, song_a, song_b, song_c) -> None:
        await player.play_playlist([song_a, song_b, song_c], start_index=1)

        player.remove_from_queue(1)

        assert len(player.state.queue) == 2
        assert player.state.current_song == song_b
        assert handles.last.is_playing

    async def test_remove_out_of_range_is_noop(self, player, song_a) -> None:
        await player.play_playlist([song_a])
        before = player.state

        player.remove_from_queue(5)

        assert player.state is before

    async def test_clear_queue_releases_handle(self, player, engine, handles, song_a, song_b) -> None:
        await player.play_playlist([song_a, song_b])

        player.clear_queue()

        session = player.state
        assert session.queue == ()
        assert session.queue_index == -1
        assert session.current_song is None
        assert not session.is_playing
        assert handles.live == []
        assert not engine.is_polling

    async def test_play_playlist_jumps_to_start_index(self, player, handles, song_a, song_b, song_c) -> None:
        await player.play_playlist([song_a, song_b, song_c], start_index=2)

        assert player.state.queue_index == 2
        assert player.state.current_song == song_c
        assert handles.last.url == song_c.url

    async def test_play_playlist_bad_index_raises(self, player, song_a) -> None:
        with pytest.raises(IndexError):
            await player.play_playlist([song_a], start_index=3)
        assert player.state.queue == ()

    async def test_play_empty_playlist_is_noop(self, player, handles, song_a) -> None:
        await player.play_playlist([song_a])

        await player.play_playlist([])

        assert player.state.queue == (song_a,)
        assert handles.last.is_playing


@pytest.mark.anyio
class TestIntents:
    """Local intents are announced; remote payloads are not."""

    async def test_play_pause_seek_are_announced(self, player, intents, song_a) -> None:
        await player.play(song_a)
        await player.pause()
        await player.seek(30.0)
        await player.play()

        assert [i.kind for i in intents] == ["play", "pause", "seek", "play"]
        assert intents[0].song == song_a
        assert intents[2].time == 30.0
        assert intents[3].time == 30.0

    async def test_resume_without_song_is_not_announced(self, player, intents) -> None:
        await player.play()
        assert intents == []

    async def test_previous_restart_announces_seek(self, player, intents, song_a) -> None:
        await player.play_playlist([song_a])
        player.store.update(current_time=10.0)

        await player.previous()

        assert intents[-1] == PlayerIntent("seek", time=0.0)

    async def test_remote_play_loads_and_seeks_silently(
        self, player, intents, handles, song_a
    ) -> None:
        await player.apply_remote_play(song_a, 12.0)

        assert player.state.current_song == song_a
        assert player.state.current_time == 12.0
        assert player.state.is_playing
        assert handles.last.seeks == [12.0]
        assert intents == []

    async def test_remote_play_of_loaded_song_seeks_and_resumes(
        self, player, intents, handles, song_a
    ) -> None:
        await player.apply_remote_play(song_a, 0.0)
        player.apply_remote_pause()

        await player.apply_remote_play(song_a, 50.0)

        assert len(handles.handles) == 1
        assert handles.last.seeks == [50.0]
        assert handles.last.is_playing
        assert intents == []

    async def test_remote_pause_and_seek_are_silent(self, player, intents, handles, song_a) -> None:
        await player.apply_remote_play(song_a)
        player.apply_remote_seek(20.0)
        player.apply_remote_pause()

        assert player.state.current_time == 20.0
        assert not player.state.is_playing
        assert intents == []

    async def test_failing_listener_does_not_break_playback(self, player, song_a) -> None:
        def broken(intent: PlayerIntent) -> None:
            raise RuntimeError("listener failed")

        player.add_intent_listener(broken)
        await player.play(song_a)

        assert player.state.is_playing

    async def test_removed_listener_is_not_called(self, player, song_a) -> None:
        seen = []
        remove = player.add_intent_listener(seen.append)
        remove()

        await player.play(song_a)

        assert seen == []

    async def test_failed_load_is_not_announced(self, player, intents, handles, song_a) -> None:
        handles.failing_urls.add(song_a.url)
        unplayable = []
        player.set_unplayable_handler(unplayable.append)

        await player.play(song_a)

        assert not player.state.is_playing
        assert intents == []
        assert unplayable == [song_a]

    async def test_video_fallback_is_announced(self, player, intents, yt_song) -> None:
        unplayable = []
        player.set_unplayable_handler(unplayable.append)

        await player.play(yt_song)

        assert player.state.video_mode
        assert intents == [PlayerIntent("play", song=yt_song, time=0.0)]
        assert unplayable == [yt_song]

    async def test_superseded_load_of_same_song_is_silent(
        self, player, intents, extractor, yt_song
    ) -> None:
        unplayable = []
        player.set_unplayable_handler(unplayable.append)
        video_id = yt_song.youtube_video_id
        held = extractor.hold(video_id)

        first = asyncio.create_task(player.play(yt_song))
        await asyncio.sleep(0)
        del extractor.pending[video_id]
        extractor.succeed(video_id)
        await player.play(yt_song)
        held.set_result(None)
        await first

        assert intents == [PlayerIntent("play", song=yt_song, time=0.0)]
        assert unplayable == []


@pytest.mark.anyio
class TestModes:
    """Shuffle, repeat, video mode and media metadata."""

    async def test_toggle_shuffle(self, player) -> None:
        player.toggle_shuffle()
        assert player.state.shuffle
        player.toggle_shuffle()
        assert not player.state.shuffle

    async def test_cycle_repeat(self, player) -> None:
        player.cycle_repeat()
        assert player.state.repeat == RepeatMode.ALL

    async def test_toggle_video_mode(self, player) -> None:
        player.toggle_video_mode()
        assert player.state.video_mode

    async def test_now_playing(self, player, song_a) -> None:
        assert player.now_playing() is None

        await player.play(song_a)

        assert player.now_playing() == {
            "title": song_a.title,
            "artist": song_a.artist,
            "album": "",
            "artwork": "",
        }

    async def test_volume_and_mute(self, player, handles, song_a) -> None:
        await player.play(song_a)
        player.set_volume(0.3)
        player.toggle_mute()

        assert player.state.is_muted
        assert handles.last.volume == 0.0
