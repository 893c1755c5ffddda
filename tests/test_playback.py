"""Tests for the player state machine and traversal modes"""

import random

import pytest

from playdeck.catalog.models import Song
from playdeck.playback.engine import (
    PlaybackSession,
    PlaybackState,
    PlayerEvent,
    PlayerStatus,
    transition,
)
from playdeck.playback.linked import LinkedPlaylist
from playdeck.playback.modes import PlaybackMode, ShuffleStrategy

from conftest import RecordingRenderer


SONGS = [
    Song("One", "A", duration=61),
    Song("Two", "B", duration=62),
    Song("Three", "C", duration=63),
]


def make_session(mode=PlaybackMode.SEQUENTIAL, songs=SONGS, seed=1):
    renderer = RecordingRenderer()
    session = PlaybackSession("Test", songs, mode=mode, renderer=renderer, rng=random.Random(seed))
    return session, renderer


class TestTransitions:

    @pytest.mark.parametrize("state, event, expected", [
        (PlaybackState.STOPPED, PlayerEvent.PLAY, PlaybackState.PLAYING),
        (PlaybackState.STOPPED, PlayerEvent.PAUSE, PlaybackState.STOPPED),
        (PlaybackState.PLAYING, PlayerEvent.PAUSE, PlaybackState.PAUSED),
        (PlaybackState.PAUSED, PlayerEvent.PLAY, PlaybackState.PLAYING),
        (PlaybackState.PAUSED, PlayerEvent.STOP, PlaybackState.STOPPED),
    ])
    def test_table(self, state, event, expected):
        assert transition(state, event) is expected

    def test_empty_playlist_stays_stopped(self):
        assert transition(PlaybackState.STOPPED, PlayerEvent.PLAY, has_songs=False) is PlaybackState.STOPPED


class TestStatusLine:

    def test_format(self):
        song = Song("Ciel", "GIMS", duration=306)
        assert PlayerStatus(PlaybackState.PLAYING, song).format() == "PLAYING: Ciel by GIMS (5:06)"
        assert PlayerStatus(PlaybackState.STOPPED, None).format() == "STOPPED: No song selected"
        assert (PlayerStatus(PlaybackState.PAUSED, song, notice="End of playlist").format()
                == "INFO: End of playlist; PAUSED: Ciel by GIMS (5:06)")
        assert PlayerStatus(PlaybackState.STOPPED, None, empty=True).format() == "INFO: Playlist is empty"


class TestSequential:

    def test_starts_before_first_song(self):
        session, _ = make_session()
        assert session.state is PlaybackState.STOPPED
        assert session.current_song is None

    def test_three_nexts_reach_last_song_and_fourth_is_noop(self):
        session, _ = make_session()
        titles = [session.next().song.title for _ in range(3)]
        assert titles == ["One", "Two", "Three"]

        status = session.next()
        assert status.notice == "End of playlist"
        assert status.song.title == "Three"

    def test_previous_at_start(self):
        session, _ = make_session()
        session.next()
        status = session.previous()
        assert status.notice == "Start of playlist"
        assert status.song.title == "One"

    def test_previous_before_first_song(self):
        session, _ = make_session()
        assert session.previous().notice == "Start of playlist"

    def test_play_pause_stop(self):
        session, renderer = make_session()

        assert session.play().format() == "PLAYING: One by A (1:01)"
        assert session.play().notice == "Already playing"
        assert session.pause().state is PlaybackState.PAUSED
        assert session.pause().notice == "Already paused"
        assert session.play().state is PlaybackState.PLAYING
        assert session.stop().state is PlaybackState.STOPPED
        assert session.stop().notice == "Already stopped"
        assert session.pause().notice == "Nothing is playing"

        assert renderer.calls == [("play", "One"), ("pause", "One"), ("play", "One"), ("stop", "One")]

    def test_moving_while_playing_renders(self):
        session, renderer = make_session()
        session.play()
        session.next()
        session.pause()
        session.next()

        assert renderer.calls == [("play", "One"), ("play", "Two"), ("pause", "Two")]
        assert session.current_song.title == "Three"
        assert session.state is PlaybackState.PAUSED

    def test_close(self):
        session, renderer = make_session()
        session.play()
        session.close()
        session.close()

        assert session.closed
        assert renderer.calls == [("play", "One"), ("stop", "One")]


class TestRepeat:

    def test_fourth_next_wraps(self):
        session, _ = make_session(PlaybackMode.REPEAT)
        titles = [session.next().song.title for _ in range(4)]
        assert titles == ["One", "Two", "Three", "One"]

    def test_previous_wraps(self):
        session, _ = make_session(PlaybackMode.REPEAT)
        session.next()
        assert session.previous().song.title == "Three"

    def test_single_song_repeats(self):
        session, _ = make_session(PlaybackMode.REPEAT, songs=SONGS[:1])
        session.next()
        status = session.next()
        assert status.notice is None
        assert status.song.title == "One"


class TestShuffle:

    def test_pass_visits_every_song_once(self):
        songs = [Song(f"S{i}") for i in range(8)]
        session, _ = make_session(PlaybackMode.SHUFFLE, songs=songs)

        seen = [session.next().song.title for _ in range(8)]
        assert sorted(seen) == sorted(s.title for s in songs)

    @pytest.mark.parametrize("seed", range(20))
    def test_new_pass_never_repeats_last_song(self, seed):
        songs = [Song(f"S{i}") for i in range(4)]
        session, _ = make_session(PlaybackMode.SHUFFLE, songs=songs, seed=seed)

        titles = [session.next().song.title for _ in range(12)]
        for boundary in (4, 8):
            assert titles[boundary] != titles[boundary - 1]
        for start in (0, 4, 8):
            assert len(set(titles[start:start + 4])) == 4

    def test_previous_stays_in_pass(self):
        session, _ = make_session(PlaybackMode.SHUFFLE)
        first = session.next().song
        second = session.next().song

        assert session.previous().song == first
        status = session.previous()
        assert status.notice == "Start of shuffle pass"
        assert status.song == first
        assert second != first

    def test_single_song(self):
        session, _ = make_session(PlaybackMode.SHUFFLE, songs=SONGS[:1])
        session.next()
        assert session.next().notice == "Only one song in playlist"

    def test_switch_keeps_current_song_first(self):
        session, _ = make_session()
        session.next()
        session.next()
        session.set_mode(PlaybackMode.SHUFFLE)

        strategy = session.strategy
        assert isinstance(strategy, ShuffleStrategy)
        assert strategy.order[0].song.title == "Two"
        assert session.current_song.title == "Two"

    def test_reset_without_current(self):
        view = LinkedPlaylist("x", SONGS)
        strategy = ShuffleStrategy(random.Random(3))
        strategy.reset(view, None)
        assert len(strategy.order) == 3
        assert strategy.first(view) is strategy.order[0]


class TestEmptyPlaylist:

    def test_every_command_reports_empty(self):
        session, renderer = make_session(songs=[])
        for action in (session.play, session.pause, session.stop, session.next, session.previous):
            assert action().format() == "INFO: Playlist is empty"
        assert session.state is PlaybackState.STOPPED
        assert renderer.calls == []


class TestModeParsing:

    @pytest.mark.parametrize("value, expected", [
        ("sequential", PlaybackMode.SEQUENTIAL),
        ("Shuffle", PlaybackMode.SHUFFLE),
        ("3", PlaybackMode.REPEAT),
        ("4", None),
        ("loop", None),
        ("", None),
    ])
    def test_parse(self, value, expected):
        assert PlaybackMode.parse(value) is expected
