"""
Playback engine: a per-connection player over a loaded playlist.

Player state changes are driven by one transition table:

    +----------+---------------------+---------+---------+
    | from     | play                | pause   | stop    |
    +----------+---------------------+---------+---------+
    | STOPPED  | PLAYING (non-empty) | STOPPED | STOPPED |
    | PLAYING  | PLAYING             | PAUSED  | STOPPED |
    | PAUSED   | PLAYING             | PAUSED  | STOPPED |
    +----------+---------------------+---------+---------+

next/previous are valid in every state and only reposition the current
song through the traversal strategy. Right after a load the player is
STOPPED and positioned before the first song.

A PlaybackSession belongs to exactly one session handler and is never
shared between threads, so it has no locking.
"""

import random
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from playdeck.catalog.models import Song
from playdeck.playback.linked import LinkedPlaylist, PlaylistNode
from playdeck.playback.modes import PlaybackMode, TraversalStrategy, create_strategy
from playdeck.playback.renderer import LoggingRenderer, Renderer


class PlaybackState(Enum):
    STOPPED = "STOPPED"
    PLAYING = "PLAYING"
    PAUSED = "PAUSED"


class PlayerEvent(Enum):
    PLAY = "play"
    PAUSE = "pause"
    STOP = "stop"


TRANSITIONS: dict[tuple[PlaybackState, PlayerEvent], PlaybackState] = {
    (PlaybackState.STOPPED, PlayerEvent.PLAY): PlaybackState.PLAYING,
    (PlaybackState.STOPPED, PlayerEvent.PAUSE): PlaybackState.STOPPED,
    (PlaybackState.STOPPED, PlayerEvent.STOP): PlaybackState.STOPPED,
    (PlaybackState.PLAYING, PlayerEvent.PLAY): PlaybackState.PLAYING,
    (PlaybackState.PLAYING, PlayerEvent.PAUSE): PlaybackState.PAUSED,
    (PlaybackState.PLAYING, PlayerEvent.STOP): PlaybackState.STOPPED,
    (PlaybackState.PAUSED, PlayerEvent.PLAY): PlaybackState.PLAYING,
    (PlaybackState.PAUSED, PlayerEvent.PAUSE): PlaybackState.PAUSED,
    (PlaybackState.PAUSED, PlayerEvent.STOP): PlaybackState.STOPPED,
}


def transition(state: PlaybackState, event: PlayerEvent, has_songs: bool = True) -> PlaybackState:
    """Return the state after event. An empty playlist never leaves STOPPED."""
    if not has_songs:
        return PlaybackState.STOPPED
    return TRANSITIONS[(state, event)]


@dataclass(frozen=True)
class PlayerStatus:
    """
    What a player command reports back to the client.

    format() produces the single protocol line:
        "PLAYING: Ciel by GIMS (5:06)"
        "INFO: End of playlist; PLAYING: NINAO by GIMS (4:07)"
        "INFO: Playlist is empty"
    """
    state: PlaybackState
    song: Song | None
    notice: str | None = None
    empty: bool = False

    def format(self) -> str:
        if self.empty:
            return "INFO: Playlist is empty"
        song_text = self.song.display() if self.song is not None else "No song selected"
        line = f"{self.state.value}: {song_text}"
        if self.notice:
            line = f"INFO: {self.notice}; {line}"
        return line


class PlaybackSession:
    """
    Player over one loaded playlist.

    Args:
        playlist_name: Name shown in log lines and load responses.
        songs: Songs of the playlist, in stored order.
        mode: Initial traversal mode.
        renderer: Receives play/pause/stop calls. Defaults to LoggingRenderer.
        rng: Random source for shuffle (tests pass a seeded one).

    Renderer calls:
        - play on STOPPED/PAUSED -> PLAYING and on every move while PLAYING
        - pause on PLAYING -> PAUSED
        - stop on PLAYING/PAUSED -> STOPPED and on close()
    """

    def __init__(
        self,
        playlist_name: str,
        songs: Iterable[Song],
        mode: PlaybackMode = PlaybackMode.SEQUENTIAL,
        renderer: Renderer | None = None,
        rng: random.Random | None = None
    ) -> None:
        self.view = LinkedPlaylist(playlist_name, songs)
        self.renderer = renderer or LoggingRenderer()
        self.state = PlaybackState.STOPPED
        self.current: PlaylistNode | None = None
        self._rng = rng
        self.mode = mode
        self.strategy: TraversalStrategy = create_strategy(mode, rng)
        self.strategy.reset(self.view, None)
        self.closed = False

    @property
    def playlist_name(self) -> str:
        return self.view.name

    @property
    def current_song(self) -> Song | None:
        return self.current.song if self.current is not None else None

    def __len__(self) -> int:
        return len(self.view)

    def status(self, notice: str | None = None) -> PlayerStatus:
        return PlayerStatus(
            state=self.state,
            song=self.current_song,
            notice=notice,
            empty=self.view.is_empty(),
        )

    def set_mode(self, mode: PlaybackMode) -> None:
        """Switch traversal mode, keeping the current song and player state."""
        self.mode = mode
        self.strategy = create_strategy(mode, self._rng)
        self.strategy.reset(self.view, self.current)

    # ------------------------------------------------------------------
    # State events
    # ------------------------------------------------------------------

    def play(self) -> PlayerStatus:
        if self.view.is_empty():
            return self.status()

        if self.current is None:
            self.current = self.strategy.first(self.view)

        new_state = transition(self.state, PlayerEvent.PLAY)
        if self.state is PlaybackState.PLAYING:
            return self.status("Already playing")

        self.state = new_state
        self.renderer.play(self.current.song)
        return self.status()

    def pause(self) -> PlayerStatus:
        if self.view.is_empty():
            return self.status()

        new_state = transition(self.state, PlayerEvent.PAUSE)
        if self.state is PlaybackState.STOPPED:
            return self.status("Nothing is playing")
        if self.state is PlaybackState.PAUSED:
            return self.status("Already paused")

        self.state = new_state
        self.renderer.pause(self.current.song)
        return self.status()

    def stop(self) -> PlayerStatus:
        if self.view.is_empty():
            return self.status()

        if self.state is PlaybackState.STOPPED:
            return self.status("Already stopped")

        self.state = transition(self.state, PlayerEvent.STOP)
        self.renderer.stop(self.current_song)
        return self.status()

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    def _move(self, forward: bool) -> PlayerStatus:
        if self.view.is_empty():
            return self.status()

        if forward:
            target = self.strategy.next(self.view, self.current)
        else:
            target = self.strategy.previous(self.view, self.current)

        if target is None:
            return self.status(self.strategy.blocked_reason(self.view, forward))

        self.current = target
        if self.state is PlaybackState.PLAYING:
            self.renderer.play(target.song)
        return self.status()

    def next(self) -> PlayerStatus:
        return self._move(forward=True)

    def previous(self) -> PlayerStatus:
        return self._move(forward=False)

    def close(self) -> None:
        """Stop the renderer and discard the session. Safe to call twice."""
        if self.closed:
            return
        self.renderer.stop(self.current_song)
        self.state = PlaybackState.STOPPED
        self.closed = True
