"""
Playback modes and their traversal strategies.

A strategy only decides which node comes next or before; the player
state (playing, paused, stopped) is handled by the engine. Every method
receives the current node, which is None while the player is positioned
before the first song (right after a load).

    Sequential  one link per step, stops at both ends
    Repeat      one link per step, wraps at both ends
    Shuffle     walks a random visitation order ("pass"); see ShuffleStrategy
"""

import random
from enum import Enum

from playdeck.playback.linked import LinkedPlaylist, PlaylistNode


class PlaybackMode(Enum):
    SEQUENTIAL = 1
    SHUFFLE = 2
    REPEAT = 3

    @classmethod
    def parse(cls, value: str | None) -> "PlaybackMode | None":
        """
        Accept a mode name ("sequential", "shuffle", "repeat", any case)
        or its number ("1", "2", "3"). Returns None for anything else.
        """
        if not value:
            return None
        value = value.strip()
        if value.isdigit():
            try:
                return cls(int(value))
            except ValueError:
                return None
        try:
            return cls[value.upper()]
        except KeyError:
            return None


class TraversalStrategy:
    """
    Base traversal strategy.

    Subclasses implement first/next/previous. A return value of None
    means "no move"; blocked_reason() then explains why.
    """

    mode: PlaybackMode

    def reset(self, view: LinkedPlaylist, current: PlaylistNode | None) -> None:
        """Called when a playlist is loaded or the mode is switched to this strategy."""

    def first(self, view: LinkedPlaylist) -> PlaylistNode | None:
        return view.head

    def next(self, view: LinkedPlaylist, current: PlaylistNode | None) -> PlaylistNode | None:
        raise NotImplementedError

    def previous(self, view: LinkedPlaylist, current: PlaylistNode | None) -> PlaylistNode | None:
        raise NotImplementedError

    def blocked_reason(self, view: LinkedPlaylist, forward: bool) -> str:
        return "End of playlist" if forward else "Start of playlist"


class SequentialStrategy(TraversalStrategy):
    mode = PlaybackMode.SEQUENTIAL

    def next(self, view: LinkedPlaylist, current: PlaylistNode | None) -> PlaylistNode | None:
        if current is None:
            return self.first(view)
        return current.next

    def previous(self, view: LinkedPlaylist, current: PlaylistNode | None) -> PlaylistNode | None:
        if current is None:
            return None
        return current.prev


class RepeatStrategy(TraversalStrategy):
    mode = PlaybackMode.REPEAT

    def next(self, view: LinkedPlaylist, current: PlaylistNode | None) -> PlaylistNode | None:
        if current is None:
            return self.first(view)
        return current.next or view.head

    def previous(self, view: LinkedPlaylist, current: PlaylistNode | None) -> PlaylistNode | None:
        if current is None:
            return view.tail
        return current.prev or view.tail


class ShuffleStrategy(TraversalStrategy):
    """
    Random traversal in passes.

    A pass is a permutation of every node. The first pass starts with the
    current song (when there is one) followed by the others in random
    order. When a pass is exhausted a new one is shuffled, and its first
    song is never the song that ended the previous pass. previous() walks
    back inside the current pass only.

    Args:
        rng: Random source. Tests pass a seeded random.Random.
    """

    mode = PlaybackMode.SHUFFLE

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()
        self._order: list[PlaylistNode] = []
        # Index into _order of the current song, -1 before the first one
        self._position = -1

    @property
    def order(self) -> list[PlaylistNode]:
        return list(self._order)

    def reset(self, view: LinkedPlaylist, current: PlaylistNode | None) -> None:
        others = [node for node in view if node is not current]
        self._rng.shuffle(others)
        if current is None:
            self._order = others
            self._position = -1
        else:
            self._order = [current] + others
            self._position = 0

    def _new_pass(self) -> None:
        last = self._order[-1]
        order = list(self._order)
        self._rng.shuffle(order)
        if len(order) > 1 and order[0] is last:
            swap = self._rng.randrange(1, len(order))
            order[0], order[swap] = order[swap], order[0]
        self._order = order
        self._position = 0

    def first(self, view: LinkedPlaylist) -> PlaylistNode | None:
        if len(self._order) != len(view):
            self.reset(view, None)
        if not self._order:
            return None
        self._position = 0
        return self._order[0]

    def next(self, view: LinkedPlaylist, current: PlaylistNode | None) -> PlaylistNode | None:
        if current is None:
            return self.first(view)
        if len(self._order) <= 1:
            return None
        if self._position + 1 >= len(self._order):
            self._new_pass()
        else:
            self._position += 1
        return self._order[self._position]

    def previous(self, view: LinkedPlaylist, current: PlaylistNode | None) -> PlaylistNode | None:
        if current is None or self._position <= 0:
            return None
        self._position -= 1
        return self._order[self._position]

    def blocked_reason(self, view: LinkedPlaylist, forward: bool) -> str:
        if len(view) <= 1:
            return "Only one song in playlist"
        return "End of shuffle pass" if forward else "Start of shuffle pass"


def create_strategy(mode: PlaybackMode, rng: random.Random | None = None) -> TraversalStrategy:
    if mode is PlaybackMode.SHUFFLE:
        return ShuffleStrategy(rng)
    if mode is PlaybackMode.REPEAT:
        return RepeatStrategy()
    return SequentialStrategy()
