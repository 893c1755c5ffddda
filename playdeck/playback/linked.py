"""
Doubly linked view over a loaded playlist.

The player walks songs one link at a time in both directions. The view is
built once per load from the playlist's songs and never changes while the
playlist stays loaded; edits made to the stored playlist afterwards are
picked up by the next load.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from playdeck.catalog.models import Song


@dataclass(eq=False)
class PlaylistNode:
    """One song of the linked view. Nodes compare by identity."""
    song: Song
    index: int
    prev: "PlaylistNode | None" = field(default=None, repr=False)
    next: "PlaylistNode | None" = field(default=None, repr=False)


class LinkedPlaylist:
    """
    Doubly linked list of PlaylistNode.

    Attributes:
        name: Name of the playlist this view was built from.
        head: First node, None for an empty playlist.
        tail: Last node, None for an empty playlist.
    """

    def __init__(self, name: str, songs: Iterable[Song]) -> None:
        self.name = name
        self._nodes: list[PlaylistNode] = []
        previous: PlaylistNode | None = None

        for index, song in enumerate(songs):
            node = PlaylistNode(song=song, index=index, prev=previous)
            if previous is not None:
                previous.next = node
            self._nodes.append(node)
            previous = node

    @property
    def head(self) -> PlaylistNode | None:
        return self._nodes[0] if self._nodes else None

    @property
    def tail(self) -> PlaylistNode | None:
        return self._nodes[-1] if self._nodes else None

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[PlaylistNode]:
        node = self.head
        while node is not None:
            yield node
            node = node.next

    def is_empty(self) -> bool:
        return not self._nodes

    def nodes(self) -> list[PlaylistNode]:
        return list(self._nodes)
