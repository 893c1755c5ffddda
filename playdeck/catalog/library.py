"""
Read-only song catalog.

The catalog is built once at startup by the loader and never mutated
afterwards, so session threads read it without locking.
"""

from collections.abc import Iterable, Iterator

from playdeck.catalog.models import Song, normalize_title


class Catalog:
    """
    Immutable, ordered index of songs.

    Songs keep the order they were supplied in. A song whose title and
    artist (both compared case-insensitively) match an earlier song is
    dropped while building.

    Example:
        catalog = Catalog([Song("Ciel", "GIMS"), Song("NINAO", "GIMS")])
        catalog.find("ciel")          # Song("Ciel", ...)
        catalog.search_artist("gim")  # both songs
    """

    def __init__(self, songs: Iterable[Song] = ()) -> None:
        ordered: list[Song] = []
        seen: set[tuple[str, str]] = set()
        by_title: dict[str, Song] = {}

        for song in songs:
            identity = (song.key, song.artist.strip().casefold())
            if identity in seen:
                continue
            seen.add(identity)
            ordered.append(song)
            # First song with a given title wins exact lookups
            by_title.setdefault(song.key, song)

        self._songs = tuple(ordered)
        self._by_title = by_title

    def __len__(self) -> int:
        return len(self._songs)

    def __iter__(self) -> Iterator[Song]:
        return iter(self._songs)

    def __contains__(self, song: object) -> bool:
        return song in self._songs

    def all_songs(self) -> tuple[Song, ...]:
        return self._songs

    def get_exact(self, title: str) -> Song | None:
        """Return the song whose title equals title (case-insensitive), if any."""
        if not title or not title.strip():
            return None
        return self._by_title.get(normalize_title(title))

    def find(self, title: str) -> Song | None:
        """
        Resolve a title typed by a user to a catalog song.

        Exact case-insensitive match first, then the first song (in catalog
        order) whose title contains the query.
        """
        exact = self.get_exact(title)
        if exact is not None:
            return exact
        matches = self.search_title(title)
        return matches[0] if matches else None

    def search_title(self, query: str) -> list[Song]:
        """Songs whose title contains query, case-insensitive. Empty query matches nothing."""
        needle = normalize_title(query or "")
        if not needle:
            return []
        return [song for song in self._songs if needle in song.key]

    def search_artist(self, query: str) -> list[Song]:
        """Songs whose artist contains query, case-insensitive."""
        needle = (query or "").strip().casefold()
        if not needle:
            return []
        return [song for song in self._songs if needle in song.artist.casefold()]

    def search_genre(self, genre: str) -> list[Song]:
        """Songs whose genre equals genre, case-insensitive."""
        needle = (genre or "").strip().casefold()
        if not needle:
            return []
        return [song for song in self._songs if song.genre.strip().casefold() == needle]
