"""
Song model for playdeck.

A Song is an immutable value. Playlists hold their own copies of songs,
so a song can be stored, compared and passed between threads freely.

Design Decisions:
    - Frozen dataclass: corrections produce a new Song via dataclasses.replace
    - Identity for matching is case-insensitive title equality (see
      Song.matches_title); two different songs sharing a title are treated
      as the same song by playlists
    - Field names in the user store follow the store's camelCase layout
      (filePath), converted in from_store_dict/to_store_dict

Usage:
    from playdeck.catalog.models import Song

    song = Song(title="Ciel", artist="GIMS", album="Rap", genre="Hip-Hop", duration=306)
    song.display()   # "Ciel by GIMS (5:06)"
    song.wire()      # "Ciel|GIMS|Rap|Hip-Hop|306|"
"""

from dataclasses import dataclass
from typing import Any


UNKNOWN = "Unknown"

WIRE_SEPARATOR = "|"


def normalize_title(title: str) -> str:
    """Casefold and strip a title for comparison and indexing."""
    return title.strip().casefold()


@dataclass(frozen=True)
class Song:
    """
    Immutable representation of a catalog song.

    Attributes:
        title: Song title. Never empty.
        artist: Performing artist. "Unknown" when no tag is available.
        album: Album name. "Unknown" when no tag is available.
        genre: Genre name. "Unknown" when no tag is available.
        duration: Length in whole seconds. 0 when unknown.
        file_path: Media locator for the renderer, or None for catalog
                   entries without a file (the built-in samples).
    """

    title: str
    artist: str = UNKNOWN
    album: str = UNKNOWN
    genre: str = UNKNOWN
    duration: int = 0
    file_path: str | None = None

    def __post_init__(self) -> None:
        if not self.title or not self.title.strip():
            raise ValueError("Song title must not be empty")
        if self.duration < 0:
            raise ValueError("Song duration must not be negative")

    @property
    def key(self) -> str:
        """Normalized title used by the catalog index."""
        return normalize_title(self.title)

    def matches_title(self, title: str) -> bool:
        """Return True if title equals this song's title, ignoring case."""
        return self.key == normalize_title(title)

    def formatted_duration(self) -> str:
        """Return the duration as m:ss."""
        minutes, seconds = divmod(self.duration, 60)
        return f"{minutes}:{seconds:02d}"

    def display(self) -> str:
        """
        Human-readable form used in listings and player status lines.

        The duration suffix is omitted when the duration is unknown (0).
        """
        text = f"{self.title} by {self.artist}"
        if self.duration > 0:
            text += f" ({self.formatted_duration()})"
        return text

    def wire(self) -> str:
        """Return the pipe-separated form sent in playlist song listings."""
        return WIRE_SEPARATOR.join([
            self.title,
            self.artist,
            self.album,
            self.genre,
            str(self.duration),
            self.file_path or "",
        ])

    def __str__(self) -> str:
        return self.display()

    @classmethod
    def from_store_dict(cls, data: dict[str, Any]) -> "Song":
        """
        Create a Song from a record of the user store.

        Missing optional fields fall back to "Unknown" / 0. A non-numeric
        duration is treated as unknown.

        Raises:
            ValueError: If the record has no usable title.
        """
        title = data.get("title")
        if not isinstance(title, str):
            raise ValueError("Song record has no title")

        try:
            duration = int(data.get("duration") or 0)
        except (TypeError, ValueError):
            duration = 0

        file_path = data.get("filePath")
        if not isinstance(file_path, str) or not file_path:
            file_path = None

        return cls(
            title=title,
            artist=str(data.get("artist") or UNKNOWN),
            album=str(data.get("album") or UNKNOWN),
            genre=str(data.get("genre") or UNKNOWN),
            duration=max(duration, 0),
            file_path=file_path,
        )

    def to_store_dict(self) -> dict[str, Any]:
        """Convert to the user store's song record (filePath only when set)."""
        data: dict[str, Any] = {
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "genre": self.genre,
            "duration": self.duration,
        }
        if self.file_path:
            data["filePath"] = self.file_path
        return data
