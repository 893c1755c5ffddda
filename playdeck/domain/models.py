"""
Domain models for playdeck: users, playlists and account capabilities.

Unlike catalog songs, these objects are mutable. Services change them only
inside a UserStore transaction, on a copy freshly loaded from disk, and the
store writes them back before the transaction ends. A User held by a
session between commands is a snapshot and is never written back as is.

Account tiers are data, not subclasses: every User carries an AccountType
and its limits come from the CAPABILITIES table.

    +----------+---------------+-----------------+
    | type     | max_playlists | shuffle_allowed |
    +----------+---------------+-----------------+
    | free     | 1             | no              |
    | premium  | unlimited     | yes             |
    +----------+---------------+-----------------+
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from playdeck.catalog.models import Song
from playdeck.core.exceptions import DomainError


PLAYLIST_TYPE_COLLABORATIVE = "collaborative"

MAX_PLAYLIST_NAME_LENGTH = 100


class AccountType(Enum):
    """Account tier, stored by value in the user store."""

    FREE = "free"
    PREMIUM = "premium"

    @classmethod
    def parse(cls, value: str | None) -> "AccountType | None":
        """Return the tier named by value (case-insensitive), or None."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class Capabilities:
    """
    What an account tier is allowed to do.

    Attributes:
        max_playlists: Ceiling on owned playlists, None for unlimited.
        shuffle_allowed: Whether the shuffle playback mode may be used.
    """
    max_playlists: int | None
    shuffle_allowed: bool


CAPABILITIES: dict[AccountType, Capabilities] = {
    AccountType.FREE: Capabilities(max_playlists=1, shuffle_allowed=False),
    AccountType.PREMIUM: Capabilities(max_playlists=None, shuffle_allowed=True),
}


def normalize_username(username: str) -> str:
    return username.strip().casefold()


def same_username(a: str, b: str) -> bool:
    return normalize_username(a) == normalize_username(b)


def validate_playlist_name(name: str | None) -> str:
    """
    Check a playlist name and return it stripped.

    A name is a single token: commands address playlists by their first
    argument and listings use '|' as separator.

    Raises:
        DomainError: reason 'invalid_name'.
    """
    if name is None or not name.strip():
        raise DomainError("Playlist name must not be empty", reason="invalid_name")

    name = name.strip()
    if any(ch.isspace() for ch in name):
        raise DomainError("Playlist name must not contain spaces", reason="invalid_name")
    if "|" in name:
        raise DomainError("Playlist name must not contain '|'", reason="invalid_name")
    if len(name) > MAX_PLAYLIST_NAME_LENGTH:
        raise DomainError(
            f"Playlist name must be at most {MAX_PLAYLIST_NAME_LENGTH} characters",
            reason="invalid_name"
        )
    return name


@dataclass
class Playlist:
    """
    Ordered list of songs owned by one user.

    Attributes:
        name: Playlist name, unique per owner (case-insensitive).
        songs: Playlist-owned song copies, in play order. At most one
               song per title (case-insensitive).
    """

    name: str
    songs: list[Song] = field(default_factory=list)

    @property
    def is_collaborative(self) -> bool:
        return False

    def __len__(self) -> int:
        return len(self.songs)

    def has_name(self, name: str) -> bool:
        return self.name.casefold() == name.strip().casefold()

    def index_of(self, title: str) -> int | None:
        """Position of the song with this title (case-insensitive), or None."""
        for i, song in enumerate(self.songs):
            if song.matches_title(title):
                return i
        return None

    def add_song(self, song: Song) -> bool:
        """
        Append song unless a song with the same title is already present.

        Returns:
            bool: True if the playlist changed.
        """
        if self.index_of(song.title) is not None:
            return False
        self.songs.append(song)
        return True

    def remove_song(self, title: str) -> Song | None:
        """Remove and return the song with this exact title, or None if absent."""
        position = self.index_of(title)
        if position is None:
            return None
        return self.songs.pop(position)

    def move_song(self, from_index: int, to_index: int) -> Song:
        """
        Move the song at from_index so that it ends up at to_index.

        Raises:
            DomainError: reason 'invalid_index' if either index is out of range.
        """
        size = len(self.songs)
        if not 0 <= from_index < size or not 0 <= to_index < size:
            raise DomainError(
                f"Invalid index: playlist has {size} songs (valid range 0-{max(size - 1, 0)})",
                details={"playlist": self.name, "from": from_index, "to": to_index},
                reason="invalid_index"
            )
        song = self.songs.pop(from_index)
        self.songs.insert(to_index, song)
        return song

    def copy_as(self, new_name: str) -> "Playlist":
        """Return a standard playlist named new_name with the same songs."""
        return Playlist(name=new_name, songs=list(self.songs))

    def to_store_dict(self) -> dict[str, Any]:
        # Only collaborative records carry "type"
        return {
            "name": self.name,
            "songs": [song.to_store_dict() for song in self.songs],
        }

    @classmethod
    def from_store_dict(cls, data: dict[str, Any]) -> "Playlist":
        """
        Create a standard or collaborative playlist from a store record.

        Songs that cannot be parsed are dropped; duplicate titles keep the
        first occurrence.

        Raises:
            ValueError: If the record is not a mapping with a string name.
        """
        if not isinstance(data, dict) or not isinstance(data.get("name"), str):
            raise ValueError("Playlist record has no name")

        songs = []
        raw_songs = data.get("songs")
        if isinstance(raw_songs, list):
            for raw in raw_songs:
                if not isinstance(raw, dict):
                    continue
                try:
                    songs.append(Song.from_store_dict(raw))
                except ValueError:
                    continue

        if data.get("type") == PLAYLIST_TYPE_COLLABORATIVE:
            playlist: Playlist = CollaborativePlaylist(
                name=data["name"],
                owner=str(data.get("owner") or ""),
            )
            raw_collaborators = data.get("collaborators")
            if isinstance(raw_collaborators, list):
                for username in raw_collaborators:
                    if isinstance(username, str):
                        playlist.add_collaborator(username)
        else:
            playlist = Playlist(name=data["name"])

        for song in songs:
            playlist.add_song(song)
        return playlist


@dataclass
class CollaborativePlaylist(Playlist):
    """
    Playlist that named collaborators may edit alongside its owner.

    Attributes:
        owner: Username of the owning user.
        collaborators: Usernames allowed to add and remove songs. Never
                       contains the owner and never contains duplicates
                       (both compared case-insensitively).
    """

    owner: str = ""
    collaborators: list[str] = field(default_factory=list)

    @property
    def is_collaborative(self) -> bool:
        return True

    def add_collaborator(self, username: str) -> bool:
        """
        Add a collaborator.

        Returns:
            bool: False if username is empty, the owner, or already present.
        """
        username = username.strip()
        if not username:
            return False
        if self.owner and same_username(username, self.owner):
            return False
        if self.is_collaborator(username):
            return False
        self.collaborators.append(username)
        return True

    def is_collaborator(self, username: str) -> bool:
        return any(same_username(username, c) for c in self.collaborators)

    def can_edit(self, username: str) -> bool:
        return same_username(username, self.owner) or self.is_collaborator(username)

    def to_store_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": PLAYLIST_TYPE_COLLABORATIVE,
            "owner": self.owner,
            "collaborators": list(self.collaborators),
            "songs": [song.to_store_dict() for song in self.songs],
        }


@dataclass
class User:
    """
    A registered account.

    Attributes:
        username: Unique key, compared case-insensitively; original case kept.
        password_hash: bcrypt hash (or a legacy hash awaiting migration).
        account_type: Tier that selects the account's capabilities.
        playlists: Owned playlists, in creation order.
        followed_users: Usernames this user follows, in follow order.
        share_playlists_publicly: Whether followers may browse and copy
                                  this user's playlists.
    """

    username: str
    password_hash: str
    account_type: AccountType
    playlists: list[Playlist] = field(default_factory=list)
    followed_users: list[str] = field(default_factory=list)
    share_playlists_publicly: bool = False

    @property
    def key(self) -> str:
        return normalize_username(self.username)

    @property
    def capabilities(self) -> Capabilities:
        return CAPABILITIES[self.account_type]

    def can_create_playlist(self) -> bool:
        ceiling = self.capabilities.max_playlists
        return ceiling is None or len(self.playlists) < ceiling

    def get_playlist(self, name: str) -> Playlist | None:
        for playlist in self.playlists:
            if playlist.has_name(name):
                return playlist
        return None

    def has_playlist(self, name: str) -> bool:
        return self.get_playlist(name) is not None

    def remove_playlist(self, name: str) -> Playlist | None:
        playlist = self.get_playlist(name)
        if playlist is not None:
            self.playlists.remove(playlist)
        return playlist

    def is_following(self, username: str) -> bool:
        return any(same_username(username, f) for f in self.followed_users)

    def follow(self, username: str) -> bool:
        """Returns False if already following."""
        if self.is_following(username):
            return False
        self.followed_users.append(username)
        return True

    def unfollow(self, username: str) -> bool:
        """Returns False if not following."""
        for followed in self.followed_users:
            if same_username(username, followed):
                self.followed_users.remove(followed)
                return True
        return False

    def to_store_dict(self) -> dict[str, Any]:
        """
        Convert to the user store record.

        'playlists' and 'followedUsers' are written only when non-empty.
        """
        data: dict[str, Any] = {
            "username": self.username,
            "passwordHash": self.password_hash,
            "accountType": self.account_type.value,
            "sharePlaylistsPublicly": self.share_playlists_publicly,
        }
        if self.playlists:
            data["playlists"] = [playlist.to_store_dict() for playlist in self.playlists]
        if self.followed_users:
            data["followedUsers"] = list(self.followed_users)
        return data
