"""
Playlist service: playlist CRUD, song editing and collaborators.

Every mutating operation re-reads the acting user inside a single
UserStore transaction and returns only after the commit, so two sessions
editing playlists at the same time never overwrite each other.

Playlists are addressed by name, case-insensitively. For song edits the
name is looked up among the user's own playlists first, then among the
collaborative playlists of other users that list this user as
collaborator.
"""

from dataclasses import dataclass

from playdeck.catalog.library import Catalog
from playdeck.catalog.models import Song
from playdeck.core.exceptions import DomainError
from playdeck.core.logger import get_logger
from playdeck.core.store import UserStore
from playdeck.domain.models import (
    CollaborativePlaylist,
    Playlist,
    User,
    same_username,
    validate_playlist_name,
)


logger = get_logger(__name__)


@dataclass(frozen=True)
class SongChange:
    """
    Outcome of adding a song.

    Attributes:
        song: The catalog song that was resolved.
        playlist: Name of the playlist that was edited.
        changed: False when the song was already in the playlist.
    """
    song: Song
    playlist: str
    changed: bool


def _not_found(name: str) -> DomainError:
    return DomainError("Playlist not found", details={"playlist": name}, reason="not_found")


def find_editable_playlist(users: list[User], user: User, name: str) -> Playlist | None:
    """
    Return the playlist user may edit under name: own first, then collaborative.
    """
    own = user.get_playlist(name)
    if own is not None:
        return own

    for other in users:
        if other.key == user.key:
            continue
        playlist = other.get_playlist(name)
        if isinstance(playlist, CollaborativePlaylist) and playlist.is_collaborator(user.username):
            return playlist
    return None


class PlaylistService:
    """
    Playlist operations on behalf of a logged-in user.

    Args:
        store: Shared user store.
        catalog: Song catalog used to resolve titles.
    """

    def __init__(self, store: UserStore, catalog: Catalog) -> None:
        self.store = store
        self.catalog = catalog

    # ------------------------------------------------------------------
    # Creation and deletion
    # ------------------------------------------------------------------

    def _check_can_create(self, user: User, name: str) -> None:
        if not user.can_create_playlist():
            raise DomainError(
                "Playlist limit reached for your account type",
                details={"username": user.username, "limit": user.capabilities.max_playlists},
                reason="limit"
            )
        if user.has_playlist(name):
            raise DomainError(
                "Playlist already exists",
                details={"username": user.username, "playlist": name},
                reason="exists"
            )

    def create_playlist(self, username: str, name: str) -> Playlist:
        """
        Create an empty standard playlist.

        Raises:
            DomainError: reason 'invalid_name', 'limit' or 'exists'.
        """
        name = validate_playlist_name(name)

        def apply(user: User, _users: list[User]) -> Playlist:
            self._check_can_create(user, name)
            playlist = Playlist(name=name)
            user.playlists.append(playlist)
            return playlist

        playlist = self.store.modify(username, apply)
        logger.info(f"User '{username}' created playlist '{name}'")
        return playlist

    def create_collaborative_playlist(
        self,
        username: str,
        name: str,
        collaborators_csv: str = ""
    ) -> CollaborativePlaylist:
        """
        Create a collaborative playlist.

        Args:
            collaborators_csv: Comma-separated usernames. Unknown names and
                               the owner are silently skipped; known names
                               are stored with their registered spelling.

        Raises:
            DomainError: reason 'invalid_name', 'limit' or 'exists'.
        """
        name = validate_playlist_name(name)
        requested = [part.strip() for part in (collaborators_csv or "").split(",") if part.strip()]

        def apply(user: User, users: list[User]) -> CollaborativePlaylist:
            self._check_can_create(user, name)
            playlist = CollaborativePlaylist(name=name, owner=user.username)
            by_key = {u.key: u for u in users}
            for requested_name in requested:
                target = by_key.get(requested_name.strip().casefold())
                if target is None or target.key == user.key:
                    logger.debug(f"Skipping collaborator '{requested_name}' for '{name}'")
                    continue
                playlist.add_collaborator(target.username)
            user.playlists.append(playlist)
            return playlist

        playlist = self.store.modify(username, apply)
        logger.info(
            f"User '{username}' created collaborative playlist '{name}' "
            f"with {len(playlist.collaborators)} collaborators"
        )
        return playlist

    def delete_playlist(self, username: str, name: str) -> Playlist:
        """
        Delete one of the user's own playlists.

        Raises:
            DomainError: reason 'not_found'.
        """
        def apply(user: User, _users: list[User]) -> Playlist:
            removed = user.remove_playlist(name)
            if removed is None:
                raise _not_found(name)
            return removed

        removed = self.store.modify(username, apply)
        logger.info(f"User '{username}' deleted playlist '{removed.name}'")
        return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _load_user(self, username: str) -> tuple[User, list[User]]:
        users = self.store.load_all()
        for user in users:
            if same_username(user.username, username):
                return user, users
        raise DomainError("User not found", details={"username": username}, reason="user_not_found")

    def get_playlists(self, username: str) -> list[Playlist]:
        user, _ = self._load_user(username)
        return list(user.playlists)

    def playlist_exists(self, username: str, name: str) -> bool:
        user, _ = self._load_user(username)
        return user.has_playlist(name)

    def get_playlist(self, username: str, name: str) -> Playlist:
        """
        Return a playlist the user can read: own first, then collaborative.

        Raises:
            DomainError: reason 'not_found'.
        """
        user, users = self._load_user(username)
        playlist = find_editable_playlist(users, user, name)
        if playlist is None:
            raise _not_found(name)
        return playlist

    def get_playlist_songs(self, username: str, name: str) -> list[Song]:
        return list(self.get_playlist(username, name).songs)

    def get_collaborative_playlists(self, username: str) -> list[tuple[str, str]]:
        """(owner, name) of every playlist of another user that lists username as collaborator."""
        user, users = self._load_user(username)
        result = []
        for other in users:
            if other.key == user.key:
                continue
            for playlist in other.playlists:
                if isinstance(playlist, CollaborativePlaylist) and playlist.is_collaborator(user.username):
                    result.append((other.username, playlist.name))
        return result

    # ------------------------------------------------------------------
    # Song editing
    # ------------------------------------------------------------------

    def add_song_to_playlist(self, username: str, name: str, title: str) -> SongChange:
        """
        Add a catalog song to a playlist the user can edit.

        The title is resolved against the catalog exactly first, then by
        substring (first match in catalog order). A song whose title is
        already in the playlist leaves it unchanged.

        Raises:
            DomainError: reason 'not_found' or 'song_not_found'.
        """
        if not title or not title.strip():
            raise DomainError("Song title must not be empty", reason="song_not_found")

        def apply(user: User, users: list[User]) -> SongChange:
            playlist = find_editable_playlist(users, user, name)
            if playlist is None:
                raise _not_found(name)

            song = self.catalog.find(title)
            if song is None:
                raise DomainError(
                    "Song not found in library",
                    details={"title": title},
                    reason="song_not_found"
                )
            return SongChange(song=song, playlist=playlist.name, changed=playlist.add_song(song))

        change = self.store.modify(username, apply)
        if change.changed:
            logger.info(f"User '{username}' added '{change.song.title}' to '{change.playlist}'")
        return change

    def remove_song_from_playlist(self, username: str, name: str, title: str) -> Song:
        """
        Remove the song with this exact title (case-insensitive).

        Raises:
            DomainError: reason 'not_found' or 'song_not_found'.
        """
        def apply(user: User, users: list[User]) -> Song:
            playlist = find_editable_playlist(users, user, name)
            if playlist is None:
                raise _not_found(name)

            removed = playlist.remove_song(title)
            if removed is None:
                raise DomainError(
                    "Song not found in playlist",
                    details={"playlist": playlist.name, "title": title},
                    reason="song_not_found"
                )
            return removed

        removed = self.store.modify(username, apply)
        logger.info(f"User '{username}' removed '{removed.title}' from '{name}'")
        return removed

    def reorder_song(self, username: str, name: str, from_index: int, to_index: int) -> Song:
        """
        Move a song within a playlist the user can edit. Indices are 0-based.

        Raises:
            DomainError: reason 'not_found' or 'invalid_index'.
        """
        def apply(user: User, users: list[User]) -> Song:
            playlist = find_editable_playlist(users, user, name)
            if playlist is None:
                raise _not_found(name)
            return playlist.move_song(from_index, to_index)

        return self.store.modify(username, apply)
