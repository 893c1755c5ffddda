"""
Social service: follow graph, playlist sharing and shared-playlist copies.

A user's playlists become visible to others only when that user turns
sharing on. Following decides whose playlists show up in the shared list;
it grants no access by itself.
"""

from dataclasses import dataclass

from playdeck.core.exceptions import DomainError
from playdeck.core.logger import get_logger
from playdeck.core.store import UserStore
from playdeck.domain.models import Playlist, User, same_username, validate_playlist_name


logger = get_logger(__name__)


@dataclass(frozen=True)
class FollowChange:
    """
    Outcome of a follow/unfollow request.

    Attributes:
        target: The target's registered username.
        changed: False when the request was already satisfied
                 (already following / not following).
    """
    target: str
    changed: bool


def _find(users: list[User], username: str) -> User | None:
    for user in users:
        if same_username(user.username, username):
            return user
    return None


def _user_not_found(username: str) -> DomainError:
    return DomainError("User not found", details={"username": username}, reason="user_not_found")


class SocialService:
    """
    Follow/unfollow and sharing operations on behalf of a logged-in user.

    Args:
        store: Shared user store.
    """

    def __init__(self, store: UserStore) -> None:
        self.store = store

    def follow(self, username: str, target: str) -> FollowChange:
        """
        Raises:
            DomainError: reason 'invalid' when following yourself,
                         'user_not_found' for an unknown target.
        """
        if not target or not target.strip():
            raise DomainError("Username must not be empty", reason="invalid")
        if same_username(username, target):
            raise DomainError("You cannot follow yourself", reason="invalid")

        def apply(user: User, users: list[User]) -> FollowChange:
            other = _find(users, target)
            if other is None:
                raise _user_not_found(target)
            return FollowChange(target=other.username, changed=user.follow(other.username))

        change = self.store.modify(username, apply)
        if change.changed:
            logger.info(f"User '{username}' now follows '{change.target}'")
        return change

    def unfollow(self, username: str, target: str) -> FollowChange:
        """
        Raises:
            DomainError: reason 'user_not_found' for an unknown target.
        """
        if not target or not target.strip():
            raise DomainError("Username must not be empty", reason="invalid")

        def apply(user: User, users: list[User]) -> FollowChange:
            other = _find(users, target)
            if other is None:
                raise _user_not_found(target)
            return FollowChange(target=other.username, changed=user.unfollow(other.username))

        change = self.store.modify(username, apply)
        if change.changed:
            logger.info(f"User '{username}' unfollowed '{change.target}'")
        return change

    def get_followed_users(self, username: str) -> list[str]:
        user = self.store.get_by_username(username)
        if user is None:
            raise _user_not_found(username)
        return list(user.followed_users)

    def set_sharing(self, username: str, enabled: bool) -> None:
        def apply(user: User, _users: list[User]) -> None:
            user.share_playlists_publicly = enabled

        self.store.modify(username, apply)
        logger.info(f"User '{username}' turned playlist sharing {'on' if enabled else 'off'}")

    def get_shared_playlists(self, username: str) -> list[tuple[str, str]]:
        """(owner, name) of every playlist of followed users who share publicly."""
        users = self.store.load_all()
        user = _find(users, username)
        if user is None:
            raise _user_not_found(username)

        result = []
        for followed in user.followed_users:
            owner = _find(users, followed)
            if owner is None or not owner.share_playlists_publicly:
                continue
            result.extend((owner.username, playlist.name) for playlist in owner.playlists)
        return result

    def _shared_playlist(self, users: list[User], owner_name: str, name: str) -> Playlist:
        owner = _find(users, owner_name)
        if owner is None:
            raise _user_not_found(owner_name)
        if not owner.share_playlists_publicly:
            raise DomainError(
                f"{owner.username} does not share playlists",
                details={"owner": owner.username},
                reason="forbidden"
            )
        playlist = owner.get_playlist(name)
        if playlist is None:
            raise DomainError("Playlist not found", details={"playlist": name}, reason="not_found")
        return playlist

    def get_shared_playlist(self, username: str, owner: str, name: str) -> Playlist:
        """
        Read another user's playlist.

        Raises:
            DomainError: reason 'user_not_found', 'forbidden' (owner does not
                         share) or 'not_found'.
        """
        return self._shared_playlist(self.store.load_all(), owner, name)

    def copy_shared_playlist(self, username: str, owner: str, source: str, new_name: str) -> Playlist:
        """
        Copy a shared playlist into a new standard playlist of username.

        Raises:
            DomainError: any get_shared_playlist reason, or 'invalid_name',
                         'limit', 'exists' for the new playlist.
        """
        new_name = validate_playlist_name(new_name)

        def apply(user: User, users: list[User]) -> Playlist:
            playlist = self._shared_playlist(users, owner, source)
            if not user.can_create_playlist():
                raise DomainError(
                    "Playlist limit reached for your account type",
                    details={"username": user.username},
                    reason="limit"
                )
            if user.has_playlist(new_name):
                raise DomainError(
                    "Playlist already exists",
                    details={"playlist": new_name},
                    reason="exists"
                )
            copy = playlist.copy_as(new_name)
            user.playlists.append(copy)
            return copy

        copy = self.store.modify(username, apply)
        logger.info(f"User '{username}' copied '{owner}/{source}' as '{new_name}'")
        return copy
