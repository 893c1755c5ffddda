"""
Crash-safe JSON user store for playdeck.

All accounts, their playlists and their social data live in one JSON file
shared by every session. The file is always rewritten as a whole, so the
store guarantees two things:

    - Durability: a save either fully replaces the file or leaves the
      previous version in place (temp file + fsync + os.replace), and the
      previous valid version is kept as <store>.bak
    - Isolation: every load-modify-save runs inside one writer lock, so
      two sessions changing different users never overwrite each other

File layout (array of user records):
    [
      {
        "username": "alice",
        "passwordHash": "$2b$12$...",
        "accountType": "free",
        "sharePlaylistsPublicly": false,
        "playlists": [
          {"name": "Drive",
           "songs": [{"title": "Ciel", "artist": "GIMS", "album": "Rap",
                      "genre": "Hip-Hop", "duration": 306}]}
        ],
        "followedUsers": ["bob"]
      }
    ]

Usage:
    store = UserStore(config.storage.users_file)

    with store.transaction() as users:
        users.append(new_user)             # saved when the block exits

    store.modify("alice", lambda user, users: user.follow("bob"))
"""

import hmac
import json
import os
import shutil
import threading
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generator, TypeVar

from playdeck.core.exceptions import DomainError, PersistenceError
from playdeck.core.logger import get_logger
from playdeck.domain.models import AccountType, Playlist, User, normalize_username


logger = get_logger(__name__)

BACKUP_SUFFIX = ".bak"
TEMP_SUFFIX = ".tmp"

T = TypeVar("T")


@dataclass(frozen=True)
class StoreReport:
    """
    Summary produced by UserStore.verify().

    Attributes:
        path: Store file that was checked.
        valid_on_disk: Whether the store file parsed before any recovery.
        backup_present: Whether a valid backup file exists.
        users: Number of valid user records.
        playlists: Total number of playlists.
        collaborative_playlists: How many of those are collaborative.
        songs: Total number of playlist entries.
    """
    path: Path
    valid_on_disk: bool
    backup_present: bool
    users: int
    playlists: int
    collaborative_playlists: int
    songs: int


def _user_from_record(record: Any) -> User:
    """
    Build a User from one store record.

    Invalid playlist entries are skipped with a warning.

    Raises:
        ValueError: If a required field is missing or the account type is unknown.
    """
    if not isinstance(record, dict):
        raise ValueError("user record is not an object")

    username = record.get("username")
    password_hash = record.get("passwordHash")
    if not isinstance(username, str) or not username.strip():
        raise ValueError("missing username")
    if not isinstance(password_hash, str) or not password_hash:
        raise ValueError("missing passwordHash")

    account_type = AccountType.parse(record.get("accountType"))
    if account_type is None:
        raise ValueError(f"unknown account type {record.get('accountType')!r}")

    user = User(
        username=username,
        password_hash=password_hash,
        account_type=account_type,
        share_playlists_publicly=bool(record.get("sharePlaylistsPublicly", False)),
    )

    raw_playlists = record.get("playlists")
    if isinstance(raw_playlists, list):
        for raw in raw_playlists:
            try:
                playlist = Playlist.from_store_dict(raw)
            except ValueError as e:
                logger.warning(f"Skipping invalid playlist of user '{username}': {e}")
                continue
            if user.has_playlist(playlist.name):
                logger.warning(
                    f"Skipping duplicate playlist '{playlist.name}' of user '{username}'"
                )
                continue
            user.playlists.append(playlist)

    raw_followed = record.get("followedUsers")
    if isinstance(raw_followed, list):
        for followed in raw_followed:
            if isinstance(followed, str) and followed.strip():
                user.follow(followed)

    return user


class UserStore:
    """
    JSON-file persistence for users, with atomic saves and backup recovery.

    Reads go straight to the file: os.replace() guarantees a reader sees
    either the old or the new version, never a half-written one. Every
    mutation, and every recovery of a damaged file, happens while holding
    self._lock. The lock is re-entrant so transaction() can call
    load_all()/save_all().

    Attributes:
        path: The store file.
        backup_path: <path>.bak, the last valid version before the latest save.
        temp_path: <path>.tmp, only present while a save is in progress
                   (or after a crash during one).
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.backup_path = path.with_name(path.name + BACKUP_SUFFIX)
        self.temp_path = path.with_name(path.name + TEMP_SUFFIX)
        self._lock = threading.RLock()

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(
                f"Cannot create store directory {path.parent}: {e}",
                details={"path": str(path.parent), "original_error": str(e)}
            ) from e

        with self._lock:
            self._discard_stale_temp()

    # ------------------------------------------------------------------
    # Raw file access
    # ------------------------------------------------------------------

    def _read_records(self, path: Path) -> list[Any] | None:
        """
        Read and parse a store file.

        Returns:
            list | None: The record array, or None if the file is missing,
                         empty, not JSON or not an array.

        Raises:
            PersistenceError: If the file exists but cannot be read.
        """
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(
                f"Cannot read {path}: {e}",
                details={"path": str(path), "original_error": str(e)}
            ) from e

        if not text.strip():
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return None
        return data if isinstance(data, list) else None

    def _discard_stale_temp(self) -> None:
        # Must hold self._lock: outside it a temp file may belong to a save in progress
        if self.temp_path.exists():
            logger.warning(f"Discarding stale temporary store file {self.temp_path}")
            self.temp_path.unlink()

    def _restore_backup(self) -> list[Any] | None:
        backup = self._read_records(self.backup_path)
        if backup is None:
            return None
        try:
            shutil.copyfile(self.backup_path, self.path)
        except OSError as e:
            raise PersistenceError(
                f"Cannot restore user store from backup: {e}",
                details={"path": str(self.path), "original_error": str(e)}
            ) from e
        return backup

    def _recover(self) -> list[Any]:
        """
        Bring a missing, empty or invalid store back to a valid state.

        Called with self._lock held. Tries, in order: the store itself (another
        thread may have repaired it meanwhile), the backup, an empty store.
        """
        self._discard_stale_temp()

        records = self._read_records(self.path)
        if records is not None:
            return records

        existed = self.path.exists()
        records = self._restore_backup()
        if records is not None:
            logger.warning(f"User store {self.path} was unreadable, restored from backup")
            return records

        if existed:
            logger.error(f"User store {self.path} is invalid and no backup exists, starting empty")
        else:
            logger.info(f"Creating new user store at {self.path}")
        try:
            self.path.write_text("[]", encoding="utf-8")
        except OSError as e:
            raise PersistenceError(
                f"Cannot initialise user store: {e}",
                details={"path": str(self.path), "original_error": str(e)}
            ) from e
        return []

    def _users_from_records(self, records: list[Any]) -> list[User]:
        users: list[User] = []
        seen: set[str] = set()
        for record in records:
            try:
                user = _user_from_record(record)
            except ValueError as e:
                logger.warning(f"Skipping invalid user record in {self.path.name}: {e}")
                continue
            if user.key in seen:
                logger.warning(f"Skipping duplicate user record '{user.username}'")
                continue
            seen.add(user.key)
            users.append(user)
        return users

    # ------------------------------------------------------------------
    # Whole-store operations
    # ------------------------------------------------------------------

    def load_all(self) -> list[User]:
        """
        Load every valid user.

        A missing, empty or invalid store is recovered from a valid backup,
        or reinitialised as an empty array when there is none.

        Raises:
            PersistenceError: If the store cannot be read or repaired.
        """
        records = self._read_records(self.path)
        if records is None:
            with self._lock:
                records = self._recover()
        return self._users_from_records(records)

    def save_all(self, users: list[User]) -> None:
        """
        Atomically replace the store with users.

        Behavior:
            1. Serialise every user to <store>.tmp, flush and fsync
            2. Check the temp file is non-empty
            3. Copy the current store to <store>.bak if it is valid
            4. os.replace() the temp file over the store
            5. On failure: remove the temp file, restore the backup if the
               store was left missing or invalid, raise PersistenceError

        Raises:
            PersistenceError: If any step fails. The previous store (or its
                              backup) is still in place.
        """
        payload = json.dumps(
            [user.to_store_dict() for user in users],
            indent=2,
            ensure_ascii=False
        )

        with self._lock:
            try:
                with open(self.temp_path, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())

                if self.temp_path.stat().st_size == 0:
                    raise OSError("temporary store file is empty after write")

                if self._read_records(self.path) is not None:
                    shutil.copyfile(self.path, self.backup_path)

                os.replace(self.temp_path, self.path)
            except (OSError, PersistenceError) as e:
                self._cleanup_failed_save()
                raise PersistenceError(
                    f"Failed to save user store: {e}",
                    details={"path": str(self.path), "original_error": str(e)}
                ) from e

        logger.debug(f"Saved {len(users)} users to {self.path.name}")

    def _cleanup_failed_save(self) -> None:
        try:
            if self.temp_path.exists():
                self.temp_path.unlink()
            if self._read_records(self.path) is None and self._restore_backup() is not None:
                logger.warning(f"Restored {self.path.name} from backup after a failed save")
        except (OSError, PersistenceError) as e:
            logger.error(f"Cleanup after failed save of {self.path.name} failed: {e}")

    @contextmanager
    def transaction(self) -> Generator[list[User], None, None]:
        """
        Load every user, let the caller change the list, then save it.

        The whole load-modify-save runs under the writer lock. If the body
        raises, nothing is saved and the exception propagates.

        Example:
            with store.transaction() as users:
                users.append(User("carol", hashed, AccountType.FREE))
        """
        with self._lock:
            users = self.load_all()
            yield users
            self.save_all(users)

    def modify(self, username: str, fn: Callable[[User, list[User]], T]) -> T:
        """
        Apply fn to the freshest record of one user and commit.

        Args:
            username: The user to change (case-insensitive).
            fn: Called as fn(user, all_users). Its return value is returned
                after the commit. If it raises, nothing is saved.

        Raises:
            DomainError: reason 'user_not_found' if the user does not exist.
            PersistenceError: If the commit fails.
        """
        with self.transaction() as users:
            user = _find(users, username)
            if user is None:
                raise DomainError(
                    "User not found",
                    details={"username": username},
                    reason="user_not_found"
                )
            return fn(user, users)

    # ------------------------------------------------------------------
    # Single-user helpers
    # ------------------------------------------------------------------

    def get_by_username(self, username: str) -> User | None:
        """Return the user with this name (case-insensitive), or None."""
        return _find(self.load_all(), username)

    def exists(self, username: str) -> bool:
        return self.get_by_username(username) is not None

    def add_user(self, user: User) -> None:
        """Insert user, or replace the existing record with the same name."""
        with self.transaction() as users:
            for i, existing in enumerate(users):
                if existing.key == user.key:
                    users[i] = user
                    break
            else:
                users.append(user)

    def update_user(self, user: User) -> bool:
        """
        Replace the stored record of user.

        Returns:
            bool: False if no such user exists (nothing is written).
        """
        with self._lock:
            users = self.load_all()
            for i, existing in enumerate(users):
                if existing.key == user.key:
                    users[i] = user
                    self.save_all(users)
                    return True
            return False

    def authenticate(self, username: str, password_hash: str) -> bool:
        """
        Compare password_hash with the stored hash of username.

        This is a plain constant-time string comparison; password checking
        with salts lives in playdeck.core.passwords.
        """
        user = self.get_by_username(username)
        if user is None or not password_hash:
            return False
        return hmac.compare_digest(user.password_hash.encode("utf-8"), password_hash.encode("utf-8"))

    def verify(self) -> StoreReport:
        """
        Check the store, recovering it if needed, and summarise its content.
        """
        valid_on_disk = self._read_records(self.path) is not None
        users = self.load_all()
        playlists = [playlist for user in users for playlist in user.playlists]
        return StoreReport(
            path=self.path,
            valid_on_disk=valid_on_disk,
            backup_present=self._read_records(self.backup_path) is not None,
            users=len(users),
            playlists=len(playlists),
            collaborative_playlists=sum(1 for p in playlists if p.is_collaborative),
            songs=sum(len(p) for p in playlists),
        )


def _find(users: list[User], username: str) -> User | None:
    key = normalize_username(username)
    for user in users:
        if user.key == key:
            return user
    return None
