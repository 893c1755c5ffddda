"""
Authentication service: registration, login and logout policy.

Every failure raises AuthError with a message that is sent to the client
verbatim. Unknown usernames and wrong passwords produce the same message
and take about the same time, so a client cannot probe which accounts
exist. Every failure is also written to the security events log.
"""

import logging
import re

from playdeck.core.exceptions import AuthError, DomainError, PersistenceError
from playdeck.core.logger import get_logger, log_security_event
from playdeck.core.passwords import BCRYPT_MAX_PASSWORD_BYTES, PasswordHasher
from playdeck.core.store import UserStore
from playdeck.domain.models import AccountType, User, normalize_username
from playdeck.services.attempts import AttemptTracker


logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 6
MAX_USERNAME_LENGTH = 32

_USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+$")


class AuthService:
    """
    Register, log in and log out users.

    Args:
        store: Shared user store.
        hasher: Password hasher (bcrypt cost from config).
        tracker: Process-wide brute-force attempt tracker.
    """

    def __init__(self, store: UserStore, hasher: PasswordHasher, tracker: AttemptTracker) -> None:
        self.store = store
        self.hasher = hasher
        self.tracker = tracker

    def register(
        self,
        username: str,
        password: str,
        account_type: str,
        peer: str | None = None
    ) -> User:
        """
        Create a new account.

        Args:
            username: Letters, digits, '_', '-', '.'; unique case-insensitively.
            password: At least 6 characters, at most 72 bytes in UTF-8.
            account_type: "free" or "premium" (case-insensitive).
            peer: Client address, for the security log.

        Returns:
            User: The stored user.

        Raises:
            AuthError: With one of the registration failure messages.
            PersistenceError: If the new user could not be saved.
        """
        if not username or not username.strip() or not password or not password.strip():
            raise AuthError("Invalid registration data")

        username = username.strip()
        if len(username) > MAX_USERNAME_LENGTH or not _USERNAME_PATTERN.match(username):
            raise AuthError("Invalid username", details={"username": username})

        tier = AccountType.parse(account_type)
        if tier is None:
            raise AuthError("Invalid account type", details={"account_type": account_type})

        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if len(password.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
            raise AuthError(f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes")

        # Hash before taking the store lock, bcrypt is slow on purpose
        password_hash = self.hasher.hash(password)
        user = User(username=username, password_hash=password_hash, account_type=tier)

        with self.store.transaction() as users:
            if any(existing.key == user.key for existing in users):
                log_security_event(logger, "register_failed", username, peer, "username taken")
                raise AuthError("Username already exists", details={"username": username})
            users.append(user)

        log_security_event(
            logger, "register", username, peer, f"account type {tier.value}", level=logging.INFO
        )
        return user

    def login(self, username: str, password: str, peer: str | None = None) -> User:
        """
        Check credentials.

        Behavior:
            1. Empty credentials fail without touching the attempt counter
            2. A locked account fails without checking the password
            3. Unknown user or wrong password count one failure
            4. Success resets the counter and migrates a legacy hash to bcrypt

        Returns:
            User: The authenticated user (freshly loaded).

        Raises:
            AuthError: is_locked/remaining_seconds are set on lockout failures.
        """
        if not username or not username.strip() or not password or not password.strip():
            raise AuthError("Invalid credentials format")

        username = username.strip()
        key = normalize_username(username)

        remaining = self.tracker.remaining_lockout(key)
        if remaining > 0:
            log_security_event(
                logger, "login_blocked", username, peer, f"locked, {remaining} seconds left"
            )
            raise AuthError(
                f"Account temporarily locked. Try again in {remaining} seconds",
                details={"username": username},
                is_locked=True,
                remaining_seconds=remaining
            )

        user = self.store.get_by_username(username)
        if user is None:
            self.hasher.dummy_verify(password)
            valid = False
        else:
            valid = self.hasher.verify(password, user.password_hash)

        if not valid:
            outcome = self.tracker.record_failure(key)
            if outcome.locked:
                minutes = int(self.tracker.lockout_duration // 60)
                log_security_event(
                    logger, "account_locked", username, peer,
                    f"{outcome.failure_count} failures, locked for {int(self.tracker.lockout_duration)} seconds"
                )
                raise AuthError(
                    f"Too many failed attempts. Account locked for {minutes} minutes",
                    details={"username": username},
                    is_locked=True,
                    remaining_seconds=int(self.tracker.lockout_duration)
                )

            log_security_event(
                logger, "login_failed", username, peer,
                f"{outcome.attempts_remaining} attempts remaining"
                + ("" if user is not None else " (unknown user)")
            )
            raise AuthError(
                f"Incorrect credentials. {outcome.attempts_remaining} attempts remaining",
                details={"username": username}
            )

        self.tracker.record_success(key)

        if self.hasher.needs_migration(user.password_hash):
            user = self._migrate_hash(user, password)

        log_security_event(logger, "login_success", user.username, peer, level=logging.INFO)
        return user

    def _migrate_hash(self, user: User, password: str) -> User:
        """Rehash a legacy password with bcrypt. Failure is logged, not raised."""
        new_hash = self.hasher.hash(password)

        def apply(stored: User, _users: list[User]) -> User:
            stored.password_hash = new_hash
            return stored

        try:
            migrated = self.store.modify(user.username, apply)
        except (PersistenceError, DomainError) as e:
            logger.warning(f"Password migration failed for '{user.username}': {e}")
            return user

        logger.info(f"Migrated legacy password hash of '{user.username}' to bcrypt")
        return migrated

    def logout(self, username: str | None, peer: str | None = None) -> None:
        """Record a logout. Nothing is persisted."""
        if username:
            log_security_event(logger, "logout", username, peer, level=logging.INFO)
