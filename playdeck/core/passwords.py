"""
Password hashing for playdeck.

New passwords are hashed with bcrypt. Stores written by earlier versions
of the server may still contain two legacy formats, which are verified
here and flagged for migration on the next successful login:

    - PBKDF2-HMAC-SHA256: "<base64 salt>:<base64 key>", 100000 iterations,
      32-byte key
    - Plain SHA-256: 64 lower-case hex characters, no salt

Usage:
    hasher = PasswordHasher(rounds=config.security.bcrypt_rounds)
    stored = hasher.hash("secret1")
    hasher.verify("secret1", stored)      # True
    hasher.needs_migration(stored)        # False
"""

import base64
import binascii
import hashlib
import hmac

import bcrypt

from playdeck.core.logger import get_logger


logger = get_logger(__name__)

# bcrypt only looks at the first 72 bytes of its input
BCRYPT_MAX_PASSWORD_BYTES = 72

PBKDF2_ITERATIONS = 100000
PBKDF2_KEY_LENGTH = 32

_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def is_bcrypt_hash(stored_hash: str) -> bool:
    """Return True if stored_hash is in bcrypt modular crypt format."""
    return stored_hash.startswith(_BCRYPT_PREFIXES)


def _verify_pbkdf2(password: str, stored_hash: str) -> bool:
    salt_b64, _, key_b64 = stored_hash.partition(":")
    try:
        salt = base64.b64decode(salt_b64, validate=True)
        expected = base64.b64decode(key_b64, validate=True)
    except (binascii.Error, ValueError):
        return False

    actual = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt,
        PBKDF2_ITERATIONS,
        dklen=len(expected) or PBKDF2_KEY_LENGTH
    )
    return hmac.compare_digest(actual, expected)


def _verify_sha256(password: str, stored_hash: str) -> bool:
    digest = hashlib.sha256(password.encode("utf-8")).hexdigest()
    return hmac.compare_digest(digest, stored_hash.lower())


class PasswordHasher:
    """
    bcrypt hasher with read support for legacy hashes.

    Attributes:
        rounds: bcrypt cost factor used for new hashes.

    Thread Safety:
        Stateless apart from the cost factor and the lazily built dummy
        hash, so one instance is shared by every session thread.
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        self._dummy_hash: bytes | None = None

    def hash(self, password: str) -> str:
        """
        Hash a password using bcrypt.

        Raises:
            ValueError: If the password is longer than 72 bytes in UTF-8.
        """
        encoded = password.encode("utf-8")
        if len(encoded) > BCRYPT_MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, password: str, stored_hash: str) -> bool:
        """
        Verify a password against a stored hash of any supported format.

        Returns:
            bool: True on match. Unrecognised or corrupt hashes never match.
        """
        if not password or not stored_hash:
            return False

        if is_bcrypt_hash(stored_hash):
            encoded = password.encode("utf-8")
            if len(encoded) > BCRYPT_MAX_PASSWORD_BYTES:
                return False
            try:
                return bcrypt.checkpw(encoded, stored_hash.encode("utf-8"))
            except ValueError:
                logger.warning("Stored bcrypt hash is malformed")
                return False

        if ":" in stored_hash:
            return _verify_pbkdf2(password, stored_hash)

        if len(stored_hash) == 64:
            return _verify_sha256(password, stored_hash)

        return False

    def needs_migration(self, stored_hash: str) -> bool:
        """Return True if stored_hash is a legacy (non-bcrypt) hash."""
        return not is_bcrypt_hash(stored_hash)

    def dummy_verify(self, password: str) -> None:
        """
        Run one bcrypt comparison against a throwaway hash.

        Called for unknown usernames so that a failed login takes about
        as long whether or not the account exists.
        """
        if self._dummy_hash is None:
            self._dummy_hash = bcrypt.hashpw(b"playdeck-dummy", bcrypt.gensalt(rounds=self.rounds))
        encoded = password.encode("utf-8")[:BCRYPT_MAX_PASSWORD_BYTES]
        bcrypt.checkpw(encoded, self._dummy_hash)
