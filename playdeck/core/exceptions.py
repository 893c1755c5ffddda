"""
Exception classes for playdeck.

This module defines all custom exceptions used throughout the server.
Each exception carries a human-readable message that is safe to show to a
connected client, plus an optional details dictionary for logging.

Exception Hierarchy:
    PlaydeckError (base)
        ConfigError - Configuration file issues (fatal at startup)
        ProtocolError - Malformed or unknown protocol commands
        AuthError - Bad credentials, lockout, not logged in
        DomainError - Playlist/song rule violations
        PersistenceError - User store I/O failures
        TransportError - Socket failures
        CatalogError - Music library loading failures

Only ConfigError and a TransportError raised while binding the listening
socket stop the process. Everything else is reported to the affected
session and the server keeps running.
"""


class PlaydeckError(Exception):
    """
    Base exception for all playdeck errors.

    All custom exceptions in this project inherit from this class,
    allowing callers to catch all playdeck errors with a single
    except clause if desired.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g. username, path).

    Example:
        try:
            store.save_all(users)
        except PlaydeckError as e:
            logger.error(f"Operation failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description. For errors raised by
                     services this text is sent to the client verbatim, so it
                     must never contain secrets or reveal whether an account exists.
            details: Optional dictionary containing additional context about the error.
                     Only ever logged, never sent to clients. Common keys include:
                     - 'username': Account involved in the error
                     - 'path': File path involved in the error
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(PlaydeckError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - config.yaml not found
        - config.yaml has invalid YAML syntax
        - Invalid field values (e.g. port out of range, negative pool size)

    Example:
        raise ConfigError(
            "'server.port' must be an integer between 0 and 65535",
            details={'field': 'server.port', 'value': 70000}
        )
    """
    pass


class ProtocolError(PlaydeckError):
    """
    Raised when a client sends a malformed command line.

    This is a NON-CRITICAL error: the reason is reported to the client
    as an ERROR line and the connection stays open.

    Common causes:
        - Missing or extra arguments
        - Non-numeric index where a number is expected
        - Playlist name containing whitespace or '|'
        - Line longer than the protocol limit

    Example:
        raise ProtocolError("Usage: LOGIN <username> <password>")
    """
    pass


class AuthError(PlaydeckError):
    """
    Raised when authentication or registration fails.

    The message never reveals whether the username exists: unknown users
    and wrong passwords produce identical text.

    Attributes:
        is_locked: True if the account is locked by brute-force protection.
        remaining_seconds: Seconds left on the lockout (0 when not locked).

    Example:
        raise AuthError(
            "Account temporarily locked. Try again in 840 seconds",
            details={'username': 'alice'},
            is_locked=True,
            remaining_seconds=840
        )
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        is_locked: bool = False,
        remaining_seconds: int = 0
    ) -> None:
        """
        Initialize authentication error with lockout information.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional context.
            is_locked: Set to True when the failure is due to an active lockout.
            remaining_seconds: Lockout time left, in whole seconds.
        """
        super().__init__(message, details)
        self.is_locked = is_locked
        self.remaining_seconds = remaining_seconds


class DomainError(PlaydeckError):
    """
    Raised when a playlist or social operation violates a domain rule.

    This is a NON-CRITICAL error: the reason string is reported to the
    client and nothing is persisted.

    Attributes:
        reason: Short machine-readable code the session handler uses to pick
                a response keyword. One of: 'invalid_name', 'limit', 'exists',
                'not_found', 'song_not_found', 'user_not_found',
                'invalid_index', 'forbidden', 'invalid'.

    Example:
        raise DomainError(
            "Playlist limit reached for your account type",
            details={'username': 'alice', 'limit': 1},
            reason='limit'
        )
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        reason: str = "invalid"
    ) -> None:
        """
        Initialize domain error with a reason code.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional context.
            reason: Machine-readable reason code (see class docstring).
        """
        super().__init__(message, details)
        self.reason = reason


class PersistenceError(PlaydeckError):
    """
    Raised when the user store cannot be read or written.

    The store recovers from its backup file whenever it can; this error
    means recovery was not possible for this operation. The caller reports
    the failure and the process keeps running.

    Common causes:
        - Permission denied when writing the store or its backup
        - Disk full while writing the temporary file
        - Temporary file empty after serialization

    Example:
        raise PersistenceError(
            "Failed to save user store",
            details={'path': '/srv/playdeck/users.json', 'original_error': 'No space left'}
        )
    """
    pass


class TransportError(PlaydeckError):
    """
    Raised when a socket operation fails.

    A TransportError inside a session terminates only that session.
    A TransportError while binding the listening socket is fatal.

    Example:
        raise TransportError(
            "Could not bind 0.0.0.0:12345: Address already in use",
            details={'host': '0.0.0.0', 'port': 12345}
        )
    """
    pass


class CatalogError(PlaydeckError):
    """
    Raised when the music library cannot be loaded at startup.

    Common causes:
        - Music directory path exists but is not a directory
        - Permission denied while scanning

    Individual unreadable audio files are NOT errors: they are logged and
    skipped by the loader.
    """
    pass
