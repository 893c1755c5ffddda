"""
Logging configuration for playdeck.

This module sets up the logging system with multiple outputs:
    - Console: Colored, tqdm-compatible output (the catalog scan shows a progress bar)
    - log_full_<ts>.log: Complete log of all events (DEBUG and above)
    - log_errors_<ts>.log: Only ERROR and CRITICAL level messages
    - security_events_<ts>.log: Failed logins, lockouts, registrations, logouts

Everything printed on the console is also saved to file, then filtered into
specialized files.

Usage:
    from playdeck.core.logger import setup_logging, get_logger

    setup_logging(config.logging.directory)  # Call once at startup
    logger = get_logger(__name__)            # Get logger for each module

    logger.info("Server listening")
    log_security_event(logger, "login_failed", "alice", "127.0.0.1:50412")
"""

import logging
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


LOG_FULL_PREFIX = "log_full"
LOG_ERRORS_PREFIX = "log_errors"
SECURITY_EVENTS_PREFIX = "security_events"

# Log format for file output (detailed with timestamp and thread)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Security events are already one-line summaries
SECURITY_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Formatter that colors the level name on console output.

    Colors:
        - DEBUG: Blue
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bold Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        message = f"{color}{record.levelname}{Colors.RESET}: {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes to the console without breaking tqdm progress bars.

    tqdm redraws its bar in place with carriage returns; plain writes to
    stderr would tear it. tqdm.write() prints the message above any active
    bar and redraws the bar below it.

    Attributes:
        stream: The output stream (defaults to sys.stderr).
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        """
        Emit a log record using tqdm.write().

        Thread Safety:
            Safe to call from session worker threads; tqdm.write() serializes
            access to the bar and the stream.
        """
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class SecurityEventHandler(logging.Handler):
    """
    Handler that captures authentication events for the security report file.

    This handler listens for log records tagged by log_security_event() and
    writes one line per event to security_events_<ts>.log:

        2026-10-19 14:03:11 | login_failed | alice | 127.0.0.1:50412 | 4 attempts remaining
        2026-10-19 14:03:40 | account_locked | alice | 127.0.0.1:50412 | locked for 900 seconds

    The handler looks for specific extra fields in log records:
        - 'security_event': Event name (required; records without it are ignored)
        - 'security_username': Username the event concerns
        - 'security_peer': Remote address of the client, when known
        - 'security_detail': Free-form detail

    Passwords are never part of any field.

    Attributes:
        report_path: Path to the security events file.
        report_file: Open file handle (opened by open()).
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None
        self._write_lock = threading.Lock()

    def open(self) -> None:
        """
        Open the report file for writing.

        Called by setup_logging() after the handler is created.
        """
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        """
        Write the security event if the record carries one.

        Behavior:
            1. Ignore records without a 'security_event' attribute
            2. Format "<time> | <event> | <username> | <peer> | <detail>"
            3. Write and flush under the handler's own lock, since sessions
               log from many worker threads at once
        """
        if not hasattr(record, "security_event"):
            return

        if self.report_file is None:
            return

        try:
            timestamp = datetime.fromtimestamp(record.created).strftime(SECURITY_DATE_FORMAT)
            event = getattr(record, "security_event")
            username = getattr(record, "security_username", "-") or "-"
            peer = getattr(record, "security_peer", None) or "-"
            detail = getattr(record, "security_detail", "") or ""

            with self._write_lock:
                self.report_file.write(f"{timestamp} | {event} | {username} | {peer} | {detail}\n")
                self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """
        Close the report file handle.

        Safe to call multiple times.
        """
        if self.report_file is not None:
            self.report_file.close()
            self.report_file = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """
    Filter that only allows ERROR and CRITICAL level records.

    Used by the error log file handler to exclude DEBUG, INFO, and WARNING.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(log_dir: Path, console_level: str = "INFO") -> Path:
    """
    Configure the logging system for the server.

    This function should be called ONCE at startup, after the configuration
    is loaded and before the catalog is scanned or the server starts.

    Args:
        log_dir: Directory where log files will be created (created if missing).
        console_level: Minimum level shown on the console ("DEBUG", "INFO", ...).

    Returns:
        Path: The log directory actually used.

    Behavior:
        1. Create log_dir if it doesn't exist
        2. Generate a timestamp for this run's log files
        3. Configure root logger level to DEBUG and drop existing handlers
        4. Console handler (TqdmLoggingHandler, colored) at console_level
        5. Full log file handler (DEBUG+)
        6. Error log file handler (ERROR+ via ErrorOnlyFilter)
        7. Security events handler (records tagged by log_security_event)

    Thread Safety:
        NOT thread-safe. Call it from the main thread before the accept
        thread and the worker pool are started.
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove any existing handlers
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(getattr(logging, console_level.upper(), logging.INFO))
    console_handler.setFormatter(ColoredConsoleFormatter())
    root_logger.addHandler(console_handler)

    full_log_path = log_dir / f"{LOG_FULL_PREFIX}_{timestamp}.log"
    full_handler = logging.FileHandler(full_log_path, mode="w", encoding="utf-8")
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    root_logger.addHandler(full_handler)

    error_log_path = log_dir / f"{LOG_ERRORS_PREFIX}_{timestamp}.log"
    error_handler = logging.FileHandler(error_log_path, mode="w", encoding="utf-8")
    error_handler.setLevel(logging.DEBUG)  # Filter handles the level restriction
    error_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    error_handler.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(error_handler)

    security_path = log_dir / f"{SECURITY_EVENTS_PREFIX}_{timestamp}.log"
    security_handler = SecurityEventHandler(security_path)
    security_handler.open()
    root_logger.addHandler(security_handler)

    return log_dir


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module.
              This creates a hierarchy like 'playdeck.server.session'.

    Note:
        Loggers obtained before setup_logging() have no handlers of their
        own and propagate to whatever the root logger has (nothing, or
        pytest's capture handler in tests).
    """
    return logging.getLogger(name)


def log_security_event(
    logger: logging.Logger,
    event: str,
    username: str | None,
    peer: str | None = None,
    detail: str = "",
    level: int = logging.WARNING
) -> None:
    """
    Log an authentication-related event.

    This is a convenience function that logs the event with the extra
    fields SecurityEventHandler picks up.

    Args:
        logger: The logger to use for the message.
        event: Short event name, e.g. 'login_failed', 'account_locked',
               'login_blocked', 'login_success', 'register', 'logout'.
        username: The username the event concerns (as typed by the client).
        peer: Remote "host:port" of the client, when known.
        detail: Extra human-readable context. Never a password.
        level: Logging level. Failures default to WARNING; callers pass
               logging.INFO for successful events.

    Example:
        log_security_event(
            logger,
            "account_locked",
            "alice",
            peer="127.0.0.1:50412",
            detail="locked for 900 seconds"
        )
    """
    message = f"Security event '{event}' for user '{username or '-'}'"
    if peer:
        message += f" from {peer}"
    if detail:
        message += f": {detail}"

    logger.log(
        level,
        message,
        extra={
            "security_event": event,
            "security_username": username,
            "security_peer": peer,
            "security_detail": detail,
        }
    )


def shutdown_logging() -> None:
    """
    Flush, close and remove every root handler.

    Called by the CLI in a finally block after the server has stopped.
    After calling this function, logging produces no output.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        handler.flush()
        handler.close()
        root_logger.removeHandler(handler)
