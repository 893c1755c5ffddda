"""
Configuration management for playdeck.

This module handles loading, validating, and providing access to the
server configuration stored in config.yaml.

The configuration file contains:
    - Network settings (host, port, worker pool size, idle timeout)
    - Location of the shared user store (users.json)
    - Music library directory and scanned extensions
    - Password hashing cost
    - Log directory and console verbosity

Every section is optional; missing values fall back to the defaults
below. Relative paths are resolved against the directory that contains
the configuration file, so a deployment directory can be moved as a unit.

Example config.yaml:
    server:
      host: "127.0.0.1"
      port: 12345
      max_clients: 10
      connection_timeout: 300   # seconds, null or 0 disables

    storage:
      users_file: "users.json"

    library:
      directory: "resources/mp3"
      extensions: [".mp3", ".flac", ".m4a", ".ogg", ".wav"]
      seed_samples: true

    security:
      bcrypt_rounds: 12

    logging:
      directory: "logs"
      console_level: "INFO"
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from playdeck.core.exceptions import ConfigError


# Default configuration file name (looked up in current working directory)
CONFIG_FILENAME = "config.yaml"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 12345
DEFAULT_MAX_CLIENTS = 10
DEFAULT_CONNECTION_TIMEOUT = 300.0
DEFAULT_USERS_FILE = "users.json"
DEFAULT_MUSIC_DIRECTORY = "resources/mp3"
DEFAULT_EXTENSIONS = (".mp3", ".flac", ".m4a", ".ogg", ".wav")
DEFAULT_BCRYPT_ROUNDS = 12
DEFAULT_LOG_DIRECTORY = "logs"
DEFAULT_CONSOLE_LEVEL = "INFO"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ServerConfig:
    """
    Network configuration.

    Attributes:
        host: Interface to bind. "0.0.0.0" listens on all interfaces.
        port: TCP port. 0 lets the OS pick a free port (used by tests).
        max_clients: Size of the session worker pool. Connections beyond
                     this number wait until a worker frees up.
        connection_timeout: Seconds of client silence before the session
                            is closed. None disables the idle timeout.
    """
    host: str
    port: int
    max_clients: int
    connection_timeout: float | None


@dataclass(frozen=True)
class StorageConfig:
    """
    User store configuration.

    Attributes:
        users_file: Absolute path to the shared JSON user store.
                    The backup (.bak) and temporary (.tmp) files live next to it.
    """
    users_file: Path


@dataclass(frozen=True)
class LibraryConfig:
    """
    Music library configuration.

    Attributes:
        directory: Absolute path scanned for audio files at startup.
                   A missing directory is not an error (empty library).
        extensions: Lower-case file suffixes treated as audio files.
        seed_samples: When True, the built-in sample songs are added to the
                      catalog in addition to scanned files.
    """
    directory: Path
    extensions: tuple[str, ...]
    seed_samples: bool


@dataclass(frozen=True)
class SecurityConfig:
    """
    Password hashing configuration.

    Attributes:
        bcrypt_rounds: bcrypt cost factor (log2 of the iteration count).
                       Valid range 4-16. Each +1 doubles hashing time.
    """
    bcrypt_rounds: int


@dataclass(frozen=True)
class LoggingConfig:
    """
    Logging configuration.

    Attributes:
        directory: Absolute path of the directory that receives log files.
        console_level: Minimum level printed on the console.
    """
    directory: Path
    console_level: str


@dataclass(frozen=True)
class Config:
    """
    Complete server configuration.

    This is the main configuration object that aggregates all configuration
    sections. It is created by load_config() or default_config() and should
    be treated as immutable (frozen dataclass).

    Example:
        config = load_config(Path("config.yaml"))
        print(f"Listening on {config.server.host}:{config.server.port}")
        print(f"Users stored in {config.storage.users_file}")
    """
    server: ServerConfig
    storage: StorageConfig
    library: LibraryConfig
    security: SecurityConfig
    logging: LoggingConfig


def default_config(base_dir: Path | None = None) -> Config:
    """
    Build a configuration made only of default values.

    Args:
        base_dir: Directory that relative default paths are resolved against.
                  Defaults to the current working directory.

    Returns:
        Config: Default configuration.
    """
    return _build_config({}, base_dir or Path.cwd())


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in current working directory.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If the config file is not found, has invalid YAML syntax,
                     is not a mapping, or contains invalid values.
                     The error message will indicate the specific problem.

    Behavior:
        1. Locate config file (explicit path or CWD/config.yaml)
        2. Read and parse YAML content
        3. Validate every present section is a mapping
        4. Parse each section, applying defaults
        5. Resolve relative paths against the config file's directory
        6. Create and return frozen Config object

    Thread Safety:
        This function is NOT thread-safe. It should be called once at
        application startup, before the server starts accepting clients.
    """
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    # An empty file means "all defaults"
    if raw_config is None:
        raw_config = {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    return _build_config(raw_config, config_path.resolve().parent)


def _build_config(raw_config: dict[str, Any], base_dir: Path) -> Config:
    """
    Validate section structure and parse every section.

    Args:
        raw_config: Dictionary parsed from config.yaml (may be empty).
        base_dir: Directory used to resolve relative paths.

    Returns:
        Config: Parsed configuration.

    Raises:
        ConfigError: If a section is present but is not a dictionary,
                     or if any value is invalid.
    """
    sections = {}
    for section in ("server", "storage", "library", "security", "logging"):
        value = raw_config.get(section)
        if value is None:
            value = {}
        if not isinstance(value, dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )
        sections[section] = value

    return Config(
        server=_parse_server_config(sections["server"]),
        storage=_parse_storage_config(sections["storage"], base_dir),
        library=_parse_library_config(sections["library"], base_dir),
        security=_parse_security_config(sections["security"]),
        logging=_parse_logging_config(sections["logging"], base_dir),
    )


def _resolve_path(raw: Any, field_name: str, default: str, base_dir: Path) -> Path:
    """
    Validate a path field and resolve it against base_dir.

    Expands ~ to the home directory. Does NOT create anything on disk.
    """
    if raw is None:
        raw = default
    if not isinstance(raw, str) or not raw.strip():
        raise ConfigError(
            f"'{field_name}' must be a non-empty string",
            details={"field": field_name}
        )
    path = Path(raw.strip()).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path.resolve()


def _parse_server_config(section: dict[str, Any]) -> ServerConfig:
    """
    Parse and validate the server section.

    Raises:
        ConfigError: If host is empty, port is out of range, max_clients is
                     not a positive integer, or connection_timeout is negative.
    """
    host = section.get("host", DEFAULT_HOST)
    if not isinstance(host, str) or not host.strip():
        raise ConfigError(
            "'server.host' must be a non-empty string",
            details={"field": "server.host"}
        )

    port = section.get("port", DEFAULT_PORT)
    # bool is a subclass of int, reject it explicitly
    if not isinstance(port, int) or isinstance(port, bool) or not 0 <= port <= 65535:
        raise ConfigError(
            "'server.port' must be an integer between 0 and 65535",
            details={"field": "server.port", "value": port}
        )

    max_clients = section.get("max_clients", DEFAULT_MAX_CLIENTS)
    if not isinstance(max_clients, int) or isinstance(max_clients, bool) or max_clients < 1:
        raise ConfigError(
            "'server.max_clients' must be a positive integer",
            details={"field": "server.max_clients", "value": max_clients}
        )

    timeout = section.get("connection_timeout", DEFAULT_CONNECTION_TIMEOUT)
    if timeout is not None:
        if not isinstance(timeout, (int, float)) or isinstance(timeout, bool) or timeout < 0:
            raise ConfigError(
                "'server.connection_timeout' must be a non-negative number or null",
                details={"field": "server.connection_timeout", "value": timeout}
            )
        timeout = float(timeout) if timeout > 0 else None

    return ServerConfig(
        host=host.strip(),
        port=port,
        max_clients=max_clients,
        connection_timeout=timeout
    )


def _parse_storage_config(section: dict[str, Any], base_dir: Path) -> StorageConfig:
    """Parse and validate the storage section."""
    users_file = _resolve_path(
        section.get("users_file"), "storage.users_file", DEFAULT_USERS_FILE, base_dir
    )
    return StorageConfig(users_file=users_file)


def _parse_library_config(section: dict[str, Any], base_dir: Path) -> LibraryConfig:
    """
    Parse and validate the library section.

    Extensions are normalized to lower case with a leading dot, so
    "MP3" and ".mp3" are equivalent.

    Raises:
        ConfigError: If extensions is not a list of non-empty strings or
                     seed_samples is not a boolean.
    """
    directory = _resolve_path(
        section.get("directory"), "library.directory", DEFAULT_MUSIC_DIRECTORY, base_dir
    )

    raw_extensions = section.get("extensions")
    if raw_extensions is None:
        extensions = DEFAULT_EXTENSIONS
    else:
        if not isinstance(raw_extensions, list) or not all(
            isinstance(ext, str) and ext.strip(" .") for ext in raw_extensions
        ):
            raise ConfigError(
                "'library.extensions' must be a list of file extensions",
                details={"field": "library.extensions", "value": raw_extensions}
            )
        extensions = tuple(
            "." + ext.strip().lstrip(".").lower() for ext in raw_extensions
        )

    seed_samples = section.get("seed_samples", True)
    if not isinstance(seed_samples, bool):
        raise ConfigError(
            "'library.seed_samples' must be true or false",
            details={"field": "library.seed_samples", "value": seed_samples}
        )

    return LibraryConfig(
        directory=directory,
        extensions=extensions,
        seed_samples=seed_samples
    )


def _parse_security_config(section: dict[str, Any]) -> SecurityConfig:
    """
    Parse and validate the security section.

    Raises:
        ConfigError: If bcrypt_rounds is outside 4-16.
    """
    rounds = section.get("bcrypt_rounds", DEFAULT_BCRYPT_ROUNDS)
    if not isinstance(rounds, int) or isinstance(rounds, bool) or not 4 <= rounds <= 16:
        raise ConfigError(
            "'security.bcrypt_rounds' must be an integer between 4 and 16",
            details={"field": "security.bcrypt_rounds", "value": rounds}
        )
    return SecurityConfig(bcrypt_rounds=rounds)


def _parse_logging_config(section: dict[str, Any], base_dir: Path) -> LoggingConfig:
    """Parse and validate the logging section."""
    directory = _resolve_path(
        section.get("directory"), "logging.directory", DEFAULT_LOG_DIRECTORY, base_dir
    )

    level = section.get("console_level", DEFAULT_CONSOLE_LEVEL)
    if not isinstance(level, str) or level.strip().upper() not in _LOG_LEVELS:
        raise ConfigError(
            f"'logging.console_level' must be one of {', '.join(_LOG_LEVELS)}",
            details={"field": "logging.console_level", "value": level}
        )

    return LoggingConfig(directory=directory, console_level=level.strip().upper())
