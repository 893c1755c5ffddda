"""
Core module for playdeck.

This module provides the foundational components used throughout the server:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - logger: Logging system with multiple outputs
    - passwords: bcrypt hashing with legacy-hash migration
    - store: Crash-safe JSON user store (import it from playdeck.core.store;
      it depends on playdeck.domain, which itself depends on this package)

Usage:
    from playdeck.core import (
        Config, load_config,
        setup_logging, get_logger,
        PlaydeckError, ConfigError, PersistenceError
    )
"""

from playdeck.core.config import (
    Config,
    LibraryConfig,
    LoggingConfig,
    SecurityConfig,
    ServerConfig,
    StorageConfig,
    default_config,
    load_config,
)
from playdeck.core.exceptions import (
    AuthError,
    CatalogError,
    ConfigError,
    DomainError,
    PersistenceError,
    PlaydeckError,
    ProtocolError,
    TransportError,
)
from playdeck.core.logger import (
    get_logger,
    log_security_event,
    setup_logging,
    shutdown_logging,
)
from playdeck.core.passwords import PasswordHasher

__all__ = [
    # Config
    "Config",
    "ServerConfig",
    "StorageConfig",
    "LibraryConfig",
    "SecurityConfig",
    "LoggingConfig",
    "default_config",
    "load_config",
    # Exceptions
    "PlaydeckError",
    "ConfigError",
    "ProtocolError",
    "AuthError",
    "DomainError",
    "PersistenceError",
    "TransportError",
    "CatalogError",
    # Logging
    "get_logger",
    "log_security_event",
    "setup_logging",
    "shutdown_logging",
    # Passwords
    "PasswordHasher",
]
