"""Tests for configuration loading"""

from pathlib import Path

import pytest

from playdeck.core.config import (
    DEFAULT_EXTENSIONS,
    default_config,
    load_config,
)
from playdeck.core.exceptions import ConfigError


def write_config(temp_dir, text):
    path = temp_dir / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    """Configuration built without a file"""

    def test_default_values(self, temp_dir):
        """Every section falls back to its defaults"""
        config = default_config(temp_dir)

        assert config.server.host == "127.0.0.1"
        assert config.server.port == 12345
        assert config.server.max_clients == 10
        assert config.server.connection_timeout == 300.0
        assert config.library.extensions == DEFAULT_EXTENSIONS
        assert config.library.seed_samples is True
        assert config.security.bcrypt_rounds == 12
        assert config.logging.console_level == "INFO"

    def test_default_paths_resolve_against_base_dir(self, temp_dir):
        config = default_config(temp_dir)
        assert config.storage.users_file == (temp_dir / "users.json").resolve()
        assert config.library.directory == (temp_dir / "resources" / "mp3").resolve()
        assert config.logging.directory == (temp_dir / "logs").resolve()


class TestLoadConfig:
    """Loading and validating config.yaml"""

    def test_missing_file(self, temp_dir):
        with pytest.raises(ConfigError) as exc_info:
            load_config(temp_dir / "nope.yaml")
        assert "not found" in exc_info.value.message

    def test_empty_file_means_defaults(self, temp_dir):
        config = load_config(write_config(temp_dir, ""))
        assert config.server.port == 12345

    def test_invalid_yaml(self, temp_dir):
        with pytest.raises(ConfigError) as exc_info:
            load_config(write_config(temp_dir, "server: [unclosed"))
        assert "Invalid YAML" in exc_info.value.message

    def test_document_must_be_mapping(self, temp_dir):
        with pytest.raises(ConfigError):
            load_config(write_config(temp_dir, "- just\n- a list\n"))

    def test_section_must_be_mapping(self, temp_dir):
        with pytest.raises(ConfigError) as exc_info:
            load_config(write_config(temp_dir, "server: 5\n"))
        assert exc_info.value.details == {"section": "server"}

    def test_full_config(self, temp_dir):
        path = write_config(temp_dir, """
server:
  host: "0.0.0.0"
  port: 4000
  max_clients: 3
  connection_timeout: 0
storage:
  users_file: "data/users.json"
library:
  directory: "music"
  extensions: ["MP3", ".Flac"]
  seed_samples: false
security:
  bcrypt_rounds: 4
logging:
  directory: "/tmp/playdeck-logs"
  console_level: "debug"
""")
        config = load_config(path)

        assert config.server.host == "0.0.0.0"
        assert config.server.port == 4000
        assert config.server.max_clients == 3
        assert config.server.connection_timeout is None
        assert config.storage.users_file == (temp_dir / "data" / "users.json").resolve()
        assert config.library.directory == (temp_dir / "music").resolve()
        assert config.library.extensions == (".mp3", ".flac")
        assert config.library.seed_samples is False
        assert config.security.bcrypt_rounds == 4
        assert config.logging.directory == Path("/tmp/playdeck-logs").resolve()
        assert config.logging.console_level == "DEBUG"

    def test_null_timeout_disables(self, temp_dir):
        config = load_config(write_config(temp_dir, "server:\n  connection_timeout: null\n"))
        assert config.server.connection_timeout is None

    @pytest.mark.parametrize("text, field", [
        ("server:\n  port: 70000\n", "server.port"),
        ("server:\n  port: true\n", "server.port"),
        ("server:\n  port: '12345'\n", "server.port"),
        ("server:\n  host: ''\n", "server.host"),
        ("server:\n  max_clients: 0\n", "server.max_clients"),
        ("server:\n  connection_timeout: -1\n", "server.connection_timeout"),
        ("storage:\n  users_file: ''\n", "storage.users_file"),
        ("library:\n  extensions: mp3\n", "library.extensions"),
        ("library:\n  seed_samples: 'yes'\n", "library.seed_samples"),
        ("security:\n  bcrypt_rounds: 3\n", "security.bcrypt_rounds"),
        ("security:\n  bcrypt_rounds: 17\n", "security.bcrypt_rounds"),
        ("logging:\n  console_level: LOUD\n", "logging.console_level"),
    ])
    def test_invalid_values(self, temp_dir, text, field):
        """Each invalid value names its field"""
        with pytest.raises(ConfigError) as exc_info:
            load_config(write_config(temp_dir, text))
        assert exc_info.value.details["field"] == field

    def test_config_is_frozen(self, temp_dir):
        config = default_config(temp_dir)
        with pytest.raises(AttributeError):
            config.server.port = 1
