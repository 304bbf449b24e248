"""
Unit tests for server configuration.

Tests cover:
- Defaults
- Loading from environment
- Validation
- Command-line overrides
"""

import pytest

from devicelog.logstore.config import ServerConfig, StorageConfig


class TestServerConfig:
    """Tests for ServerConfig."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in (
            "LOG_FILE",
            "LOG_PARSE_MODE",
            "LOG_FSYNC",
            "HOST",
            "PORT",
            "CORS_ORIGINS",
            "DEFAULT_LIMIT",
            "MAX_LIMIT",
            "LOG_LEVEL",
            "LOG_FORMAT",
            "DEBUG",
        ):
            monkeypatch.delenv(name, raising=False)

    def test_defaults(self):
        """Defaults match the historical server."""
        config = ServerConfig.from_env()

        assert config.storage.log_file == "logger.csv"
        assert config.storage.parse_mode == "lenient"
        assert config.storage.fsync is True
        assert config.http.host == "0.0.0.0"
        assert config.http.port == 8765
        assert config.http.cors_origins == ("*",)
        assert config.query.default_limit == 100
        assert config.query.max_limit == 0
        assert config.observability.debug is False

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_FILE", "/data/devices.csv")
        monkeypatch.setenv("LOG_PARSE_MODE", "STRICT")
        monkeypatch.setenv("LOG_FSYNC", "false")
        monkeypatch.setenv("PORT", "9000")
        monkeypatch.setenv("CORS_ORIGINS", "http://a.local, http://b.local")
        monkeypatch.setenv("MAX_LIMIT", "500")
        monkeypatch.setenv("DEBUG", "1")

        config = ServerConfig.from_env()

        assert config.storage.log_file == "/data/devices.csv"
        assert config.storage.parse_mode == "strict"
        assert config.storage.fsync is False
        assert config.http.port == 9000
        assert config.http.cors_origins == ("http://a.local", "http://b.local")
        assert config.query.max_limit == 500
        assert config.observability.debug is True

    def test_invalid_parse_mode(self, monkeypatch):
        monkeypatch.setenv("LOG_PARSE_MODE", "sloppy")

        with pytest.raises(ValueError, match="LOG_PARSE_MODE"):
            ServerConfig.from_env()

    def test_invalid_port(self, monkeypatch):
        monkeypatch.setenv("PORT", "70000")

        with pytest.raises(ValueError, match="PORT"):
            ServerConfig.from_env()

    def test_non_numeric_port(self, monkeypatch):
        monkeypatch.setenv("PORT", "http")

        with pytest.raises(ValueError):
            ServerConfig.from_env()

    def test_invalid_log_format(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "xml")

        with pytest.raises(ValueError, match="LOG_FORMAT"):
            ServerConfig.from_env()

    def test_empty_log_file(self):
        config = ServerConfig(storage=StorageConfig(log_file=""))

        with pytest.raises(ValueError, match="LOG_FILE"):
            config.validate()

    def test_overrides(self):
        """Flags take precedence, None keeps environment values."""
        config = ServerConfig.from_env().with_overrides(
            host="127.0.0.1",
            port=None,
            log_file="/tmp/other.csv",
            debug=True,
        )

        assert config.http.host == "127.0.0.1"
        assert config.http.port == 8765
        assert config.storage.log_file == "/tmp/other.csv"
        assert config.observability.debug is True
        assert config.observability.log_level == "DEBUG"

    def test_overrides_validate(self):
        with pytest.raises(ValueError, match="PORT"):
            ServerConfig().with_overrides(port=0)

    def test_debug_env_raises_log_level(self, monkeypatch):
        """DEBUG alone is enough for request lines to be logged."""
        monkeypatch.setenv("DEBUG", "true")

        config = ServerConfig.from_env()

        assert config.observability.debug is True
        assert config.observability.log_level == "DEBUG"

    def test_explicit_log_level_wins_over_debug(self, monkeypatch):
        monkeypatch.setenv("DEBUG", "true")
        monkeypatch.setenv("LOG_LEVEL", "WARNING")

        assert ServerConfig.from_env().observability.log_level == "WARNING"
