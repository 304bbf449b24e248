"""
Configuration management for the log store server.

All configuration is done via environment variables, optionally overridden by
command-line flags in main.py. This module provides typed configuration
classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Defaults match the historical server (port 8765, logger.csv, limit 100)

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep this module free of store imports, the store depends on it
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace

logger = logging.getLogger(__name__)

PARSE_MODES = ("lenient", "strict")
LOG_FORMATS = ("text", "json")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class StorageConfig:
    """Log file configuration.

    Attributes:
        log_file: Path of the CSV log file
        parse_mode: How to treat malformed rows (lenient, strict)
        fsync: fsync the file after every write
    """

    log_file: str = "logger.csv"
    parse_mode: str = "lenient"
    fsync: bool = True

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            log_file=os.getenv("LOG_FILE", "logger.csv"),
            parse_mode=os.getenv("LOG_PARSE_MODE", "lenient").lower(),
            fsync=_env_bool("LOG_FSYNC", "true"),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        host: Bind address
        port: Listen port
        cors_origins: Allowed CORS origins
    """

    host: str = "0.0.0.0"
    port: int = 8765
    cors_origins: tuple[str, ...] = ("*",)

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8765")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )


@dataclass(frozen=True)
class QueryConfig:
    """Listing configuration.

    Attributes:
        default_limit: Page size when the caller gives none
        max_limit: Upper bound on page size (0 = unbounded)
    """

    default_limit: int = 100
    max_limit: int = 0

    @classmethod
    def from_env(cls) -> QueryConfig:
        """Load configuration from environment variables."""
        return cls(
            default_limit=int(os.getenv("DEFAULT_LIMIT", "100")),
            max_limit=int(os.getenv("MAX_LIMIT", "0")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (text, json)
        debug: Log every incoming HTTP request
    """

    log_level: str = "INFO"
    log_format: str = "text"
    debug: bool = False

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables.

        DEBUG raises the default level to DEBUG so request lines are emitted.
        An explicit LOG_LEVEL still wins.
        """
        debug = _env_bool("DEBUG", "false")
        return cls(
            log_level=os.getenv("LOG_LEVEL", "DEBUG" if debug else "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text").lower(),
            debug=debug,
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        storage: Log file configuration
        http: HTTP server configuration
        query: Listing configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    query: QueryConfig = field(default_factory=QueryConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If a value is missing or invalid
        """
        config = cls(
            storage=StorageConfig.from_env(),
            http=HttpConfig.from_env(),
            query=QueryConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def with_overrides(
        self,
        host: str | None = None,
        port: int | None = None,
        log_file: str | None = None,
        debug: bool | None = None,
    ) -> ServerConfig:
        """Copy with command-line overrides applied. None keeps the current value."""
        http = self.http
        if host is not None:
            http = replace(http, host=host)
        if port is not None:
            http = replace(http, port=port)

        storage = self.storage
        if log_file is not None:
            storage = replace(storage, log_file=log_file)

        observability = self.observability
        if debug:
            observability = replace(observability, debug=True, log_level="DEBUG")

        config = replace(self, http=http, storage=storage, observability=observability)
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.storage.log_file:
            raise ValueError("LOG_FILE must not be empty")
        if self.storage.parse_mode not in PARSE_MODES:
            raise ValueError(
                f"Invalid LOG_PARSE_MODE '{self.storage.parse_mode}'. "
                f"Must be one of: {', '.join(PARSE_MODES)}"
            )
        if not 0 < self.http.port < 65536:
            raise ValueError(f"Invalid PORT {self.http.port}")
        if self.query.default_limit < 0 or self.query.max_limit < 0:
            raise ValueError("DEFAULT_LIMIT and MAX_LIMIT must not be negative")
        if self.observability.log_format not in LOG_FORMATS:
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. "
                f"Must be one of: {', '.join(LOG_FORMATS)}"
            )

        log_dir = os.path.dirname(os.path.abspath(self.storage.log_file))
        if not os.path.exists(log_dir):
            logger.warning(
                f"Log file directory does not exist: {log_dir}. It will be created on startup."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "log_file": self.storage.log_file,
                "parse_mode": self.storage.parse_mode,
                "fsync": self.storage.fsync,
                "bind": f"{self.http.host}:{self.http.port}",
                "default_limit": self.query.default_limit,
                "max_limit": self.query.max_limit,
                "log_level": self.observability.log_level,
                "debug": self.observability.debug,
            },
        )
