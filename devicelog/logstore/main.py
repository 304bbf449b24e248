"""
Device log server - Main entry point.

Usage:
    logstore-server [-d] [--host HOST] [--port PORT] [--log-file PATH]
    python -m devicelog.logstore.main -d

Configuration comes from environment variables (see config.py); flags
override them. -d enables debug mode, which logs every incoming request.

Invariants:
    - The log file is created or migrated before the server accepts requests
    - A configuration error exits with status 1 before anything is touched
"""

from __future__ import annotations

import argparse
import logging
import sys

import json_log_formatter
import uvicorn

from .api import create_app_from_config
from .config import ServerConfig

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.VerboseJSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Request lines come from our own debug middleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="logstore-server",
        description="HTTP log server for Arduino/remote device data entries",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug mode (log connection requests)",
    )
    parser.add_argument("--host", help="Bind address (env: HOST, default 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Listen port (env: PORT, default 8765)")
    parser.add_argument("--log-file", help="CSV log file (env: LOG_FILE, default logger.csv)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = ServerConfig.from_env().with_overrides(
            host=args.host,
            port=args.port,
            log_file=args.log_file,
            debug=args.debug,
        )
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    config.log_config()

    app = create_app_from_config(config)

    host, port = config.http.host, config.http.port
    logger.info(f"Device log server starting on {host}:{port}")
    if config.observability.debug:
        logger.info("Debug mode: ENABLED (connection requests will be logged)")
    logger.info(
        f"Device example: GET http://<server-ip>:{port}/quick?name=temp&value=25.5&source=arduino-1"
    )

    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
