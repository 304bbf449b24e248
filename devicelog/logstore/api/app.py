"""
FastAPI application factory for the device log.

Invariants:
    - The store is initialized (created or migrated) before the first request
    - Every error response uses the {"success": false, "message": ...} envelope
    - Validation errors map to 400, storage errors to 500

How to change safely:
    - Register new domain errors in _ERROR_STATUS
    - Keep CORS open by default, devices and dashboards call from anywhere
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .._version import __version__
from ..config import ServerConfig
from ..store import (
    EntryValidationError,
    LogService,
    LogStoreError,
    MalformedRowError,
    ParseMode,
    RecordStore,
    StorageError,
)
from .routes import router

logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[LogStoreError], int] = {
    EntryValidationError: 400,
    MalformedRowError: 500,
    StorageError: 500,
}


def _failure(message: str, status_code: int, code: str | None = None) -> JSONResponse:
    body = {"success": False, "message": message}
    if code:
        body["code"] = code
    return JSONResponse(body, status_code=status_code)


def build_service(config: ServerConfig) -> LogService:
    """Construct the store and service described by a configuration."""
    store = RecordStore(
        config.storage.log_file,
        parse_mode=ParseMode(config.storage.parse_mode),
        fsync=config.storage.fsync,
    )
    return LogService(store, config.query)


def create_app(service: LogService, config: ServerConfig | None = None) -> FastAPI:
    """Create the HTTP application.

    Args:
        service: Log service to expose
        config: Server configuration (defaults when not provided)

    Returns:
        FastAPI application
    """
    config = config or ServerConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Bring the log file to the current layout before serving."""
        outcome = await service.store.initialize()
        logger.info(f"Log file ready: {service.store.file_path} ({outcome.value})")
        yield

    app = FastAPI(
        title="Device Log",
        description="Telemetry sink for Arduino/ESP devices and scripts.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.log_service = service
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.http.cors_origins),
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    if config.observability.debug:

        @app.middleware("http")
        async def log_requests(request: Request, call_next):
            client = request.client.host if request.client else "-"
            logger.debug(f"{request.method} {request.url.path} from {client}")
            if request.url.query:
                logger.debug(f"  Query: {request.url.query}")
            if request.method in ("POST", "PUT"):
                logger.debug(f"  Content-Type: {request.headers.get('content-type', '')}")
            return await call_next(request)

    @app.exception_handler(LogStoreError)
    async def handle_store_error(request: Request, exc: LogStoreError) -> JSONResponse:
        status_code = next(
            (status for kind, status in _ERROR_STATUS.items() if isinstance(exc, kind)), 500
        )
        if status_code >= 500:
            logger.error(
                f"{request.method} {request.url.path} failed: {exc.message}",
                extra={"error_code": exc.code, **exc.details},
            )
        return _failure(exc.message, status_code, exc.code)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _failure(str(exc.detail), exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_request_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _failure(str(exc.errors()[0]["msg"]), 400, "VALIDATION_ERROR")

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc
        )
        return _failure("Internal server error", 500)

    app.include_router(router)
    return app


def create_app_from_config(config: ServerConfig) -> FastAPI:
    """Create the HTTP application with a store built from configuration."""
    return create_app(build_service(config), config)
