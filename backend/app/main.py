"""GuestSync Backend Application.

This is the main entry point for the GuestSync backend service, the
real-time and media core of the wedding guest management tool.

Modules:
    - realtime: per-owner WebSocket fan-out of guest check-in events
    - media: owner media slots with range-aware delivery
    - auth: bearer-token identity resolution

The guest CRUD layer notifies connected devices through
``app.state.guest_channel.broadcast(...)`` in-process, or through
``POST /api/ws/guests/broadcast`` from another process.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import duckdb
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.auth.service import TokenIdentityResolver, UserDirectory
from app.config import AppConfig, get_config
from app.errors import GuestSyncError
from app.media.router import router as media_router
from app.media.schemas import UploadPolicy
from app.media.service import MediaStore
from app.realtime.channel import GuestUpdateChannel
from app.realtime.registry import ConnectionRegistry
from app.realtime.router import router as realtime_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# uvicorn.access logs every range request of a seeking video player.
for _noisy in (
    "uvicorn.access",
    "multipart",
    "python_multipart",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


async def guestsync_error_handler(request: Request, exc: GuestSyncError) -> JSONResponse:
    """Render handler-local errors as ``{"success": false, "error": ...}``."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse({"success": False, "error": exc.message}, status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation failures in the same shape, as 400."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    logger.info(f"{request.method} {request.url.path} rejected (400): {message}")
    return JSONResponse({"success": False, "error": message}, status_code=400)


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Configuration to use; defaults to :func:`app.config.get_config`.

    Returns:
        FastAPI: App whose lifespan opens the database and wires the
        registry, channel, media store and identity resolver onto
        ``app.state``.
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown events."""
        # Startup
        configured_level = getattr(logging, config.logging.level.upper(), None)
        if configured_level is not None:
            logging.getLogger().setLevel(configured_level)
            logger.info("Root logger level set to %s", config.logging.level.upper())

        connection = duckdb.connect(config.storage.db_path)
        registry = ConnectionRegistry()

        app.state.db = connection
        app.state.registry = registry
        app.state.guest_channel = GuestUpdateChannel(
            registry,
            send_timeout=config.realtime.send_timeout_seconds,
        )
        app.state.media_store = MediaStore(
            connection.cursor(),
            UploadPolicy(
                max_image_bytes=config.upload.max_image_bytes,
                max_video_bytes=config.upload.max_video_bytes,
            ),
        )
        app.state.user_directory = UserDirectory(connection.cursor())
        app.state.identity_resolver = TokenIdentityResolver(
            app.state.user_directory,
            token_prefix=config.auth.token_prefix,
        )
        logger.info(
            f"GuestSync ready on http://{config.server.host}:{config.server.port} "
            f"(db={config.storage.db_path})"
        )

        yield  # Application runs here

        # Shutdown
        await registry.close_all()
        connection.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="GuestSync API",
        description="Real-time guest updates and owner media for the wedding guest manager",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Range", "user-id"],
        expose_headers=["Accept-Ranges", "Content-Range", "Content-Length"],
    )
    app.add_exception_handler(GuestSyncError, guestsync_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(realtime_router)
    app.include_router(media_router)

    @app.get("/health")
    async def health(request: Request) -> dict:
        """Health check endpoint.

        Returns:
            dict: Status plus live realtime owner/connection counts.
        """
        registry: ConnectionRegistry = request.app.state.registry
        return {
            "status": "ok",
            "realtime": {
                "owners": len(registry.owners()),
                "connections": registry.total_connections(),
            },
        }

    return app


app = create_app()
