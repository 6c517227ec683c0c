"""
Relay Console HTTP API.

A local service over the token catalog and the usage statistics cache.
Run with ``python -m relay_console`` or ``uvicorn relay_console.main:app``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from relay_console import __version__
from relay_console.config import settings
from relay_console.core.errors import RelayConsoleError
from relay_console.core.errors.middleware import relay_console_error_handler
from relay_console.core.errors.registry import error_registry
from relay_console.core.log_middleware import RequestIdMiddleware
from relay_console.core.structured_logging import setup_logging
from relay_console.routers import health, stats, tokens
from relay_console.services.console import RelayConsole

setup_logging(
    log_level=settings.log_level,
    log_dir=settings.log_dir if settings.log_to_file else None,
)

logger = logging.getLogger(__name__)

API_TITLE = "Relay Console API"

TAGS_METADATA = [
    {"name": "health", "description": "Liveness check."},
    {"name": "tokens", "description": "Locally stored relay API tokens. Values are always masked."},
    {"name": "stats", "description": "Usage statistics for the active token."},
]


def create_app(console: Optional[RelayConsole] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``console`` defaults to one backed by the JSON file store under
    ``settings.data_dir``.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        error_registry.load()
        instance = console or RelayConsole()
        instance.init()
        app.state.console = instance
        logger.info("%s %s started (relay=%s)", settings.app_name, __version__, settings.relay_base_url)
        yield
        await instance.dispose()
        logger.info("%s stopped", settings.app_name)

    app = FastAPI(
        title=API_TITLE,
        version=__version__,
        openapi_tags=TAGS_METADATA,
        lifespan=lifespan,
    )

    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(RelayConsoleError, relay_console_error_handler)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal Server Error"},
        )

    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(tokens.router, prefix="/api", tags=["tokens"])
    app.include_router(stats.router, prefix="/api", tags=["stats"])

    return app


app = create_app()
