"""
FastAPI exception handler for RelayConsoleError.

Catches RelayConsoleError, looks up the registry, and returns a structured
JSON error response. Unknown codes get a safe fallback.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from relay_console.core.errors import RelayConsoleError
from relay_console.core.errors.registry import error_registry

logger = logging.getLogger(__name__)


async def relay_console_error_handler(request: Request, exc: RelayConsoleError) -> JSONResponse:
    """Convert RelayConsoleError into a structured JSON response."""
    entry = error_registry.get(exc.code)

    if entry is None:
        logger.error(
            "unregistered_error_code",
            extra={"error.code": exc.code, "error.message": exc.detail},
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": exc.code,
                    "title": "Internal error",
                    "message": "An unexpected error occurred.",
                    "detail": None,
                    "retryable": False,
                    "remediation": [],
                }
            },
        )

    log_extra = {
        "error.code": exc.code,
        "error.kind": exc.kind,
        "error.message": exc.detail,
        "error.retryable": entry.retryable,
        **{f"error.ctx.{k}": v for k, v in exc.context.items()},
    }
    _severity_to_log_fn(entry.severity)(entry.title, extra=log_extra)

    return JSONResponse(
        status_code=entry.http_status,
        content={
            "error": {
                "code": entry.code,
                "title": entry.title,
                "message": entry.safe_message,
                # Relay messages and validation reasons are user-facing already
                "detail": exc.detail,
                "retryable": entry.retryable,
                "remediation": entry.remediation,
            }
        },
    )


def _severity_to_log_fn(severity: str):
    """Map registry severity to logger method."""
    return {
        "DEBUG": logger.debug,
        "INFO": logger.info,
        "WARN": logger.warning,
        "ERROR": logger.error,
        "CRITICAL": logger.critical,
    }.get(severity, logger.error)
