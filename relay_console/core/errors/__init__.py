"""
Error code system.

RelayConsoleError is the base exception for all structured errors.
Each subclass carries a default code from the registry; the HTTP layer
looks the code up and produces a structured JSON response.

Usage:
    from relay_console.core.errors import NotFoundError
    raise NotFoundError(detail="token abc123 does not exist")
"""

from __future__ import annotations

import re

CODE_PATTERN = re.compile(r"^RC-[A-Z]{2,6}-\d{3}$")


class RelayConsoleError(Exception):
    """Structured application error tied to the error registry.

    Args:
        code: Registry error code, e.g. "RC-TOK-001".
        detail: Human-readable detail (server message for remote failures).
        context: Arbitrary key-value context for structured logging.
    """

    default_code = "RC-SYS-001"

    def __init__(
        self,
        detail: str | None = None,
        code: str | None = None,
        context: dict | None = None,
    ) -> None:
        code = code or self.default_code
        if not CODE_PATTERN.match(code):
            raise ValueError(f"Invalid error code format: {code!r}")
        self.code = code
        self.detail = detail
        self.context = context or {}
        super().__init__(f"{code}: {detail}" if detail else code)

    @property
    def kind(self) -> str:
        return type(self).__name__


class ValidationError(RelayConsoleError):
    """Bad user input: empty or too-short value, empty name."""

    default_code = "RC-TOK-001"


class DuplicateError(RelayConsoleError):
    """Name or credential value collides with an existing token."""

    default_code = "RC-TOK-002"


class NotFoundError(RelayConsoleError):
    """Operation on an unknown token id."""

    default_code = "RC-TOK-003"


class RemoteError(RelayConsoleError):
    """The relay service answered with a business-level failure."""

    default_code = "RC-API-001"


class NetworkError(RelayConsoleError):
    """The relay service could not be reached."""

    default_code = "RC-NET-001"


class StorageError(RelayConsoleError):
    """The key-value store rejected a read or write."""

    default_code = "RC-STO-001"
