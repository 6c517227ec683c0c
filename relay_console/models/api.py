"""Request bodies and response helpers for the local HTTP API."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from relay_console.core.errors import RelayConsoleError


class TokenCreateRequest(BaseModel):
    value: str = Field(..., description="Relay API token to store")


class TokenRenameRequest(BaseModel):
    name: str = Field(..., description="New display name")


class PeriodSwitchRequest(BaseModel):
    period: Literal["daily", "monthly"]


def error_view(error: Optional[RelayConsoleError]) -> Optional[dict]:
    if error is None:
        return None
    return {"code": error.code, "kind": error.kind, "detail": error.detail}


