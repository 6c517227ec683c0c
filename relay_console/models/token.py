"""
API token records as stored in the local catalog.

The ``is_active`` flag is a mirror of the catalog's single active-id
pointer; it is recomputed on every load and never trusted from storage.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Optional

MIN_TOKEN_LENGTH = 10  # Values must be strictly longer than this


@dataclass
class ApiToken:
    id: str
    name: str
    value: str
    created_at: str
    last_used_at: Optional[str] = None
    is_active: bool = False

    @classmethod
    def create(cls, name: str, value: str) -> "ApiToken":
        return cls(
            id=uuid.uuid4().hex,
            name=name,
            value=value,
            created_at=utc_now_iso(),
        )

    @classmethod
    def from_dict(cls, raw: dict) -> "ApiToken":
        return cls(
            id=str(raw["id"]),
            name=str(raw["name"]),
            value=str(raw["value"]),
            created_at=raw.get("created_at") or utc_now_iso(),
            last_used_at=raw.get("last_used_at"),
            is_active=bool(raw.get("is_active", False)),
        )

    def to_dict(self) -> dict:
        return asdict(self)

    def to_safe_dict(self) -> dict:
        """Listing form with the secret masked."""
        data = self.to_dict()
        data.pop("value")
        data["masked_value"] = mask_token(self.value)
        return data


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def validate_token_format(value: str) -> bool:
    """Only a minimum length is enforced; relay keys carry no fixed prefix."""
    return len(value.strip()) > MIN_TOKEN_LENGTH


def mask_token(value: str) -> str:
    if len(value) <= MIN_TOKEN_LENGTH:
        return value
    return value[:3] + "****" + value[-6:]
