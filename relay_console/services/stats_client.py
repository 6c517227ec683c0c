"""
Stats API Client — HTTP client for the relay's apiStats endpoints.
==================================================================

Wraps POST /apiStats/api/get-key-id, /user-stats and /user-model-stats
with retry + backoff on transport failures. Every call returns an
``ApiEnvelope``; nothing is raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import httpx

from relay_console.config import settings
from relay_console.models.stats import PERIODS

logger = logging.getLogger(__name__)

RETRY_DELAYS = (1.0, 3.0)


@dataclass(frozen=True)
class ApiEnvelope:
    success: bool
    data: Any = None
    message: Optional[str] = None
    status_code: int = 0
    transport_error: bool = False


class StatsApiClient:
    """Async HTTP client for the relay's usage-statistics endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        retry_delays: Sequence[float] = RETRY_DELAYS,
    ):
        self._base_url = (base_url or settings.relay_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.request_timeout
        self._retries = retries if retries is not None else settings.request_retries
        self._retry_delays = tuple(retry_delays) or (0.0,)

    async def _post(self, path: str, payload: dict) -> ApiEnvelope:
        """POST JSON with retries on transport errors, then unwrap the envelope."""
        url = f"{self._base_url}{path}"
        last_exc: Optional[Exception] = None

        for attempt in range(1 + self._retries):
            try:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.request(
                        "POST", url, json=payload, headers={"Content-Type": "application/json"},
                    )
            except httpx.HTTPError as e:
                last_exc = e
                if attempt < self._retries:
                    delay = self._retry_delays[min(attempt, len(self._retry_delays) - 1)]
                    logger.warning(
                        "Stats API retry %d/%d for %s: %s (wait %.1fs)",
                        attempt + 1, self._retries, path, e, delay,
                    )
                    await asyncio.sleep(delay)
                continue
            return self._unwrap(resp)

        logger.error("Stats API failed after %d attempts: %s: %s", 1 + self._retries, path, last_exc)
        return ApiEnvelope(
            success=False,
            message=str(last_exc) or type(last_exc).__name__,
            transport_error=True,
        )

    @staticmethod
    def _unwrap(resp: httpx.Response) -> ApiEnvelope:
        status_code = resp.status_code
        try:
            body = resp.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            return ApiEnvelope(success=False, message=f"HTTP {status_code}", status_code=status_code)

        ok = 200 <= status_code < 300 and bool(body.get("success"))
        message = body.get("message")
        if not ok and not message:
            message = body.get("error") or f"HTTP {status_code}"
        return ApiEnvelope(
            success=ok,
            data=body.get("data"),
            message=message,
            status_code=status_code,
        )

    async def get_key_id(self, api_key: str) -> ApiEnvelope:
        """POST /apiStats/api/get-key-id — resolve a token to its account id."""
        return await self._post("/apiStats/api/get-key-id", {"apiKey": api_key})

    async def get_user_stats(self, api_id: str) -> ApiEnvelope:
        """POST /apiStats/api/user-stats — account summary and limits."""
        return await self._post("/apiStats/api/user-stats", {"apiId": api_id})

    async def get_user_model_stats(self, api_id: str, period: str = "daily") -> ApiEnvelope:
        """POST /apiStats/api/user-model-stats — per-model usage for a period."""
        if period not in PERIODS:
            raise ValueError(f"Unknown period: {period!r}")
        return await self._post("/apiStats/api/user-model-stats", {"apiId": api_id, "period": period})
