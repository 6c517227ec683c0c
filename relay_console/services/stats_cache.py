"""
Stats Cache — period-keyed usage statistics for the active token.
=================================================================

Holds the last account summary, one snapshot per (account, period) and the
matching per-model breakdown. Every public fetch returns a ``Result``; no
exception escapes. A failed fetch leaves the previous values in place and
records the error in ``last_error``.

Concurrency (single event loop):
- Period fetches are single-flight per (account_id, period); concurrent
  callers await the same task.
- Summary refreshes are single-flight per token value. A newer refresh
  supersedes an older one still in flight; the older result is discarded
  and later callers start a fresh refresh instead of joining it.
- ``clear()`` bumps an epoch so that fetches started before it cannot
  repopulate the cache.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Hashable, List, Optional, Set, Tuple

from pydantic import ValidationError as PydanticValidationError

from relay_console.config import settings
from relay_console.core.errors import (
    NetworkError,
    RelayConsoleError,
    RemoteError,
    ValidationError,
)
from relay_console.models.stats import (
    PERIODS,
    AccountSummary,
    ModelStat,
    PeriodSnapshot,
    Result,
    UsagePercentages,
)
from relay_console.models.token import mask_token
from relay_console.services.listeners import ListenerRegistry
from relay_console.services.stats_client import ApiEnvelope, StatsApiClient
from relay_console.services.usage import compute_usage_percentages, summarize_models

logger = logging.getLogger(__name__)

# Error slots: a success only clears an error of its own kind
IDENTITY = "identity"
SUMMARY = "summary"
PERIOD = "period"

NO_ACTIVE_TOKEN_CODE = "RC-TOK-004"
BAD_PAYLOAD_CODE = "RC-API-002"


def envelope_error(envelope: ApiEnvelope, fallback: str) -> Optional[RelayConsoleError]:
    """Map a failed envelope to NetworkError/RemoteError, or None on success."""
    if envelope.transport_error:
        return NetworkError(detail=envelope.message or fallback)
    if not envelope.success:
        return RemoteError(
            detail=envelope.message or fallback,
            context={"status_code": envelope.status_code},
        )
    if envelope.data is None:
        return RemoteError(detail=fallback, code=BAD_PAYLOAD_CODE)
    return None


class StatsCache:
    """Usage statistics cache with explicit init()/dispose() lifecycle."""

    def __init__(
        self,
        client: StatsApiClient,
        active_token: Optional[Callable[[], Optional[str]]] = None,
        default_period: Optional[str] = None,
    ):
        self._client = client
        self._active_token = active_token
        self._initial_period = default_period or settings.default_period
        self._listeners = ListenerRegistry()

        self._period: str = self._initial_period
        self._identities: Dict[str, str] = {}
        self._account_id: Optional[str] = None
        self._summary: Optional[AccountSummary] = None
        self._snapshots: Dict[Tuple[str, str], PeriodSnapshot] = {}
        self._model_stats: Dict[Tuple[str, str], List[ModelStat]] = {}

        self._summary_inflight: Dict[Hashable, asyncio.Task] = {}
        self._period_inflight: Dict[Hashable, asyncio.Task] = {}
        # Tasks no longer joinable (superseded or cleared) but still running
        self._detached: Set[asyncio.Task] = set()
        self._epoch = 0
        self._summary_gen = 0

        self._last_error: Optional[RelayConsoleError] = None
        self._last_error_kind: Optional[str] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def init(self) -> None:
        logger.info("Stats cache ready (period=%s)", self._period)

    async def dispose(self) -> None:
        """Cancel in-flight fetches and drop listeners."""
        tasks = [*self._summary_inflight.values(), *self._period_inflight.values(), *self._detached]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._summary_inflight.clear()
        self._period_inflight.clear()
        self._detached.clear()
        self._listeners.clear()

    def bind_active_token(self, provider: Callable[[], Optional[str]]) -> None:
        self._active_token = provider

    def subscribe(self, listener: Callable[["StatsCache"], None]) -> Callable[[], None]:
        return self._listeners.subscribe(listener)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    @property
    def period(self) -> str:
        return self._period

    @property
    def account_id(self) -> Optional[str]:
        return self._account_id

    @property
    def summary(self) -> Optional[AccountSummary]:
        return self._summary

    @property
    def loading(self) -> bool:
        return bool(self._summary_inflight)

    @property
    def model_stats_loading(self) -> bool:
        return bool(self._period_inflight)

    @property
    def last_error(self) -> Optional[RelayConsoleError]:
        return self._last_error

    def snapshot(self, period: str) -> PeriodSnapshot:
        if self._account_id is None:
            return PeriodSnapshot()
        return self._snapshots.get((self._account_id, period)) or PeriodSnapshot()

    def current_snapshot(self) -> PeriodSnapshot:
        """Snapshot for the selected period; zero-valued if nothing is cached."""
        return self.snapshot(self._period)

    def model_stats(self) -> List[ModelStat]:
        if self._account_id is None:
            return []
        return list(self._model_stats.get((self._account_id, self._period), []))

    def usage_percentages(self) -> UsagePercentages:
        limits = self._summary.limits if self._summary else None
        return compute_usage_percentages(self.current_snapshot(), limits)

    def dismiss_error(self) -> None:
        if self._last_error is not None:
            self._last_error = None
            self._last_error_kind = None
            self._listeners.notify(self)

    # ------------------------------------------------------------------
    # Fetches
    # ------------------------------------------------------------------
    async def resolve_identity(self, token_value: str) -> Result[str]:
        """Resolve a token to its relay account id."""
        result = await self._resolve(token_value)
        self._record(IDENTITY, result)
        return result

    async def inspect_token(self, token_value: str) -> Result[AccountSummary]:
        """Resolve and fetch the summary for a token without making it current."""
        resolved = await self._resolve(token_value)
        if not resolved.ok:
            self._record(SUMMARY, resolved)
            return Result.failure(resolved.error)
        fetched = await self._fetch_summary(resolved.value)
        self._record(SUMMARY, fetched)
        return fetched

    async def refresh_summary(self, token_value: str) -> Result[AccountSummary]:
        """Make ``token_value``'s account current and refresh its summary and selected period."""
        key = (token_value.strip(), False)
        return await self._single_flight(
            self._summary_inflight, key, lambda: self._do_refresh_summary(key[0], prewarm=False),
        )

    async def load_all(self, token_value: str) -> Result[AccountSummary]:
        """Like refresh_summary, but pre-warms both periods concurrently."""
        key = (token_value.strip(), True)
        return await self._single_flight(
            self._summary_inflight, key, lambda: self._do_refresh_summary(key[0], prewarm=True),
        )

    async def refresh_active(self) -> Result[AccountSummary]:
        """Refresh the summary for the catalog's active token."""
        token_value = self._active_token() if self._active_token else None
        if not token_value:
            result: Result[AccountSummary] = Result.failure(
                ValidationError(detail="Add an API token first", code=NO_ACTIVE_TOKEN_CODE)
            )
            self._record(SUMMARY, result)
            return result
        return await self.refresh_summary(token_value)

    async def refresh_current_period(self) -> Result[PeriodSnapshot]:
        """Refresh the selected period, resolving the active account first if needed."""
        account_id = self._account_id
        if account_id is None:
            token_value = self._active_token() if self._active_token else None
            if not token_value:
                result: Result[PeriodSnapshot] = Result.failure(
                    ValidationError(detail="Add an API token first", code=NO_ACTIVE_TOKEN_CODE)
                )
                self._record(PERIOD, result)
                return result
            resolved = await self.resolve_identity(token_value)
            if not resolved.ok:
                return Result.failure(resolved.error)
            account_id = resolved.value
            self._account_id = account_id
        return await self.refresh_period(account_id, self._period)

    async def refresh_period(self, account_id: str, period: str) -> Result[PeriodSnapshot]:
        """Fetch the model breakdown for ``period`` and replace that snapshot wholesale."""
        if period not in PERIODS:
            result: Result[PeriodSnapshot] = Result.failure(
                ValidationError(detail=f"Unknown period: {period!r}")
            )
            self._record(PERIOD, result)
            return result
        key = (account_id, period)
        return await self._single_flight(
            self._period_inflight, key, lambda: self._do_refresh_period(account_id, period),
        )

    async def switch_period(self, period: str) -> None:
        if period not in PERIODS:
            self._record(PERIOD, Result.failure(ValidationError(detail=f"Unknown period: {period!r}")))
            return
        if period == self._period:
            return
        if self._account_id is not None and (self._account_id, period) in self._period_inflight:
            return

        self._period = period
        self._listeners.notify(self)
        if self._account_id is not None:
            await self.refresh_period(self._account_id, period)

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------
    def clear(self) -> None:
        """Drop every cached value and the remembered account."""
        self._epoch += 1
        self._summary_gen += 1
        self._identities.clear()
        self._account_id = None
        self._summary = None
        self._snapshots.clear()
        self._model_stats.clear()
        # In-flight work keeps running but can no longer be joined or applied
        self._detach(self._summary_inflight)
        self._detach(self._period_inflight)
        self._last_error = None
        self._last_error_kind = None
        logger.info("Stats cache cleared")
        self._listeners.notify(self)

    def reset(self) -> None:
        self._period = self._initial_period
        self.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _detach(self, inflight: Dict[Hashable, asyncio.Task], keep: Optional[asyncio.Task] = None) -> None:
        """Stop callers from joining these tasks; dispose() still cancels them."""
        for key, task in list(inflight.items()):
            if task is keep:
                continue
            del inflight[key]
            if not task.done():
                self._detached.add(task)
                task.add_done_callback(self._detached.discard)

    async def _single_flight(
        self,
        inflight: Dict[Hashable, asyncio.Task],
        key: Hashable,
        factory: Callable[[], Awaitable[Result]],
    ) -> Result:
        task = inflight.get(key)
        if task is None:
            async def run() -> Result:
                try:
                    return await factory()
                finally:
                    if inflight.get(key) is task:
                        del inflight[key]

            task = asyncio.ensure_future(run())
            inflight[key] = task
        return await asyncio.shield(task)

    async def _resolve(self, token_value: str) -> Result[str]:
        token_value = token_value.strip()
        if not token_value:
            return Result.failure(ValidationError(detail="Enter an API token"))

        known = self._identities.get(token_value)
        if known:
            return Result.success(known)

        envelope = await self._client.get_key_id(token_value)
        error = envelope_error(envelope, "Failed to resolve API key id")
        if error is not None:
            logger.warning("Identity resolution failed for %s: %s", mask_token(token_value), error)
            return Result.failure(error)

        data = envelope.data
        account_id = data.get("id") if isinstance(data, dict) else None
        if not account_id:
            return Result.failure(RemoteError(detail="Relay returned no API key id", code=BAD_PAYLOAD_CODE))

        self._identities[token_value] = str(account_id)
        return Result.success(str(account_id))

    async def _fetch_summary(self, account_id: str) -> Result[AccountSummary]:
        envelope = await self._client.get_user_stats(account_id)
        error = envelope_error(envelope, "Failed to load account statistics")
        if error is not None:
            return Result.failure(error)
        try:
            return Result.success(AccountSummary.model_validate(envelope.data))
        except PydanticValidationError as e:
            logger.error("Malformed account summary for %s: %s", account_id, e)
            return Result.failure(
                RemoteError(detail="Malformed account summary", code=BAD_PAYLOAD_CODE)
            )

    async def _do_refresh_summary(self, token_value: str, prewarm: bool) -> Result[AccountSummary]:
        self._summary_gen += 1
        gen = self._summary_gen
        # Older refreshes are superseded; later callers must start a fresh one
        self._detach(self._summary_inflight, keep=asyncio.current_task())

        resolved = await self._resolve(token_value)
        if not resolved.ok:
            fetched: Result[AccountSummary] = Result.failure(resolved.error)
        else:
            fetched = await self._fetch_summary(resolved.value)

        if gen != self._summary_gen:
            logger.info("Discarding superseded summary refresh for %s", mask_token(token_value))
            return fetched

        self._record(SUMMARY, fetched, notify=not fetched.ok)
        if not fetched.ok:
            return fetched

        account_id = resolved.value
        self._account_id = account_id
        self._summary = fetched.value
        self._listeners.notify(self)

        periods = PERIODS if prewarm else (self._period,)
        await asyncio.gather(*(self.refresh_period(account_id, p) for p in periods))
        return fetched

    async def _do_refresh_period(self, account_id: str, period: str) -> Result[PeriodSnapshot]:
        epoch = self._epoch
        envelope = await self._client.get_user_model_stats(account_id, period)

        models: List[ModelStat] = []
        error = envelope_error(envelope, f"Failed to load {period} model statistics")
        if error is None:
            if not isinstance(envelope.data, list):
                error = RemoteError(detail="Model statistics are not a list", code=BAD_PAYLOAD_CODE)
            else:
                try:
                    models = [ModelStat.model_validate(row) for row in envelope.data]
                except PydanticValidationError as e:
                    logger.error("Malformed %s model statistics for %s: %s", period, account_id, e)
                    error = RemoteError(detail="Malformed model statistics", code=BAD_PAYLOAD_CODE)

        if epoch != self._epoch:
            logger.info("Discarding %s stats for %s fetched before a reset", period, account_id)
            return Result.failure(error) if error else Result.success(summarize_models(models))

        if error is not None:
            logger.warning("Loading %s stats for %s failed: %s", period, account_id, error)
            result: Result[PeriodSnapshot] = Result.failure(error)
            self._record(PERIOD, result)
            return result

        snapshot = summarize_models(models)
        self._snapshots[(account_id, period)] = snapshot
        self._model_stats[(account_id, period)] = models
        result = Result.success(snapshot)
        self._record(PERIOD, result, notify=False)
        self._listeners.notify(self)
        return result

    def _record(self, kind: str, result: Result, notify: bool = True) -> None:
        if result.ok:
            if self._last_error_kind != kind:
                return
            self._last_error = None
            self._last_error_kind = None
        else:
            self._last_error = result.error
            self._last_error_kind = kind
        if notify:
            self._listeners.notify(self)
