"""
Token Catalog — locally stored API tokens with a single active pointer.
=======================================================================

Persists to two keys of a KeyValueStore:
    tokens           JSON array of token records (full replace on write)
    active_token_id  id of the active token, absent when none

Every mutation validates, builds the complete new state, commits it to the
store in one write and only then swaps it into memory. If the write fails
the store and the in-memory view are both left as they were.

``add`` depends on the relay: the stored name is the account name the
relay reports for the token, so adding can fail with RemoteError or
NetworkError as well as validation errors.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Callable, List, Optional, Set

from relay_console.core.errors import (
    DuplicateError,
    NotFoundError,
    RelayConsoleError,
    StorageError,
    ValidationError,
)
from relay_console.models.token import (
    MIN_TOKEN_LENGTH,
    ApiToken,
    mask_token,
    utc_now_iso,
    validate_token_format,
)
from relay_console.services.kv_store import KeyValueStore
from relay_console.services.listeners import ListenerRegistry
from relay_console.services.stats_cache import StatsCache

logger = logging.getLogger(__name__)

TOKENS_KEY = "tokens"
ACTIVE_TOKEN_KEY = "active_token_id"


class TokenCatalog:
    """Durable token list plus the active-token pointer."""

    def __init__(self, store: KeyValueStore, stats: StatsCache):
        self._store = store
        self._stats = stats
        self._listeners = ListenerRegistry()
        self._tokens: List[ApiToken] = []
        self._active_id: Optional[str] = None
        self._pending_values: Set[str] = set()
        self._last_error: Optional[RelayConsoleError] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def init(self) -> None:
        """Load the catalog from the store and let the stats cache read the active token."""
        self._tokens, self._active_id = self._read_store()
        self._stats.bind_active_token(self._active_value)
        logger.info("Loaded %d tokens (active=%s)", len(self._tokens), self._effective_active_id())
        self._listeners.notify(self)

    def dispose(self) -> None:
        self._listeners.clear()

    def subscribe(self, listener: Callable[["TokenCatalog"], None]) -> Callable[[], None]:
        return self._listeners.subscribe(listener)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    def list(self) -> List[ApiToken]:
        """Tokens in insertion order; copies, with ``is_active`` recomputed."""
        active_id = self._effective_active_id()
        return [replace(t, is_active=t.id == active_id) for t in self._tokens]

    def get_active(self) -> Optional[ApiToken]:
        active_id = self._effective_active_id()
        for token in self._tokens:
            if token.id == active_id:
                return replace(token, is_active=True)
        return None

    @property
    def active_id(self) -> Optional[str]:
        return self._effective_active_id()

    @property
    def count(self) -> int:
        return len(self._tokens)

    @property
    def has_tokens(self) -> bool:
        return bool(self._tokens)

    @property
    def has_active(self) -> bool:
        return self._effective_active_id() is not None

    @property
    def is_loading(self) -> bool:
        return bool(self._pending_values)

    @property
    def last_error(self) -> Optional[RelayConsoleError]:
        return self._last_error

    def dismiss_error(self) -> None:
        if self._last_error is not None:
            self._last_error = None
            self._listeners.notify(self)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    async def add(self, value: str) -> ApiToken:
        """Validate ``value``, ask the relay for its account name, then store it.

        The first token added becomes active and its statistics are loaded.
        """
        value = value.strip()
        try:
            self._check_new_value(value)
            if value in self._pending_values:
                raise DuplicateError(detail="This token is already being added")

            self._pending_values.add(value)
            self._listeners.notify(self)
            try:
                inspected = await self._stats.inspect_token(value)
            finally:
                self._pending_values.discard(value)

            if not inspected.ok:
                raise inspected.error

            # The catalog may have changed while the relay call was pending
            self._check_new_value(value)
            name = inspected.value.name.strip() or mask_token(value)
            if any(t.name == name for t in self._tokens):
                raise DuplicateError(detail=f"A token named {name!r} already exists")

            token = ApiToken.create(name=name, value=value)
            tokens = [*self._tokens, token]
            became_active = self._effective_active_id() is None
            active_id = token.id if became_active else self._active_id
            self._commit(tokens, active_id)
        except RelayConsoleError as e:
            self._fail(e)
            raise

        logger.info("Added token %s (%s)", name, mask_token(value))
        self._succeed()
        if became_active:
            await self._refresh_stats(value)
        return replace(token, is_active=became_active)

    async def remove(self, token_id: str) -> None:
        """Delete a token; if it was active, the first remaining token takes over."""
        try:
            self._find(token_id)
            was_active = self._effective_active_id() == token_id
            tokens = [t for t in self._tokens if t.id != token_id]
            if was_active:
                active_id = tokens[0].id if tokens else None
            else:
                active_id = self._active_id
            self._commit(tokens, active_id)
        except RelayConsoleError as e:
            self._fail(e)
            raise

        logger.info("Removed token %s", token_id)
        self._succeed()
        if was_active:
            self._stats.clear()
            new_active = self.get_active()
            if new_active is not None:
                await self._refresh_stats(new_active.value)

    async def set_active(self, token_id: str) -> None:
        """Activate a token and refresh its statistics (best effort)."""
        try:
            token = self._find(token_id)
            self._commit(self._tokens, token_id)
        except RelayConsoleError as e:
            self._fail(e)
            raise

        logger.info("Activated token %s", token.name)
        self._succeed()
        await self._refresh_stats(token.value)

    def rename(self, token_id: str, new_name: str) -> None:
        new_name = new_name.strip()
        try:
            if not new_name:
                raise ValidationError(detail="Token name cannot be empty")
            current = self._find(token_id)
            if any(t.name == new_name and t.id != token_id for t in self._tokens):
                raise DuplicateError(detail=f"A token named {new_name!r} already exists")
            if current.name != new_name:
                tokens = [replace(t, name=new_name) if t.id == token_id else t for t in self._tokens]
                self._commit(tokens, self._active_id)
        except RelayConsoleError as e:
            self._fail(e)
            raise
        self._succeed()

    def touch_last_used(self, token_id: str) -> None:
        """Stamp ``last_used_at``. Unknown ids and storage failures are only logged."""
        if not any(t.id == token_id for t in self._tokens):
            return
        now = utc_now_iso()
        tokens = [replace(t, last_used_at=now) if t.id == token_id else t for t in self._tokens]
        try:
            self._commit(tokens, self._active_id)
        except StorageError as e:
            logger.warning("Could not record last use of %s: %s", token_id, e)
            return
        self._listeners.notify(self)

    def clear_all(self) -> None:
        """Remove every token and the active pointer."""
        try:
            self._store.commit({}, [TOKENS_KEY, ACTIVE_TOKEN_KEY])
        except Exception as e:
            error = StorageError(detail=f"Clearing tokens failed: {e}")
            self._fail(error)
            raise error from e

        self._tokens = []
        self._active_id = None
        logger.warning("All tokens cleared")
        self._stats.clear()
        self._succeed()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _active_value(self) -> Optional[str]:
        active = self.get_active()
        return active.value if active else None

    def _effective_active_id(self) -> Optional[str]:
        """The stored pointer if it names a token, else the first token."""
        if self._active_id and any(t.id == self._active_id for t in self._tokens):
            return self._active_id
        return self._tokens[0].id if self._tokens else None

    def _find(self, token_id: str) -> ApiToken:
        for token in self._tokens:
            if token.id == token_id:
                return token
        raise NotFoundError(detail=f"Token {token_id} does not exist", context={"token_id": token_id})

    def _check_new_value(self, value: str) -> None:
        if not value:
            raise ValidationError(detail="Token cannot be empty")
        if not validate_token_format(value):
            raise ValidationError(
                detail=f"Token must be longer than {MIN_TOKEN_LENGTH} characters",
            )
        if any(t.value == value for t in self._tokens):
            raise DuplicateError(detail="This token already exists")

    def _read_store(self) -> tuple[List[ApiToken], Optional[str]]:
        try:
            raw = self._store.get(TOKENS_KEY)
            active_id = self._store.get(ACTIVE_TOKEN_KEY)
        except Exception as e:
            raise StorageError(detail=f"Reading tokens failed: {e}") from e

        tokens: List[ApiToken] = []
        if raw:
            try:
                records = json.loads(raw)
                if not isinstance(records, list):
                    raise ValueError("token list is not an array")
                tokens = [ApiToken.from_dict(r) for r in records]
            except (ValueError, KeyError, TypeError) as e:
                logger.error("Stored tokens are unreadable, starting empty: %s", e)
                tokens = []
        return tokens, active_id or None

    def _commit(self, tokens: List[ApiToken], active_id: Optional[str]) -> None:
        """Persist the full catalog in one write, then adopt it in memory."""
        if active_id is not None and not any(t.id == active_id for t in tokens):
            active_id = None
        if active_id is None and tokens:
            active_id = tokens[0].id

        records = [replace(t, is_active=t.id == active_id).to_dict() for t in tokens]
        puts = {TOKENS_KEY: json.dumps(records)}
        deletes = []
        if active_id is None:
            deletes.append(ACTIVE_TOKEN_KEY)
        else:
            puts[ACTIVE_TOKEN_KEY] = active_id

        try:
            self._store.commit(puts, deletes)
        except Exception as e:
            raise StorageError(detail=f"Saving tokens failed: {e}") from e

        self._tokens = [replace(t, is_active=t.id == active_id) for t in tokens]
        self._active_id = active_id

    async def _refresh_stats(self, value: str) -> None:
        result = await self._stats.refresh_summary(value)
        if not result.ok:
            logger.warning("Stats refresh for %s failed: %s", mask_token(value), result.error)

    def _fail(self, error: RelayConsoleError) -> None:
        self._last_error = error
        self._listeners.notify(self)

    def _succeed(self) -> None:
        self._last_error = None
        self._listeners.notify(self)
