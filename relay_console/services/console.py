"""
Console — wires the key-value store, stats client, stats cache and catalog.

One instance per process; the FastAPI lifespan calls ``init()`` and
``dispose()``. Tests build their own with fakes.
"""

from __future__ import annotations

import logging
from typing import Optional

from relay_console.config import settings
from relay_console.services.kv_store import JsonFileKeyValueStore, KeyValueStore
from relay_console.services.stats_cache import StatsCache
from relay_console.services.stats_client import StatsApiClient
from relay_console.services.token_catalog import TokenCatalog

logger = logging.getLogger(__name__)


class RelayConsole:
    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        client: Optional[StatsApiClient] = None,
    ):
        self.store = store if store is not None else JsonFileKeyValueStore(settings.store_path)
        self.client = client or StatsApiClient()
        self.stats = StatsCache(self.client)
        self.catalog = TokenCatalog(self.store, self.stats)

    def init(self) -> None:
        self.stats.init()
        self.catalog.init()

    async def dispose(self) -> None:
        self.catalog.dispose()
        await self.stats.dispose()
        logger.info("Console disposed")
