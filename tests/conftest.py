"""
Pytest configuration for relay console tests.
Points the data directory at a temp dir before any relay_console import.
"""

import os
import tempfile

_test_data_dir = tempfile.mkdtemp(prefix="relay_console_test_")
os.environ.setdefault("RELAY_CONSOLE_DATA_DIR", _test_data_dir)
os.environ.setdefault("RELAY_CONSOLE_RELAY_BASE_URL", "https://relay.test")

from unittest.mock import AsyncMock

import pytest

from relay_console.services.kv_store import MemoryKeyValueStore
from relay_console.services.stats_client import ApiEnvelope, StatsApiClient

TOKEN_A = "cr_alpha_0123456789"
TOKEN_B = "cr_bravo_9876543210"
TOKEN_C = "cr_charlie_5555555555"


def ok(data):
    return ApiEnvelope(success=True, data=data, status_code=200)


def summary_payload(account_id, name, **extra):
    payload = {
        "id": account_id,
        "name": name,
        "description": "",
        "isActive": True,
        "permissions": "all",
        "usage": {"total": {"requests": 10, "allTokens": 1000, "cost": 0.5}},
        "limits": {
            "tokenLimit": 10000,
            "dailyCostLimit": 10.0,
            "currentDailyCost": 2.5,
            "rateLimitRequests": 100,
            "currentWindowRequests": 40,
        },
    }
    payload.update(extra)
    return payload


def model_row(model, requests=1, input_tokens=100, output_tokens=50, cost=0.01, **extra):
    row = {
        "model": model,
        "requests": requests,
        "inputTokens": input_tokens,
        "outputTokens": output_tokens,
        "cacheCreateTokens": 0,
        "cacheReadTokens": 0,
        "allTokens": input_tokens + output_tokens,
        "costs": {"total": cost},
    }
    row.update(extra)
    return row


class FakeRelay:
    """Scripted relay behind an AsyncMock(spec=StatsApiClient)."""

    def __init__(self):
        self.keys = {
            TOKEN_A: "acct-a",
            TOKEN_B: "acct-b",
            TOKEN_C: "acct-c",
        }
        self.summaries = {
            "acct-a": summary_payload("acct-a", "Alpha"),
            "acct-b": summary_payload("acct-b", "Bravo"),
            "acct-c": summary_payload("acct-c", "Charlie"),
        }
        self.models = {}
        self.client = AsyncMock(spec=StatsApiClient)
        self.client.get_key_id.side_effect = self._get_key_id
        self.client.get_user_stats.side_effect = self._get_user_stats
        self.client.get_user_model_stats.side_effect = self._get_user_model_stats

    async def _get_key_id(self, api_key):
        account_id = self.keys.get(api_key)
        if account_id is None:
            return ApiEnvelope(success=False, message="Invalid API key", status_code=401)
        return ok({"id": account_id})

    async def _get_user_stats(self, api_id):
        return ok(self.summaries[api_id])

    async def _get_user_model_stats(self, api_id, period="daily"):
        return ok(self.models.get((api_id, period), []))


@pytest.fixture
def relay():
    return FakeRelay()


@pytest.fixture
def memory_store():
    return MemoryKeyValueStore()
