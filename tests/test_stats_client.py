"""
Tests for StatsApiClient — HTTP mocking, envelope unwrapping, retries.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from relay_console.services.stats_client import StatsApiClient


@pytest.fixture
def client():
    return StatsApiClient(base_url="https://relay.test/", timeout=2.0, retries=2, retry_delays=(0, 0))


def _response(status_code, body):
    resp = MagicMock()
    resp.status_code = status_code
    if isinstance(body, Exception):
        resp.json.side_effect = body
    else:
        resp.json.return_value = body
    return resp


def _patched(request_mock):
    mock_instance = AsyncMock()
    mock_instance.request = request_mock
    mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
    mock_instance.__aexit__ = AsyncMock(return_value=False)
    return mock_instance


class TestGetKeyId:
    @pytest.mark.asyncio
    async def test_success(self, client):
        request = AsyncMock(return_value=_response(200, {"success": True, "data": {"id": "acct-1"}}))

        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = _patched(request)
            env = await client.get_key_id("cr_secret_value_123")

        assert env.success is True
        assert env.data == {"id": "acct-1"}
        assert env.status_code == 200
        args, kwargs = request.call_args
        assert args == ("POST", "https://relay.test/apiStats/api/get-key-id")
        assert kwargs["json"] == {"apiKey": "cr_secret_value_123"}

    @pytest.mark.asyncio
    async def test_business_failure_keeps_server_message(self, client):
        request = AsyncMock(return_value=_response(200, {"success": False, "message": "Key disabled"}))

        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = _patched(request)
            env = await client.get_key_id("cr_secret_value_123")

        assert env.success is False
        assert env.transport_error is False
        assert env.message == "Key disabled"

    @pytest.mark.asyncio
    async def test_http_error_without_message(self, client):
        request = AsyncMock(return_value=_response(401, {"error": "Unauthorized"}))

        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = _patched(request)
            env = await client.get_key_id("cr_secret_value_123")

        assert env.success is False
        assert env.status_code == 401
        assert env.message == "Unauthorized"

    @pytest.mark.asyncio
    async def test_non_json_body(self, client):
        request = AsyncMock(return_value=_response(502, ValueError("not json")))

        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = _patched(request)
            env = await client.get_key_id("cr_secret_value_123")

        assert env.success is False
        assert env.message == "HTTP 502"

    @pytest.mark.asyncio
    async def test_2xx_without_success_flag_is_failure(self, client):
        request = AsyncMock(return_value=_response(200, {"data": {"id": "x"}}))

        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = _patched(request)
            env = await client.get_key_id("cr_secret_value_123")

        assert env.success is False
        assert env.message == "HTTP 200"


class TestStatsEndpoints:
    @pytest.mark.asyncio
    async def test_user_stats_payload(self, client):
        request = AsyncMock(return_value=_response(200, {"success": True, "data": {"id": "acct-1"}}))

        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = _patched(request)
            await client.get_user_stats("acct-1")

        args, kwargs = request.call_args
        assert args[1] == "https://relay.test/apiStats/api/user-stats"
        assert kwargs["json"] == {"apiId": "acct-1"}

    @pytest.mark.asyncio
    async def test_model_stats_payload(self, client):
        request = AsyncMock(return_value=_response(200, {"success": True, "data": []}))

        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = _patched(request)
            env = await client.get_user_model_stats("acct-1", "monthly")

        assert env.success is True
        assert env.data == []
        args, kwargs = request.call_args
        assert args[1] == "https://relay.test/apiStats/api/user-model-stats"
        assert kwargs["json"] == {"apiId": "acct-1", "period": "monthly"}

    @pytest.mark.asyncio
    async def test_model_stats_rejects_unknown_period(self, client):
        with pytest.raises(ValueError):
            await client.get_user_model_stats("acct-1", "weekly")


class TestRetries:
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, client):
        request = AsyncMock(side_effect=[
            httpx.ConnectError("refused"),
            _response(200, {"success": True, "data": {"id": "acct-1"}}),
        ])

        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = _patched(request)
            env = await client.get_key_id("cr_secret_value_123")

        assert env.success is True
        assert request.call_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_all_attempts(self, client):
        request = AsyncMock(side_effect=httpx.ConnectTimeout("timed out"))

        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = _patched(request)
            env = await client.get_key_id("cr_secret_value_123")

        assert env.success is False
        assert env.transport_error is True
        assert request.call_count == 3

    @pytest.mark.asyncio
    async def test_http_status_errors_are_not_retried(self, client):
        request = AsyncMock(return_value=_response(500, {"success": False, "message": "boom"}))

        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = _patched(request)
            env = await client.get_user_stats("acct-1")

        assert env.success is False
        assert env.transport_error is False
        assert request.call_count == 1

    @pytest.mark.asyncio
    async def test_zero_retries_means_one_attempt(self):
        client = StatsApiClient(base_url="https://relay.test", retries=0)
        request = AsyncMock(side_effect=httpx.ReadError("reset"))

        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = _patched(request)
            env = await client.get_key_id("cr_secret_value_123")

        assert env.transport_error is True
        assert request.call_count == 1
