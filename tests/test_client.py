#!/usr/bin/env python3
"""Unit tests for the Shelly Cloud HTTP client.

Tests cover:
    - Session lifecycle (async context manager)
    - Bearer-authenticated POST calls against the regional server
    - Retry on 401 / 429 / 5xx / network errors
    - Websocket endpoint construction
"""

import json
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
from src.shelly_blu.api.client import ShellyCloudClient
from src.shelly_blu.api.exceptions import (
    APIError,
    CloudError,
    ConnectionError,
    NotFoundError,
    RateLimitError,
    ServerError,
    StreamError,
)

USER_API_URL = "https://shelly-49-eu.shelly.cloud"


def mock_response(status: int, body=None) -> MagicMock:
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=body)
    response.text = AsyncMock(return_value=json.dumps(body))
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


@pytest.fixture
def token_manager():
    manager = MagicMock()
    manager.get_token = AsyncMock(return_value="tok123")
    manager.user_api_url = USER_API_URL
    manager.invalidate = MagicMock()
    return manager


@pytest.fixture
def client(token_manager):
    client = ShellyCloudClient(token_manager)
    client._session = MagicMock()
    return client


# ============================================
# Session Lifecycle Tests
# ============================================

class TestSessionLifecycle:
    """Test the async context manager protocol."""

    def test_session_outside_context_raises(self, token_manager):
        """Using the client outside `async with` should fail loudly."""
        with pytest.raises(RuntimeError):
            ShellyCloudClient(token_manager).session

    async def test_context_creates_and_closes_session(self, token_manager):
        """Entering creates an aiohttp session; exiting closes it."""
        async with ShellyCloudClient(token_manager) as cloud:
            session = cloud.session
            assert isinstance(session, aiohttp.ClientSession)
            assert not session.closed

        assert session.closed
        assert cloud._session is None


# ============================================
# call() Tests
# ============================================

class TestCall:
    """Test ShellyCloudClient.call."""

    async def test_posts_with_bearer_token(self, client):
        """Calls go to the regional server with the bearer token."""
        client._session.post = MagicMock(return_value=mock_response(200, {"isok": True}))

        result = await client.call("/device/all_status")

        assert result == {"isok": True}
        args, kwargs = client._session.post.call_args
        assert args[0] == f"{USER_API_URL}/device/all_status"
        assert kwargs["headers"]["Authorization"] == "Bearer tok123"

    async def test_401_invalidates_token_and_retries(self, client, token_manager):
        """An expired token is dropped and the call retried."""
        client._session.post = MagicMock(side_effect=[
            mock_response(401, {"isok": False}),
            mock_response(200, {"isok": True}),
        ])

        result = await client.call("/device/all_status")

        assert result == {"isok": True}
        token_manager.invalidate.assert_called_once()
        assert client._session.post.call_count == 2

    async def test_429_waits_and_retries(self, client):
        """Rate limits wait retry_after seconds before retrying."""
        client._session.post = MagicMock(side_effect=[
            mock_response(429, {"isok": False}),
            mock_response(200, {"isok": True}),
        ])

        with patch("asyncio.sleep", new=AsyncMock()) as sleep:
            result = await client.call("/device/all_status")

        assert result == {"isok": True}
        sleep.assert_awaited_once_with(5)

    async def test_5xx_backs_off_then_raises(self, client):
        """Persistent server errors back off exponentially then raise."""
        client._session.post = MagicMock(side_effect=[mock_response(502) for _ in range(3)])

        with patch("asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(ServerError):
                await client.call("/device/all_status")

        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]
        assert client._session.post.call_count == 3

    async def test_network_error_is_retried(self, client):
        """Connection failures are wrapped and retried."""
        client._session.post = MagicMock(side_effect=[
            aiohttp.ClientConnectionError("refused"),
            mock_response(200, {"isok": True}),
        ])

        with patch("asyncio.sleep", new=AsyncMock()):
            result = await client.call("/device/all_status")

        assert result == {"isok": True}

    async def test_network_error_exhausts_retries(self, client):
        """A persistent connection failure surfaces as ConnectionError."""
        client._session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))

        with patch("asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ConnectionError):
                await client.call("/device/all_status")

    async def test_404_is_not_retried(self, client):
        """Client errors other than 401/429 are raised immediately."""
        client._session.post = MagicMock(return_value=mock_response(404, {"isok": False}))

        with pytest.raises(NotFoundError):
            await client.call("/device/nope")

        assert client._session.post.call_count == 1

    async def test_missing_user_api_url(self, client, token_manager):
        """A token without a regional server cannot be used."""
        token_manager.user_api_url = None
        client._session.post = MagicMock()

        with pytest.raises(APIError):
            await client.call("/device/all_status")

        client._session.post.assert_not_called()

    async def test_isok_false_raises_cloud_error(self, client):
        """An isok=false body on HTTP 200 surfaces the cloud errors map."""
        client._session.post = MagicMock(return_value=mock_response(
            200, {"isok": False, "errors": {"device_not_found": "Device not found!"}}
        ))

        with pytest.raises(CloudError) as exc:
            await client.call("/device/all_status")

        assert exc.value.status_code == 200
        assert exc.value.path == "/device/all_status"
        assert exc.value.details["cloud_errors"] == {"device_not_found": "Device not found!"}
        assert client._session.post.call_count == 1

    async def test_max_req_is_retried_as_rate_limit(self, client):
        """The max_req cloud error waits and retries like HTTP 429."""
        client._session.post = MagicMock(side_effect=[
            mock_response(200, {"isok": False, "errors": {"max_req": "Request limit reached!"}}),
            mock_response(200, {"isok": True}),
        ])

        with patch("asyncio.sleep", new=AsyncMock()) as sleep:
            result = await client.call("/device/all_status")

        assert result == {"isok": True}
        sleep.assert_awaited_once_with(5)

    async def test_max_req_exhausts_retries(self, client):
        """A persistent max_req surfaces as RateLimitError."""
        throttled = {"isok": False, "errors": {"max_req": "Request limit reached!"}}
        client._session.post = MagicMock(side_effect=[mock_response(200, throttled) for _ in range(3)])

        with patch("asyncio.sleep", new=AsyncMock()):
            with pytest.raises(RateLimitError) as exc:
                await client.call("/device/all_status")

        assert "max_req" in exc.value.cloud_errors

    async def test_http_error_body_errors_are_kept(self, client):
        """Cloud errors in a 4xx body are parsed into details."""
        client._session.post = MagicMock(return_value=mock_response(
            400, {"isok": False, "errors": {"bad_request": "Missing id"}}
        ))

        with pytest.raises(APIError) as exc:
            await client.call("/device/status")

        assert exc.value.status_code == 400
        assert exc.value.cloud_errors == {"bad_request": "Missing id"}
        assert "response_body" not in exc.value.details

    async def test_network_error_records_host(self, client):
        """Network failures name the regional host they were talking to."""
        client._session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))

        with patch("asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ConnectionError) as exc:
                await client.call("/device/all_status")

        assert exc.value.details["host"] == USER_API_URL
        assert isinstance(exc.value.__cause__, aiohttp.ClientConnectionError)


# ============================================
# Websocket Endpoint Tests
# ============================================

class TestWsEndpoint:
    """Test get_ws_endpoint."""

    async def test_endpoint_from_user_api_url(self, client):
        """The websocket lives on port 6113 of the regional host."""
        url = await client.get_ws_endpoint()
        assert url == "wss://shelly-49-eu.shelly.cloud:6113/shelly/wss/hk_sock?t=tok123"

    async def test_endpoint_follows_token_rotation(self, client, token_manager):
        """Each lookup uses the current token."""
        token_manager.get_token = AsyncMock(side_effect=["first", "second"])

        assert (await client.get_ws_endpoint()).endswith("?t=first")
        assert (await client.get_ws_endpoint()).endswith("?t=second")

    async def test_endpoint_without_host(self, client, token_manager):
        """A server URL without a host cannot yield an endpoint."""
        token_manager.user_api_url = "not a url"

        with pytest.raises(StreamError) as exc:
            await client.get_ws_endpoint()

        assert exc.value.details == {"user_api_url": "not a url"}
        assert "tok123" not in str(exc.value)


# ============================================
# Run tests
# ============================================

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
