#!/usr/bin/env python3
"""Async HTTP client for the Shelly Cloud API.

This module provides the cloud session collaborator used by the sync
pipeline. It handles the common concerns of Shelly Cloud communication:

    - OAuth authentication via TokenManager
    - Automatic token refresh on 401 responses
    - Rate limit and server-error handling with exponential backoff
    - Connection pooling via a shared aiohttp session
    - Resolution of the realtime websocket endpoint

Design Philosophy:
    This client knows HOW to talk to Shelly Cloud, but not WHAT to fetch.
    Device discovery and event parsing live in the sync adapters.

Usage:
    async with ShellyCloudClient(token_manager) as cloud:
        payload = await cloud.call("/device/all_status")
        url = await cloud.get_ws_endpoint()
"""
import asyncio
import logging
from typing import Any, Optional
from urllib.parse import urlsplit

import aiohttp

from .auth import TokenManager
from .exceptions import (
    RATE_LIMIT_ERROR_KEY,
    APIError,
    CloudError,
    ConnectionError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    ShellyError,
    StreamError,
    TimeoutError,
    TokenExpiredError,
    parse_cloud_errors,
)

logger = logging.getLogger(__name__)

# Realtime events are served on a fixed port of the regional API host
WS_PORT = 6113
WS_PATH = "/shelly/wss/hk_sock"


class ShellyCloudClient:
    """Async client for the Shelly Cloud REST and realtime APIs.

    Designed to be used as an async context manager so the HTTP session
    lifecycle is bounded:

        async with ShellyCloudClient(token_manager) as cloud:
            data = await cloud.call("/device/all_status")

    Attributes:
        token_manager: TokenManager providing bearer tokens and the server URL
        max_retries: Attempts per call before the last error is raised
    """

    def __init__(
        self,
        token_manager: TokenManager,
        max_retries: int = 3,
    ):
        self.token_manager = token_manager
        self.max_retries = max_retries
        self._session: Optional[aiohttp.ClientSession] = None

    # ----------------------------------------
    # Context Manager Protocol
    # ----------------------------------------

    async def __aenter__(self) -> "ShellyCloudClient":
        """Enter async context: create the HTTP session."""
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=10, limit_per_host=10),
            timeout=aiohttp.ClientTimeout(total=60, connect=10),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context: close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        """The shared aiohttp session (also used for the websocket)."""
        if not self._session:
            raise RuntimeError(
                "ShellyCloudClient must be used as async context manager: "
                "async with ShellyCloudClient(...) as cloud:"
            )
        return self._session

    # ----------------------------------------
    # Low-Level Request Methods
    # ----------------------------------------

    async def _base_url(self) -> tuple[str, str]:
        """Return (token, user_api_url), fetching a token if needed."""
        token = await self.token_manager.get_token()
        base_url = self.token_manager.user_api_url
        if not base_url:
            raise APIError("Token manager did not provide a user API URL")
        return token, base_url

    async def _request(
        self,
        path: str,
        data: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Make a single POST request (no retry logic).

        Raises:
            APIError: If response status is not 2xx, or the body is isok=false
            ConnectionError: If connection to server fails
            TimeoutError: If request times out
        """
        session = self.session
        token, base_url = await self._base_url()
        url = f"{base_url}{path}"

        try:
            async with session.post(
                url,
                headers={"Authorization": f"Bearer {token}"},
                data=data,
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise self._create_api_error(
                        status=response.status,
                        path=path,
                        response_body=error_text,
                    )
                body = await response.json(content_type=None)

        except aiohttp.ClientConnectionError as e:
            raise ConnectionError(
                f"Failed to connect to {base_url}",
                host=base_url,
                cause=e,
            )

        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"Request to {path} timed out",
                host=base_url,
                timeout_seconds=60,
                cause=e,
            )

        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Network error during POST {path}: {e}",
                host=base_url,
                cause=e,
            )

        cloud_errors = parse_cloud_errors(body)
        if cloud_errors is not None:
            if RATE_LIMIT_ERROR_KEY in cloud_errors:
                raise RateLimitError(
                    f"Request limit reached for {path}",
                    status_code=200,
                    path=path,
                    cloud_errors=cloud_errors,
                )
            raise CloudError(path, cloud_errors)
        return body

    def _create_api_error(
        self,
        status: int,
        path: str,
        response_body: str,
    ) -> ShellyError:
        """Create appropriate APIError subclass based on status code."""
        if status == 401:
            return TokenExpiredError(path=path)

        if status == 404:
            return NotFoundError(path, response_body=response_body)

        if status == 429:
            return RateLimitError(
                f"Rate limit exceeded for {path}",
                path=path,
                response_body=response_body,
            )

        if status >= 500:
            return ServerError(
                f"Server error ({status}) for POST {path}",
                status_code=status,
                path=path,
                response_body=response_body,
            )

        return APIError(
            f"POST {path} failed",
            status_code=status,
            path=path,
            response_body=response_body,
        )

    async def call(
        self,
        path: str,
        data: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Call a cloud API path with automatic retry.

        Resilience:
            - 401 Unauthorized: Invalidate token, refresh, retry
            - 429 or isok=false with max_req: Wait retry_after, retry
            - Other isok=false bodies: CloudError, not retried
            - 5xx / network errors: Exponential backoff retry (capped at 30s)

        Args:
            path: API path, e.g. "/device/all_status"
            data: Optional form fields

        Returns:
            Parsed JSON response

        Raises:
            APIError: If the request fails after all retries
            NetworkError: If a network error persists after retries
        """
        last_error: Optional[Exception] = None
        backoff_delay = 1.0

        for attempt in range(1, self.max_retries + 1):
            try:
                return await self._request(path, data)

            except TokenExpiredError as e:
                last_error = e
                logger.warning(f"Token rejected, refreshing (attempt {attempt})")
                self.token_manager.invalidate()
                continue

            except RateLimitError as e:
                last_error = e
                if attempt < self.max_retries:
                    logger.warning(
                        f"Rate limited, waiting {e.retry_after}s "
                        f"(attempt {attempt}/{self.max_retries})"
                    )
                    await asyncio.sleep(e.retry_after)
                    continue
                raise

            except (ServerError, NetworkError) as e:
                last_error = e
                if attempt < self.max_retries:
                    logger.warning(
                        f"{e}. Retrying in {backoff_delay}s "
                        f"(attempt {attempt}/{self.max_retries})"
                    )
                    await asyncio.sleep(backoff_delay)
                    backoff_delay = min(backoff_delay * 2, 30.0)
                    continue
                raise

        if last_error:
            raise last_error

        raise APIError("Request failed after all retries", path=path)

    # ----------------------------------------
    # Realtime Endpoint
    # ----------------------------------------

    async def get_ws_endpoint(self) -> str:
        """Build the realtime websocket URL for the current token.

        Resolved on every call because the token (and with it the regional
        host) may rotate between reconnects.

        Raises:
            StreamError: If the API URL has no host component
        """
        token, base_url = await self._base_url()
        host = urlsplit(base_url).hostname
        if not host:
            raise StreamError(
                "Cannot derive websocket host from user API URL",
                user_api_url=base_url,
            )
        return f"wss://{host}:{WS_PORT}{WS_PATH}?t={token}"
