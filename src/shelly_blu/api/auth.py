#!/usr/bin/env python3
"""OAuth Token Management for the Shelly Cloud.

Shelly Cloud uses a two-step OAuth flow for third-party integrations:

    1. POST {auth_url}/oauth/login with the account email and the SHA-1 hex
       digest of the password. The response carries a one-time ``code``.
    2. POST {auth_url}/oauth/auth with ``grant_type=code`` to exchange the code
       for an ``access_token`` (a JWT).

The JWT payload carries ``user_api_url``, the regional server every REST call
and the websocket endpoint must use.

Features:
    - Token caching with an expiry buffer (10% of TTL, 30s-300s)
    - Refresh serialised with asyncio.Lock so concurrent callers share one fetch
    - Exponential backoff retry on transient failures (1s, 2s, 4s)

Security Notes:
    - Tokens and passwords are never logged; token_id is a SHA-256 prefix
    - Credentials should be provided via environment variables

Example:
    >>> manager = TokenManager()
    >>> token = await manager.get_token()
    >>> base = manager.user_api_url
"""
import asyncio
import base64
import hashlib
import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp
from dotenv import load_dotenv

from .exceptions import (
    ConfigurationError,
    ConnectionError,
    InvalidCredentialsError,
    NetworkError,
    TimeoutError,
    TokenFetchError,
    parse_cloud_errors,
)

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_AUTH_URL = "https://api.shelly.cloud"
DEFAULT_CLIENT_ID = "shelly-diy"

# Shelly access tokens are valid for roughly a day; used when the JWT has no exp
DEFAULT_TOKEN_TTL = 86400


def decode_jwt_payload(token: str) -> dict[str, Any]:
    """Decode the (unverified) payload segment of a JWT.

    Returns an empty dict for anything that is not a three-part JWT with a
    JSON object payload.
    """
    parts = token.split(".")
    if len(parts) != 3:
        return {}
    segment = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))
    except (ValueError, UnicodeDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


@dataclass
class CachedToken:
    """Container for a cached Shelly Cloud access token.

    Attributes:
        access_token: The bearer JWT.
        expires_at: Unix timestamp when the token expires.
        user_api_url: Regional API server taken from the JWT payload.
        expires_in: Original TTL in seconds (for the buffer calculation).
    """
    access_token: str
    expires_at: float
    user_api_url: Optional[str] = None
    expires_in: int = DEFAULT_TOKEN_TTL

    MAX_BUFFER_SECONDS = 300
    MIN_BUFFER_SECONDS = 30

    @classmethod
    def from_access_token(cls, access_token: str) -> "CachedToken":
        """Build a CachedToken, reading expiry and server from the JWT payload."""
        claims = decode_jwt_payload(access_token)
        now = time.time()
        exp = claims.get("exp")
        if isinstance(exp, (int, float)) and exp > now:
            expires_in = int(exp - now)
            expires_at = float(exp)
        else:
            expires_in = DEFAULT_TOKEN_TTL
            expires_at = now + DEFAULT_TOKEN_TTL
        user_api_url = claims.get("user_api_url")
        return cls(
            access_token=access_token,
            expires_at=expires_at,
            user_api_url=user_api_url.rstrip("/") if isinstance(user_api_url, str) else None,
            expires_in=expires_in,
        )

    @property
    def token_id(self) -> str:
        """Safe identifier for logging (SHA-256 hash, first 8 chars)."""
        return hashlib.sha256(self.access_token.encode()).hexdigest()[:8]

    @property
    def _buffer_seconds(self) -> float:
        base_buffer = self.expires_in * 0.1
        return max(self.MIN_BUFFER_SECONDS, min(base_buffer, self.MAX_BUFFER_SECONDS))

    @property
    def is_expired(self) -> bool:
        """Check if the token has expired (with safety buffer)."""
        return time.time() >= (self.expires_at - self._buffer_seconds)

    @property
    def time_remaining(self) -> float:
        """Return seconds remaining before token expires (0 if expired)."""
        return max(0, self.expires_at - time.time())


class TokenManager:
    """Shelly Cloud token manager with automatic refresh.

    Attributes:
        email: Account email (from env: SHELLY_EMAIL).
        password: Account password (from env: SHELLY_PASSWORD).
        auth_url: OAuth server base URL (from env: SHELLY_AUTH_URL).
        client_id: OAuth client id registered for DIY integrations.

    Thread Safety:
        Token refresh operations are serialized using an async lock to
        prevent duplicate fetches during concurrent requests.
    """
    def __init__(
        self,
        email: Optional[str] = None,
        password: Optional[str] = None,
        auth_url: Optional[str] = None,
        client_id: str = DEFAULT_CLIENT_ID,
    ):
        self.email = email or os.getenv("SHELLY_EMAIL")
        self.password = password or os.getenv("SHELLY_PASSWORD")
        self.auth_url = (auth_url or os.getenv("SHELLY_AUTH_URL") or DEFAULT_AUTH_URL).rstrip("/")
        self.client_id = client_id

        if not all([self.email, self.password]):
            missing = []
            if not self.email:
                missing.append("SHELLY_EMAIL")
            if not self.password:
                missing.append("SHELLY_PASSWORD")
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                missing_keys=missing,
            )

        self._cached_token: Optional[CachedToken] = None
        self._lock = asyncio.Lock()

    @property
    def password_hash(self) -> str:
        """SHA-1 hex digest of the password, as the login endpoint expects."""
        return hashlib.sha1(self.password.encode("utf-8")).hexdigest()

    async def get_token(self) -> str:
        """Get a valid access token, fetching or refreshing as needed.

        Raises:
            TokenFetchError: If token cannot be obtained after retries
            InvalidCredentialsError: If the account rejects the credentials
        """
        if self._cached_token and not self._cached_token.is_expired:
            return self._cached_token.access_token

        async with self._lock:
            if self._cached_token and not self._cached_token.is_expired:
                return self._cached_token.access_token

            self._cached_token = await self._fetch_token()
            return self._cached_token.access_token

    @property
    def user_api_url(self) -> Optional[str]:
        """Regional API server of the current token, if one is cached."""
        if not self._cached_token:
            return None
        return self._cached_token.user_api_url

    async def _post_form(
        self,
        session: aiohttp.ClientSession,
        path: str,
        form: dict[str, str],
    ) -> tuple[int, Any]:
        async with session.post(
            f"{self.auth_url}{path}",
            data=form,
            timeout=aiohttp.ClientTimeout(total=30),
        ) as response:
            if response.status != 200:
                return response.status, await response.text()
            return response.status, await response.json(content_type=None)

    async def _login(self, session: aiohttp.ClientSession, attempt: int) -> str:
        """Step 1: exchange email/password for a one-time authorization code."""
        status, body = await self._post_form(
            session,
            "/oauth/login",
            {
                "email": self.email,
                "password": self.password_hash,
                "client_id": self.client_id,
            },
        )
        if status == 401:
            raise InvalidCredentialsError(step="login")
        if status != 200:
            raise TokenFetchError(
                f"Login endpoint returned HTTP {status}",
                status_code=status,
                attempts=attempt,
            )
        if not isinstance(body, dict) or body.get("isok") is not True:
            raise InvalidCredentialsError(step="login", cloud_errors=parse_cloud_errors(body))

        code = (body.get("data") or {}).get("code")
        if not code:
            raise TokenFetchError(
                "Login response missing authorization code",
                status_code=200,
                attempts=attempt,
            )
        return code

    async def _exchange_code(
        self,
        session: aiohttp.ClientSession,
        code: str,
        attempt: int,
    ) -> str:
        """Step 2: exchange the authorization code for an access token."""
        status, body = await self._post_form(
            session,
            "/oauth/auth",
            {
                "client_id": self.client_id,
                "grant_type": "code",
                "code": code,
            },
        )
        if status != 200:
            raise TokenFetchError(
                f"Token endpoint returned HTTP {status}",
                status_code=status,
                attempts=attempt,
            )
        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not access_token:
            raise TokenFetchError(
                "Token response missing access_token",
                status_code=200,
                attempts=attempt,
                details={"response_keys": list(body.keys()) if isinstance(body, dict) else []},
            )
        return access_token

    async def _fetch_token(self, max_retries: int = 3) -> CachedToken:
        """Run the login + code exchange flow with exponential backoff.

        Raises:
            TokenFetchError: If token cannot be fetched after retries
            InvalidCredentialsError: If credentials are invalid
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, max_retries + 1):
            try:
                async with aiohttp.ClientSession() as session:
                    code = await self._login(session, attempt)
                    access_token = await self._exchange_code(session, code, attempt)

                token = CachedToken.from_access_token(access_token)
                if not token.user_api_url:
                    raise TokenFetchError(
                        "Access token carries no user_api_url claim",
                        attempts=attempt,
                    )
                logger.info(
                    f"Token fetched (id={token.token_id}), expires in {token.expires_in}s"
                )
                return token

            except InvalidCredentialsError:
                raise

            except TokenFetchError as e:
                last_error = e
                logger.warning(f"Token fetch attempt {attempt}/{max_retries} failed: {e}")

            except aiohttp.ClientConnectionError as e:
                last_error = ConnectionError(
                    f"Failed to connect to auth server: {e}",
                    host=self.auth_url,
                    cause=e,
                )
                logger.warning(
                    f"Token fetch attempt {attempt}/{max_retries} failed: "
                    f"Connection error - {e}"
                )

            except asyncio.TimeoutError as e:
                last_error = TimeoutError(
                    "Token request timed out",
                    host=self.auth_url,
                    timeout_seconds=30,
                    cause=e,
                )
                logger.warning(
                    f"Token fetch attempt {attempt}/{max_retries} failed: Timeout"
                )

            except aiohttp.ClientError as e:
                last_error = NetworkError(
                    f"Network error fetching token: {e}",
                    host=self.auth_url,
                    cause=e,
                )
                logger.warning(
                    f"Token fetch attempt {attempt}/{max_retries} failed: {e}"
                )

            if attempt < max_retries:
                wait_time = 2 ** (attempt - 1)
                logger.debug(f"Waiting {wait_time}s before retry")
                await asyncio.sleep(wait_time)

        raise TokenFetchError(
            f"Failed to fetch token after {max_retries} attempts",
            attempts=max_retries,
            cause=last_error,
        )

    async def force_refresh(self) -> str:
        """Force a token refresh, ignoring the cache."""
        async with self._lock:
            self._cached_token = await self._fetch_token()
            return self._cached_token.access_token

    def invalidate(self):
        """Invalidate the cached token."""
        self._cached_token = None

    @property
    def token_info(self) -> Optional[dict]:
        """Get info about the current cached token for debugging."""
        if not self._cached_token:
            return None
        return {
            "token_id": self._cached_token.token_id,
            "is_expired": self._cached_token.is_expired,
            "time_remaining_seconds": self._cached_token.time_remaining,
            "user_api_url": self._cached_token.user_api_url,
        }
