"""Shelly Cloud API modules.

This package provides the cloud session collaborator used by the sync
pipeline: OAuth token management, the HTTP client, and the typed exception
hierarchy.

Classes:
    ShellyCloudClient: REST calls with retry, plus websocket endpoint lookup
    TokenManager: Shelly Cloud OAuth token management with caching

Exceptions:
    ShellyError: Base exception for all Shelly Cloud errors
    ConfigurationError: Missing or invalid configuration
    AuthenticationError: Authentication failures
    APIError: API request failures
    CloudError: HTTP 200 responses carrying isok=false
    NetworkError: Network connectivity issues
    StreamError: Websocket endpoint failures
"""
from .auth import CachedToken, TokenManager
from .client import ShellyCloudClient
from .exceptions import (
    APIError,
    AuthenticationError,
    CloudError,
    ConfigurationError,
    ConnectionError,
    InvalidCredentialsError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    ShellyError,
    StreamError,
    TimeoutError,
    TokenExpiredError,
    TokenFetchError,
)

__all__ = [
    # Client
    "ShellyCloudClient",
    # Auth
    "CachedToken",
    "TokenManager",
    # Exceptions
    "APIError",
    "AuthenticationError",
    "CloudError",
    "ConfigurationError",
    "ConnectionError",
    "InvalidCredentialsError",
    "NetworkError",
    "NotFoundError",
    "RateLimitError",
    "ServerError",
    "ShellyError",
    "StreamError",
    "TimeoutError",
    "TokenExpiredError",
    "TokenFetchError",
]
