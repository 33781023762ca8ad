#!/usr/bin/env python3
"""Exceptions raised by the Shelly Cloud session layer.

Shelly Cloud reports a failure in one of two ways: an HTTP error status, or
an HTTP 200 whose JSON body reads ``{"isok": false, "errors": {...}}``. Both
end up here. The cloud's ``errors`` map is kept verbatim in
``details["cloud_errors"]`` so a log line shows exactly what the server said.

Exception Hierarchy:
    ShellyError
    ├── ConfigurationError          account credentials missing
    ├── AuthenticationError
    │   ├── TokenFetchError         OAuth login or code exchange failed
    │   ├── TokenExpiredError       bearer token rejected (HTTP 401)
    │   └── InvalidCredentialsError email/password rejected
    ├── APIError                    REST call on the regional server failed
    │   ├── CloudError              HTTP 200 with isok=false
    │   ├── RateLimitError          HTTP 429 or the max_req cloud error
    │   ├── NotFoundError           HTTP 404
    │   └── ServerError             HTTP 5xx
    ├── NetworkError
    │   ├── ConnectionError
    │   └── TimeoutError
    └── StreamError                 websocket endpoint cannot be derived
"""
import json
from typing import Any, Optional

# Cloud error key returned with isok=false when the account is throttled
RATE_LIMIT_ERROR_KEY = "max_req"

# Seconds to wait when the cloud throttles without saying for how long
DEFAULT_RETRY_AFTER = 5


def parse_cloud_errors(body: Any) -> Optional[dict[str, Any]]:
    """Return the ``errors`` map of an ``isok: false`` response body.

    Accepts the decoded JSON or the raw response text. Returns None when the
    body is not a Shelly failure envelope.
    """
    if isinstance(body, (str, bytes)):
        try:
            body = json.loads(body)
        except ValueError:
            return None
    if not isinstance(body, dict) or body.get("isok") is not False:
        return None
    errors = body.get("errors")
    if isinstance(errors, dict):
        return errors
    return {"errors": errors} if errors else {}


# ============================================
# Base Exception
# ============================================

class ShellyError(Exception):
    """Base exception for all Shelly Cloud errors.

    Attributes:
        message: Human-readable error description
        details: Cloud context (HTTP status, API path, host, cloud errors)
    """

    code = "SHELLY_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in (details or {}).items() if v is not None}
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        text = f"[{self.code}] {self.message}"
        if self.details:
            text += " (" + ", ".join(f"{k}={v}" for k, v in self.details.items()) + ")"
        return text


class ConfigurationError(ShellyError):
    """Raised when the account credentials are missing."""

    code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, missing_keys: Optional[list[str]] = None):
        super().__init__(message, details={"missing_keys": missing_keys})


# ============================================
# Authentication Errors
# ============================================

class AuthenticationError(ShellyError):
    """Base class for OAuth and bearer-token failures."""

    code = "AUTHENTICATION_ERROR"


class TokenFetchError(AuthenticationError):
    """Raised when the login/code-exchange flow does not yield a token."""

    code = "TOKEN_FETCH_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        attempts: int = 1,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            details={**(details or {}), "status_code": status_code, "attempts": attempts},
            cause=cause,
        )
        self.status_code = status_code
        self.attempts = attempts


class TokenExpiredError(AuthenticationError):
    """Raised when the regional server rejects the bearer token."""

    code = "TOKEN_EXPIRED"

    def __init__(self, message: str = "Access token expired or invalid", path: Optional[str] = None):
        super().__init__(message, details={"path": path})


class InvalidCredentialsError(AuthenticationError):
    """Raised when /oauth/login rejects the account email/password."""

    code = "INVALID_CREDENTIALS"

    def __init__(
        self,
        message: str = "Shelly Cloud rejected the account credentials",
        step: str = "login",
        cloud_errors: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, details={"step": step, "cloud_errors": cloud_errors})
        self.cloud_errors = cloud_errors or {}


# ============================================
# API Errors
# ============================================

class APIError(ShellyError):
    """Raised when a call to the regional API server fails.

    Attributes:
        status_code: HTTP status (200 for isok=false envelopes, None when no
            request was made)
        path: API path that was called, e.g. "/device/all_status"
        cloud_errors: The ``errors`` map of an isok=false body, if any
    """

    code = "API_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        path: Optional[str] = None,
        response_body: Optional[str] = None,
        cloud_errors: Optional[dict[str, Any]] = None,
    ):
        if cloud_errors is None and response_body:
            cloud_errors = parse_cloud_errors(response_body)
        super().__init__(
            message,
            details={
                "status_code": status_code,
                "path": path,
                "cloud_errors": cloud_errors,
                # the raw body only when the cloud errors could not be read from it
                "response_body": response_body[:200] if response_body and cloud_errors is None else None,
            },
        )
        self.status_code = status_code
        self.path = path
        self.cloud_errors = cloud_errors or {}


class CloudError(APIError):
    """Raised when the cloud answers HTTP 200 with ``isok: false``."""

    code = "CLOUD_ERROR"

    def __init__(self, path: str, cloud_errors: dict[str, Any]):
        keys = ", ".join(sorted(cloud_errors)) or "no error keys"
        super().__init__(
            f"Shelly Cloud rejected {path}: {keys}",
            status_code=200,
            path=path,
            cloud_errors=cloud_errors,
        )


class RateLimitError(APIError):
    """Raised when the account is throttled.

    Shelly signals this either with HTTP 429 or with an isok=false body
    carrying the ``max_req`` error key.

    Attributes:
        retry_after: Seconds to wait before retrying
    """

    code = "RATE_LIMIT_EXCEEDED"

    def __init__(
        self,
        message: str = "Shelly Cloud request limit reached",
        status_code: int = 429,
        path: Optional[str] = None,
        response_body: Optional[str] = None,
        cloud_errors: Optional[dict[str, Any]] = None,
        retry_after: Optional[int] = None,
    ):
        super().__init__(
            message,
            status_code=status_code,
            path=path,
            response_body=response_body,
            cloud_errors=cloud_errors,
        )
        self.retry_after = retry_after or DEFAULT_RETRY_AFTER


class NotFoundError(APIError):
    """Raised when the regional server has no such API path (HTTP 404)."""

    code = "NOT_FOUND"

    def __init__(self, path: str, response_body: Optional[str] = None):
        super().__init__(
            f"Cloud API path '{path}' not found",
            status_code=404,
            path=path,
            response_body=response_body,
        )


class ServerError(APIError):
    """Raised when the regional server returns a 5xx status."""

    code = "SERVER_ERROR"


# ============================================
# Network Errors
# ============================================

class NetworkError(ShellyError):
    """Raised when the cloud host cannot be reached."""

    code = "NETWORK_ERROR"

    def __init__(
        self,
        message: str,
        host: Optional[str] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, details={"host": host}, cause=cause)
        self.host = host


class ConnectionError(NetworkError):
    """Raised when a TCP/TLS connection to the cloud host fails."""

    code = "CONNECTION_ERROR"


class TimeoutError(NetworkError):
    """Raised when a cloud request times out."""

    code = "TIMEOUT_ERROR"

    def __init__(
        self,
        message: str = "Request timed out",
        host: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, host=host, cause=cause)
        if timeout_seconds is not None:
            self.details["timeout_seconds"] = timeout_seconds


# ============================================
# Stream Errors
# ============================================

class StreamError(ShellyError):
    """Raised when the realtime websocket endpoint cannot be derived.

    Only the endpoint host and the API URL it came from are recorded. The
    websocket URL itself carries the bearer token and stays out of details.
    """

    code = "STREAM_ERROR"

    def __init__(
        self,
        message: str = "Event stream failure",
        host: Optional[str] = None,
        user_api_url: Optional[str] = None,
    ):
        super().__init__(message, details={"host": host, "user_api_url": user_api_url})


__all__ = [
    "parse_cloud_errors",
    "ShellyError",
    "ConfigurationError",
    "AuthenticationError",
    "TokenFetchError",
    "TokenExpiredError",
    "InvalidCredentialsError",
    "APIError",
    "CloudError",
    "RateLimitError",
    "NotFoundError",
    "ServerError",
    "NetworkError",
    "ConnectionError",
    "TimeoutError",
    "StreamError",
]
