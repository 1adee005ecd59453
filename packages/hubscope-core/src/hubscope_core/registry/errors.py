"""Registry client exception hierarchy for hubscope-core.

This module defines the normalized error kinds raised by the registry access
layer. Raw transport and HTTP failures never leave the client; they are
converted by ``normalize_error`` into one of the classes below.

Exception Hierarchy:
    RegistryError (base)
    ├── NetworkError          # No response received (DNS, connect, timeout)
    ├── AuthenticationError   # 401, or token request rejected
    ├── ForbiddenError        # 403, valid credentials without permission
    ├── NotFoundError         # 404
    ├── RateLimitError        # 429, carries the reset timestamp
    ├── UpstreamServerError   # 5xx
    ├── ValidationError       # Bad caller input or unexpected payload shape
    └── UnknownError          # Anything else

Exit Codes:
    0 - Success
    1 - General error (RegistryError, UnknownError)
    2 - Authentication error (AuthenticationError)
    3 - Not found (NotFoundError)
    4 - Forbidden (ForbiddenError)
    5 - Network/upstream error (NetworkError, UpstreamServerError)
    6 - Rate limited (RateLimitError)
    7 - Validation error (ValidationError)

Example:
    >>> from hubscope_core.registry.errors import NotFoundError
    >>> raise NotFoundError("Resource not found")
    Traceback (most recent call last):
        ...
    NotFoundError: Resource not found
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any

import httpx
import pydantic
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_RATE_LIMIT_RESET_SECONDS = 3600
"""Assumed reset horizon when a 429 response carries no reset header."""


class RegistryError(Exception):
    """Base exception for all registry client errors.

    Attributes:
        status_code: Upstream HTTP status code, if a response was received.
        detail: Raw upstream body or context, for internal logging only.
        exit_code: CLI exit code for this error type (default: 1).
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        detail: Any = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class NetworkError(RegistryError):
    """Raised when no response was received from the upstream API."""

    exit_code: int = 5


class AuthenticationError(RegistryError):
    """Raised when the upstream rejects credentials (401).

    Never retried: repeating a request with the same bad credentials
    cannot succeed.
    """

    exit_code: int = 2

    def __init__(
        self,
        message: str = "Authentication failed",
        status_code: int | None = 401,
        detail: Any = None,
    ) -> None:
        super().__init__(message, status_code, detail)


class ForbiddenError(RegistryError):
    """Raised on 403: credentials are valid but lack permission."""

    exit_code: int = 4


class NotFoundError(RegistryError):
    """Raised on 404."""

    exit_code: int = 3


class RateLimitError(RegistryError):
    """Raised when the upstream (or the local limiter) refuses a request.

    Attributes:
        reset_at: Unix timestamp (seconds) when the limit resets, or None
            if the upstream did not report one.
        raised_at: Unix timestamp of the refusal, from the caller's clock.
            Defaults to the wall clock.

    Example:
        >>> err = RateLimitError("Rate limit exceeded", reset_at=1700000000.0)
        >>> err.reset_time
        1700000000.0
    """

    exit_code: int = 6

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        reset_at: float | None = None,
        status_code: int | None = 429,
        detail: Any = None,
        *,
        raised_at: float | None = None,
    ) -> None:
        self.reset_at = reset_at
        self.raised_at = time.time() if raised_at is None else raised_at
        super().__init__(message, status_code, detail)

    @property
    def reset_time(self) -> float:
        """Return the reset timestamp, assuming one hour when unknown."""
        if self.reset_at is not None:
            return self.reset_at
        return self.raised_at + DEFAULT_RATE_LIMIT_RESET_SECONDS


class UpstreamServerError(RegistryError):
    """Raised on 5xx responses."""

    exit_code: int = 5


class ValidationError(RegistryError):
    """Raised locally for malformed input or payloads, before or after I/O.

    Example:
        >>> raise ValidationError("Invalid repository format: a/b/c")
        Traceback (most recent call last):
            ...
        ValidationError: Invalid repository format: a/b/c
    """

    exit_code: int = 7


class UnknownError(RegistryError):
    """Wraps any failure that matches no other kind."""


def _parse_reset_header(headers: httpx.Headers) -> float | None:
    raw = headers.get("x-ratelimit-reset") or headers.get("ratelimit-reset")
    if not raw:
        return None
    digits = raw.strip().split(";", 1)[0]
    try:
        value = int(digits)
    except ValueError:
        return None
    return float(value) if value > 0 else None


def _extract_message(response: httpx.Response) -> str | None:
    """Pull a human-readable message out of an upstream error body."""
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None

    for key in ("message", "detail", "error"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value

    errors = data.get("errors")
    if isinstance(errors, list) and errors:
        parts = [
            e.get("message", str(e)) if isinstance(e, dict) else str(e) for e in errors
        ]
        return ", ".join(parts)
    return None


def _from_response(response: httpx.Response, now: float | None) -> RegistryError:
    status = response.status_code
    message = _extract_message(response)
    detail = response.text

    if status == 401:
        return AuthenticationError(message or "Authentication failed", status, detail)
    if status == 403:
        return ForbiddenError(
            message or "Access forbidden. Check your permissions.", status, detail
        )
    if status == 404:
        return NotFoundError(message or "Resource not found", status, detail)
    if status == 429:
        return RateLimitError(
            message or "Rate limit exceeded",
            reset_at=_parse_reset_header(response.headers),
            detail=detail,
            raised_at=now,
        )
    if status == 500:
        return UpstreamServerError("Registry internal server error", status, detail)
    if status in (502, 503, 504):
        return UpstreamServerError(
            "Registry service temporarily unavailable", status, detail
        )
    if status > 500:
        return UpstreamServerError(message or f"HTTP {status} error", status, detail)
    return UnknownError(message or f"HTTP {status} error", status, detail)


def normalize_error(error: BaseException, *, now: float | None = None) -> RegistryError:
    """Convert any exception into the registry error taxonomy.

    Args:
        error: Exception raised by httpx, pydantic, or client code.
        now: Current Unix time from the caller's clock, used as the base of
            a rate-limit reset the upstream did not report.

    Returns:
        The matching RegistryError. Already-normalized errors are returned as-is.

    Example:
        >>> normalize_error(httpx.ConnectError("boom")).__class__.__name__
        'NetworkError'
    """
    if isinstance(error, RegistryError):
        return error
    if isinstance(error, httpx.HTTPStatusError):
        return _from_response(error.response, now)
    if isinstance(error, httpx.TransportError):
        return NetworkError(
            "Network error: Unable to reach registry API", detail=str(error)
        )
    if isinstance(error, pydantic.ValidationError):
        return ValidationError(
            "Unexpected payload shape from registry API", detail=str(error)
        )
    return UnknownError(str(error) or "Unknown error occurred")


def log_error(error: RegistryError, context: str | None = None) -> None:
    """Log an error at the level matching its kind."""
    fields: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error": error.message,
        "status_code": error.status_code,
    }
    if context:
        fields["context"] = context

    if isinstance(error, RateLimitError):
        logger.warning("registry_error", **fields)
    elif isinstance(error, AuthenticationError):
        logger.error("registry_error", **fields)
    elif error.status_code is not None and error.status_code >= 500:
        logger.error("registry_error", **fields)
    elif error.status_code is not None and error.status_code >= 400:
        logger.warning("registry_error", **fields)
    elif error.status_code is not None:
        logger.info("registry_error", **fields)
    else:
        logger.error("registry_error", **fields)


def user_message(error: RegistryError) -> str:
    """Return a short message safe to show to end users.

    Upstream bodies and internal details are deliberately left out.

    Example:
        >>> user_message(NotFoundError("x", 404))
        'The requested image or repository was not found.'
    """
    if isinstance(error, AuthenticationError):
        return "Authentication failed. Please check your registry credentials."
    if isinstance(error, RateLimitError):
        reset = datetime.fromtimestamp(error.reset_time, tz=timezone.utc)
        return f"Rate limit exceeded. Please try again after {reset:%H:%M:%S} UTC."
    if isinstance(error, NotFoundError):
        return "The requested image or repository was not found."
    if isinstance(error, ForbiddenError):
        return "Access denied. You may not have permission to access this resource."
    if isinstance(error, NetworkError):
        return "Unable to reach the registry. Please check your network connection."
    if isinstance(error, UpstreamServerError):
        return "The registry service is temporarily unavailable. Please try again later."
    if isinstance(error, ValidationError):
        return error.message
    return "An unexpected error occurred."


__all__ = [
    "AuthenticationError",
    "ForbiddenError",
    "NetworkError",
    "NotFoundError",
    "RateLimitError",
    "RegistryError",
    "UnknownError",
    "UpstreamServerError",
    "ValidationError",
    "log_error",
    "normalize_error",
    "user_message",
]
