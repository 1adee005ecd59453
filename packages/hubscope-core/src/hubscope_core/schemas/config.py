"""Configuration schemas for the hubscope registry client.

This module defines the Pydantic v2 schemas for credentials, rate limiting,
caching, retry behavior and upstream endpoints, plus ``load_config`` which
builds a ``HubConfig`` from an optional YAML file and environment variables.

Key Components:
    HubConfig: Top-level configuration consumed by RegistryClient.from_config
    HubCredentials: Default-registry credentials (username/password or token)
    RegistryAuth: Descriptor for a third-party registry and its credentials
    RetryConfig: Exponential backoff settings for retryable failures

Environment Variables:
    DOCKERHUB_USERNAME, DOCKERHUB_PASSWORD, DOCKERHUB_ACCESS_TOKEN
    DOCKERHUB_RATE_LIMIT, DOCKERHUB_RATE_LIMIT_WINDOW
    CACHE_TTL_SECONDS, MAX_CACHE_SIZE
    PRIVATE_REGISTRY_URL, PRIVATE_REGISTRY_USERNAME, PRIVATE_REGISTRY_PASSWORD
    LOG_LEVEL
    HUBSCOPE_CONFIG (path to a YAML file)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import pydantic
import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

logger = structlog.get_logger(__name__)

DEFAULT_USER_AGENT = "hubscope/1.0.0"

# =============================================================================
# Credentials
# =============================================================================


class HubCredentials(BaseModel):
    """Credentials for a registry.

    Either a pre-issued access token, or a username/password pair used to
    request bearer tokens. All fields optional: no credentials means
    anonymous access.

    Examples:
        >>> creds = HubCredentials(username="alice", password=SecretStr("s3cret"))
        >>> creds.has_password
        True
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    username: str | None = Field(default=None, description="Registry username")
    password: SecretStr | None = Field(default=None, description="Registry password")
    access_token: SecretStr | None = Field(
        default=None,
        description="Pre-issued access token, used directly as the bearer credential",
    )

    @property
    def has_password(self) -> bool:
        """Check if both username and password are set."""
        return bool(self.username) and bool(
            self.password and self.password.get_secret_value()
        )

    @property
    def has_access_token(self) -> bool:
        """Check if a non-empty access token is set."""
        return bool(self.access_token and self.access_token.get_secret_value())


class RegistryAuth(BaseModel):
    """A third-party registry and the credentials to use against it.

    Examples:
        >>> auth = RegistryAuth(url="https://registry.example.com")
        >>> auth.credentials.has_password
        False
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str = Field(
        ...,
        min_length=1,
        pattern=r"^https?://",
        description="Registry base URL (scheme and host, no /v2 suffix)",
    )
    credentials: HubCredentials = Field(default_factory=HubCredentials)

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the URL so cache keys are stable."""
        return v.rstrip("/")


# =============================================================================
# Behavior Configuration
# =============================================================================


class RateLimitConfig(BaseModel):
    """Local request budget per rolling window.

    Examples:
        >>> RateLimitConfig().window_seconds
        3600
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_requests: int = Field(default=100, ge=1, description="Requests per window")
    window_seconds: int = Field(default=3600, ge=1, description="Window length")


class CacheConfig(BaseModel):
    """In-memory response cache configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ttl_seconds: int = Field(default=300, ge=1, description="Default entry TTL")
    max_size: int = Field(default=1000, ge=1, description="Maximum number of keys")


class RetryConfig(BaseModel):
    """Retry policy configuration for retryable failures.

    Uses exponential backoff with optional jitter. Rate-limited requests wait
    for the reported reset instead, up to ``max_rate_limit_wait_seconds``.

    Examples:
        >>> config = RetryConfig(max_attempts=5, initial_delay_ms=500)
        >>> config.initial_delay_ms
        500
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum number of attempts, including the first",
    )
    initial_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Initial delay between retries in milliseconds",
    )
    backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        le=5.0,
        description="Multiplier for exponential backoff",
    )
    max_delay_ms: int = Field(
        default=30000,
        ge=0,
        description="Maximum delay cap in milliseconds",
    )
    jitter: bool = Field(
        default=True,
        description="Add random jitter to delays to prevent thundering herd",
    )
    max_rate_limit_wait_seconds: float = Field(
        default=300.0,
        ge=0,
        description="Longest wait for a rate-limit reset before giving up",
    )


class HttpConfig(BaseModel):
    """Outbound HTTP settings shared by all requests."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout_seconds: float = Field(default=30.0, gt=0)
    user_agent: str = Field(default=DEFAULT_USER_AGENT, min_length=1)


class Endpoints(BaseModel):
    """Upstream API base URLs.

    Examples:
        >>> Endpoints().registry_url
        'https://registry-1.docker.io/v2'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    hub_url: str = Field(default="https://hub.docker.com/v2")
    registry_url: str = Field(default="https://registry-1.docker.io/v2")
    token_url: str = Field(default="https://auth.docker.io/token")
    token_service: str = Field(default="registry.docker.io")


class HubConfig(BaseModel):
    """Complete hubscope configuration.

    Examples:
        >>> config = HubConfig()
        >>> config.cache.ttl_seconds
        300
        >>> config.credentials.has_password
        False
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    credentials: HubCredentials = Field(default_factory=HubCredentials)
    private_registry: RegistryAuth | None = Field(default=None)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    endpoints: Endpoints = Field(default_factory=Endpoints)
    log_level: Literal["debug", "info", "warning", "error"] = Field(default="info")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        """Accept upper-case names and the 'warn' alias."""
        if isinstance(v, str):
            v = v.lower()
            if v == "warn":
                return "warning"
        return v


# =============================================================================
# Loading
# =============================================================================


def _set(tree: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    node = tree
    for part in path[:-1]:
        node = node.setdefault(part, {})
    node[path[-1]] = value


_ENV_PATHS: dict[str, tuple[str, ...]] = {
    "DOCKERHUB_USERNAME": ("credentials", "username"),
    "DOCKERHUB_PASSWORD": ("credentials", "password"),
    "DOCKERHUB_ACCESS_TOKEN": ("credentials", "access_token"),
    "DOCKERHUB_RATE_LIMIT": ("rate_limit", "max_requests"),
    "DOCKERHUB_RATE_LIMIT_WINDOW": ("rate_limit", "window_seconds"),
    "CACHE_TTL_SECONDS": ("cache", "ttl_seconds"),
    "MAX_CACHE_SIZE": ("cache", "max_size"),
    "LOG_LEVEL": ("log_level",),
}


def load_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> HubConfig:
    """Build a HubConfig from a YAML file and environment variables.

    Environment variables override file values.

    Args:
        path: YAML file path. Defaults to $HUBSCOPE_CONFIG when set.
        environ: Environment mapping. Defaults to os.environ.

    Returns:
        Validated HubConfig.

    Raises:
        ValidationError: If the file is unreadable or values are invalid.

    Example:
        >>> config = load_config(environ={"DOCKERHUB_RATE_LIMIT": "50"})
        >>> config.rate_limit.max_requests
        50
    """
    from hubscope_core.registry.errors import ValidationError

    env = os.environ if environ is None else environ

    if path is None and env.get("HUBSCOPE_CONFIG"):
        path = env["HUBSCOPE_CONFIG"]

    data: dict[str, Any] = {}
    if path is not None:
        try:
            loaded = yaml.safe_load(Path(path).read_text())
        except (OSError, yaml.YAMLError) as e:
            raise ValidationError(f"Cannot read config file {path}: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ValidationError(f"Config file {path} must contain a mapping")
        data = loaded or {}

    for name, target in _ENV_PATHS.items():
        value = env.get(name)
        if value:
            _set(data, target, value)

    if env.get("PRIVATE_REGISTRY_URL"):
        private: dict[str, Any] = {"url": env["PRIVATE_REGISTRY_URL"], "credentials": {}}
        if env.get("PRIVATE_REGISTRY_USERNAME"):
            private["credentials"]["username"] = env["PRIVATE_REGISTRY_USERNAME"]
        if env.get("PRIVATE_REGISTRY_PASSWORD"):
            private["credentials"]["password"] = env["PRIVATE_REGISTRY_PASSWORD"]
        data["private_registry"] = private

    try:
        config = HubConfig.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid configuration: {e}") from e

    creds = config.credentials
    if not creds.has_access_token and not creds.has_password:
        logger.warning(
            "no_registry_credentials",
            detail="Anonymous access only; some features may be limited",
        )

    return config


__all__ = [
    "CacheConfig",
    "Endpoints",
    "HttpConfig",
    "HubConfig",
    "HubCredentials",
    "RateLimitConfig",
    "RegistryAuth",
    "RetryConfig",
    "load_config",
]
