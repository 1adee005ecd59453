"""hubscope-core: Registry access layer for container image metadata.

This package provides:
- RegistryClient: Cached, rate-limited, authenticated access to the Hub
  metadata API and the Registry v2 API
- Error taxonomy: RegistryError and its kinds, with user-safe messages
- Schemas: Configuration and payload models (hubscope_core.schemas)
- Telemetry: structlog configuration (hubscope_core.telemetry)

Example:
    >>> from hubscope_core import RegistryClient, load_config
    >>> async with RegistryClient.from_config(load_config()) as client:
    ...     details = await client.get_repository_details("nginx")
    ...     details.pull_count
"""

from __future__ import annotations

__version__ = "1.0.0"

from hubscope_core.registry import (
    AuthManager,
    CacheManager,
    RateLimiter,
    RegistryClient,
    RegistryError,
    RetryPolicy,
    parse_repository,
    user_message,
)
from hubscope_core.schemas.config import HubConfig, load_config

__all__ = [
    "__version__",
    "AuthManager",
    "CacheManager",
    "HubConfig",
    "RateLimiter",
    "RegistryClient",
    "RegistryError",
    "RetryPolicy",
    "load_config",
    "parse_repository",
    "user_message",
]
