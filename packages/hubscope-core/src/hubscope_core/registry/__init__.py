"""Registry access layer for the Hub metadata API and the Registry v2 API.

Key Components:
- RegistryClient: Cached, rate-limited, authenticated read operations
- CacheManager: TTL response cache with LRU eviction
- RateLimiter: Per-key request budget synchronized from upstream headers
- AuthManager: Bearer token acquisition, discovery and caching
- RetryPolicy: Error normalization and retries for transient failures
- RegistryError: Base of the normalized error taxonomy

Example:
    >>> from hubscope_core.registry import RegistryClient
    >>> from hubscope_core.schemas.config import HubConfig
    >>>
    >>> async with RegistryClient.from_config(HubConfig()) as client:
    ...     results = await client.search_images("nginx", limit=5)
    ...     for repo in results.results:
    ...         print(repo.display_name, repo.star_count)
"""

from __future__ import annotations

# Authentication
from hubscope_core.registry.auth import (
    AuthChallenge,
    AuthManager,
    AuthTokenInfo,
    parse_www_authenticate,
)

# Caching
from hubscope_core.registry.cache import CacheEntry, CacheManager, CacheStats

# Client
from hubscope_core.registry.client import RegistryClient

# Errors
from hubscope_core.registry.errors import (
    AuthenticationError,
    ForbiddenError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RegistryError,
    UnknownError,
    UpstreamServerError,
    ValidationError,
    log_error,
    normalize_error,
    user_message,
)

# Observability
from hubscope_core.registry.metrics import (
    RegistryMetrics,
    get_registry_metrics,
    set_registry_metrics,
)

# Rate limiting
from hubscope_core.registry.rate_limit import RateLimitEntry, RateLimiter, RateLimitInfo

# Repository references
from hubscope_core.registry.reference import RepositoryName, parse_repository

# Resilience
from hubscope_core.registry.resilience import RetryPolicy

__all__ = [
    # Authentication
    "AuthChallenge",
    "AuthManager",
    "AuthTokenInfo",
    "parse_www_authenticate",
    # Caching
    "CacheEntry",
    "CacheManager",
    "CacheStats",
    # Client
    "RegistryClient",
    # Errors
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
    # Observability
    "RegistryMetrics",
    "get_registry_metrics",
    "set_registry_metrics",
    # Rate limiting
    "RateLimitEntry",
    "RateLimitInfo",
    "RateLimiter",
    # Repository references
    "RepositoryName",
    "parse_repository",
    # Resilience
    "RetryPolicy",
]
