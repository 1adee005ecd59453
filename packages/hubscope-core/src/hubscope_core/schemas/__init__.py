"""Pydantic schemas for hubscope configuration and upstream payloads.

Modules:
- config: HubConfig and its sections, plus load_config
- hub: Hub API and Registry v2 payload models
"""

from __future__ import annotations

from hubscope_core.schemas.config import (
    CacheConfig,
    Endpoints,
    HttpConfig,
    HubConfig,
    HubCredentials,
    RateLimitConfig,
    RegistryAuth,
    RetryConfig,
    load_config,
)
from hubscope_core.schemas.hub import (
    ImageConfig,
    Manifest,
    RepositoryDetails,
    RepositoryStatistics,
    SearchResponse,
    SearchResult,
    Severity,
    Tag,
    TagsResponse,
    VulnerabilityReport,
)

__all__ = [
    "CacheConfig",
    "Endpoints",
    "HttpConfig",
    "HubConfig",
    "HubCredentials",
    "ImageConfig",
    "Manifest",
    "RateLimitConfig",
    "RegistryAuth",
    "RepositoryDetails",
    "RepositoryStatistics",
    "RetryConfig",
    "SearchResponse",
    "SearchResult",
    "Severity",
    "Tag",
    "TagsResponse",
    "VulnerabilityReport",
    "load_config",
]
