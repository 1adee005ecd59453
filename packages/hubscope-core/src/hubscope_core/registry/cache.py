"""In-memory response cache for registry API calls.

This module implements TTL-based memoization of API responses with LRU
eviction once the configured key count is exceeded.

Cache Policies:
    | Operation            | TTL     |
    |----------------------|---------|
    | search / list tags   | 300s    |
    | repository details   | 600s    |
    | manifest             | 1800s   |
    | image config blob    | 3600s   |

Expiry is checked lazily on every read against the entry's own TTL.
``purge_expired`` may be called periodically but correctness never depends
on it.

Example:
    >>> from hubscope_core.registry.cache import CacheManager
    >>> cache = CacheManager()
    >>> key = CacheManager.generate_key("search", {"q": "nginx", "page": 1})
    >>> key
    'search?page=1&q=nginx'
    >>> cache.set(key, {"count": 0})
    >>> cache.get(key)
    {'count': 0}
"""

from __future__ import annotations

import functools
import json
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, ParamSpec, TypeVar
from urllib.parse import quote

import structlog

from hubscope_core.schemas.config import CacheConfig

if TYPE_CHECKING:
    from hubscope_core.registry.metrics import RegistryMetrics

logger = structlog.get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

_MISSING = object()


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A stored value with its storage time and TTL.

    Attributes:
        data: The cached value.
        stored_at: Unix timestamp (seconds) when the value was stored.
        ttl_seconds: Lifetime of the entry in seconds.
    """

    data: T
    stored_at: float
    ttl_seconds: float

    def is_expired(self, now: float) -> bool:
        """Check if the entry has outlived its TTL."""
        return now - self.stored_at > self.ttl_seconds


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache counters."""

    keys: int
    hits: int
    misses: int
    hit_rate: float


def _format_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class CacheManager:
    """TTL cache with bounded size and LRU eviction.

    Features:
    - Per-entry TTL, checked lazily on read
    - LRU eviction when more than ``max_size`` keys are stored
    - Deterministic API cache keys via ``generate_key``
    - Async function memoization via ``with_cache``

    Concurrency:
        Designed for a single event loop. No method awaits, so every
        read-check-write sequence on a key is atomic with respect to other
        coroutines.

    Attributes:
        config: CacheConfig with ttl_seconds and max_size.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
        metrics: RegistryMetrics | None = None,
    ) -> None:
        """Initialize CacheManager.

        Args:
            config: Cache configuration. Uses defaults if None.
            clock: Returns the current Unix time in seconds.
            metrics: Optional metrics collector for hit/miss counters.
        """
        self._config = config or CacheConfig()
        self._clock = clock
        self._metrics = metrics
        self._store: OrderedDict[str, CacheEntry[Any]] = OrderedDict()
        self._hits = 0
        self._misses = 0

    @property
    def config(self) -> CacheConfig:
        """Return cache configuration."""
        return self._config

    def _lookup(self, key: str) -> Any:
        """Return the live value for key or _MISSING, updating stats."""
        entry = self._store.get(key)
        if entry is not None and entry.is_expired(self._clock()):
            del self._store[key]
            logger.debug("cache_expired", key=key)
            entry = None

        if entry is None:
            self._misses += 1
            if self._metrics is not None:
                self._metrics.record_cache_operation("miss")
            return _MISSING

        self._store.move_to_end(key)
        self._hits += 1
        if self._metrics is not None:
            self._metrics.record_cache_operation("hit")
        return entry.data

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None on miss or expiry."""
        value = self._lookup(key)
        if value is _MISSING:
            return None
        return value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        """Store value under key, replacing any existing entry.

        Args:
            key: Cache key.
            value: Value to store (not copied).
            ttl_seconds: Entry lifetime. Uses config.ttl_seconds if None.
        """
        ttl = ttl_seconds if ttl_seconds is not None else self._config.ttl_seconds
        self._store[key] = CacheEntry(data=value, stored_at=self._clock(), ttl_seconds=ttl)
        self._store.move_to_end(key)

        while len(self._store) > self._config.max_size:
            evicted, _ = self._store.popitem(last=False)
            logger.debug("cache_evicted", key=evicted)
            if self._metrics is not None:
                self._metrics.record_cache_operation("evict")

    def has(self, key: str) -> bool:
        """Check if a live entry exists for key. Does not touch stats."""
        entry = self._store.get(key)
        if entry is None:
            return False
        if entry.is_expired(self._clock()):
            del self._store[key]
            return False
        return True

    def delete(self, key: str) -> None:
        """Remove key if present."""
        self._store.pop(key, None)

    def clear(self) -> None:
        """Remove all entries."""
        self._store.clear()

    def purge_expired(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired = [key for key, entry in self._store.items() if entry.is_expired(now)]
        for key in expired:
            del self._store[key]
        if expired:
            logger.debug("cache_purged", count=len(expired))
        return len(expired)

    def get_stats(self) -> CacheStats:
        """Return key count, hits, misses and hit rate.

        The hit rate is 0.0 when nothing has been looked up yet.
        """
        lookups = self._hits + self._misses
        return CacheStats(
            keys=len(self._store),
            hits=self._hits,
            misses=self._misses,
            hit_rate=self._hits / lookups if lookups else 0.0,
        )

    @staticmethod
    def generate_key(endpoint: str, params: Mapping[str, Any] | None = None) -> str:
        """Build a deterministic key from an endpoint and its parameters.

        Parameters are sorted by name and URL-encoded, so insertion order
        never affects the key.

        Example:
            >>> CacheManager.generate_key("repositories/library/nginx")
            'repositories/library/nginx'
            >>> CacheManager.generate_key("tags", {"page_size": 25, "page": 1})
            'tags?page=1&page_size=25'
        """
        if not params:
            return endpoint
        query = "&".join(
            f"{name}={quote(_format_param(params[name]), safe='')}" for name in sorted(params)
        )
        return f"{endpoint}?{query}"

    def cache_api_response(
        self,
        endpoint: str,
        params: Mapping[str, Any] | None,
        data: Any,
        ttl_seconds: float | None = None,
    ) -> None:
        """Store an API response under its generated key."""
        self.set(self.generate_key(endpoint, params), data, ttl_seconds)

    def get_cached_api_response(
        self,
        endpoint: str,
        params: Mapping[str, Any] | None = None,
    ) -> Any | None:
        """Return a cached API response, or None."""
        return self.get(self.generate_key(endpoint, params))

    def with_cache(
        self,
        namespace_key: str,
        fn: Callable[P, Awaitable[T]],
        ttl_seconds: float | None = None,
    ) -> Callable[P, Awaitable[T]]:
        """Memoize an async function by its arguments.

        On a hit the wrapped function is not called. Results of None are
        cached like any other value.

        Args:
            namespace_key: Prefix distinguishing this function's entries.
            fn: Async function to wrap. Arguments must be JSON-serializable
                (other values are keyed by their ``str``).
            ttl_seconds: Entry lifetime. Uses config.ttl_seconds if None.

        Returns:
            Wrapped coroutine function.

        Example:
            >>> cached_fetch = cache.with_cache("fetch", fetch_repo, ttl_seconds=60)
            >>> await cached_fetch("library/nginx")
        """

        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            serialized = json.dumps([args, kwargs], sort_keys=True, default=str)
            key = f"{namespace_key}:{serialized}"

            cached = self._lookup(key)
            if cached is not _MISSING:
                return cached  # type: ignore[no-any-return]

            result = await fn(*args, **kwargs)
            self.set(key, result, ttl_seconds)
            return result

        return wrapper


__all__ = ["CacheEntry", "CacheManager", "CacheStats"]
