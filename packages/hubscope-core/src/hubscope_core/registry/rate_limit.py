"""Fixed-window request limiter that learns from upstream rate-limit headers.

Each logical key moves through ``Unset -> Active(count, reset_at)``. A window
starts on the first request for a key and lasts ``window_seconds``; within it
at most ``max_requests`` requests are admitted. Responses carrying
``x-ratelimit-*`` (or ``ratelimit-*``) headers overwrite the local view so the
limiter tracks the server's authoritative state.

Example:
    >>> limiter = RateLimiter(max_requests=2, window_seconds=1)
    >>> limiter.is_allowed("k"), limiter.is_allowed("k"), limiter.is_allowed("k")
    (True, True, False)
"""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, TypeVar

import structlog

from hubscope_core.registry.errors import RateLimitError

if TYPE_CHECKING:
    from hubscope_core.registry.metrics import RegistryMetrics

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_KEY = "default"

_LEADING_INT = re.compile(r"^\s*(-?\d+)")


@dataclass
class RateLimitEntry:
    """Mutable per-key window state."""

    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitInfo:
    """Read-only view of a key's budget.

    Attributes:
        remaining: Requests still admitted in the current window.
        reset: Unix timestamp (seconds) when the window resets.
        limit: Maximum requests per window.
    """

    remaining: int
    reset: float
    limit: int


def _header_int(headers: Mapping[str, str], *names: str) -> int | None:
    """Parse the leading integer of the first header that has one.

    Values like ``100;w=21600`` yield ``100``.
    """
    for name in names:
        raw = headers.get(name)
        if raw is None:
            continue
        match = _LEADING_INT.match(raw)
        if match:
            return int(match.group(1))
    return None


class RateLimiter:
    """Per-key request budget with cooperative waiting.

    All state changes happen without an intervening ``await``, so on a single
    event loop the check-then-increment in ``is_allowed`` cannot interleave
    with another coroutine's update of the same key.

    Attributes:
        max_requests: Current per-window limit (may be raised or lowered by
            upstream headers).
        window_seconds: Window length for locally started windows.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 3600,
        *,
        clock: Callable[[], float] = time.time,
        metrics: RegistryMetrics | None = None,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._metrics = metrics
        self._limits: dict[str, RateLimitEntry] = {}

    def is_allowed(self, key: str = DEFAULT_KEY) -> bool:
        """Admit or deny one request for key, counting it when admitted."""
        now = self._clock()
        entry = self._limits.get(key)

        if entry is None or now >= entry.reset_at:
            self._limits[key] = RateLimitEntry(count=1, reset_at=now + self.window_seconds)
            return True

        if entry.count >= self.max_requests:
            return False

        entry.count += 1
        return True

    def get_info(self, key: str = DEFAULT_KEY) -> RateLimitInfo:
        """Return the key's budget without changing state."""
        now = self._clock()
        entry = self._limits.get(key)

        if entry is None or now >= entry.reset_at:
            return RateLimitInfo(
                remaining=self.max_requests - 1,
                reset=now + self.window_seconds,
                limit=self.max_requests,
            )

        return RateLimitInfo(
            remaining=max(0, self.max_requests - entry.count),
            reset=entry.reset_at,
            limit=self.max_requests,
        )

    async def wait_for_reset(self, key: str = DEFAULT_KEY) -> None:
        """Suspend until the key's window resets, if its budget is spent."""
        info = self.get_info(key)
        if info.remaining > 0:
            return

        wait = info.reset - self._clock()
        if wait > 0:
            logger.info("rate_limit_wait", key=key, wait_seconds=round(wait, 3))
            if self._metrics is not None:
                self._metrics.record_rate_limit_wait(wait)
            await asyncio.sleep(wait)

    async def execute(
        self,
        fn: Callable[[], Awaitable[T]],
        key: str = DEFAULT_KEY,
        throw_on_limit: bool = False,
    ) -> T:
        """Run fn once the key admits a request.

        Args:
            fn: Zero-argument coroutine function performing the request.
            key: Rate-limit key.
            throw_on_limit: Raise instead of waiting when the budget is spent.

        Returns:
            Whatever fn returns. fn is invoked exactly once.

        Raises:
            RateLimitError: If throw_on_limit is set and the key is exhausted.
        """
        while not self.is_allowed(key):
            info = self.get_info(key)
            if throw_on_limit:
                reset = datetime.fromtimestamp(info.reset, tz=timezone.utc)
                raise RateLimitError(
                    f"Rate limit exceeded. Try again at {reset.isoformat()}",
                    reset_at=info.reset,
                    status_code=None,
                    raised_at=self._clock(),
                )
            await self.wait_for_reset(key)

        return await fn()

    def update_from_headers(
        self,
        headers: Mapping[str, str],
        key: str = DEFAULT_KEY,
    ) -> None:
        """Synchronize local state with upstream rate-limit headers.

        A positive limit replaces ``max_requests``. A positive reset (Unix
        seconds) replaces the key's window end; the request count becomes
        ``limit - remaining`` when a remaining value is present, otherwise the
        current count is kept.
        """
        lowered = {k.lower(): v for k, v in headers.items()}
        limit = _header_int(lowered, "x-ratelimit-limit", "ratelimit-limit")
        remaining = _header_int(lowered, "x-ratelimit-remaining", "ratelimit-remaining")
        reset = _header_int(lowered, "x-ratelimit-reset", "ratelimit-reset")

        if limit is not None and limit > 0:
            self.max_requests = limit

        if reset is None or reset <= 0:
            return

        existing = self._limits.get(key)
        if remaining is not None:
            count = max(0, self.max_requests - remaining)
        elif existing is not None:
            count = existing.count
        else:
            count = 0

        self._limits[key] = RateLimitEntry(count=count, reset_at=float(reset))
        logger.debug(
            "rate_limit_synced",
            key=key,
            limit=self.max_requests,
            remaining=remaining,
            reset_at=reset,
        )

    def clear(self, key: str = DEFAULT_KEY) -> None:
        """Forget the key's window."""
        self._limits.pop(key, None)

    def clear_all(self) -> None:
        """Forget every window."""
        self._limits.clear()

    def get_all_limits(self) -> dict[str, RateLimitEntry]:
        """Return copies of all tracked entries, for debugging."""
        return {
            key: RateLimitEntry(count=entry.count, reset_at=entry.reset_at)
            for key, entry in self._limits.items()
        }


__all__ = ["DEFAULT_KEY", "RateLimitEntry", "RateLimitInfo", "RateLimiter"]
