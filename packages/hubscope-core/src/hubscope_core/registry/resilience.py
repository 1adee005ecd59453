"""Retry policy for registry operations.

Every RegistryClient operation runs through ``RetryPolicy.call``, which
normalizes failures into the registry error taxonomy and retries the
transient kinds.

Retry Rules:
    - RateLimitError: wait until the reported reset, or back off
      exponentially when no reset is known. A reset further away than
      ``max_rate_limit_wait_seconds`` surfaces the error instead.
    - UpstreamServerError: exponential backoff with optional jitter.
    - Everything else (AuthenticationError included): surfaced immediately.

Example:
    >>> from hubscope_core.registry.resilience import RetryPolicy
    >>> from hubscope_core.schemas.config import RetryConfig
    >>>
    >>> policy = RetryPolicy(RetryConfig(max_attempts=3))
    >>>
    >>> @policy.wrap
    ... async def fetch_manifest():
    ...     return await http.get(url)
"""

from __future__ import annotations

import asyncio
import functools
import random
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

import structlog

from hubscope_core.registry.errors import (
    RateLimitError,
    RegistryError,
    UpstreamServerError,
    log_error,
    normalize_error,
)
from hubscope_core.schemas.config import RetryConfig

if TYPE_CHECKING:
    from hubscope_core.registry.metrics import RegistryMetrics

logger = structlog.get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class RetryPolicy:
    """Retry policy with exponential backoff, jitter and rate-limit waits.

    Retry Timeline (default config, 5xx responses):
    - Attempt 1: Immediate
    - Attempt 2: ~1s delay (with jitter)
    - Attempt 3: ~2s delay (with jitter)

    Attributes:
        config: RetryConfig with max_attempts, delays, and jitter settings.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
        metrics: RegistryMetrics | None = None,
    ) -> None:
        """Initialize RetryPolicy.

        Args:
            config: Retry configuration. Uses defaults if None.
            clock: Returns the current Unix time in seconds.
            metrics: Optional metrics collector for retry counters.
        """
        self._config = config or RetryConfig()
        self._clock = clock
        self._metrics = metrics

    @property
    def config(self) -> RetryConfig:
        """Return the retry configuration."""
        return self._config

    def calculate_delay(self, attempt: int) -> float:
        """Calculate backoff delay before the next attempt.

        Uses exponential backoff: delay = initial * (multiplier ^ attempt),
        capped at max_delay_ms. Optionally adds jitter (±25%).

        Args:
            attempt: Current attempt number (0-indexed).

        Returns:
            Delay in seconds.
        """
        base_delay_ms = min(
            self._config.initial_delay_ms * (self._config.backoff_multiplier**attempt),
            self._config.max_delay_ms,
        )

        if self._config.jitter:
            jitter_range = base_delay_ms * 0.25
            base_delay_ms += random.uniform(-jitter_range, jitter_range)

        return max(0.0, base_delay_ms / 1000.0)

    def should_retry(self, error: RegistryError) -> bool:
        """Check if a normalized error is of a retryable kind."""
        return isinstance(error, (RateLimitError, UpstreamServerError))

    def retry_delay(self, error: RegistryError, attempt: int) -> float | None:
        """Return seconds to wait before retrying, or None to give up.

        Args:
            error: Normalized error from the failed attempt.
            attempt: Failed attempt number (0-indexed).
        """
        if not self.should_retry(error):
            return None

        if isinstance(error, RateLimitError) and error.reset_at is not None:
            wait = max(0.0, error.reset_at - self._clock())
            if wait > self._config.max_rate_limit_wait_seconds:
                logger.warning(
                    "rate_limit_wait_too_long",
                    wait_seconds=round(wait, 3),
                    max_wait_seconds=self._config.max_rate_limit_wait_seconds,
                )
                return None
            return wait

        return self.calculate_delay(attempt)

    async def call(
        self,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        context: str | None = None,
        **kwargs: Any,
    ) -> T:
        """Await fn(*args, **kwargs), retrying transient failures.

        Args:
            fn: Coroutine function to call.
            context: Operation name used in log events.

        Returns:
            fn's result.

        Raises:
            RegistryError: The last normalized error once retries are
                exhausted or the error is not retryable.
        """
        max_attempts = self._config.max_attempts

        for attempt in range(max_attempts):
            try:
                return await fn(*args, **kwargs)
            except Exception as e:
                error = normalize_error(e, now=self._clock())
                label = context or getattr(fn, "__qualname__", "operation")
                log_error(error, f"{label} (attempt {attempt + 1}/{max_attempts})")

                if attempt == max_attempts - 1:
                    if self.should_retry(error):
                        logger.warning(
                            "retry_exhausted",
                            context=label,
                            attempts=max_attempts,
                            error=error.message,
                        )
                    raise error from (None if error is e else e)

                delay = self.retry_delay(error, attempt)
                if delay is None:
                    raise error from (None if error is e else e)

                logger.debug(
                    "retry_attempt",
                    context=label,
                    attempt=attempt + 1,
                    max_attempts=max_attempts,
                    delay_seconds=delay,
                    error=error.message,
                )
                if self._metrics is not None:
                    self._metrics.record_retry(label, type(error).__name__)
                if delay > 0:
                    await asyncio.sleep(delay)

        raise RuntimeError("Retry exhausted without exception")

    def wrap(self, func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        """Decorator applying ``call`` to an async function.

        Example:
            >>> @policy.wrap
            ... async def fetch_tags():
            ...     return await client.list_tags("nginx")
        """

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await self.call(func, *args, context=func.__qualname__, **kwargs)

        return wrapper


__all__ = ["RetryPolicy"]
