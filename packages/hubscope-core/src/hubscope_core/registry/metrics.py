"""OpenTelemetry metrics and tracing for registry operations.

Metrics Emitted:
    Counters:
        - hubscope_registry_operations_total: Operations by name, status, and host
        - hubscope_registry_cache_operations_total: Cache lookups (hit/miss/evict)
        - hubscope_registry_retries_total: Retries by operation and error kind
        - hubscope_registry_rate_limit_waits_total: Local rate-limit waits

    Histograms:
        - hubscope_registry_operation_duration_seconds: Operation duration
        - hubscope_registry_rate_limit_wait_seconds: Time spent waiting for resets

Trace Spans:
    - hubscope.registry.<operation>: One span per RegistryClient operation
    - hubscope.registry.auth: Token acquisition

Example:
    >>> metrics = RegistryMetrics()
    >>> with metrics.operation_timer("get_manifest", "registry-1.docker.io"):
    ...     manifest = await fetch()
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import structlog
from opentelemetry import metrics, trace
from opentelemetry.trace import Status, StatusCode

if TYPE_CHECKING:
    from collections.abc import Generator

    from opentelemetry.metrics import Counter, Histogram
    from opentelemetry.trace import Span, Tracer


logger = structlog.get_logger(__name__)

# attribute -> (metric name, unit, description)
_INSTRUMENTS: dict[str, tuple[str, str, str]] = {
    "operations_counter": (
        "hubscope_registry_operations_total",
        "1",
        "Total number of registry operations by name, status, and host",
    ),
    "cache_operations_counter": (
        "hubscope_registry_cache_operations_total",
        "1",
        "Total number of response cache operations by type",
    ),
    "retries_counter": (
        "hubscope_registry_retries_total",
        "1",
        "Total number of retried registry calls",
    ),
    "rate_limit_waits_counter": (
        "hubscope_registry_rate_limit_waits_total",
        "1",
        "Total number of waits for a rate-limit window reset",
    ),
    "duration_histogram": (
        "hubscope_registry_operation_duration_seconds",
        "s",
        "Duration of registry operations in seconds",
    ),
    "rate_limit_wait_histogram": (
        "hubscope_registry_rate_limit_wait_seconds",
        "s",
        "Time spent waiting for rate-limit resets in seconds",
    ),
}


class RegistryMetrics:
    """OpenTelemetry metrics collector for registry operations.

    Instruments are created lazily on first use. When no SDK is configured
    the OpenTelemetry API hands out no-op instruments, so recording is always
    safe.

    Label Conventions:
        - operation: search_images, get_manifest, ...
        - status: success, failure
        - registry: Upstream hostname (e.g., hub.docker.com)
    """

    OPERATIONS_TOTAL = _INSTRUMENTS["operations_counter"][0]
    CACHE_OPERATIONS_TOTAL = _INSTRUMENTS["cache_operations_counter"][0]
    RETRIES_TOTAL = _INSTRUMENTS["retries_counter"][0]
    RATE_LIMIT_WAITS_TOTAL = _INSTRUMENTS["rate_limit_waits_counter"][0]
    OPERATION_DURATION_SECONDS = _INSTRUMENTS["duration_histogram"][0]
    RATE_LIMIT_WAIT_SECONDS = _INSTRUMENTS["rate_limit_wait_histogram"][0]

    SPAN_PREFIX = "hubscope.registry"
    SPAN_AUTH = "hubscope.registry.auth"

    def __init__(self, scope: str = "hubscope.registry", version: str = "1.0.0") -> None:
        """Bind a meter and a tracer under the instrumentation scope ``scope``."""
        self._meter = metrics.get_meter(scope, version)
        self._tracer: Tracer = trace.get_tracer(scope, version)

        self._operations_counter: Counter | None = None
        self._cache_operations_counter: Counter | None = None
        self._retries_counter: Counter | None = None
        self._rate_limit_waits_counter: Counter | None = None
        self._duration_histogram: Histogram | None = None
        self._rate_limit_wait_histogram: Histogram | None = None

    def _instrument(self, attr: str) -> Any:
        """Return the instrument stored at ``_<attr>``, creating it on first use."""
        instrument = getattr(self, f"_{attr}")
        if instrument is None:
            name, unit, description = _INSTRUMENTS[attr]
            create = (
                self._meter.create_histogram
                if attr.endswith("histogram")
                else self._meter.create_counter
            )
            instrument = create(name, unit=unit, description=description)
            setattr(self, f"_{attr}", instrument)
        return instrument

    @property
    def operations_counter(self) -> Counter:
        return self._instrument("operations_counter")

    @property
    def cache_operations_counter(self) -> Counter:
        return self._instrument("cache_operations_counter")

    @property
    def retries_counter(self) -> Counter:
        return self._instrument("retries_counter")

    @property
    def rate_limit_waits_counter(self) -> Counter:
        return self._instrument("rate_limit_waits_counter")

    @property
    def duration_histogram(self) -> Histogram:
        return self._instrument("duration_histogram")

    @property
    def rate_limit_wait_histogram(self) -> Histogram:
        return self._instrument("rate_limit_wait_histogram")

    def _labels(
        self,
        operation: str,
        registry: str | None = None,
        labels: dict[str, str] | None = None,
        **extra: str,
    ) -> dict[str, Any]:
        attributes: dict[str, Any] = {"operation": operation}
        if registry is not None:
            attributes["registry"] = self._normalize_registry(registry)
        attributes.update(extra)
        attributes.update(labels or {})
        return attributes

    def record_operation(
        self,
        operation: str,
        registry: str,
        *,
        success: bool,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Record a registry operation completion.

        Args:
            operation: Operation name.
            registry: Upstream URL or hostname.
            success: Whether the operation succeeded.
            labels: Additional labels to add to the metric.
        """
        attributes = self._labels(
            operation, registry, labels, status="success" if success else "failure"
        )
        self.operations_counter.add(1, attributes=attributes)

        logger.debug(
            "registry_operation_recorded",
            operation=operation,
            registry=attributes["registry"],
            success=success,
        )

    def record_duration(
        self,
        operation: str,
        registry: str,
        duration_seconds: float,
        *,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Record the duration of a registry operation."""
        self.duration_histogram.record(
            duration_seconds, attributes=self._labels(operation, registry, labels)
        )

    def record_cache_operation(
        self,
        operation: str,
        *,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Count a cache lookup outcome: hit, miss or evict."""
        self.cache_operations_counter.add(1, attributes=self._labels(operation, labels=labels))

    def record_retry(self, operation: str, error_type: str) -> None:
        """Record one retry of an operation after a retryable error."""
        self.retries_counter.add(1, attributes=self._labels(operation, error_type=error_type))

    def record_rate_limit_wait(self, wait_seconds: float) -> None:
        """Record a local wait for a rate-limit window to reset."""
        self.rate_limit_waits_counter.add(1)
        self.rate_limit_wait_histogram.record(wait_seconds)

    @contextmanager
    def operation_timer(
        self,
        operation: str,
        registry: str,
        *,
        labels: dict[str, str] | None = None,
    ) -> Generator[None, None, None]:
        """Time the enclosed block and count it as a success or failure.

        Example:
            >>> with metrics.operation_timer("list_tags", "hub.docker.com"):
            ...     tags = await fetch_tags()
        """
        started = time.monotonic()
        try:
            yield
        except BaseException:
            self.record_operation(operation, registry, success=False, labels=labels)
            raise
        else:
            self.record_operation(operation, registry, success=True, labels=labels)
        finally:
            self.record_duration(operation, registry, time.monotonic() - started, labels=labels)

    @contextmanager
    def create_span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[Span, None, None]:
        """Create a trace span for a registry operation.

        Args:
            name: Span name (``SPAN_AUTH`` or ``span_name(operation)``).
            attributes: Optional span attributes. None values are skipped.

        Yields:
            The created span for additional attribute setting.
        """
        with self._tracer.start_as_current_span(
            name, record_exception=False, set_status_on_exception=False
        ) as span:
            for key, value in (attributes or {}).items():
                if value is not None:
                    span.set_attribute(key, value)
            try:
                yield span
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, type(e).__name__))
                raise

    def span_name(self, operation: str) -> str:
        """Return the span name for a client operation."""
        return f"{self.SPAN_PREFIX}.{operation}"

    def _normalize_registry(self, registry: str) -> str:
        """Reduce an upstream URL to its hostname for metric labels.

        Example:
            >>> RegistryMetrics()._normalize_registry("https://hub.docker.com/v2")
            'hub.docker.com'
        """
        if "://" in registry:
            return urlparse(registry).hostname or registry
        return registry.split("/", 1)[0]


_default_metrics: RegistryMetrics | None = None


def get_registry_metrics() -> RegistryMetrics:
    """Get the default registry metrics instance."""
    global _default_metrics
    if _default_metrics is None:
        _default_metrics = RegistryMetrics()
    return _default_metrics


def set_registry_metrics(metrics_instance: RegistryMetrics | None) -> None:
    """Set the default registry metrics instance (for testing).

    Args:
        metrics_instance: RegistryMetrics instance or None to reset.
    """
    global _default_metrics
    _default_metrics = metrics_instance


__all__ = [
    "RegistryMetrics",
    "get_registry_metrics",
    "set_registry_metrics",
]
