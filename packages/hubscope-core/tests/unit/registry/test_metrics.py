"""Unit tests for registry metrics instrumentation.

Requirements tested:
    FR-050: OpenTelemetry metrics are emitted for all registry operations
    FR-051: Metric names follow the hubscope_registry_ naming convention
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from hubscope_core.registry.metrics import (
    RegistryMetrics,
    get_registry_metrics,
    set_registry_metrics,
)


class TestRegistryMetricsNaming:
    """Tests for metric naming conventions."""

    @pytest.mark.requirement("FR-051")
    def test_metric_names_have_prefix(self) -> None:
        """All metric names start with the hubscope_registry_ prefix."""
        metric_names = [
            RegistryMetrics.OPERATIONS_TOTAL,
            RegistryMetrics.CACHE_OPERATIONS_TOTAL,
            RegistryMetrics.RETRIES_TOTAL,
            RegistryMetrics.RATE_LIMIT_WAITS_TOTAL,
            RegistryMetrics.OPERATION_DURATION_SECONDS,
            RegistryMetrics.RATE_LIMIT_WAIT_SECONDS,
        ]

        for name in metric_names:
            assert name.startswith("hubscope_registry_"), f"Metric {name} lacks prefix"

    @pytest.mark.requirement("FR-051")
    def test_span_names(self) -> None:
        """Operation spans are named hubscope.registry.<operation>."""
        metrics = RegistryMetrics()

        assert metrics.span_name("get_manifest") == "hubscope.registry.get_manifest"
        assert RegistryMetrics.SPAN_AUTH == "hubscope.registry.auth"


class TestRecording:
    """Tests for counters and histograms."""

    @pytest.mark.requirement("FR-050")
    def test_no_op_recording_is_safe(self) -> None:
        """Recording without an SDK configured does not raise."""
        metrics = RegistryMetrics()

        metrics.record_operation("search_images", "https://hub.docker.com/v2", success=True)
        metrics.record_duration("search_images", "hub.docker.com", 0.25)
        metrics.record_cache_operation("hit")
        metrics.record_retry("RegistryClient.get_manifest", "UpstreamServerError")
        metrics.record_rate_limit_wait(3.5)

    @pytest.mark.requirement("FR-050")
    def test_operation_labels(self) -> None:
        """record_operation labels by operation, hostname and status."""
        metrics = RegistryMetrics()
        counter = MagicMock()
        metrics._operations_counter = counter

        metrics.record_operation(
            "list_tags", "https://hub.docker.com/v2", success=False, labels={"page": "2"}
        )

        counter.add.assert_called_once_with(
            1,
            attributes={
                "operation": "list_tags",
                "registry": "hub.docker.com",
                "status": "failure",
                "page": "2",
            },
        )

    @pytest.mark.requirement("FR-050")
    def test_rate_limit_wait_recorded_twice(self) -> None:
        """A wait increments the counter and records its duration."""
        metrics = RegistryMetrics()
        metrics._rate_limit_waits_counter = MagicMock()
        metrics._rate_limit_wait_histogram = MagicMock()

        metrics.record_rate_limit_wait(12.0)

        metrics._rate_limit_waits_counter.add.assert_called_once_with(1)
        metrics._rate_limit_wait_histogram.record.assert_called_once_with(12.0)

    @pytest.mark.requirement("FR-050")
    @pytest.mark.parametrize(
        ("registry", "expected"),
        [
            ("https://registry-1.docker.io/v2", "registry-1.docker.io"),
            ("hub.docker.com", "hub.docker.com"),
            ("registry.example.com/v2", "registry.example.com"),
        ],
    )
    def test_registry_normalized_to_hostname(self, registry: str, expected: str) -> None:
        """Registry labels never contain scheme or path."""
        assert RegistryMetrics()._normalize_registry(registry) == expected


class TestOperationTimer:
    """Tests for operation_timer."""

    @pytest.mark.requirement("FR-050")
    def test_success_recorded(self) -> None:
        """A clean exit records duration and success."""
        metrics = RegistryMetrics()
        metrics._operations_counter = MagicMock()
        metrics._duration_histogram = MagicMock()

        with metrics.operation_timer("get_manifest", "registry-1.docker.io"):
            pass

        metrics._duration_histogram.record.assert_called_once()
        attributes = metrics._operations_counter.add.call_args.kwargs["attributes"]
        assert attributes["status"] == "success"

    @pytest.mark.requirement("FR-050")
    def test_failure_recorded_and_reraised(self) -> None:
        """An exception records failure and propagates."""
        metrics = RegistryMetrics()
        metrics._operations_counter = MagicMock()
        metrics._duration_histogram = MagicMock()

        with pytest.raises(ValueError, match="bad"):
            with metrics.operation_timer("get_manifest", "registry-1.docker.io"):
                raise ValueError("bad")

        attributes = metrics._operations_counter.add.call_args.kwargs["attributes"]
        assert attributes["status"] == "failure"


class TestCreateSpan:
    """Tests for create_span."""

    @pytest.mark.requirement("FR-050")
    def test_none_attributes_skipped(self) -> None:
        """Attributes with None values are not set on the span."""
        metrics = RegistryMetrics()
        span = MagicMock()
        tracer = MagicMock()
        tracer.start_as_current_span.return_value.__enter__.return_value = span
        metrics._tracer = tracer

        attributes = {"auth.scope": None, "auth.service": "x"}
        with metrics.create_span("hubscope.registry.auth", attributes):
            pass

        span.set_attribute.assert_called_once_with("auth.service", "x")

    @pytest.mark.requirement("FR-050")
    def test_exception_marks_span_error(self) -> None:
        """A failing block records the exception on the span."""
        metrics = RegistryMetrics()
        span = MagicMock()
        tracer = MagicMock()
        tracer.start_as_current_span.return_value.__enter__.return_value = span
        metrics._tracer = tracer

        with pytest.raises(RuntimeError):
            with metrics.create_span("hubscope.registry.get_manifest"):
                raise RuntimeError("boom")

        span.set_status.assert_called_once()
        span.record_exception.assert_called_once()


class TestDefaultInstance:
    """Tests for the module-level default collector."""

    @pytest.mark.requirement("FR-050")
    def test_get_and_set(self) -> None:
        """get_registry_metrics returns a stable instance that can be replaced."""
        custom = RegistryMetrics()
        try:
            set_registry_metrics(custom)
            assert get_registry_metrics() is custom

            set_registry_metrics(None)
            first = get_registry_metrics()
            assert first is get_registry_metrics()
            assert first is not custom
        finally:
            set_registry_metrics(None)
