"""Unit tests for structured logging with trace context.

Tests add_trace_context injection and configure_logging level handling.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest
import structlog
from opentelemetry.sdk.trace import TracerProvider

from hubscope_core.telemetry.logging import add_trace_context, configure_logging


@pytest.fixture
def reset_structlog() -> Generator[None, None, None]:
    """Restore structlog defaults after a test configures it."""
    yield
    structlog.reset_defaults()


class TestAddTraceContext:
    """Tests for the add_trace_context processor."""

    @pytest.mark.requirement("FR-110")
    def test_no_active_span(self) -> None:
        """Test events outside a span are left untouched."""
        event = add_trace_context(None, "info", {"event": "cache_hit"})

        assert event == {"event": "cache_hit"}

    @pytest.mark.requirement("FR-110")
    def test_active_span(self) -> None:
        """Test trace_id and span_id are injected as zero-padded hex."""
        tracer = TracerProvider().get_tracer(__name__)

        with tracer.start_as_current_span("hubscope.registry.get_manifest") as span:
            event = add_trace_context(None, "info", {"event": "manifest_fetched"})
            ctx = span.get_span_context()

        assert event["trace_id"] == format(ctx.trace_id, "032x")
        assert event["span_id"] == format(ctx.span_id, "016x")
        assert len(event["trace_id"]) == 32
        assert len(event["span_id"]) == 16


class TestConfigureLogging:
    """Tests for configure_logging."""

    @pytest.mark.requirement("FR-111")
    @pytest.mark.parametrize("level", ["debug", "INFO", "warning", "warn", "ERROR"])
    def test_accepted_levels(self, level: str, reset_structlog: None) -> None:
        """Test level names are case-insensitive and warn is an alias."""
        configure_logging(log_level=level, json_output=False)

        assert add_trace_context in structlog.get_config()["processors"]

    @pytest.mark.requirement("FR-111")
    def test_unknown_level(self) -> None:
        """Test an unknown level name is rejected."""
        with pytest.raises(ValueError, match="Unknown log level"):
            configure_logging(log_level="chatty")

    @pytest.mark.requirement("FR-111")
    def test_filtering(self, reset_structlog: None, capsys: pytest.CaptureFixture[str]) -> None:
        """Test events below the level are dropped and JSON goes to stderr."""
        configure_logging(log_level="warning", json_output=True)
        log = structlog.get_logger("hubscope.test")

        log.info("rate_limit_updated")
        log.warning("rate_limit_wait", wait_seconds=5)

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "rate_limit_updated" not in captured.err
        assert '"event": "rate_limit_wait"' in captured.err
        assert '"level": "warning"' in captured.err
