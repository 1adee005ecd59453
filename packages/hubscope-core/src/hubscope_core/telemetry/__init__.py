"""Telemetry helpers: structured logging with trace correlation."""

from __future__ import annotations

from hubscope_core.telemetry.logging import add_trace_context, configure_logging

__all__ = ["add_trace_context", "configure_logging"]
