"""hubscope command-line interface."""

from __future__ import annotations

from hubscope_core.cli.main import cli, main

__all__ = ["cli", "main"]
