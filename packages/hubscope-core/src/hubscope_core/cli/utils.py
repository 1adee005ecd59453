"""CLI utility functions and error handling.

This module provides shared utilities for the hubscope CLI:
- Exit code constants aligned with the registry error taxonomy
- Output helpers for consistent stderr/stdout usage

Errors are printed as plain text to stderr; command results go to stdout.

Example:
    from hubscope_core.cli.utils import error_exit, ExitCode

    error_exit("No private registry configured", exit_code=ExitCode.VALIDATION_ERROR)
"""

from __future__ import annotations

import sys
from enum import IntEnum
from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from typing import NoReturn

    from hubscope_core.registry.errors import RegistryError


class ExitCode(IntEnum):
    """Exit codes for CLI commands, one per registry error kind."""

    SUCCESS = 0
    """Command completed successfully."""

    GENERAL_ERROR = 1
    """General error (catch-all for failures)."""

    AUTHENTICATION_ERROR = 2
    """Registry rejected the configured credentials."""

    NOT_FOUND = 3
    """Repository, tag or resource not found."""

    FORBIDDEN = 4
    """Credentials lack permission for the resource."""

    NETWORK_ERROR = 5
    """Registry unreachable or returned a server error."""

    RATE_LIMITED = 6
    """Request budget exhausted."""

    VALIDATION_ERROR = 7
    """Invalid input or configuration."""


def error(message: str, **context: str | int | bool | None) -> None:
    """Print an error message to stderr.

    Example:
        error("Repository not found", repository="library/nginx")
        # Output: Error: Repository not found (repository=library/nginx)
    """
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
        full_message = f"Error: {message} ({context_str})"
    else:
        full_message = f"Error: {message}"

    click.echo(full_message, err=True)


def error_exit(
    message: str,
    exit_code: ExitCode = ExitCode.GENERAL_ERROR,
    **context: str | int | bool | None,
) -> NoReturn:
    """Print an error message to stderr and exit with a code.

    Raises:
        SystemExit: Always exits with the specified code.
    """
    error(message, **context)
    sys.exit(exit_code)


def registry_error_exit(exc: RegistryError) -> NoReturn:
    """Exit with the user-safe message and exit code of a registry error."""
    from hubscope_core.registry.errors import user_message

    try:
        exit_code = ExitCode(exc.exit_code)
    except ValueError:
        exit_code = ExitCode.GENERAL_ERROR
    error_exit(user_message(exc), exit_code=exit_code)


def success(message: str) -> None:
    """Print a result message to stdout."""
    click.echo(message)


__all__ = [
    "ExitCode",
    "error",
    "error_exit",
    "registry_error_exit",
    "success",
]
