"""Main entry point for the hubscope CLI.

Commands:
    hubscope search: Search repositories
    hubscope repo: Repository details
    hubscope tags: List tags
    hubscope manifest: Image manifest of a tag
    hubscope config: Image configuration of a tag
    hubscope vulns: Vulnerability scan of a tag
    hubscope dockerfile: Dockerfile of an automated build
    hubscope exists: Check whether a repository exists
    hubscope stats: Pull and star counts

Example:
    $ hubscope --help
    $ hubscope --config hubscope.yaml tags library/nginx --limit 10
    $ DOCKERHUB_ACCESS_TOKEN=... hubscope manifest myorg/api -t v2
"""

from __future__ import annotations

import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path

import click

from hubscope_core.cli.registry import COMMANDS
from hubscope_core.cli.utils import registry_error_exit
from hubscope_core.registry.errors import RegistryError
from hubscope_core.schemas.config import load_config
from hubscope_core.telemetry.logging import configure_logging


def _get_version() -> str:
    """Get the hubscope package version.

    Returns:
        Version string from package metadata, or 'unknown' if not installed.
    """
    try:
        return get_version("hubscope")
    except PackageNotFoundError:
        return "unknown"


@click.group(
    name="hubscope",
    help="hubscope - Inspect container images on Docker Hub and Registry v2 APIs.",
    epilog="Use 'hubscope <command> --help' for command-specific help.",
    context_settings={
        "help_option_names": ["-h", "--help"],
    },
)
@click.version_option(
    version=_get_version(),
    prog_name="hubscope",
    message="%(prog)s %(version)s",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML configuration file (default: $HUBSCOPE_CONFIG).",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Override the configured log level.",
)
@click.option(
    "--json-logs",
    is_flag=True,
    help="Emit logs as JSON on stderr.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Path | None,
    log_level: str | None,
    json_logs: bool,
) -> None:
    """Root command group for the hubscope CLI.

    Loads configuration once and shares it with subcommands through the
    click context.
    """
    ctx.ensure_object(dict)
    configure_logging(log_level or "info", json_output=json_logs)

    try:
        config = load_config(config_path)
    except RegistryError as e:
        registry_error_exit(e)

    if log_level is None:
        configure_logging(config.log_level, json_output=json_logs)
    ctx.obj["config"] = config


for command in COMMANDS:
    cli.add_command(command)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the hubscope CLI.

    Args:
        argv: Command-line arguments (uses sys.argv if None).
    """
    try:
        cli(args=argv, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
