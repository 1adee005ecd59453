"""Registry query commands.

Each command builds one RegistryClient from the loaded configuration, runs a
single operation and prints the result as text, or as JSON with
``--json-output``.

Example:
    $ hubscope search nginx --limit 5
    $ hubscope manifest library/alpine --tag 3.18 --json-output
    $ hubscope vulns myorg/api --tag latest
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

import click
from pydantic import BaseModel

from hubscope_core.cli.utils import registry_error_exit, success
from hubscope_core.registry.client import RegistryClient
from hubscope_core.registry.errors import RegistryError

if TYPE_CHECKING:
    from hubscope_core.schemas.config import HubConfig
    from hubscope_core.schemas.hub import (
        ImageConfig,
        Manifest,
        RepositoryDetails,
        SearchResponse,
        TagsResponse,
        VulnerabilityReport,
    )

T = TypeVar("T")

json_output_option = click.option(
    "--json-output",
    "json_output",
    is_flag=True,
    help="Output as JSON instead of formatted text.",
)
tag_option = click.option(
    "--tag",
    "-t",
    type=str,
    default="latest",
    show_default=True,
    help="Image tag.",
)


def build_client(config: HubConfig) -> RegistryClient:
    """Create the client used by a command invocation."""
    return RegistryClient.from_config(config)


def run_operation(
    ctx: click.Context,
    operation: Callable[[RegistryClient], Awaitable[T]],
) -> T:
    """Run one client operation to completion, exiting on registry errors."""
    config: HubConfig = ctx.obj["config"]

    async def _run() -> T:
        async with build_client(config) as client:
            return await operation(client)

    try:
        return asyncio.run(_run())
    except RegistryError as e:
        registry_error_exit(e)


def _echo_json(value: Any) -> None:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    success(json.dumps(value, indent=2, default=str))


# =============================================================================
# Hub metadata commands
# =============================================================================


@click.command(name="search", help="Search repositories by keyword.")
@click.argument("query")
@click.option("--limit", type=click.IntRange(1, 100), default=25, show_default=True)
@click.option("--page", type=click.IntRange(min=1), default=1, show_default=True)
@click.option(
    "--official/--not-official",
    "is_official",
    default=None,
    help="Only (or exclude) official images.",
)
@click.option(
    "--automated/--not-automated",
    "is_automated",
    default=None,
    help="Only (or exclude) automated builds.",
)
@json_output_option
@click.pass_context
def search_command(
    ctx: click.Context,
    query: str,
    limit: int,
    page: int,
    is_official: bool | None,
    is_automated: bool | None,
    json_output: bool,
) -> None:
    """Search repositories by keyword."""
    result: SearchResponse = run_operation(
        ctx,
        lambda client: client.search_images(query, limit, page, is_official, is_automated),
    )

    if json_output:
        _echo_json(result)
        return

    success(f"{result.count} repositories found")
    for hit in result.results:
        badge = " [official]" if hit.is_official else ""
        success(f"  {hit.display_name}{badge}  stars={hit.star_count} pulls={hit.pull_count}")
        if hit.short_description:
            success(f"      {hit.short_description}")


@click.command(name="repo", help="Show repository details.")
@click.argument("repository")
@json_output_option
@click.pass_context
def repo_command(ctx: click.Context, repository: str, json_output: bool) -> None:
    """Show repository details."""
    details: RepositoryDetails = run_operation(
        ctx, lambda client: client.get_repository_details(repository)
    )

    if json_output:
        _echo_json(details)
        return

    success(f"Repository:   {details.namespace}/{details.name}")
    if details.description:
        success(f"Description:  {details.description}")
    success(f"Stars:        {details.star_count}")
    success(f"Pulls:        {details.pull_count}")
    success(f"Private:      {details.is_private}")
    success(f"Automated:    {details.is_automated}")
    if details.last_updated:
        success(f"Last updated: {details.last_updated.isoformat()}")


@click.command(name="tags", help="List repository tags.")
@click.argument("repository")
@click.option("--limit", type=click.IntRange(1, 100), default=25, show_default=True)
@click.option("--page", type=click.IntRange(min=1), default=1, show_default=True)
@json_output_option
@click.pass_context
def tags_command(
    ctx: click.Context,
    repository: str,
    limit: int,
    page: int,
    json_output: bool,
) -> None:
    """List repository tags."""
    result: TagsResponse = run_operation(
        ctx, lambda client: client.list_tags(repository, limit, page)
    )

    if json_output:
        _echo_json(result)
        return

    success(f"{result.count} tags")
    for tag in result.results:
        updated = tag.last_updated.isoformat() if tag.last_updated else "-"
        success(f"  {tag.name:<30} {tag.full_size:>12} bytes  {updated}")


@click.command(name="vulns", help="Show the vulnerability scan of a tag.")
@click.argument("repository")
@tag_option
@json_output_option
@click.pass_context
def vulns_command(ctx: click.Context, repository: str, tag: str, json_output: bool) -> None:
    """Show the vulnerability scan of a tag."""
    report: VulnerabilityReport | None = run_operation(
        ctx, lambda client: client.get_vulnerabilities(repository, tag)
    )

    if json_output:
        _echo_json(report)
        return

    if report is None:
        success(f"No vulnerability scan available for {repository}:{tag}")
        return

    s = report.summary
    success(f"{report.namespace}/{report.repository}:{report.tag}")
    success(
        f"  total={s.total} critical={s.critical} high={s.high} "
        f"medium={s.medium} low={s.low} unknown={s.unknown}"
    )
    for vuln in report.vulnerabilities:
        package = f" ({vuln.package_name})" if vuln.package_name else ""
        success(f"  [{vuln.severity.value}] {vuln.id}{package}")


@click.command(name="dockerfile", help="Print the Dockerfile of an automated build.")
@click.argument("repository")
@tag_option
@click.pass_context
def dockerfile_command(ctx: click.Context, repository: str, tag: str) -> None:
    """Print the Dockerfile of an automated build."""
    contents: str | None = run_operation(
        ctx, lambda client: client.get_dockerfile(repository, tag)
    )
    if contents is None:
        success(f"No Dockerfile available for {repository}")
        return
    success(contents)


@click.command(name="exists", help="Check whether a repository exists.")
@click.argument("repository")
@json_output_option
@click.pass_context
def exists_command(ctx: click.Context, repository: str, json_output: bool) -> None:
    """Check whether a repository exists."""
    exists: bool = run_operation(ctx, lambda client: client.repository_exists(repository))

    if json_output:
        _echo_json({"repository": repository, "exists": exists})
    else:
        success(f"{repository}: {'exists' if exists else 'not found'}")


@click.command(name="stats", help="Show pull and star counts.")
@click.argument("repository")
@json_output_option
@click.pass_context
def stats_command(ctx: click.Context, repository: str, json_output: bool) -> None:
    """Show pull and star counts."""
    stats = run_operation(ctx, lambda client: client.get_statistics(repository))

    if json_output:
        _echo_json(stats)
    else:
        success(f"{repository}: pulls={stats.pull_count} stars={stats.star_count}")


# =============================================================================
# Registry v2 commands
# =============================================================================


@click.command(name="manifest", help="Show the image manifest of a tag.")
@click.argument("repository")
@tag_option
@json_output_option
@click.pass_context
def manifest_command(ctx: click.Context, repository: str, tag: str, json_output: bool) -> None:
    """Show the image manifest of a tag."""
    manifest: Manifest = run_operation(ctx, lambda client: client.get_manifest(repository, tag))

    if json_output:
        success(json.dumps(manifest.model_dump(mode="json", by_alias=True), indent=2))
        return

    success(f"Config: {manifest.config.digest} ({manifest.config.size} bytes)")
    success(f"Layers: {len(manifest.layers)} ({manifest.total_size} bytes)")
    for layer in manifest.layers:
        success(f"  {layer.digest}  {layer.size:>12} bytes")


@click.command(name="config", help="Show the image configuration of a tag.")
@click.argument("repository")
@tag_option
@json_output_option
@click.pass_context
def config_command(ctx: click.Context, repository: str, tag: str, json_output: bool) -> None:
    """Show the image configuration of a tag."""
    image: ImageConfig = run_operation(
        ctx, lambda client: client.get_image_config(repository, tag)
    )

    if json_output:
        success(json.dumps(image.model_dump(mode="json", by_alias=True), indent=2))
        return

    success(f"Platform:    {image.os}/{image.architecture}")
    if image.created:
        success(f"Created:     {image.created.isoformat()}")
    if image.config.entrypoint:
        success(f"Entrypoint:  {' '.join(image.config.entrypoint)}")
    if image.config.cmd:
        success(f"Cmd:         {' '.join(image.config.cmd)}")
    if image.config.working_dir:
        success(f"WorkingDir:  {image.config.working_dir}")
    if image.config.exposed_ports:
        success(f"Ports:       {', '.join(sorted(image.config.exposed_ports))}")
    success(f"Layers:      {len(image.rootfs.diff_ids)}")
    success(f"History:     {len(image.history)} steps")


COMMANDS = [
    search_command,
    repo_command,
    tags_command,
    manifest_command,
    config_command,
    vulns_command,
    dockerfile_command,
    exists_command,
    stats_command,
]

__all__ = ["COMMANDS", "build_client", "run_operation"]
