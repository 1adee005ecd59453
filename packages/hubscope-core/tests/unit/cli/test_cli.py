"""Unit tests for the hubscope CLI.

These tests verify:
- Configuration loading and logging setup in the root group
- Text and --json-output rendering for each registry command
- Exit codes derived from registry error kinds
"""

from __future__ import annotations

import json
from collections.abc import Generator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from hubscope_core.cli.main import cli, main
from hubscope_core.cli.utils import ExitCode
from hubscope_core.registry.errors import (
    AuthenticationError,
    NotFoundError,
    RateLimitError,
    UpstreamServerError,
    ValidationError,
)
from hubscope_core.schemas.config import HubConfig
from hubscope_core.schemas.hub import (
    Manifest,
    RepositoryDetails,
    RepositoryStatistics,
    SearchResponse,
    VulnerabilityReport,
)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def mock_logging() -> Generator[MagicMock, None, None]:
    """Keep CLI invocations from reconfiguring structlog."""
    with patch("hubscope_core.cli.main.configure_logging") as mock_configure:
        yield mock_configure


@pytest.fixture
def mock_client(mock_logging: MagicMock) -> Generator[MagicMock, None, None]:
    """Patch build_client with an async context manager fake.

    Configuration is loaded from an empty environment.
    """
    client = MagicMock()
    client.__aenter__.return_value = client
    client.__aexit__.return_value = None

    with (
        patch(
            "hubscope_core.cli.main.load_config",
            side_effect=lambda path=None: HubConfig(),
        ),
        patch("hubscope_core.cli.registry.build_client", return_value=client),
    ):
        yield client


def _invoke(runner: CliRunner, *args: str) -> Any:
    return runner.invoke(cli, ["--log-level", "error", *args])


class TestRootGroup:
    """Tests for the root command group."""

    @pytest.mark.requirement("FR-100")
    def test_help_lists_commands(self, cli_runner: CliRunner) -> None:
        """Test every registry command is registered."""
        result = cli_runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for name in (
            "search",
            "repo",
            "tags",
            "manifest",
            "config",
            "vulns",
            "dockerfile",
            "exists",
            "stats",
        ):
            assert name in result.output

    @pytest.mark.requirement("FR-100")
    def test_version(self, cli_runner: CliRunner) -> None:
        """Test --version prints the program name."""
        result = cli_runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "hubscope" in result.output

    @pytest.mark.requirement("FR-100")
    def test_log_level_option_configures_logging(
        self, cli_runner: CliRunner, mock_client: MagicMock, mock_logging: MagicMock
    ) -> None:
        """Test --log-level wins over the configured level."""
        mock_client.repository_exists = AsyncMock(return_value=True)

        result = cli_runner.invoke(cli, ["--log-level", "debug", "exists", "nginx"])

        assert result.exit_code == 0
        mock_logging.assert_called_once_with("debug", json_output=False)

    @pytest.mark.requirement("FR-100")
    def test_configured_level_applied(
        self, cli_runner: CliRunner, mock_logging: MagicMock, tmp_path: Path
    ) -> None:
        """Test the file's log_level is applied when no option is given."""
        path = tmp_path / "hubscope.yaml"
        path.write_text("log_level: warning\n")
        client = MagicMock()
        client.__aenter__.return_value = client
        client.repository_exists = AsyncMock(return_value=True)

        with patch("hubscope_core.cli.registry.build_client", return_value=client):
            result = cli_runner.invoke(
                cli, ["--json-logs", "--config", str(path), "exists", "nginx"]
            )

        assert result.exit_code == 0
        assert mock_logging.call_args_list[-1].args == ("warning",)
        assert mock_logging.call_args_list[-1].kwargs == {"json_output": True}

    @pytest.mark.requirement("FR-100")
    def test_invalid_config_file(
        self, cli_runner: CliRunner, mock_logging: MagicMock, tmp_path: Path
    ) -> None:
        """Test an invalid config file exits with VALIDATION_ERROR."""
        path = tmp_path / "hubscope.yaml"
        path.write_text("rate_limit:\n  max_requests: lots\n")

        result = cli_runner.invoke(cli, ["--config", str(path), "exists", "nginx"])

        assert result.exit_code == ExitCode.VALIDATION_ERROR
        assert "Invalid configuration" in result.output

    @pytest.mark.requirement("FR-100")
    def test_main_exits_on_usage_error(self, mock_logging: MagicMock) -> None:
        """Test main() turns click usage errors into exit codes."""
        with pytest.raises(SystemExit) as exc_info:
            main(["no-such-command"])

        assert exc_info.value.code == 2


class TestHubCommands:
    """Tests for Hub metadata commands."""

    @pytest.mark.requirement("FR-101")
    def test_search_text(self, cli_runner: CliRunner, mock_client: MagicMock) -> None:
        """Test search prints the count and each hit."""
        mock_client.search_images = AsyncMock(
            return_value=SearchResponse.model_validate(
                {
                    "count": 1,
                    "results": [
                        {
                            "repo_name": "nginx",
                            "is_official": True,
                            "star_count": 5,
                            "pull_count": 9,
                            "short_description": "Official build of Nginx.",
                        }
                    ],
                }
            )
        )

        result = _invoke(cli_runner, "search", "nginx", "--limit", "5", "--official")

        assert result.exit_code == 0, result.output
        assert "1 repositories found" in result.output
        assert "nginx [official]" in result.output
        mock_client.search_images.assert_awaited_once_with("nginx", 5, 1, True, None)

    @pytest.mark.requirement("FR-101")
    def test_repo_json(self, cli_runner: CliRunner, mock_client: MagicMock) -> None:
        """Test --json-output dumps the repository model."""
        mock_client.get_repository_details = AsyncMock(
            return_value=RepositoryDetails(namespace="library", name="nginx", star_count=3)
        )

        result = _invoke(cli_runner, "repo", "nginx", "--json-output")

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["namespace"] == "library"
        assert payload["star_count"] == 3

    @pytest.mark.requirement("FR-101")
    def test_vulns_without_scan(self, cli_runner: CliRunner, mock_client: MagicMock) -> None:
        """Test a missing scan is reported rather than treated as an error."""
        mock_client.get_vulnerabilities = AsyncMock(return_value=None)

        result = _invoke(cli_runner, "vulns", "nginx", "--tag", "1.25")

        assert result.exit_code == 0
        assert "No vulnerability scan available for nginx:1.25" in result.output

    @pytest.mark.requirement("FR-101")
    def test_vulns_summary(self, cli_runner: CliRunner, mock_client: MagicMock) -> None:
        """Test the per-severity summary line."""
        mock_client.get_vulnerabilities = AsyncMock(
            return_value=VulnerabilityReport.from_scan(
                {
                    "vulnerability_count": 1,
                    "high_vulnerability_count": 1,
                    "vulnerabilities": [
                        {"id": "CVE-2023-0002", "severity": "high", "package_name": "openssl"}
                    ],
                },
                "library",
                "nginx",
                "latest",
            )
        )

        result = _invoke(cli_runner, "vulns", "nginx")

        assert result.exit_code == 0
        assert "total=1 critical=0 high=1" in result.output
        assert "[high] CVE-2023-0002 (openssl)" in result.output

    @pytest.mark.requirement("FR-101")
    def test_dockerfile_missing(self, cli_runner: CliRunner, mock_client: MagicMock) -> None:
        """Test a repository without a Dockerfile."""
        mock_client.get_dockerfile = AsyncMock(return_value=None)

        result = _invoke(cli_runner, "dockerfile", "myorg/app")

        assert result.exit_code == 0
        assert "No Dockerfile available for myorg/app" in result.output

    @pytest.mark.requirement("FR-101")
    @pytest.mark.parametrize(("exists", "text"), [(True, "exists"), (False, "not found")])
    def test_exists_text(
        self, cli_runner: CliRunner, mock_client: MagicMock, exists: bool, text: str
    ) -> None:
        """Test both outcomes of exists."""
        mock_client.repository_exists = AsyncMock(return_value=exists)

        result = _invoke(cli_runner, "exists", "myorg/app")

        assert result.exit_code == 0
        assert f"myorg/app: {text}" in result.output

    @pytest.mark.requirement("FR-101")
    def test_exists_json(self, cli_runner: CliRunner, mock_client: MagicMock) -> None:
        """Test exists --json-output."""
        mock_client.repository_exists = AsyncMock(return_value=False)

        result = _invoke(cli_runner, "exists", "myorg/app", "--json-output")

        assert json.loads(result.output) == {"repository": "myorg/app", "exists": False}

    @pytest.mark.requirement("FR-101")
    def test_stats(self, cli_runner: CliRunner, mock_client: MagicMock) -> None:
        """Test stats prints pull and star counts."""
        mock_client.get_statistics = AsyncMock(
            return_value=RepositoryStatistics(pull_count=1000, star_count=12)
        )

        result = _invoke(cli_runner, "stats", "nginx")

        assert result.exit_code == 0
        assert "nginx: pulls=1000 stars=12" in result.output


class TestRegistryCommands:
    """Tests for Registry v2 commands."""

    @pytest.mark.requirement("FR-102")
    def test_manifest_text(self, cli_runner: CliRunner, mock_client: MagicMock) -> None:
        """Test manifest prints the config digest and layers."""
        mock_client.get_manifest = AsyncMock(
            return_value=Manifest.model_validate(
                {
                    "schemaVersion": 2,
                    "config": {"mediaType": "x", "size": 10, "digest": "sha256:cfg"},
                    "layers": [{"mediaType": "y", "size": 20, "digest": "sha256:l1"}],
                }
            )
        )

        result = _invoke(cli_runner, "manifest", "alpine", "-t", "3.18")

        assert result.exit_code == 0, result.output
        assert "Config: sha256:cfg (10 bytes)" in result.output
        assert "Layers: 1 (20 bytes)" in result.output
        mock_client.get_manifest.assert_awaited_once_with("alpine", "3.18")

    @pytest.mark.requirement("FR-102")
    def test_manifest_json_uses_aliases(
        self, cli_runner: CliRunner, mock_client: MagicMock
    ) -> None:
        """Test JSON output keeps the registry's field names."""
        mock_client.get_manifest = AsyncMock(
            return_value=Manifest.model_validate(
                {
                    "schemaVersion": 2,
                    "config": {"mediaType": "x", "size": 10, "digest": "sha256:cfg"},
                }
            )
        )

        result = _invoke(cli_runner, "manifest", "alpine", "--json-output")

        payload = json.loads(result.output)
        assert payload["schemaVersion"] == 2
        assert payload["config"]["mediaType"] == "x"


class TestExitCodes:
    """Tests for error reporting."""

    @pytest.mark.requirement("FR-103")
    @pytest.mark.parametrize(
        ("error", "exit_code"),
        [
            (AuthenticationError(), ExitCode.AUTHENTICATION_ERROR),
            (NotFoundError("Repository not found", 404), ExitCode.NOT_FOUND),
            (UpstreamServerError("Registry internal server error", 500), ExitCode.NETWORK_ERROR),
            (RateLimitError(), ExitCode.RATE_LIMITED),
            (ValidationError("Invalid repository name"), ExitCode.VALIDATION_ERROR),
        ],
    )
    def test_registry_errors_map_to_exit_codes(
        self,
        cli_runner: CliRunner,
        mock_client: MagicMock,
        error: Exception,
        exit_code: ExitCode,
    ) -> None:
        """Test each error kind exits with its own code and an Error: line."""
        mock_client.get_repository_details = AsyncMock(side_effect=error)

        result = _invoke(cli_runner, "repo", "nginx")

        assert result.exit_code == exit_code
        assert "Error:" in result.output
