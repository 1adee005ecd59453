"""Unit tests for Hub API and Registry v2 payload schemas."""

from __future__ import annotations

from typing import Any

import pytest
from pydantic import ValidationError as PydanticValidationError

from hubscope_core.schemas.hub import (
    ImageConfig,
    Manifest,
    RepositoryStatistics,
    SearchResponse,
    Severity,
    TagsResponse,
    TokenResponse,
    Vulnerability,
    VulnerabilityReport,
)

MANIFEST_PAYLOAD: dict[str, Any] = {
    "schemaVersion": 2,
    "mediaType": "application/vnd.docker.distribution.manifest.v2+json",
    "config": {
        "mediaType": "application/vnd.docker.container.image.v1+json",
        "size": 1472,
        "digest": "sha256:c1aabb73d2339c5ebaa3681de2e9d9c18d57485045a4e311d9f8004bec208d67",
    },
    "layers": [
        {
            "mediaType": "application/vnd.docker.image.rootfs.diff.tar.gzip",
            "size": 3408729,
            "digest": "sha256:31e352740f534f9ad170f75378a84fe453d6156e40700b882d737a8f4a6988a3",
        },
        {
            "mediaType": "application/vnd.docker.image.rootfs.diff.tar.gzip",
            "size": 1024,
            "digest": "sha256:aa11",
        },
    ],
}


class TestSearchAndTags:
    """Tests for Hub listing payloads."""

    @pytest.mark.requirement("FR-080")
    def test_search_ignores_unknown_fields(self) -> None:
        """Test upstream additions do not break parsing."""
        response = SearchResponse.model_validate(
            {
                "count": 1,
                "results": [{"repo_name": "nginx", "star_count": 10, "brand_new": True}],
            }
        )

        assert response.results[0].display_name == "nginx"
        assert response.results[0].star_count == 10

    @pytest.mark.requirement("FR-080")
    def test_search_requires_count(self) -> None:
        """Test missing required fields fail fast."""
        with pytest.raises(PydanticValidationError):
            SearchResponse.model_validate({"results": []})

    @pytest.mark.requirement("FR-080")
    def test_tags_parse(self) -> None:
        """Test tag listings with per-platform images."""
        response = TagsResponse.model_validate(
            {
                "count": 1,
                "next": None,
                "results": [
                    {
                        "name": "3.18",
                        "full_size": 3400000,
                        "images": [{"architecture": "amd64", "os": "linux", "size": 3400000}],
                    }
                ],
            }
        )

        assert response.results[0].name == "3.18"
        assert response.results[0].images[0].architecture == "amd64"


class TestManifest:
    """Tests for Manifest and ImageConfig."""

    @pytest.mark.requirement("FR-081")
    def test_aliases_and_total_size(self) -> None:
        """Test camelCase aliases and the summed layer size."""
        manifest = Manifest.model_validate(MANIFEST_PAYLOAD)

        assert manifest.schema_version == 2
        assert manifest.config.size == 1472
        assert manifest.total_size == 3408729 + 1024

    @pytest.mark.requirement("FR-081")
    def test_missing_config_rejected(self) -> None:
        """Test a manifest without a config descriptor is invalid."""
        payload = {k: v for k, v in MANIFEST_PAYLOAD.items() if k != "config"}

        with pytest.raises(PydanticValidationError):
            Manifest.model_validate(payload)

    @pytest.mark.requirement("FR-081")
    def test_bad_digest_rejected(self) -> None:
        """Test descriptor digests must be algorithm:hex."""
        payload = {**MANIFEST_PAYLOAD, "config": {"mediaType": "x", "size": 1, "digest": "nope"}}

        with pytest.raises(PydanticValidationError):
            Manifest.model_validate(payload)

    @pytest.mark.requirement("FR-081")
    def test_image_config(self) -> None:
        """Test the config blob's capitalized container fields."""
        config = ImageConfig.model_validate(
            {
                "architecture": "amd64",
                "os": "linux",
                "config": {"Env": ["PATH=/usr/bin"], "Cmd": ["/bin/sh"]},
                "rootfs": {"type": "layers", "diff_ids": ["sha256:aa"]},
                "history": [{"created_by": "ADD file:abc in /"}],
            }
        )

        assert config.config.cmd == ["/bin/sh"]
        assert config.config.env == ["PATH=/usr/bin"]
        assert config.rootfs.diff_ids == ["sha256:aa"]
        assert config.history[0].empty_layer is False


class TestVulnerabilities:
    """Tests for vulnerability parsing."""

    @pytest.mark.requirement("FR-082")
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("CRITICAL", Severity.CRITICAL),
            ("high", Severity.HIGH),
            ("Medium", Severity.MEDIUM),
            ("negligible", Severity.UNKNOWN),
        ],
    )
    def test_severity_coercion(self, raw: str, expected: Severity) -> None:
        """Test labels are case-insensitive and unknown labels bucket to UNKNOWN."""
        assert Vulnerability.model_validate({"id": "CVE-1", "severity": raw}).severity == expected

    @pytest.mark.requirement("FR-082")
    def test_report_from_scan(self) -> None:
        """Test counts are kept distinct per severity."""
        report = VulnerabilityReport.from_scan(
            {
                "vulnerability_count": 3,
                "critical_vulnerability_count": 1,
                "high_vulnerability_count": 2,
                "medium_vulnerability_count": None,
                "vulnerabilities": [
                    {"id": "CVE-2023-0001", "severity": "critical"},
                    {"id": "CVE-2023-0002", "severity": "high"},
                    {"id": "CVE-2023-0003", "severity": "high"},
                ],
            },
            namespace="library",
            repository="nginx",
            tag="latest",
        )

        assert report.summary.total == 3
        assert report.summary.critical == 1
        assert report.summary.high == 2
        assert report.summary.medium == 0
        assert [v.id for v in report.vulnerabilities][0] == "CVE-2023-0001"

    @pytest.mark.requirement("FR-082")
    def test_empty_scan(self) -> None:
        """Test a scan without findings yields an all-zero summary."""
        report = VulnerabilityReport.from_scan({}, "library", "alpine", "3.18")

        assert report.summary.total == 0
        assert report.vulnerabilities == []


class TestTokenResponse:
    """Tests for TokenResponse."""

    @pytest.mark.requirement("FR-083")
    def test_token_field(self) -> None:
        """Test the Docker-style token field."""
        token = TokenResponse.from_payload({"token": "abc", "expires_in": 300})

        assert token.token == "abc"
        assert token.expires_in == 300

    @pytest.mark.requirement("FR-083")
    def test_access_token_field(self) -> None:
        """Test the OAuth2-style access_token field."""
        assert TokenResponse.from_payload({"access_token": "xyz"}).token == "xyz"

    @pytest.mark.requirement("FR-083")
    def test_missing_token_rejected(self) -> None:
        """Test a payload without any token is invalid."""
        with pytest.raises(PydanticValidationError):
            TokenResponse.from_payload({"expires_in": 300})


class TestRepositoryStatistics:
    """Tests for RepositoryStatistics."""

    @pytest.mark.requirement("FR-084")
    def test_defaults(self) -> None:
        """Test counts default to zero."""
        stats = RepositoryStatistics()

        assert stats.pull_count == 0
        assert stats.star_count == 0

    @pytest.mark.requirement("FR-084")
    def test_negative_rejected(self) -> None:
        """Test counts cannot be negative."""
        with pytest.raises(PydanticValidationError):
            RepositoryStatistics(pull_count=-1)
