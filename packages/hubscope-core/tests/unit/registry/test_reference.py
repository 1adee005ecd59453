"""Unit tests for repository reference parsing."""

from __future__ import annotations

import pytest

from hubscope_core.registry.errors import ValidationError
from hubscope_core.registry.reference import RepositoryName, parse_repository


class TestParseRepository:
    """Tests for parse_repository."""

    @pytest.mark.requirement("FR-020")
    def test_bare_name_uses_official_namespace(self) -> None:
        """Test 'nginx' resolves to library/nginx."""
        assert parse_repository("nginx") == RepositoryName("library", "nginx")

    @pytest.mark.requirement("FR-020")
    def test_namespaced_name(self) -> None:
        """Test 'user/repo' splits into namespace and name."""
        ref = parse_repository("user/repo")

        assert ref.namespace == "user"
        assert ref.name == "repo"
        assert ref.path == "user/repo"

    @pytest.mark.requirement("FR-020")
    @pytest.mark.parametrize("reference", ["a/b/c", "", "/repo", "user/", "a//b"])
    def test_malformed_reference_rejected(self, reference: str) -> None:
        """Test extra segments and empty segments raise ValidationError."""
        with pytest.raises(ValidationError, match="Invalid repository format"):
            parse_repository(reference)

    @pytest.mark.requirement("FR-021")
    def test_pull_scope(self) -> None:
        """Test the pull scope names the full repository path."""
        assert parse_repository("alpine").pull_scope == "repository:library/alpine:pull"
