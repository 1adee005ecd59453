"""Repository reference parsing.

A repository reference is ``name`` or ``namespace/name``. Single-segment names
belong to the official images namespace.

Example:
    >>> parse_repository("nginx")
    RepositoryName(namespace='library', name='nginx')
    >>> parse_repository("user/repo").path
    'user/repo'
"""

from __future__ import annotations

from typing import NamedTuple

from hubscope_core.registry.errors import ValidationError
from hubscope_core.schemas.hub import OFFICIAL_NAMESPACE


class RepositoryName(NamedTuple):
    """Parsed ``(namespace, name)`` pair."""

    namespace: str
    name: str

    @property
    def path(self) -> str:
        """Return ``namespace/name``."""
        return f"{self.namespace}/{self.name}"

    @property
    def pull_scope(self) -> str:
        """Return the token scope granting pull access to this repository."""
        return f"repository:{self.path}:pull"


def parse_repository(repository: str) -> RepositoryName:
    """Split a repository reference into namespace and name.

    Args:
        repository: ``name`` or ``namespace/name``.

    Returns:
        RepositoryName with the official namespace filled in for bare names.

    Raises:
        ValidationError: If the reference has more than one ``/`` or an
            empty segment.
    """
    parts = repository.split("/")

    if len(parts) > 2 or any(not part for part in parts):
        raise ValidationError(f"Invalid repository format: {repository}")

    if len(parts) == 1:
        return RepositoryName(OFFICIAL_NAMESPACE, parts[0])
    return RepositoryName(parts[0], parts[1])


__all__ = ["RepositoryName", "parse_repository"]
