"""Payload schemas for Hub API and Registry v2 responses.

Every upstream payload is parsed into one of these models at the client
boundary. Unknown fields are ignored so upstream additions do not break
parsing, but missing required fields fail fast.

Media Types:
    MANIFEST_V2_MEDIA_TYPE: application/vnd.docker.distribution.manifest.v2+json
    IMAGE_CONFIG_MEDIA_TYPE: application/vnd.docker.container.image.v1+json
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# =============================================================================
# Constants
# =============================================================================

MANIFEST_V2_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.v2+json"
"""Media type requested for image manifests."""

IMAGE_CONFIG_MEDIA_TYPE = "application/vnd.docker.container.image.v1+json"
"""Media type requested for image config blobs."""

OFFICIAL_NAMESPACE = "library"
"""Reserved namespace for official images."""

_UPSTREAM = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


# =============================================================================
# Hub API: search
# =============================================================================


class SearchResult(BaseModel):
    """A single hit from /search/repositories/."""

    model_config = _UPSTREAM

    repo_name: str | None = None
    name: str | None = None
    short_description: str | None = None
    description: str | None = None
    star_count: int = 0
    pull_count: int = 0
    repo_owner: str | None = None
    is_automated: bool = False
    is_official: bool = False
    is_trusted: bool = False
    last_updated: datetime | None = None

    @property
    def display_name(self) -> str:
        """Return the best available repository name."""
        return self.repo_name or self.name or ""


class SearchResponse(BaseModel):
    """Paginated search results.

    Examples:
        >>> SearchResponse.model_validate({"count": 0, "results": []}).count
        0
    """

    model_config = _UPSTREAM

    count: int = Field(..., ge=0)
    next: str | None = None
    previous: str | None = None
    results: list[SearchResult] = Field(default_factory=list)


# =============================================================================
# Hub API: repositories and tags
# =============================================================================


class RepositoryDetails(BaseModel):
    """Repository metadata from /repositories/{namespace}/{name}/."""

    model_config = _UPSTREAM

    namespace: str
    name: str
    user: str | None = None
    repository_type: str | None = None
    status: int | None = None
    description: str | None = None
    full_description: str | None = None
    is_private: bool = False
    is_automated: bool = False
    can_edit: bool = False
    star_count: int = 0
    pull_count: int = 0
    last_updated: datetime | None = None
    date_registered: datetime | None = None
    affiliation: str | None = None
    media_types: list[str] = Field(default_factory=list)
    content_types: list[str] = Field(default_factory=list)
    categories: list[Any] = Field(default_factory=list)


class RepositoryStatistics(BaseModel):
    """Download and star counts of a repository."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    pull_count: int = Field(default=0, ge=0)
    star_count: int = Field(default=0, ge=0)


class TagImage(BaseModel):
    """Per-platform image entry inside a tag."""

    model_config = _UPSTREAM

    architecture: str | None = None
    os: str | None = None
    variant: str | None = None
    features: str | None = None
    os_features: str | None = None
    os_version: str | None = None
    digest: str | None = None
    size: int = 0
    status: str | None = None
    last_pulled: datetime | None = None
    last_pushed: datetime | None = None


class Tag(BaseModel):
    """A repository tag."""

    model_config = _UPSTREAM

    name: str
    full_size: int = 0
    digest: str | None = None
    v2: bool = True
    tag_status: str | None = None
    media_type: str | None = None
    content_type: str | None = None
    last_updated: datetime | None = None
    tag_last_pulled: datetime | None = None
    tag_last_pushed: datetime | None = None
    images: list[TagImage] = Field(default_factory=list)


class TagsResponse(BaseModel):
    """Paginated tag listing."""

    model_config = _UPSTREAM

    count: int = Field(..., ge=0)
    next: str | None = None
    previous: str | None = None
    results: list[Tag] = Field(default_factory=list)


# =============================================================================
# Registry v2: manifests and config blobs
# =============================================================================


class Descriptor(BaseModel):
    """Content descriptor (config or layer) in a manifest."""

    model_config = _UPSTREAM

    media_type: str = Field(..., alias="mediaType")
    size: int = Field(..., ge=0)
    digest: str = Field(..., pattern=r"^[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-zA-Z0-9=_-]+$")


class Manifest(BaseModel):
    """Image manifest (schema 2).

    Examples:
        >>> m = Manifest.model_validate({
        ...     "schemaVersion": 2,
        ...     "config": {"mediaType": "x", "size": 1, "digest": "sha256:ab"},
        ...     "layers": [],
        ... })
        >>> m.total_size
        0
    """

    model_config = _UPSTREAM

    schema_version: int = Field(..., alias="schemaVersion")
    media_type: str | None = Field(default=None, alias="mediaType")
    config: Descriptor
    layers: list[Descriptor] = Field(default_factory=list)

    @property
    def total_size(self) -> int:
        """Sum of compressed layer sizes in bytes."""
        return sum(layer.size for layer in self.layers)


class ContainerConfig(BaseModel):
    """Runtime configuration embedded in the image config blob."""

    model_config = _UPSTREAM

    env: list[str] | None = Field(default=None, alias="Env")
    cmd: list[str] | None = Field(default=None, alias="Cmd")
    entrypoint: list[str] | None = Field(default=None, alias="Entrypoint")
    working_dir: str | None = Field(default=None, alias="WorkingDir")
    user: str | None = Field(default=None, alias="User")
    exposed_ports: dict[str, Any] | None = Field(default=None, alias="ExposedPorts")
    labels: dict[str, str] | None = Field(default=None, alias="Labels")


class RootFS(BaseModel):
    """Layer diff IDs of the image filesystem."""

    model_config = _UPSTREAM

    type: str
    diff_ids: list[str] = Field(default_factory=list)


class HistoryEntry(BaseModel):
    """One build step from the image history."""

    model_config = _UPSTREAM

    created: datetime | None = None
    created_by: str | None = None
    comment: str | None = None
    empty_layer: bool = False


class ImageConfig(BaseModel):
    """Image config blob (application/vnd.docker.container.image.v1+json)."""

    model_config = _UPSTREAM

    architecture: str
    os: str
    created: datetime | None = None
    config: ContainerConfig = Field(default_factory=ContainerConfig)
    rootfs: RootFS
    history: list[HistoryEntry] = Field(default_factory=list)


# =============================================================================
# Vulnerability scans
# =============================================================================


class Severity(str, Enum):
    """Vulnerability severity buckets, kept distinct."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"


class Vulnerability(BaseModel):
    """A single finding from a scan."""

    model_config = _UPSTREAM

    id: str
    severity: Severity = Severity.UNKNOWN
    title: str | None = None
    description: str | None = None
    package_name: str | None = None
    package_version: str | None = None
    fix_version: str | None = None
    link: str | None = None

    @field_validator("severity", mode="before")
    @classmethod
    def coerce_severity(cls, v: Any) -> Any:
        """Map unrecognized severity labels to UNKNOWN."""
        if isinstance(v, str):
            try:
                return Severity(v.lower())
            except ValueError:
                return Severity.UNKNOWN
        return v


class VulnerabilitySummary(BaseModel):
    """Finding counts per severity."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    total: int = Field(default=0, ge=0)
    critical: int = Field(default=0, ge=0)
    high: int = Field(default=0, ge=0)
    medium: int = Field(default=0, ge=0)
    low: int = Field(default=0, ge=0)
    unknown: int = Field(default=0, ge=0)


class VulnerabilityReport(BaseModel):
    """Normalized scan report for one tag."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    namespace: str
    repository: str
    tag: str
    summary: VulnerabilitySummary
    vulnerabilities: list[Vulnerability] = Field(default_factory=list)

    @classmethod
    def from_scan(
        cls,
        scan: dict[str, Any],
        namespace: str,
        repository: str,
        tag: str,
    ) -> VulnerabilityReport:
        """Build a report from the raw /scan/ payload."""
        summary = VulnerabilitySummary(
            total=scan.get("vulnerability_count") or 0,
            critical=scan.get("critical_vulnerability_count") or 0,
            high=scan.get("high_vulnerability_count") or 0,
            medium=scan.get("medium_vulnerability_count") or 0,
            low=scan.get("low_vulnerability_count") or 0,
            unknown=scan.get("unknown_vulnerability_count") or 0,
        )
        return cls(
            namespace=namespace,
            repository=repository,
            tag=tag,
            summary=summary,
            vulnerabilities=[
                Vulnerability.model_validate(v) for v in scan.get("vulnerabilities") or []
            ],
        )


# =============================================================================
# Token endpoint
# =============================================================================


class TokenResponse(BaseModel):
    """Response from a bearer token endpoint."""

    model_config = _UPSTREAM

    token: str = Field(..., min_length=1)
    expires_in: int | None = Field(default=None, ge=0)
    issued_at: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TokenResponse:
        """Accept either 'token' or the OAuth2-style 'access_token' field."""
        if "token" not in payload and "access_token" in payload:
            payload = {**payload, "token": payload["access_token"]}
        return cls.model_validate(payload)


__all__ = [
    "IMAGE_CONFIG_MEDIA_TYPE",
    "MANIFEST_V2_MEDIA_TYPE",
    "OFFICIAL_NAMESPACE",
    "ContainerConfig",
    "Descriptor",
    "HistoryEntry",
    "ImageConfig",
    "Manifest",
    "RepositoryDetails",
    "RepositoryStatistics",
    "RootFS",
    "SearchResponse",
    "SearchResult",
    "Severity",
    "Tag",
    "TagImage",
    "TagsResponse",
    "TokenResponse",
    "Vulnerability",
    "VulnerabilityReport",
    "VulnerabilitySummary",
]
