"""Registry client for the Hub metadata API and the Registry v2 API.

Every operation follows the same pipeline:

    check cache -> acquire auth -> rate-limit gate -> HTTP call
        -> feed rate-limit headers -> parse payload -> cache -> return

wrapped in ``RetryPolicy.call`` (error normalization and retries), an
OpenTelemetry span ``hubscope.registry.<operation>`` and an operation timer.

Key Features:
    - Search, repository details, tags, manifests and image config blobs
    - Vulnerability scans and Dockerfiles as best-effort lookups (None when
      unavailable)
    - Authenticated passthrough for third-party registries
    - Response caching with per-operation TTLs

Example:
    >>> from hubscope_core.registry import RegistryClient
    >>> from hubscope_core.schemas.config import load_config
    >>>
    >>> async with RegistryClient.from_config(load_config()) as client:
    ...     manifest = await client.get_manifest("library/alpine", "3.18")
    ...     print(manifest.config.digest)
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Mapping
from types import TracebackType
from typing import Any, TypeVar
from urllib.parse import urlparse

import httpx
import structlog

from hubscope_core.registry.auth import AuthManager
from hubscope_core.registry.cache import CacheManager
from hubscope_core.registry.errors import ValidationError, log_error, normalize_error
from hubscope_core.registry.metrics import RegistryMetrics, get_registry_metrics
from hubscope_core.registry.rate_limit import DEFAULT_KEY, RateLimiter
from hubscope_core.registry.reference import parse_repository
from hubscope_core.registry.resilience import RetryPolicy
from hubscope_core.schemas.config import Endpoints, HttpConfig, HubConfig, RegistryAuth
from hubscope_core.schemas.hub import (
    IMAGE_CONFIG_MEDIA_TYPE,
    MANIFEST_V2_MEDIA_TYPE,
    ImageConfig,
    Manifest,
    RepositoryDetails,
    RepositoryStatistics,
    SearchResponse,
    TagsResponse,
    VulnerabilityReport,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SEARCH_TTL_SECONDS = 300
REPOSITORY_TTL_SECONDS = 600
TAGS_TTL_SECONDS = 300
MANIFEST_TTL_SECONDS = 1800
IMAGE_CONFIG_TTL_SECONDS = 3600


class RegistryClient:
    """Authenticated, cached, rate-limited client for registry data.

    The cache, rate limiter and auth manager are injected so that one
    composition point (``from_config``) owns a single instance of each for
    the process lifetime.

    Attributes:
        endpoints: Upstream base URLs.
        cache: Response cache.
        rate_limiter: Request gate.
        auth: Token provider.
    """

    def __init__(
        self,
        *,
        cache: CacheManager | None = None,
        rate_limiter: RateLimiter | None = None,
        auth: AuthManager | None = None,
        retry_policy: RetryPolicy | None = None,
        http_client: httpx.AsyncClient | None = None,
        endpoints: Endpoints | None = None,
        http_config: HttpConfig | None = None,
        private_registry: RegistryAuth | None = None,
        metrics: RegistryMetrics | None = None,
    ) -> None:
        """Initialize RegistryClient with dependency injection.

        Args:
            cache: Response cache. Created with defaults if None.
            rate_limiter: Request gate. Created with defaults if None.
            auth: Token provider. Anonymous if None.
            retry_policy: Retry policy. Created with defaults if None.
            http_client: AsyncClient for all upstream calls. A private one
                with the configured timeout is created if None.
            endpoints: Upstream base URLs. Uses defaults if None.
            http_config: Timeout and User-Agent. Uses defaults if None.
            private_registry: Default target of make_private_registry_request.
            metrics: Metrics collector. Uses the module default if None.
        """
        http = http_config or HttpConfig()
        self.endpoints = endpoints or Endpoints()
        self.private_registry = private_registry
        self._metrics = metrics or get_registry_metrics()
        self._default_headers = {"User-Agent": http.user_agent, "Accept": "application/json"}

        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=http.timeout_seconds)

        self.cache = cache or CacheManager(metrics=self._metrics)
        self.rate_limiter = rate_limiter or RateLimiter(metrics=self._metrics)
        self.auth = auth or AuthManager(
            endpoints=self.endpoints, http_client=self._http, metrics=self._metrics
        )
        self._retry = retry_policy or RetryPolicy(metrics=self._metrics)

    @classmethod
    def from_config(
        cls,
        config: HubConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
        metrics: RegistryMetrics | None = None,
    ) -> RegistryClient:
        """Build a client and all of its collaborators from configuration.

        This is the single composition point: the returned client owns one
        cache, one rate limiter and one auth manager sharing one HTTP client.

        Args:
            config: Complete hubscope configuration.
            http_client: Optional AsyncClient (tests inject one backed by
                ``httpx.MockTransport``). The caller keeps ownership of it.
            clock: Returns the current Unix time in seconds.
            metrics: Metrics collector. Uses the module default if None.

        Returns:
            Configured RegistryClient. Close it with ``aclose`` or use it as an
            async context manager.

        Example:
            >>> client = RegistryClient.from_config(HubConfig())
        """
        metrics = metrics or get_registry_metrics()
        owns_client = http_client is None
        if http_client is None:
            http_client = httpx.AsyncClient(timeout=config.http.timeout_seconds)

        client = cls(
            cache=CacheManager(config.cache, clock=clock, metrics=metrics),
            rate_limiter=RateLimiter(
                config.rate_limit.max_requests,
                config.rate_limit.window_seconds,
                clock=clock,
                metrics=metrics,
            ),
            auth=AuthManager(
                config.credentials,
                config.endpoints,
                http_client=http_client,
                http_config=config.http,
                clock=clock,
                metrics=metrics,
            ),
            retry_policy=RetryPolicy(config.retry, clock=clock, metrics=metrics),
            http_client=http_client,
            endpoints=config.endpoints,
            http_config=config.http,
            private_registry=config.private_registry,
            metrics=metrics,
        )
        client._owns_client = owns_client

        logger.info(
            "registry_client_initialized",
            hub_url=config.endpoints.hub_url,
            registry_url=config.endpoints.registry_url,
            authenticated=config.credentials.has_access_token or config.credentials.has_password,
            private_registry=config.private_registry.url if config.private_registry else None,
        )
        return client

    @property
    def metrics(self) -> RegistryMetrics:
        """Return the metrics collector."""
        return self._metrics

    async def aclose(self) -> None:
        """Release HTTP resources and clear process state."""
        await self.auth.aclose()
        if self._owns_client:
            await self._http.aclose()
        self.cache.clear()
        self.rate_limiter.clear_all()
        self.auth.clear_token_cache()
        logger.debug("registry_client_closed")

    async def __aenter__(self) -> RegistryClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    async def _run(
        self,
        operation: str,
        upstream: str,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        attributes: Mapping[str, Any] | None = None,
    ) -> T:
        """Run one public operation inside a span, a timer and the retry policy."""
        span_attributes = {"registry.operation": operation, **(attributes or {})}
        with self._metrics.create_span(self._metrics.span_name(operation), span_attributes):
            with self._metrics.operation_timer(operation, upstream):
                return await self._retry.call(
                    fn, *args, context=f"RegistryClient.{operation}"
                )

    async def _send(
        self,
        method: str,
        url: str,
        *,
        rate_limit_key: str = DEFAULT_KEY,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and feed its rate-limit headers, whatever the status.

        Raises:
            httpx.HTTPStatusError: On non-2xx responses.
            httpx.TransportError: When no response is received.
        """
        headers = {**self._default_headers, **(kwargs.pop("headers", None) or {})}
        response = await self._http.request(method, url, headers=headers, **kwargs)
        self.rate_limiter.update_from_headers(response.headers, rate_limit_key)
        response.raise_for_status()
        return response

    async def _gated(
        self,
        method: str,
        url: str,
        *,
        rate_limit_key: str = DEFAULT_KEY,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request through the rate-limit gate."""
        return await self.rate_limiter.execute(
            lambda: self._send(method, url, rate_limit_key=rate_limit_key, **kwargs),
            rate_limit_key,
        )

    # -------------------------------------------------------------------------
    # Hub metadata API
    # -------------------------------------------------------------------------

    async def search_images(
        self,
        query: str,
        limit: int = 25,
        page: int = 1,
        is_official: bool | None = None,
        is_automated: bool | None = None,
    ) -> SearchResponse:
        """Search repositories by keyword.

        Args:
            query: Search terms.
            limit: Page size.
            page: 1-based page number.
            is_official: Restrict to (or exclude) official images.
            is_automated: Restrict to (or exclude) automated builds.

        Returns:
            One page of search results.
        """
        params: dict[str, Any] = {"q": query, "page_size": limit, "page": page}
        if is_official is not None:
            params["is_official"] = is_official
        if is_automated is not None:
            params["is_automated"] = is_automated

        return await self._run(
            "search_images",
            self.endpoints.hub_url,
            self._search_images,
            params,
            attributes={"search.query": query, "search.page": page},
        )

    async def _search_images(self, params: dict[str, Any]) -> SearchResponse:
        cached = self.cache.get_cached_api_response("search", params)
        if cached is not None:
            return cached  # type: ignore[no-any-return]

        response = await self._gated(
            "GET", f"{self.endpoints.hub_url}/search/repositories/", params=params
        )
        result = SearchResponse.model_validate(response.json())
        self.cache.cache_api_response("search", params, result, SEARCH_TTL_SECONDS)
        return result

    async def get_repository_details(self, repository: str) -> RepositoryDetails:
        """Fetch repository metadata.

        Raises:
            ValidationError: If the repository reference is malformed.
            NotFoundError: If the repository does not exist.
        """
        return await self._run(
            "get_repository_details",
            self.endpoints.hub_url,
            self._get_repository_details,
            repository,
            attributes={"registry.repository": repository},
        )

    async def _get_repository_details(self, repository: str) -> RepositoryDetails:
        ref = parse_repository(repository)
        endpoint = f"repositories/{ref.path}"

        cached = self.cache.get_cached_api_response(endpoint)
        if cached is not None:
            return cached  # type: ignore[no-any-return]

        headers = await self.auth.create_auth_headers()
        response = await self._gated(
            "GET", f"{self.endpoints.hub_url}/{endpoint}/", headers=headers
        )
        result = RepositoryDetails.model_validate(response.json())
        self.cache.cache_api_response(endpoint, None, result, REPOSITORY_TTL_SECONDS)
        return result

    async def list_tags(
        self,
        repository: str,
        limit: int = 25,
        page: int = 1,
    ) -> TagsResponse:
        """List one page of a repository's tags."""
        return await self._run(
            "list_tags",
            self.endpoints.hub_url,
            self._list_tags,
            repository,
            limit,
            page,
            attributes={"registry.repository": repository},
        )

    async def _list_tags(self, repository: str, limit: int, page: int) -> TagsResponse:
        ref = parse_repository(repository)
        endpoint = f"repositories/{ref.path}/tags"
        params = {"page_size": limit, "page": page}

        cached = self.cache.get_cached_api_response(endpoint, params)
        if cached is not None:
            return cached  # type: ignore[no-any-return]

        headers = await self.auth.create_auth_headers()
        response = await self._gated(
            "GET", f"{self.endpoints.hub_url}/{endpoint}/", params=params, headers=headers
        )
        result = TagsResponse.model_validate(response.json())
        self.cache.cache_api_response(endpoint, params, result, TAGS_TTL_SECONDS)
        return result

    async def get_vulnerabilities(
        self,
        repository: str,
        tag: str = "latest",
    ) -> VulnerabilityReport | None:
        """Fetch the vulnerability scan of a tag.

        Returns:
            The normalized report, or None when no scan exists.
        """
        return await self._run(
            "get_vulnerabilities",
            self.endpoints.hub_url,
            self._get_vulnerabilities,
            repository,
            tag,
            attributes={"registry.repository": repository, "registry.tag": tag},
        )

    async def _get_vulnerabilities(
        self, repository: str, tag: str
    ) -> VulnerabilityReport | None:
        ref = parse_repository(repository)
        headers = await self.auth.create_auth_headers()
        try:
            response = await self._gated(
                "GET",
                f"{self.endpoints.hub_url}/repositories/{ref.path}/tags/{tag}/scan/",
                headers=headers,
            )
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                logger.debug("vulnerability_scan_missing", repository=ref.path, tag=tag)
                return None
            raise

        return VulnerabilityReport.from_scan(response.json(), ref.namespace, ref.name, tag)

    async def get_dockerfile(self, repository: str, tag: str = "latest") -> str | None:
        """Fetch the Dockerfile of an automated build.

        Retrieval is best-effort: non-automated repositories and any upstream
        failure yield None. Failures are logged.

        Raises:
            ValidationError: If the repository reference is malformed.
        """
        return await self._run(
            "get_dockerfile",
            self.endpoints.hub_url,
            self._get_dockerfile,
            repository,
            attributes={"registry.repository": repository, "registry.tag": tag},
        )

    async def _get_dockerfile(self, repository: str) -> str | None:
        ref = parse_repository(repository)
        try:
            details = await self._get_repository_details(repository)
            if not details.is_automated:
                return None

            headers = await self.auth.create_auth_headers()
            response = await self._gated(
                "GET",
                f"{self.endpoints.hub_url}/repositories/{ref.path}/dockerfile/",
                headers=headers,
            )
            contents = response.json().get("contents")
        except Exception as e:
            log_error(normalize_error(e), "RegistryClient.get_dockerfile")
            return None

        return contents or None

    async def get_statistics(self, repository: str) -> RepositoryStatistics:
        """Return pull and star counts of a repository."""
        return await self._run(
            "get_statistics",
            self.endpoints.hub_url,
            self._get_statistics,
            repository,
            attributes={"registry.repository": repository},
        )

    async def _get_statistics(self, repository: str) -> RepositoryStatistics:
        details = await self._get_repository_details(repository)
        return RepositoryStatistics(
            pull_count=details.pull_count, star_count=details.star_count
        )

    async def repository_exists(self, repository: str) -> bool:
        """Check whether a repository exists.

        Raises:
            RegistryError: Any failure other than not-found.
        """
        return await self._run(
            "repository_exists",
            self.endpoints.hub_url,
            self._repository_exists,
            repository,
            attributes={"registry.repository": repository},
        )

    async def _repository_exists(self, repository: str) -> bool:
        try:
            await self._get_repository_details(repository)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return False
            raise
        return True

    # -------------------------------------------------------------------------
    # Registry v2 API
    # -------------------------------------------------------------------------

    async def get_manifest(self, repository: str, tag: str = "latest") -> Manifest:
        """Fetch the schema 2 manifest of a tag with a pull-scoped token."""
        return await self._run(
            "get_manifest",
            self.endpoints.registry_url,
            self._get_manifest,
            repository,
            tag,
            attributes={"registry.repository": repository, "registry.tag": tag},
        )

    async def _get_manifest(self, repository: str, tag: str) -> Manifest:
        ref = parse_repository(repository)
        endpoint = f"{ref.path}/manifests/{tag}"

        cached = self.cache.get_cached_api_response(endpoint)
        if cached is not None:
            return cached  # type: ignore[no-any-return]

        headers = await self.auth.create_auth_headers(scope=ref.pull_scope)
        headers["Accept"] = MANIFEST_V2_MEDIA_TYPE
        response = await self._gated(
            "GET", f"{self.endpoints.registry_url}/{endpoint}", headers=headers
        )
        result = Manifest.model_validate(response.json())
        self.cache.cache_api_response(endpoint, None, result, MANIFEST_TTL_SECONDS)
        return result

    async def get_image_config(self, repository: str, tag: str = "latest") -> ImageConfig:
        """Fetch the image config blob referenced by a tag's manifest."""
        return await self._run(
            "get_image_config",
            self.endpoints.registry_url,
            self._get_image_config,
            repository,
            tag,
            attributes={"registry.repository": repository, "registry.tag": tag},
        )

    async def _get_image_config(self, repository: str, tag: str) -> ImageConfig:
        manifest = await self._get_manifest(repository, tag)
        ref = parse_repository(repository)
        endpoint = f"{ref.path}/blobs/{manifest.config.digest}"

        cached = self.cache.get_cached_api_response(endpoint)
        if cached is not None:
            return cached  # type: ignore[no-any-return]

        headers = await self.auth.create_auth_headers(scope=ref.pull_scope)
        headers["Accept"] = IMAGE_CONFIG_MEDIA_TYPE
        response = await self._gated(
            "GET", f"{self.endpoints.registry_url}/{endpoint}", headers=headers
        )
        result = ImageConfig.model_validate(response.json())
        self.cache.cache_api_response(endpoint, None, result, IMAGE_CONFIG_TTL_SECONDS)
        return result

    # -------------------------------------------------------------------------
    # Third-party registries
    # -------------------------------------------------------------------------

    async def make_private_registry_request(
        self,
        url: str,
        registry_auth: RegistryAuth | None = None,
        *,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send an authenticated request to a third-party registry.

        Rate-limited under the registry's hostname and never cached.

        Args:
            url: Absolute request URL.
            registry_auth: Registry and credentials. Defaults to the
                configured private registry.
            method: HTTP method.
            headers: Extra headers, applied over the auth header.
            params: Query parameters.
            json: JSON request body.

        Returns:
            Decoded JSON body, or None for an empty body.

        Raises:
            ValidationError: If no registry is given or configured.
        """
        registry_auth = registry_auth or self.private_registry
        if registry_auth is None:
            raise ValidationError("No private registry configured")

        return await self._run(
            "make_private_registry_request",
            registry_auth.url,
            self._make_private_registry_request,
            url,
            registry_auth,
            method,
            headers,
            params,
            json,
            attributes={"http.method": method, "http.url": url},
        )

    async def _make_private_registry_request(
        self,
        url: str,
        registry_auth: RegistryAuth,
        method: str,
        headers: Mapping[str, str] | None,
        params: Mapping[str, Any] | None,
        json: Any,
    ) -> Any:
        request_headers = await self.auth.create_auth_headers(registry_auth)
        if headers:
            request_headers.update(headers)

        response = await self._gated(
            method,
            url,
            rate_limit_key=urlparse(registry_auth.url).hostname or registry_auth.url,
            headers=request_headers,
            params=params,
            json=json,
        )
        if not response.content:
            return None
        return response.json()


__all__ = [
    "IMAGE_CONFIG_TTL_SECONDS",
    "MANIFEST_TTL_SECONDS",
    "REPOSITORY_TTL_SECONDS",
    "SEARCH_TTL_SECONDS",
    "TAGS_TTL_SECONDS",
    "RegistryClient",
]
