"""Bearer token acquisition for the default registry and third-party registries.

Authentication Flow (default registry):
    1. A configured access token is returned as-is
    2. No username/password means anonymous access (None)
    3. A cached, unexpired token for the scope is reused
    4. Otherwise a token is requested from the token endpoint with HTTP Basic
       credentials and form fields ``service`` and ``scope``

Third-party registries follow the same flow against a token endpoint
discovered from the ``WWW-Authenticate`` challenge of ``GET <url>/v2/``.

Tokens are cached per ``(registry, scope)`` pair, where the registry is
``dockerhub`` for the default registry or the third-party registry URL.

Example:
    >>> auth = AuthManager(HubCredentials(username="alice", password=SecretStr("pw")))
    >>> headers = await auth.create_auth_headers(scope="repository:library/nginx:pull")
    >>> headers
    {'Authorization': 'Bearer eyJ...'}
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import httpx
import structlog

from hubscope_core.registry.errors import (
    AuthenticationError,
    RegistryError,
    log_error,
    normalize_error,
)
from hubscope_core.schemas.config import Endpoints, HttpConfig, HubCredentials, RegistryAuth
from hubscope_core.schemas.hub import TokenResponse

if TYPE_CHECKING:
    from hubscope_core.registry.metrics import RegistryMetrics

logger = structlog.get_logger(__name__)

DEFAULT_TOKEN_TTL_SECONDS = 3600
"""Token lifetime assumed when the endpoint omits ``expires_in``."""

_DEFAULT_REGISTRY = "dockerhub"
_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')

_TokenKey = tuple[str, str]


@dataclass(frozen=True)
class AuthTokenInfo:
    """A cached bearer token.

    Attributes:
        token: The bearer token.
        expires_at: Unix timestamp (seconds) after which the token is stale.
    """

    token: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        """Check if the token is still usable at ``now``."""
        return self.expires_at > now


@dataclass(frozen=True)
class AuthChallenge:
    """Parsed ``WWW-Authenticate: Bearer`` challenge."""

    realm: str
    service: str | None = None
    scope: str | None = None


def parse_www_authenticate(header: str | None) -> AuthChallenge | None:
    """Parse a Bearer challenge header.

    Other schemes (e.g. ``Basic realm="Registry Realm"``) carry no token
    endpoint and yield None.

    Args:
        header: Raw ``WWW-Authenticate`` value.

    Returns:
        AuthChallenge, or None if the header is missing, is not a Bearer
        challenge, or has no realm.

    Example:
        >>> parse_www_authenticate(
        ...     'Bearer realm="https://auth.example.com/token",service="example.com"'
        ... )
        AuthChallenge(realm='https://auth.example.com/token', service='example.com', scope=None)
    """
    if not header:
        return None

    scheme, _, rest = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None

    params = dict(_CHALLENGE_PARAM.findall(rest))
    realm = params.get("realm")
    if not realm:
        return None
    return AuthChallenge(
        realm=realm,
        service=params.get("service") or None,
        scope=params.get("scope") or None,
    )


class AuthManager:
    """Produces bearer tokens and caches them by registry and scope.

    The manager owns its HTTP client unless one is injected, in which case
    the caller remains responsible for closing it.

    Attributes:
        credentials: Default-registry credentials.
        endpoints: Upstream URLs, including the token endpoint.
    """

    def __init__(
        self,
        credentials: HubCredentials | None = None,
        endpoints: Endpoints | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        http_config: HttpConfig | None = None,
        clock: Callable[[], float] = time.time,
        metrics: RegistryMetrics | None = None,
    ) -> None:
        """Initialize AuthManager.

        Args:
            credentials: Default-registry credentials. Anonymous if None.
            endpoints: Upstream URLs. Uses defaults if None.
            http_client: Shared AsyncClient. A private one is created if None.
            http_config: Timeout and User-Agent.
            clock: Returns the current Unix time in seconds.
            metrics: Optional metrics collector for auth spans.
        """
        self.credentials = credentials or HubCredentials()
        self.endpoints = endpoints or Endpoints()
        self._clock = clock
        self._metrics = metrics
        self._token_cache: dict[_TokenKey, AuthTokenInfo] = {}

        http = http_config or HttpConfig()
        self._default_headers = {"User-Agent": http.user_agent}
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=http.timeout_seconds)

    async def aclose(self) -> None:
        """Close the HTTP client if this manager created it."""
        if self._owns_client:
            await self._http.aclose()

    # -------------------------------------------------------------------------
    # Token acquisition
    # -------------------------------------------------------------------------

    def _cached(self, key: _TokenKey) -> str | None:
        info = self._token_cache.get(key)
        if info is not None and info.is_valid(self._clock()):
            logger.debug("token_cache_hit", registry=key[0], scope=key[1])
            return info.token
        return None

    async def _request_token(
        self,
        url: str,
        service: str,
        scope: str | None,
        credentials: HubCredentials,
    ) -> AuthTokenInfo:
        """POST a form-encoded token request with HTTP Basic credentials.

        Raises:
            httpx.HTTPError: On transport failure or non-2xx response.
            pydantic.ValidationError: If the response has no token.
        """
        data = {"service": service}
        if scope:
            data["scope"] = scope

        password = credentials.password.get_secret_value() if credentials.password else ""
        response = await self._http.post(
            url,
            data=data,
            auth=(credentials.username or "", password),
            headers=self._default_headers,
        )
        response.raise_for_status()

        token = TokenResponse.from_payload(response.json())
        expires_at = self._clock() + (token.expires_in or DEFAULT_TOKEN_TTL_SECONDS)
        logger.debug(
            "token_acquired",
            token_url=url,
            service=service,
            scope=scope,
            expires_in=token.expires_in,
        )
        return AuthTokenInfo(token=token.token, expires_at=expires_at)

    async def _traced_request_token(
        self,
        url: str,
        service: str,
        scope: str | None,
        credentials: HubCredentials,
    ) -> AuthTokenInfo:
        if self._metrics is None:
            return await self._request_token(url, service, scope, credentials)
        with self._metrics.create_span(
            self._metrics.SPAN_AUTH,
            {"auth.service": service, "auth.scope": scope},
        ):
            return await self._request_token(url, service, scope, credentials)

    async def get_default_registry_token(
        self,
        scope: str | None = None,
        *,
        strict: bool = False,
    ) -> str | None:
        """Return a bearer token for the default registry, or None for anonymous.

        Failures degrade to anonymous access unless ``strict`` is set: a
        broken credential must not block public-image access.

        Args:
            scope: Token scope, e.g. ``repository:library/nginx:pull``.
            strict: Raise the normalized error instead of returning None.

        Returns:
            Token string, or None when anonymous.

        Raises:
            RegistryError: Only when ``strict`` is set and acquisition fails.
        """
        creds = self.credentials
        if creds.has_access_token and creds.access_token is not None:
            return creds.access_token.get_secret_value()

        if not creds.has_password:
            return None

        cache_key = (_DEFAULT_REGISTRY, scope or "default")
        cached = self._cached(cache_key)
        if cached is not None:
            return cached

        try:
            info = await self._traced_request_token(
                self.endpoints.token_url,
                self.endpoints.token_service,
                scope,
                creds,
            )
        except Exception as e:
            error = normalize_error(e, now=self._clock())
            log_error(error, "default registry authentication")
            if strict:
                raise error from e
            logger.warning(
                "anonymous_fallback",
                reason=type(error).__name__,
                scope=scope,
            )
            return None

        self._token_cache[cache_key] = info
        return info.token

    async def get_private_registry_token(
        self,
        registry_auth: RegistryAuth,
        scope: str | None = None,
    ) -> str | None:
        """Return a bearer token for a third-party registry.

        Args:
            registry_auth: Registry URL and credentials.
            scope: Optional token scope.

        Returns:
            Token string, or None when no credentials are configured.

        Raises:
            AuthenticationError: If no token endpoint can be discovered.
            RegistryError: Normalized failure of the token request.
        """
        url = registry_auth.url
        creds = registry_auth.credentials

        if creds.has_access_token and creds.access_token is not None:
            return creds.access_token.get_secret_value()

        if not creds.has_password:
            return None

        cache_key = (url, scope or "default")
        cached = self._cached(cache_key)
        if cached is not None:
            return cached

        challenge = await self._discover_challenge(url)
        if challenge is None:
            raise AuthenticationError(
                f"Could not discover authentication endpoint for {url}",
                status_code=None,
            )

        service = challenge.service or urlparse(url).hostname or url
        try:
            info = await self._traced_request_token(challenge.realm, service, scope, creds)
        except Exception as e:
            error = normalize_error(e, now=self._clock())
            log_error(error, "private registry authentication")
            raise error from e

        self._token_cache[cache_key] = info
        return info.token

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    async def _discover_challenge(self, registry_url: str) -> AuthChallenge | None:
        """Probe ``<registry_url>/v2/`` and parse its auth challenge.

        Falls back to ``<scheme>://auth.<host>/token`` when the response
        carries no usable challenge. Returns None only when no response is
        received at all.
        """
        try:
            response = await self._http.get(
                f"{registry_url}/v2/", headers=self._default_headers
            )
        except httpx.HTTPError as e:
            logger.warning(
                "auth_discovery_failed",
                registry=registry_url,
                error=str(e),
            )
            return None

        challenge = None
        if response.status_code == 401:
            challenge = parse_www_authenticate(response.headers.get("www-authenticate"))

        if challenge is not None:
            logger.debug(
                "auth_endpoint_discovered",
                registry=registry_url,
                realm=challenge.realm,
                service=challenge.service,
            )
            return challenge

        parsed = urlparse(registry_url)
        guessed = f"{parsed.scheme}://auth.{parsed.hostname}/token"
        logger.info(
            "auth_endpoint_guessed",
            registry=registry_url,
            status_code=response.status_code,
            realm=guessed,
        )
        return AuthChallenge(realm=guessed)

    async def discover_auth_endpoint(self, registry_url: str) -> str | None:
        """Return the token endpoint URL for a registry, or None on network failure."""
        challenge = await self._discover_challenge(registry_url)
        return challenge.realm if challenge is not None else None

    # -------------------------------------------------------------------------
    # Headers and validation
    # -------------------------------------------------------------------------

    async def create_auth_headers(
        self,
        registry_auth: RegistryAuth | None = None,
        scope: str | None = None,
    ) -> dict[str, str]:
        """Build request headers for the default or a third-party registry.

        Returns an empty mapping when no token can be obtained.
        """
        if registry_auth is not None:
            token = await self.get_private_registry_token(registry_auth, scope)
        else:
            token = await self.get_default_registry_token(scope)

        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    async def validate_credentials(self, credentials: HubCredentials) -> bool:
        """Check whether credentials are accepted. Never raises.

        Access tokens are probed against the Hub ``/user/`` endpoint;
        username/password pairs by a token request.
        """
        if credentials.has_access_token and credentials.access_token is not None:
            try:
                response = await self._http.get(
                    f"{self.endpoints.hub_url}/user/",
                    headers={
                        **self._default_headers,
                        "Authorization": f"JWT {credentials.access_token.get_secret_value()}",
                    },
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.info("credential_validation_failed", method="access_token", error=str(e))
                return False
            return True

        if credentials.has_password:
            try:
                await self._request_token(
                    self.endpoints.token_url,
                    self.endpoints.token_service,
                    None,
                    credentials,
                )
            except (httpx.HTTPError, ValueError, RegistryError) as e:
                logger.info("credential_validation_failed", method="password", error=str(e))
                return False
            return True

        return False

    # -------------------------------------------------------------------------
    # Cache management
    # -------------------------------------------------------------------------

    def clear_token_cache(self) -> None:
        """Drop every cached token."""
        self._token_cache.clear()

    def clear_registry_tokens(self, registry_url: str | None = None) -> None:
        """Drop cached tokens for one registry.

        Args:
            registry_url: Third-party registry URL, or None for the default
                registry.
        """
        registry = _DEFAULT_REGISTRY if registry_url is None else registry_url.rstrip("/")

        for key in [k for k in self._token_cache if k[0] == registry]:
            del self._token_cache[key]

    def get_token_info(self) -> dict[str, dict[str, str | bool]]:
        """Describe cached tokens for debugging. Token values are not included.

        Keys read ``dockerhub:<scope>`` or ``registry:<url>:<scope>``.
        """
        now = self._clock()
        return {
            _describe_key(key): {
                "expires_at": datetime.fromtimestamp(info.expires_at, tz=timezone.utc).isoformat(),
                "valid": info.is_valid(now),
            }
            for key, info in self._token_cache.items()
        }


def _describe_key(key: _TokenKey) -> str:
    registry, scope = key
    if registry == _DEFAULT_REGISTRY:
        return f"{registry}:{scope}"
    return f"registry:{registry}:{scope}"


__all__ = [
    "DEFAULT_TOKEN_TTL_SECONDS",
    "AuthChallenge",
    "AuthManager",
    "AuthTokenInfo",
    "parse_www_authenticate",
]
