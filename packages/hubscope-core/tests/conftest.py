"""Shared pytest fixtures for hubscope-core package tests.

Key Fixtures:
- clock: Manually advanced clock injected into time-dependent components
- hub_config: HubConfig with fast, jitter-free retries
- mock_http: Factory for httpx.AsyncClient backed by httpx.MockTransport

NOTE: Do NOT add __init__.py to test directories - pytest uses importlib mode
which can cause namespace collisions with __init__.py files.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

import httpx
import pytest

if TYPE_CHECKING:
    from hubscope_core.schemas.config import HubConfig

START_TIME = 1_700_000_000.0


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "requirement(id): mark test as validating a specific requirement (FR-XXX)",
    )


class FakeClock:
    """Callable clock returning a controllable Unix timestamp in seconds."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def anyio_backend() -> str:
    """Run async tests on asyncio only."""
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    """Provide a clock starting at a fixed timestamp.

    Usage:
        def test_expiry(clock: FakeClock) -> None:
            cache = CacheManager(clock=clock)
            clock.advance(301)
    """
    return FakeClock()


@pytest.fixture
def hub_config() -> HubConfig:
    """Provide a HubConfig with no retry delays and anonymous access."""
    from hubscope_core.schemas.config import HubConfig, RetryConfig

    return HubConfig(retry=RetryConfig(max_attempts=3, initial_delay_ms=0, jitter=False))


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Return a factory building an AsyncClient that routes requests to a handler.

    Usage:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"count": 0, "results": []})

        client = mock_http(handler)
    """

    def _factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _factory

