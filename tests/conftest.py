"""
Shared pytest fixtures for dashboard client tests.

Provides mock HTTP transports, API clients wired to them, and a virtual
clock scheduler for timer-driven controllers.
"""

from typing import Callable, List
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from dashboard_client.api_clients import DashboardAPIClient, RetryPolicy
from dashboard_client.config import ApiConfig

from tests.infrastructure.virtual_scheduler import VirtualScheduler

TEST_BASE_URL = "http://dashboard.test"


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it handled."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


@pytest.fixture
def virtual_scheduler() -> VirtualScheduler:
    """Scheduler driven by a virtual clock."""
    return VirtualScheduler()


@pytest.fixture
def no_sleep():
    """Replace transport backoff sleeps with an AsyncMock recording delays."""
    with patch(
        "dashboard_client.api_clients.base_client.asyncio.sleep",
        new_callable=AsyncMock,
    ) as sleep:
        yield sleep


@pytest.fixture
def api_config() -> ApiConfig:
    return ApiConfig(base_url=TEST_BASE_URL, api_version="v1")


@pytest.fixture
def make_client(api_config):
    """Factory building a client of the given class over a mock handler."""

    def _make(
        handler: Callable[[httpx.Request], httpx.Response],
        client_class=DashboardAPIClient,
        retry_policy: RetryPolicy = None,
        config: ApiConfig = None,
    ):
        transport = RecordingTransport(handler)
        client = client_class(
            config=config or api_config,
            retry_policy=retry_policy or RetryPolicy(max_retries=2, base_delay_ms=1000),
            transport=transport,
        )
        return client

    return _make
