"""Client test fixtures."""

from unittest.mock import AsyncMock

import pytest

from farmpass.client.api import PushApiClient
from farmpass.client.concurrency import SharedResourceRegistry
from farmpass.client.worker import WorkerAcquisitionController
from farmpass.push.config import WorkerConfig
from tests.unit.client.fakes import FakeContainer, FakeWindow


TEST_PUBLIC_KEY = "BEl62iUYgUivxIkv69yViEuiBIa-Ib9-SkvMeAtA3LFgDzkrxZJjSgSnfckjBJuBkr3qBUYIHBQFLXYp5Nksh8U"


@pytest.fixture
def worker_config() -> WorkerConfig:
    """Short timings so timeout paths run quickly."""
    return WorkerConfig(
        ready_timeout_seconds=0.05,
        update_interval_seconds=3600,
        reload_delay_seconds=0.01,
        online_update_delay_seconds=0.01,
    )


@pytest.fixture
def registry() -> SharedResourceRegistry:
    return SharedResourceRegistry()


@pytest.fixture
def make_controller(worker_config, registry):
    """Build worker controllers sharing the test registry and timings."""

    def _make(container: FakeContainer, window: FakeWindow | None = None) -> WorkerAcquisitionController:
        return WorkerAcquisitionController(
            container, window=window, config=worker_config, registry=registry
        )

    return _make


@pytest.fixture
def api() -> AsyncMock:
    """Push API client double that accepts every registration."""
    client = AsyncMock(spec=PushApiClient)
    client.get_public_key.return_value = TEST_PUBLIC_KEY
    client.create_subscription.return_value = {"message": "Notifications enabled.", "created": True}
    client.delete_subscription.return_value = {"message": "Subscription removed.", "deleted": 1}
    client.cleanup_subscriptions.return_value = {"message": "All subscriptions are valid."}
    return client
