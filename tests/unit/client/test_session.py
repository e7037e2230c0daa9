"""Tests for farmpass/client/session.py"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from farmpass.client.orchestrator import PushOrchestrator
from farmpass.client.results import PushClientError
from farmpass.client.session import SessionBackend, SessionCoordinator
from farmpass.push.errors import ErrorCode
from tests.unit.client.fakes import FakeContainer, FakePlatform, FakeRegistration, FakeSubscription


ENDPOINT = "https://fcm.googleapis.com/fcm/send/logged-in"


class FakeBackend(SessionBackend):
    def __init__(self, refresh_result: bool = True, sign_out_error: Exception | None = None):
        self.refresh_result = refresh_result
        self.sign_out_error = sign_out_error
        self.refresh_calls = 0
        self.sign_out_calls = 0
        self.cleared = 0
        self.signed_out_before_delete = False

    async def refresh_session(self) -> bool:
        self.refresh_calls += 1
        await asyncio.sleep(0.01)
        return self.refresh_result

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        await asyncio.sleep(0.01)
        if self.sign_out_error:
            raise self.sign_out_error

    def clear_local_state(self) -> None:
        self.cleared += 1


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def subscribed(make_controller, api, backend):
    """Real orchestrator over a browser holding one push subscription.

    The server rejects deletes once the session has been signed out.
    """
    registration = FakeRegistration()
    manager = registration.push_manager
    manager.subscription = FakeSubscription(ENDPOINT, manager=manager)
    container = FakeContainer(registration=registration)
    orchestrator = PushOrchestrator(
        FakePlatform(container, permission="granted"), make_controller(container), api
    )

    async def delete_subscription(endpoint, farm_id=None):
        if backend.sign_out_calls:
            backend.signed_out_before_delete = True
            raise PushClientError(ErrorCode.AUTH_REQUIRED, "Authentication required")
        return {"message": "Subscription removed.", "deleted": 1}

    api.delete_subscription.side_effect = delete_subscription
    return orchestrator, manager.subscription


class TestRefresh:
    @pytest.mark.asyncio
    async def test_concurrent_refreshes_share_one_call(self):
        backend = FakeBackend()
        coordinator = SessionCoordinator(backend)

        results = await asyncio.gather(*(coordinator.refresh_token() for _ in range(3)))

        assert results == [True, True, True]
        assert backend.refresh_calls == 1

    @pytest.mark.asyncio
    async def test_rejected_refresh(self):
        coordinator = SessionCoordinator(FakeBackend(refresh_result=False))
        assert await coordinator.refresh_token() is False

    @pytest.mark.asyncio
    async def test_refresh_error_returns_false(self):
        backend = FakeBackend()
        backend.refresh_session = AsyncMock(side_effect=ConnectionError("offline"))

        assert await SessionCoordinator(backend).refresh_token() is False


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_removes_push_subscription(self, backend, subscribed, api):
        orchestrator, subscription = subscribed
        logged_out = MagicMock()
        coordinator = SessionCoordinator(backend, orchestrator, on_logged_out=logged_out)

        await coordinator.logout()

        api.delete_subscription.assert_awaited_once_with(ENDPOINT, None)
        assert subscription.unsubscribed is True
        assert backend.signed_out_before_delete is False
        logged_out.assert_called_once()
        assert backend.cleared == 0

    @pytest.mark.asyncio
    async def test_browser_subscription_dropped_when_server_rejects_delete(
        self, backend, subscribed, api
    ):
        orchestrator, subscription = subscribed
        api.delete_subscription.side_effect = PushClientError(ErrorCode.AUTH_REQUIRED, "Session expired")
        logged_out = MagicMock()
        coordinator = SessionCoordinator(backend, orchestrator, on_logged_out=logged_out)

        await coordinator.logout()

        api.delete_subscription.assert_awaited_once()
        assert subscription.unsubscribed is True
        assert backend.sign_out_calls == 1
        logged_out.assert_called_once()
        assert await orchestrator.is_subscribed() is False

    @pytest.mark.asyncio
    async def test_concurrent_logouts_sign_out_once(self, backend, subscribed, api):
        orchestrator, _ = subscribed
        coordinator = SessionCoordinator(backend, orchestrator)

        await asyncio.gather(coordinator.logout(), coordinator.logout())

        assert backend.sign_out_calls == 1
        api.delete_subscription.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_sign_out_still_clears_local_state(self, subscribed):
        orchestrator, subscription = subscribed
        backend = FakeBackend(sign_out_error=ConnectionError("offline"))
        coordinator = SessionCoordinator(backend, orchestrator)

        await coordinator.logout()

        assert backend.cleared == 1
        assert subscription.unsubscribed is True

    @pytest.mark.asyncio
    async def test_push_failure_does_not_block_logout(self, backend, subscribed, api):
        orchestrator, subscription = subscribed
        api.delete_subscription.side_effect = PushClientError(ErrorCode.NETWORK_ERROR, "offline")
        logged_out = MagicMock()
        coordinator = SessionCoordinator(backend, orchestrator, on_logged_out=logged_out)

        await coordinator.logout(force=True)

        assert backend.cleared == 1
        assert backend.sign_out_calls == 1
        assert subscription.unsubscribed is True
        logged_out.assert_called_once()

    @pytest.mark.asyncio
    async def test_session_expired(self):
        backend = FakeBackend()
        coordinator = SessionCoordinator(backend)

        result = await coordinator.handle_session_expired()

        assert result["success"] is True
        assert backend.cleared == 1
