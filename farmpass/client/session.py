"""
Session coordination for the push client.

Token refresh and logout can be triggered from many uncoordinated places
(an expired request, a focus handler, a timer). Concurrent calls share one
in-flight operation; the next call after it finishes starts fresh.

Logout also removes this browser's push subscription so a signed-out
browser stops receiving the previous user's notifications.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from farmpass.client.concurrency import InFlight
from farmpass.client.orchestrator import PushOrchestrator


logger = logging.getLogger(__name__)


class SessionBackend(ABC):
    """Authentication provider used by the coordinator."""

    @abstractmethod
    async def refresh_session(self) -> bool:
        """Refresh the access token. Returns False when the session is gone."""
        ...

    @abstractmethod
    async def sign_out(self) -> None:
        ...

    @abstractmethod
    def clear_local_state(self) -> None:
        """Drop stored tokens and cached user data."""
        ...


class SessionCoordinator:
    def __init__(
        self,
        backend: SessionBackend,
        orchestrator: PushOrchestrator | None = None,
        on_logged_out: Callable[[], None] | None = None,
    ):
        self.backend = backend
        self.orchestrator = orchestrator
        self.on_logged_out = on_logged_out
        self._inflight = InFlight()

    async def refresh_token(self) -> bool:
        """Refresh the session, joining a refresh that is already running."""
        return await self._inflight.run("refresh", self._refresh)

    async def _refresh(self) -> bool:
        try:
            refreshed = await self.backend.refresh_session()
        except Exception as e:
            logger.error(f"Token refresh failed: {e}")
            return False

        if refreshed:
            logger.info("Token refreshed")
        else:
            logger.warning("Token refresh rejected, session has ended")
        return refreshed

    async def logout(self, force: bool = False) -> None:
        """
        Sign out, joining a logout that is already running.

        Args:
            force: Also clear local state even when sign-out succeeded
        """
        await self._inflight.run("logout", lambda: self._logout(force))

    async def _logout(self, force: bool) -> None:
        # Push removal needs the session the sign-out ends
        if self.orchestrator is not None:
            result = await self.orchestrator.unsubscribe_current()
            if not result.success:
                logger.warning(f"Push subscription cleanup on logout failed: {result.message}")

        sign_out_failed = False
        try:
            await self.backend.sign_out()
        except Exception as e:
            logger.warning(f"Sign-out failed, clearing local session: {e}")
            sign_out_failed = True

        if force or sign_out_failed:
            self.backend.clear_local_state()

        if self.on_logged_out is not None:
            self.on_logged_out()

    async def handle_session_expired(self) -> dict[str, Any]:
        """Force a logout after the server reported an expired session."""
        logger.warning("Session expired")
        await self.logout(force=True)
        return {
            "success": True,
            "message": "Your session has expired. You have been signed out.",
        }
