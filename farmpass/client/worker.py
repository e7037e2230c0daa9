"""
Tool: Worker Acquisition Controller
Purpose: Keep exactly one push worker registered and active for the origin

State machine:
    UNREGISTERED -> REGISTERING -> ACTIVE
    UNREGISTERED -> FOREIGN_WORKER_DETECTED -> REGISTERING -> ACTIVE

A registration whose active script is the expected one is adopted as is.
A different worker is unregistered before the expected one is registered.
Once a registration is held, monitoring polls for updates, updates on
focus and on connectivity restore, and reloads the page once when a new
version finishes installing under an existing controller.

The platform readiness signal does not resolve everywhere, so
get_active_registration() bounds it and falls back to a direct lookup.
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from enum import Enum
from typing import Any

from farmpass.client.concurrency import (
    InFlight,
    Ok,
    SharedResourceRegistry,
    await_with_deadline,
    get_registry,
)
from farmpass.client.platform import WindowEnvironment, WorkerContainer, WorkerRegistration
from farmpass.client.results import PushClientError
from farmpass.push.config import WorkerConfig
from farmpass.push.errors import ErrorCode


logger = logging.getLogger(__name__)

# Registration is coalesced per script URL across controllers
_registrations = InFlight()


class WorkerState(str, Enum):
    UNREGISTERED = "unregistered"
    REGISTERING = "registering"
    ACTIVE = "active"
    FOREIGN_WORKER_DETECTED = "foreign_worker_detected"


def script_matches(script_url: str | None, expected: str) -> bool:
    """Active script URLs are absolute; the expected one is usually a path."""
    if not script_url:
        return False
    return script_url == expected or script_url.endswith(expected)


class WorkerAcquisitionController:
    """
    Acquire and monitor the push worker.

    Args:
        container: Platform worker container
        window: Page events for focus/online updates and reloads; optional
        config: Script URL, scope and timings
        registry: Shared listener registry; defaults to the process-wide one
    """

    def __init__(
        self,
        container: WorkerContainer,
        window: WindowEnvironment | None = None,
        config: WorkerConfig | None = None,
        registry: SharedResourceRegistry | None = None,
    ):
        self.container = container
        self.window = window
        self.config = config or WorkerConfig()
        self.registry = registry or get_registry()

        self.state = WorkerState.UNREGISTERED
        self.registration: WorkerRegistration | None = None

        self._monitored: WorkerRegistration | None = None
        self._detachers: list[Callable[[], None]] = []
        self._tasks: set[asyncio.Task] = set()
        self._poll_task: asyncio.Task | None = None
        self._reload_task: asyncio.Task | None = None

    # -------------------------------------------------------------------------
    # Acquisition
    # -------------------------------------------------------------------------

    async def acquire(self) -> WorkerRegistration:
        """
        Adopt or register the expected worker and start monitoring it.

        Concurrent calls share one acquisition, so the platform never sees
        two registrations for the same script.
        """
        registration = await _registrations.run(self.config.script_url, self._acquire)
        self.registration = registration
        self.state = WorkerState.ACTIVE
        self._attach_monitoring(registration)
        return registration

    async def _acquire(self) -> WorkerRegistration:
        expected = self.config.script_url
        current = await self.container.get_registration()

        if current is not None:
            active_url = current.active_script_url
            if script_matches(active_url, expected):
                logger.info(f"Adopting existing push worker {active_url}")
                await self._safe_update(current)
                return current

            self.state = WorkerState.FOREIGN_WORKER_DETECTED
            logger.info(f"Unregistering foreign worker {active_url}")
            await current.unregister()

        self.state = WorkerState.REGISTERING
        try:
            registration = await self.container.register(
                expected,
                scope=self.config.scope,
                update_via_cache="none",
            )
        except Exception:
            self.state = WorkerState.UNREGISTERED
            raise

        logger.info(f"Registered push worker {expected} (scope {self.config.scope})")
        return registration

    async def get_active_registration(self) -> WorkerRegistration:
        """
        Wait for an active worker.

        Raises:
            PushClientError: WORKER_NOT_ACTIVE when neither readiness nor a
                direct lookup yields an active worker
        """
        timeout = self.config.ready_timeout_seconds
        result = await await_with_deadline(self.container.ready(), timeout)

        if isinstance(result, Ok):
            registration = result.value
        else:
            logger.warning(f"Worker readiness did not resolve within {timeout}s, looking up directly")
            registration = await self.container.get_registration()

        if registration is None or not registration.active_script_url:
            raise PushClientError(
                ErrorCode.WORKER_NOT_ACTIVE,
                "The notification worker is not active yet. Reload the page and try again.",
            )
        return registration

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    def _attach_monitoring(self, registration: WorkerRegistration) -> None:
        if self._monitored is registration:
            return
        self.stop()
        self._monitored = registration

        self._detachers.append(registration.on_update_found(lambda: self._on_update_found(registration)))
        self._poll_task = asyncio.ensure_future(self._poll_updates(registration))

        if self.window is not None:
            window = self.window
            self._detachers.append(
                self.registry.subscribe(
                    ("window", id(window), "focus"),
                    lambda dispatch: window.add_listener("focus", dispatch),
                    lambda _event: self._spawn(self._safe_update(registration)),
                )
            )
            self._detachers.append(
                self.registry.subscribe(
                    ("window", id(window), "online"),
                    lambda dispatch: window.add_listener("online", dispatch),
                    lambda _event: self._spawn(self._delayed_update(registration)),
                )
            )

    def _on_update_found(self, registration: WorkerRegistration) -> None:
        installing = registration.installing
        if installing is None:
            return
        logger.info("New push worker version installing")

        def on_state_change(state: str) -> None:
            if state == "installed" and self.container.controller_script_url:
                self._schedule_reload()

        self._detachers.append(installing.on_state_change(on_state_change))

    def _schedule_reload(self) -> None:
        if self._reload_task is not None and not self._reload_task.done():
            return
        self._reload_task = self._spawn(self._reload_later())

    async def _reload_later(self) -> None:
        await asyncio.sleep(self.config.reload_delay_seconds)
        if self.window is not None:
            logger.info("Reloading page for new push worker version")
            self.window.reload()

    async def _poll_updates(self, registration: WorkerRegistration) -> None:
        while True:
            await asyncio.sleep(self.config.update_interval_seconds)
            await self._safe_update(registration)

    async def _delayed_update(self, registration: WorkerRegistration) -> None:
        await asyncio.sleep(self.config.online_update_delay_seconds)
        await self._safe_update(registration)

    async def _safe_update(self, registration: WorkerRegistration) -> None:
        try:
            await registration.update()
        except Exception as e:
            # Update checks are retried on the next poll
            logger.warning(f"Push worker update check failed: {e}")

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def stop(self) -> None:
        """Cancel monitoring tasks and detach every listener."""
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._reload_task = None
        while self._detachers:
            self._detachers.pop()()
        self._monitored = None
