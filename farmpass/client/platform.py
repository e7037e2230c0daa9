"""
Platform interfaces for the push client.

The client never touches a browser directly. Each host (a real browser
bridge, a headless test double) implements these interfaces and the
worker controller and orchestrator drive them.

Event hooks return a detach callable; calling it twice is harmless.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any


Detach = Callable[[], None]


class BrowserSubscription(ABC):
    """A push subscription as handed out by the platform push manager."""

    @property
    @abstractmethod
    def endpoint(self) -> str:
        ...

    @abstractmethod
    def to_json(self) -> dict[str, Any]:
        """
        Serialize for the server.

        Returns:
            Dict shaped {endpoint, expirationTime, keys: {p256dh, auth}}
        """
        ...

    @abstractmethod
    async def unsubscribe(self) -> bool:
        ...


class PushManager(ABC):
    @abstractmethod
    async def get_subscription(self) -> BrowserSubscription | None:
        ...

    @abstractmethod
    async def subscribe(
        self,
        application_server_key: bytes,
        user_visible_only: bool = True,
    ) -> BrowserSubscription:
        """
        Create a subscription bound to the server's public key.

        Raises whatever the platform raises; the orchestrator maps it.
        """
        ...


class InstallingWorker(ABC):
    """A worker that has been found by an update and is still installing."""

    @property
    @abstractmethod
    def state(self) -> str:
        """One of installing, installed, activating, activated, redundant."""
        ...

    @abstractmethod
    def on_state_change(self, callback: Callable[[str], None]) -> Detach:
        ...


class WorkerRegistration(ABC):
    @property
    @abstractmethod
    def active_script_url(self) -> str | None:
        """Script URL of the active worker, None when nothing is active."""
        ...

    @property
    @abstractmethod
    def installing(self) -> InstallingWorker | None:
        ...

    @property
    @abstractmethod
    def push_manager(self) -> PushManager:
        ...

    @abstractmethod
    async def update(self) -> None:
        ...

    @abstractmethod
    async def unregister(self) -> bool:
        ...

    @abstractmethod
    def on_update_found(self, callback: Callable[[], None]) -> Detach:
        ...


class WorkerContainer(ABC):
    """The page's view of background workers."""

    @property
    @abstractmethod
    def controller_script_url(self) -> str | None:
        """Script URL of the worker controlling the page, None if uncontrolled."""
        ...

    @abstractmethod
    async def get_registration(self) -> WorkerRegistration | None:
        ...

    @abstractmethod
    async def register(
        self,
        script_url: str,
        scope: str = "/",
        update_via_cache: str = "none",
    ) -> WorkerRegistration:
        ...

    @abstractmethod
    async def ready(self) -> WorkerRegistration:
        """
        Resolve once a worker is active for the page.

        May never resolve on some platforms; callers bound it with a deadline.
        """
        ...


class NotificationPlatform(ABC):
    """Capability and permission surface of the host."""

    @property
    @abstractmethod
    def user_agent(self) -> str:
        ...

    @property
    def max_touch_points(self) -> int:
        return 0

    @property
    @abstractmethod
    def supports_notifications(self) -> bool:
        ...

    @property
    @abstractmethod
    def supports_workers(self) -> bool:
        ...

    @property
    @abstractmethod
    def supports_push(self) -> bool:
        ...

    @property
    @abstractmethod
    def permission(self) -> str:
        """Current permission: default, denied or granted."""
        ...

    @abstractmethod
    async def request_permission(self) -> str:
        """Show the one-time permission prompt and return the decision."""
        ...

    @property
    @abstractmethod
    def workers(self) -> WorkerContainer:
        ...


class WindowEnvironment(ABC):
    """Page-level events and actions used by worker monitoring."""

    @abstractmethod
    def add_listener(self, event: str, callback: Callable[[Any], None]) -> Detach:
        """Listen for a window event such as focus or online."""
        ...

    @abstractmethod
    def reload(self) -> None:
        ...


class WindowClient(ABC):
    """A window controlled by the background worker."""

    @property
    @abstractmethod
    def url(self) -> str:
        ...

    @abstractmethod
    async def focus(self) -> None:
        ...

    @abstractmethod
    async def navigate(self, url: str) -> None:
        ...


class WorkerGlobalScope(ABC):
    """What the background worker can do when handling an event."""

    @property
    @abstractmethod
    def origin(self) -> str:
        ...

    @abstractmethod
    async def show_notification(self, title: str, options: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def match_clients(self) -> list[WindowClient]:
        """All window clients, including uncontrolled ones."""
        ...

    @abstractmethod
    async def open_window(self, url: str) -> None:
        ...
