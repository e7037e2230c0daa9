"""
Tool: Push Subscription Orchestrator
Purpose: Drive the notification permission state machine and hand new
         subscriptions to the server

Permission states:
    UNSUPPORTED  terminal, never prompts
    DEFAULT      one prompt per call, the answer is not cached
    DENIED       sticky at the platform level, returns remediation guidance
    GRANTED      key -> active worker -> platform subscribe -> device id -> server

Every flow returns a PushResult. Pass raise_errors=True to get a
PushClientError instead. Every suspension point is followed by a check of
the CancelToken; a cancelled flow returns CANCELLED and stops there.

Usage:
    orchestrator = PushOrchestrator(platform, worker, api)
    result = await orchestrator.subscribe(farm_id="farm_1")
    if not result.success:
        show(result.message)
"""

import base64
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from enum import Enum

from farmpass.client.api import PushApiClient
from farmpass.client.concurrency import CancelToken
from farmpass.client.device_id import DeviceInfo, detect_device, resolve_device_id
from farmpass.client.platform import BrowserSubscription, NotificationPlatform
from farmpass.client.results import PushClientError, PushResult
from farmpass.client.worker import WorkerAcquisitionController
from farmpass.push.errors import ErrorCode


logger = logging.getLogger(__name__)

REPROMPT_INTERVAL = timedelta(days=14)


class PermissionState(str, Enum):
    UNSUPPORTED = "unsupported"
    DEFAULT = "default"
    DENIED = "denied"
    GRANTED = "granted"

    @classmethod
    def from_platform(cls, platform: NotificationPlatform) -> "PermissionState":
        if not (platform.supports_notifications and platform.supports_workers and platform.supports_push):
            return cls.UNSUPPORTED
        try:
            return cls(platform.permission)
        except ValueError:
            return cls.UNSUPPORTED


def url_base64_to_bytes(value: str) -> bytes:
    """Decode a URL-safe base64 key that may have had its padding stripped."""
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def remediation_message(device: DeviceInfo) -> str:
    """How to re-enable notifications after the user blocked them."""
    if device.browser == "Safari" and device.os == "iOS":
        return "Open Settings > Safari > Notifications and allow notifications for this site."
    if device.browser == "Chrome" and device.is_mobile:
        return "Open Settings > Site settings > Notifications and allow this site."
    if device.is_mobile:
        return "Allow notifications for this site in your browser settings."
    return "Click the lock icon next to the address bar and allow notifications."


class PromptPolicy:
    """
    Decide whether to show the permission prompt again.

    DEFAULT is re-asked once the interval has passed since the last prompt.
    GRANTED needs no prompt; DENIED and UNSUPPORTED are never prompted.
    """

    def __init__(self, interval: timedelta = REPROMPT_INTERVAL):
        self.interval = interval

    def should_prompt(
        self,
        state: PermissionState,
        last_prompted_at: datetime | None,
        now: datetime,
    ) -> bool:
        if state is not PermissionState.DEFAULT:
            return False
        if last_prompted_at is None:
            return True
        return last_prompted_at < now - self.interval


class SubscriptionStatusCache:
    """Cached "is this browser subscribed" answer for presentation code."""

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: bool | None = None
        self._stored_at = 0.0

    def get(self) -> bool | None:
        if self._value is None:
            return None
        if self._clock() - self._stored_at > self.ttl_seconds:
            self._value = None
            return None
        return self._value

    def set(self, subscribed: bool) -> None:
        self._value = subscribed
        self._stored_at = self._clock()

    def invalidate(self) -> None:
        self._value = None


class PushOrchestrator:
    """
    Permission and subscription flows for one page.

    Args:
        platform: Capability and permission surface of the host
        worker: Worker controller used to obtain an active registration
        api: Server client for keys and subscription rows
        status_cache: Cache to invalidate after changes; one is created if omitted
    """

    def __init__(
        self,
        platform: NotificationPlatform,
        worker: WorkerAcquisitionController,
        api: PushApiClient,
        status_cache: SubscriptionStatusCache | None = None,
    ):
        self.platform = platform
        self.worker = worker
        self.api = api
        self.status_cache = status_cache or SubscriptionStatusCache()

    def permission_state(self) -> PermissionState:
        return PermissionState.from_platform(self.platform)

    def device_info(self) -> DeviceInfo:
        return detect_device(self.platform.user_agent, self.platform.max_touch_points)

    def device_id(self) -> str:
        return resolve_device_id(self.platform.user_agent, self.platform.max_touch_points)

    # =========================================================================
    # Flows
    # =========================================================================

    async def subscribe(
        self,
        farm_id: str | None = None,
        cancel_token: CancelToken | None = None,
        raise_errors: bool = False,
    ) -> PushResult:
        """Prompt if needed, subscribe, and register the subscription."""
        token = cancel_token or CancelToken()
        return await self._run(lambda: self._subscribe(farm_id, token), raise_errors)

    async def subscribe_existing(
        self,
        farm_id: str | None = None,
        cancel_token: CancelToken | None = None,
        raise_errors: bool = False,
    ) -> PushResult:
        """Register the browser's current subscription again without prompting."""
        token = cancel_token or CancelToken()
        return await self._run(lambda: self._subscribe_existing(farm_id, token), raise_errors)

    async def unsubscribe_current(
        self,
        farm_id: str | None = None,
        cancel_token: CancelToken | None = None,
        raise_errors: bool = False,
    ) -> PushResult:
        """Drop the platform subscription, then delete its server row."""
        token = cancel_token or CancelToken()
        return await self._run(lambda: self._unsubscribe_current(farm_id, token), raise_errors)

    async def switch_user(
        self,
        api: PushApiClient,
        settings_active: bool,
        farm_id: str | None = None,
        cancel_token: CancelToken | None = None,
        raise_errors: bool = False,
    ) -> PushResult:
        """
        Move this browser's subscription to another user.

        The current subscription is removed under the old user. A new one is
        created under `api` only when the new user's notification settings
        are active; otherwise the switch succeeds with no subscription.
        """
        token = cancel_token or CancelToken()
        return await self._run(
            lambda: self._switch_user(api, settings_active, farm_id, token), raise_errors
        )

    async def run_cleanup(
        self,
        real_time_check: bool = False,
        raise_errors: bool = False,
    ) -> PushResult:
        """Ask the server to clean up this user's subscriptions."""

        async def flow() -> PushResult:
            body = await self.api.cleanup_subscriptions(real_time_check=real_time_check)
            self.status_cache.invalidate()
            return PushResult(success=True, message=body.get("message"))

        return await self._run(flow, raise_errors)

    async def is_subscribed(self) -> bool:
        """Whether the platform holds a subscription, answered from cache when fresh."""
        cached = self.status_cache.get()
        if cached is not None:
            return cached
        if self.permission_state() is not PermissionState.GRANTED:
            self.status_cache.set(False)
            return False
        try:
            registration = await self.worker.get_active_registration()
        except PushClientError as e:
            if e.code is not ErrorCode.WORKER_NOT_ACTIVE:
                raise
            # Not cached; the worker may still be starting
            return False
        subscription = await registration.push_manager.get_subscription()
        self.status_cache.set(subscription is not None)
        return subscription is not None

    # =========================================================================
    # Internals
    # =========================================================================

    async def _run(
        self,
        flow: Callable[[], Awaitable[PushResult]],
        raise_errors: bool,
    ) -> PushResult:
        try:
            return await flow()
        except PushClientError as e:
            if e.code is ErrorCode.CANCELLED:
                return e.to_result()
            logger.info(f"Push flow failed: {e.code.value} - {e.message}")
            if raise_errors:
                raise
            return e.to_result()
        except Exception as e:
            logger.error(f"Push flow failed unexpectedly: {e}", exc_info=True)
            if raise_errors:
                raise PushClientError(ErrorCode.SUBSCRIPTION_FAILED, str(e)) from e
            return PushResult.fail(
                ErrorCode.SUBSCRIPTION_FAILED,
                "Could not enable notifications. Please try again.",
            )

    @staticmethod
    def _check(token: CancelToken) -> None:
        if token.cancelled:
            raise PushClientError(ErrorCode.CANCELLED, "Operation cancelled")

    def _ensure_supported(self) -> PermissionState:
        state = self.permission_state()
        if state is PermissionState.UNSUPPORTED:
            raise PushClientError(
                ErrorCode.UNSUPPORTED_BROWSER,
                "This browser does not support push notifications.",
            )
        return state

    async def _subscribe(self, farm_id: str | None, token: CancelToken) -> PushResult:
        state = self._ensure_supported()

        if state is PermissionState.DENIED:
            raise PushClientError(ErrorCode.PERMISSION_DENIED, remediation_message(self.device_info()))

        if state is PermissionState.DEFAULT:
            decision = await self.platform.request_permission()
            self._check(token)
            if decision != PermissionState.GRANTED.value:
                raise PushClientError(ErrorCode.PERMISSION_DENIED, "Notification permission was not granted.")

        subscription = await self._create_platform_subscription(token)
        return await self._register(subscription, farm_id, token)

    async def _create_platform_subscription(self, token: CancelToken) -> BrowserSubscription:
        public_key = await self.api.get_public_key()
        self._check(token)
        if not public_key:
            raise PushClientError(ErrorCode.VAPID_KEY_MISSING, "Push key is not configured on the server.")

        registration = await self.worker.get_active_registration()
        self._check(token)

        subscription = await registration.push_manager.subscribe(
            application_server_key=url_base64_to_bytes(public_key),
            user_visible_only=True,
        )
        self._check(token)
        return subscription

    async def _register(
        self,
        subscription: BrowserSubscription,
        farm_id: str | None,
        token: CancelToken,
        api: PushApiClient | None = None,
    ) -> PushResult:
        device_id = self.device_id()
        body = await (api or self.api).create_subscription(subscription.to_json(), device_id, farm_id)
        self.status_cache.invalidate()
        self._check(token)

        created = bool(body.get("created", True))
        logger.info(f"Push subscription registered for device {device_id} (created={created})")
        return PushResult(
            success=True,
            message=body.get("message") or "Notifications enabled.",
            device_id=device_id,
            subscription=body.get("subscription"),
            created=created,
        )

    async def _subscribe_existing(self, farm_id: str | None, token: CancelToken) -> PushResult:
        self._ensure_supported()

        registration = await self.worker.get_active_registration()
        self._check(token)
        existing = await registration.push_manager.get_subscription()
        self._check(token)
        if existing is None:
            raise PushClientError(
                ErrorCode.NO_EXISTING_SUBSCRIPTION,
                "No existing subscription. Permission must be requested first.",
            )
        return await self._register(existing, farm_id, token)

    async def _unsubscribe_current(self, farm_id: str | None, token: CancelToken) -> PushResult:
        self._ensure_supported()

        registration = await self.worker.get_active_registration()
        self._check(token)
        existing = await registration.push_manager.get_subscription()
        self._check(token)
        if existing is None:
            self.status_cache.set(False)
            return PushResult(success=True, message="No active subscription.")

        # Browser first; a row the server keeps is removed by cleanup
        endpoint = existing.endpoint
        await existing.unsubscribe()
        self.status_cache.invalidate()
        logger.info("Push subscription removed for this browser")
        self._check(token)

        try:
            await self.api.delete_subscription(endpoint, farm_id)
        except PushClientError as e:
            raise PushClientError(ErrorCode.SUBSCRIPTION_UNSUBSCRIBE_FAILED, e.message) from e

        return PushResult(success=True, message="Notifications disabled.")

    async def _switch_user(
        self,
        api: PushApiClient,
        settings_active: bool,
        farm_id: str | None,
        token: CancelToken,
    ) -> PushResult:
        try:
            await self._unsubscribe_current(None, token)
        except PushClientError as e:
            if e.code is not ErrorCode.SUBSCRIPTION_UNSUBSCRIBE_FAILED:
                raise
            logger.warning(f"Previous user's subscription row was not removed: {e.message}")
        self.api = api

        if not settings_active:
            logger.info("Notifications are off for the new user; not subscribing")
            return PushResult(success=True, message="Notifications are turned off for this account.")

        if self.permission_state() is not PermissionState.GRANTED:
            raise PushClientError(ErrorCode.PERMISSION_DENIED, "Notification permission was not granted.")

        subscription = await self._create_platform_subscription(token)
        return await self._register(subscription, farm_id, token, api=api)

