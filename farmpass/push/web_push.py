"""
Tool: Web Push Sender
Purpose: Send Web Push messages signed with the custodian's VAPID key

Payload encryption is handled by pywebpush. This module only decides
what a push service response means for the subscription:

    404, 410   endpoint is gone for good
    400        push service rejected the subscription
    other      transient, worth retrying later

Usage:
    from farmpass.push.web_push import send_notification, probe_subscription
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any

from pywebpush import WebPushException, webpush

from farmpass.push.models import PushSubscription
from farmpass.push.vapid import get_private_key, get_vapid_claims


logger = logging.getLogger(__name__)

PERMANENT_FAILURE_CODES = frozenset({400, 404, 410})

DEFAULT_ICON = "/icon-192x192.png"


@dataclass
class SendOutcome:
    """Result of one push attempt against one subscription."""

    success: bool
    status_code: int | None = None
    permanent_failure: bool = False
    error: str | None = None
    retry_after: int | None = None


def build_payload(
    title: str,
    body: str,
    url: str = "/admin/dashboard",
    tag: str | None = None,
    icon: str = DEFAULT_ICON,
    badge: str = DEFAULT_ICON,
    require_interaction: bool = False,
    silent: bool = False,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the JSON payload understood by the background worker."""
    return {
        "title": title,
        "body": body,
        "icon": icon,
        "badge": badge,
        "tag": tag,
        "requireInteraction": require_interaction,
        "silent": silent,
        "data": {
            **(data or {}),
            "url": url,
            "timestamp": int(time.time() * 1000),
        },
    }


def build_probe_payload() -> dict[str, Any]:
    """Silent payload used to check that an endpoint still accepts pushes."""
    payload = build_payload(title="", body="", tag="validity-check-silent", silent=True)
    payload["data"]["isValidityCheck"] = True
    return payload


def _classify(e: WebPushException) -> SendOutcome:
    response = getattr(e, "response", None)
    status_code = getattr(response, "status_code", None)

    if status_code is None:
        return SendOutcome(success=False, error=str(e))

    outcome = SendOutcome(
        success=False,
        status_code=status_code,
        permanent_failure=status_code in PERMANENT_FAILURE_CODES,
        error=f"Push service responded {status_code}",
    )
    if status_code == 429:
        retry_after = response.headers.get("Retry-After", 60)
        try:
            outcome.retry_after = int(retry_after)
        except (TypeError, ValueError):
            outcome.retry_after = 60
    return outcome


def _send_sync(subscription: PushSubscription, payload: dict[str, Any], ttl: int) -> SendOutcome:
    try:
        response = webpush(
            subscription_info=subscription.get_subscription_info(),
            data=json.dumps(payload),
            vapid_private_key=get_private_key(),
            vapid_claims=get_vapid_claims(),
            ttl=ttl,
        )
    except WebPushException as e:
        outcome = _classify(e)
        logger.debug(f"Push to {subscription.id} failed: {e}")
        return outcome

    return SendOutcome(
        success=True,
        status_code=getattr(response, "status_code", 201),
    )


async def send_notification(
    subscription: PushSubscription,
    payload: dict[str, Any],
    ttl: int = 86400,
) -> SendOutcome:
    """
    Send one push message to one subscription.

    The request runs in a worker thread because pywebpush is blocking.
    Network-level errors other than push service responses propagate.

    Raises:
        VapidKeyNotConfiguredError: if no private key is available
    """
    return await asyncio.to_thread(_send_sync, subscription, payload, ttl)


async def probe_subscription(subscription: PushSubscription) -> SendOutcome:
    """Send a silent validity probe. A short TTL keeps stale probes from queueing."""
    return await send_notification(subscription, build_probe_payload(), ttl=60)
