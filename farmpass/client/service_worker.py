"""
Background worker event handlers.

    push                 parse the payload (JSON, else plain text, else
                         defaults) and show one notification
    notificationclick    focus a window on the target origin and navigate
                         it, or open a new one; the dismiss action does
                         nothing
    notificationclose    no network effect

The handlers take a WorkerGlobalScope so the same logic runs against a
real worker bridge or a test double.
"""

import copy
import json
import logging
import time
from typing import Any
from urllib.parse import urljoin, urlparse

from farmpass.client.platform import WorkerGlobalScope


logger = logging.getLogger(__name__)

DEFAULT_URL = "/admin/dashboard"
DEFAULT_ICON = "/icon-192x192.png"
DISMISS_ACTION = "dismiss"
VIEW_ACTION = "view"


def default_notification() -> dict[str, Any]:
    return {
        "title": "Farm notification",
        "body": "You have a new notification.",
        "icon": DEFAULT_ICON,
        "badge": DEFAULT_ICON,
        "tag": "farm-notification",
        "requireInteraction": False,
        "silent": False,
        "actions": [
            {"action": VIEW_ACTION, "title": "View", "icon": DEFAULT_ICON},
            {"action": DISMISS_ACTION, "title": "Close"},
        ],
        "data": {
            "url": DEFAULT_URL,
            "timestamp": int(time.time() * 1000),
        },
    }


def parse_push_payload(raw: bytes | str | None) -> dict[str, Any]:
    """
    Merge a push payload over the defaults.

    A JSON object overrides top-level fields and merges `data`. Any other
    non-empty content becomes the body. Nothing usable leaves the defaults.
    """
    notification = default_notification()
    if raw is None:
        return notification

    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    if not text:
        return notification

    try:
        payload = json.loads(text)
    except ValueError:
        logger.debug("Push payload is not JSON, using it as the body")
        notification["body"] = text
        return notification

    if not isinstance(payload, dict):
        logger.warning(f"Ignoring push payload of type {type(payload).__name__}")
        return notification

    fallback = {field: notification[field] for field in ("title", "body")}
    extra = payload.get("data")
    data = {**notification["data"], **(extra if isinstance(extra, dict) else {})}
    notification.update(copy.deepcopy(payload))
    notification["data"] = data

    # A notification cannot be shown without text
    for field, default in fallback.items():
        if not isinstance(notification[field], str) or not notification[field]:
            notification[field] = default
    return notification


async def handle_push(scope: WorkerGlobalScope, raw: bytes | str | None) -> dict[str, Any]:
    """Show the notification for one push message and return what was shown."""
    notification = parse_push_payload(raw)
    options = {key: value for key, value in notification.items() if key != "title"}
    await scope.show_notification(notification["title"], options)
    return notification


async def handle_notification_click(
    scope: WorkerGlobalScope,
    data: dict[str, Any] | None,
    action: str | None = None,
) -> str | None:
    """
    Route a notification click to a window.

    Returns:
        "dismissed", "focused" or "opened"
    """
    if action == DISMISS_ACTION:
        return "dismissed"

    target = (data or {}).get("url") or DEFAULT_URL
    target_origin = _origin(urljoin(scope.origin, target))

    for client in await scope.match_clients():
        if _origin(client.url) == target_origin:
            await client.focus()
            await client.navigate(target)
            return "focused"

    await scope.open_window(target)
    return "opened"


async def handle_notification_close(data: dict[str, Any] | None) -> None:
    logger.debug(f"Notification closed: {(data or {}).get('url')}")


def _origin(url: str) -> tuple[str, str]:
    parsed = urlparse(url)
    return parsed.scheme, parsed.netloc
