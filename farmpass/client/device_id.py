"""
Device identity for push subscriptions.

A device id is derived from the user agent only, so the same browser on the
same machine reproduces it across sessions and the server can upsert one row
per (user, device).

    Chrome on Windows     -> Chrome_Windows_desktop
    Safari on iPhone      -> Safari_iOS_mobile
    Chrome, Android tab   -> Chrome_Android_tablet
"""

import logging
import re
from dataclasses import dataclass


logger = logging.getLogger(__name__)

UNKNOWN_DEVICE_ID = "unknown_device"

# Order matters: Edge and Samsung user agents also contain "Chrome",
# and Chrome's contains "Safari".
_BROWSER_PATTERNS = (
    ("Edge", re.compile(r"Edg")),
    ("Samsung", re.compile(r"SamsungBrowser")),
    ("Chrome", re.compile(r"Chrome")),
    ("Firefox", re.compile(r"Firefox")),
    ("Safari", re.compile(r"Safari")),
)


@dataclass(frozen=True)
class DeviceInfo:
    browser: str
    os: str
    is_mobile: bool
    is_tablet: bool
    user_agent: str

    @property
    def device_class(self) -> str:
        if self.is_mobile:
            return "mobile"
        if self.is_tablet:
            return "tablet"
        return "desktop"


def detect_device(user_agent: str, max_touch_points: int = 0) -> DeviceInfo:
    """
    Classify a user agent string.

    Args:
        user_agent: Raw User-Agent header or navigator.userAgent
        max_touch_points: navigator.maxTouchPoints; iPadOS reports a
            Macintosh user agent and is recognised by touch support

    Returns:
        DeviceInfo with browser and OS families
    """
    is_ipados = "Macintosh" in user_agent and max_touch_points >= 4
    is_ios = bool(re.search(r"iPad|iPhone|iPod", user_agent)) or is_ipados
    is_android = "Android" in user_agent

    is_tablet = is_ipados or "iPad" in user_agent or (is_android and "Mobile" not in user_agent)
    is_mobile = is_ios or (is_android and not is_tablet)

    browser = "Other"
    for name, pattern in _BROWSER_PATTERNS:
        if pattern.search(user_agent):
            browser = name
            break

    if is_ios:
        os_name = "iOS"
    elif is_android:
        os_name = "Android"
    elif "Windows" in user_agent:
        os_name = "Windows"
    elif "Mac" in user_agent:
        os_name = "macOS"
    elif "Linux" in user_agent:
        os_name = "Linux"
    else:
        os_name = "Other"

    return DeviceInfo(
        browser=browser,
        os=os_name,
        is_mobile=is_mobile,
        is_tablet=is_tablet,
        user_agent=user_agent,
    )


def resolve_device_id(user_agent: str | None, max_touch_points: int = 0) -> str:
    """
    Build the stable device id for a browser.

    Never raises: a user agent that cannot be classified yields
    UNKNOWN_DEVICE_ID so subscription is never blocked on identity.
    """
    if not user_agent or not isinstance(user_agent, str):
        return UNKNOWN_DEVICE_ID

    try:
        info = detect_device(user_agent, int(max_touch_points or 0))
    except (TypeError, ValueError) as e:
        logger.warning(f"Device detection failed, using sentinel id: {e}")
        return UNKNOWN_DEVICE_ID

    return f"{info.browser}_{info.os}_{info.device_class}"
