"""
Tool: Push Models
Purpose: Data structures for subscriptions, keys, settings and cleanup

Usage:
    from farmpass.push.models import (
        PushSubscription,
        VapidKeyPair,
        NotificationSettings,
        CleanupResult,
        CheckType,
    )
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from farmpass.push import parse_timestamp, utc_now


class CheckType(str, Enum):
    """Cleanup mode."""

    BASIC = "basic"        # failure count and age heuristics
    REALTIME = "realtime"  # silent probe through the push service


class NotificationMethod(str, Enum):
    PUSH = "push"
    KAKAO = "kakao"


@dataclass
class PushSubscription:
    """
    One (user, device, endpoint) push target.

    At most one row exists per (user_id, device_id); a repeat subscribe
    from the same device updates this row in place.
    """

    id: str
    user_id: str
    device_id: str
    endpoint: str
    p256dh: str | None
    auth: str | None

    farm_id: str | None = None
    user_agent: str | None = None

    # Status
    is_active: bool = True
    consecutive_failure_count: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime | None = None
    last_validated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for API responses."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "device_id": self.device_id,
            "farm_id": self.farm_id,
            "endpoint": self.endpoint,
            "p256dh": self.p256dh,
            "auth": self.auth,
            "user_agent": self.user_agent,
            "is_active": self.is_active,
            "consecutive_failure_count": self.consecutive_failure_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "last_validated_at": (
                self.last_validated_at.isoformat() if self.last_validated_at else None
            ),
        }

    @classmethod
    def from_row(cls, row: Any) -> "PushSubscription":
        """Create from a sqlite3.Row or dict."""
        data = dict(row)
        for field_name in ["created_at", "updated_at", "last_validated_at"]:
            data[field_name] = parse_timestamp(data.get(field_name))
        data["is_active"] = bool(data.get("is_active", True))
        data["consecutive_failure_count"] = int(data.get("consecutive_failure_count") or 0)
        return cls(**data)

    @staticmethod
    def generate_id() -> str:
        """Generate a new subscription ID."""
        return f"sub_{uuid.uuid4().hex[:12]}"

    def get_subscription_info(self) -> dict:
        """Get subscription info for pywebpush."""
        return {
            "endpoint": self.endpoint,
            "keys": {
                "p256dh": self.p256dh,
                "auth": self.auth,
            },
        }

    @property
    def last_seen_at(self) -> datetime:
        """Last validation time, or creation time if never validated."""
        return self.last_validated_at or self.created_at


@dataclass
class VapidKeyPair:
    """VAPID signing pair, URL-safe base64 without padding."""

    public_key: str
    private_key: str
    created_at: datetime | None = None
    created_by: str | None = None


@dataclass
class NotificationSettings:
    """Per-user delivery preferences read by the delivery component."""

    user_id: str
    notification_method: NotificationMethod = NotificationMethod.PUSH
    visitor_alerts: bool = True
    notice_alerts: bool = True
    emergency_alerts: bool = True
    maintenance_alerts: bool = True
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "notification_method": self.notification_method.value,
            "visitor_alerts": self.visitor_alerts,
            "notice_alerts": self.notice_alerts,
            "emergency_alerts": self.emergency_alerts,
            "maintenance_alerts": self.maintenance_alerts,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_row(cls, row: Any) -> "NotificationSettings":
        data = dict(row)
        data["notification_method"] = NotificationMethod(data["notification_method"])
        for flag in [
            "visitor_alerts",
            "notice_alerts",
            "emergency_alerts",
            "maintenance_alerts",
            "is_active",
        ]:
            data[flag] = bool(data[flag])
        for field_name in ["created_at", "updated_at"]:
            data[field_name] = parse_timestamp(data.get(field_name))
        return cls(**data)


@dataclass
class RegistrationResult:
    """Outcome of a register call: the stored row and whether it was inserted."""

    subscription: PushSubscription
    created: bool

    @property
    def resubscribed(self) -> bool:
        return not self.created


@dataclass
class CleanupResult:
    """Summary of one cleanup run."""

    cleaned_count: int
    valid_count: int
    total_checked: int
    check_type: CheckType

    @property
    def message(self) -> str:
        if self.total_checked == 0:
            return "No subscriptions to clean up."
        if self.cleaned_count > 0:
            label = "expired" if self.check_type is CheckType.REALTIME else "invalid"
            return f"Cleaned up {self.cleaned_count} {label} subscription(s)."
        return "All subscriptions are valid."

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "cleanedCount": self.cleaned_count,
            "validCount": self.valid_count,
            "totalChecked": self.total_checked,
            "checkType": self.check_type.value,
        }
