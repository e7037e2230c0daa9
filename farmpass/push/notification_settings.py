"""
Tool: Notification Settings
Purpose: Per-user delivery preferences

The delivery component reads these to decide whether a user gets a push.
A default record is created the first time a user subscribes.

Usage:
    from farmpass.push.notification_settings import (
        get_settings,
        ensure_default_settings,
        update_settings,
    )
"""

import logging

from farmpass.push import get_connection, utc_now
from farmpass.push.errors import ErrorCode, PersistenceError
from farmpass.push.models import NotificationMethod, NotificationSettings


logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "notification_method",
    "visitor_alerts",
    "notice_alerts",
    "emergency_alerts",
    "maintenance_alerts",
    "is_active",
}


async def get_settings(user_id: str) -> NotificationSettings | None:
    """Get a user's settings, or None if they never subscribed."""
    conn = get_connection()
    try:
        row = conn.execute(
            "SELECT * FROM notification_settings WHERE user_id = ?",
            (user_id,),
        ).fetchone()
    finally:
        conn.close()

    return NotificationSettings.from_row(row) if row else None


async def ensure_default_settings(user_id: str) -> bool:
    """
    Create default settings (push, all alerts on, active) if missing.

    Returns:
        True if a record was created, False if one already existed
    """
    now = utc_now().isoformat()
    conn = get_connection()
    try:
        cursor = conn.execute(
            """
            INSERT INTO notification_settings
            (user_id, notification_method, visitor_alerts, notice_alerts,
             emergency_alerts, maintenance_alerts, is_active, created_at, updated_at)
            VALUES (?, ?, TRUE, TRUE, TRUE, TRUE, TRUE, ?, ?)
            ON CONFLICT(user_id) DO NOTHING
            """,
            (user_id, NotificationMethod.PUSH.value, now, now),
        )
        conn.commit()
        created = cursor.rowcount > 0
    finally:
        conn.close()

    if created:
        logger.info(f"Default notification settings created for {user_id}")
    return created


async def update_settings(user_id: str, **updates) -> NotificationSettings:
    """
    Update a user's settings, creating defaults first if needed.

    Args:
        user_id: The user ID
        **updates: Any of UPDATABLE_FIELDS

    Raises:
        ValueError: on an unknown field
        PersistenceError: SETTINGS_SAVE_FAILED when the record cannot be read back
    """
    unknown = set(updates) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown notification settings: {', '.join(sorted(unknown))}")

    await ensure_default_settings(user_id)

    if "notification_method" in updates:
        updates["notification_method"] = NotificationMethod(updates["notification_method"]).value

    if updates:
        assignments = ", ".join(f"{name} = ?" for name in updates)
        conn = get_connection()
        try:
            conn.execute(
                f"UPDATE notification_settings SET {assignments}, updated_at = ? WHERE user_id = ?",
                (*updates.values(), utc_now().isoformat(), user_id),
            )
            conn.commit()
        finally:
            conn.close()

    settings = await get_settings(user_id)
    if settings is None:
        logger.error(f"Notification settings for {user_id} missing after update")
        raise PersistenceError(ErrorCode.SETTINGS_SAVE_FAILED)
    return settings
