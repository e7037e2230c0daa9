"""Web Push subscription lifecycle: server side

Components:
    vapid: Key custodian for the VAPID signing pair
    subscription_manager: Per-device subscription registrar
    cleanup: Reconciliation of stale and dead subscriptions
    web_push: pywebpush sender and validity probe
    notification_settings: Per-user delivery preferences

Database: data/push.db (override with FARMPASS_PUSH_DB)
    - push_subscriptions: One row per (user, device) push target
    - vapid_keys: The single active VAPID key pair
    - notification_settings: Per-user notification preferences
"""

import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path


# Path constants
PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_PATH = PROJECT_ROOT / "args"
DATA_PATH = PROJECT_ROOT / "data"
DB_PATH = Path(os.environ.get("FARMPASS_PUSH_DB", str(DATA_PATH / "push.db")))


def get_connection() -> sqlite3.Connection:
    """
    Get database connection, creating tables if needed.

    Returns:
        SQLite connection with row_factory set
    """
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(DB_PATH), timeout=10)
    conn.row_factory = sqlite3.Row

    cursor = conn.cursor()

    # Push subscriptions, one per (user, device)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS push_subscriptions (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            device_id TEXT NOT NULL,
            farm_id TEXT,
            endpoint TEXT NOT NULL,
            p256dh TEXT,
            auth TEXT,
            user_agent TEXT,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            consecutive_failure_count INTEGER NOT NULL DEFAULT 0,
            created_at DATETIME NOT NULL,
            updated_at DATETIME,
            last_validated_at DATETIME,
            UNIQUE (user_id, device_id)
        )
    """)

    # Single VAPID key pair
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS vapid_keys (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            public_key TEXT NOT NULL,
            private_key TEXT NOT NULL,
            created_at DATETIME NOT NULL,
            created_by TEXT
        )
    """)

    # Per-user notification preferences
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS notification_settings (
            user_id TEXT PRIMARY KEY,
            notification_method TEXT NOT NULL DEFAULT 'push',
            visitor_alerts BOOLEAN NOT NULL DEFAULT TRUE,
            notice_alerts BOOLEAN NOT NULL DEFAULT TRUE,
            emergency_alerts BOOLEAN NOT NULL DEFAULT TRUE,
            maintenance_alerts BOOLEAN NOT NULL DEFAULT TRUE,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at DATETIME NOT NULL,
            updated_at DATETIME NOT NULL
        )
    """)

    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_subscriptions_user "
        "ON push_subscriptions(user_id, is_active)"
    )
    # Endpoint uniqueness is kept by register_subscription inside one transaction
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_subscriptions_endpoint "
        "ON push_subscriptions(endpoint)"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_subscriptions_farm "
        "ON push_subscriptions(farm_id)"
    )

    conn.commit()
    return conn


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse a stored ISO timestamp, treating naive values as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
