"""
Tool: Push Subscription Manager
Purpose: Store and manage Web Push subscriptions, one per (user, device)

Usage:
    from farmpass.push.subscription_manager import (
        register_subscription,
        unsubscribe,
        get_user_subscriptions,
        purge_inactive,
    )
"""

import asyncio
import base64
import binascii
import logging
import sqlite3
from datetime import timedelta
from typing import Any

from cryptography.hazmat.primitives.asymmetric import ec

from farmpass.push import get_connection, utc_now
from farmpass.push.errors import (
    ErrorCode,
    PersistenceError,
    PushError,
    SubscriptionValidationError,
)
from farmpass.push.models import PushSubscription, RegistrationResult


logger = logging.getLogger(__name__)

MIN_P256DH_LENGTH = 80
MIN_AUTH_LENGTH = 20
P256DH_SIZE = 65
AUTH_SIZE = 16


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def is_valid_p256dh(value: str) -> bool:
    """True when the key decodes to an uncompressed point on P-256."""
    try:
        raw = _b64url_decode(value)
        if len(raw) != P256DH_SIZE or raw[0] != 0x04:
            return False
        ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), raw)
    except (binascii.Error, ValueError):
        return False
    return True


def is_valid_auth(value: str) -> bool:
    try:
        return len(_b64url_decode(value)) == AUTH_SIZE
    except (binascii.Error, ValueError):
        return False


def validate_subscription_data(subscription: dict[str, Any]) -> list[str]:
    """
    Check a browser subscription payload for integrity.

    Args:
        subscription: {"endpoint": str, "keys": {"p256dh": str, "auth": str}}

    Returns:
        List of problems, empty when the payload is usable
    """
    errors = []
    endpoint = subscription.get("endpoint")
    keys = subscription.get("keys") or {}
    p256dh = keys.get("p256dh")
    auth = keys.get("auth")

    if not endpoint:
        errors.append("endpoint is required")
    elif not endpoint.startswith("https://"):
        errors.append("endpoint must be an HTTPS URL")

    if not p256dh:
        errors.append("p256dh key is required")
    elif len(p256dh) < MIN_P256DH_LENGTH:
        errors.append("p256dh key is too short")
    elif not is_valid_p256dh(p256dh):
        errors.append("p256dh key is not a valid P-256 public key")

    if not auth:
        errors.append("auth key is required")
    elif len(auth) < MIN_AUTH_LENGTH:
        errors.append("auth key is too short")
    elif not is_valid_auth(auth):
        errors.append("auth key must decode to 16 bytes")

    return errors


async def register_subscription(
    user_id: str,
    subscription: dict[str, Any],
    device_id: str,
    farm_id: str | None = None,
    user_agent: str | None = None,
) -> RegistrationResult:
    """
    Insert or update the subscription for (user_id, device_id).

    A repeat subscribe from the same device replaces endpoint and keys in
    place and resets the failure counter, since push services rotate
    endpoints. Any other row holding the same endpoint is removed in the
    same transaction so an endpoint never belongs to two devices.

    Args:
        user_id: The user ID
        subscription: Browser subscription JSON (endpoint + keys)
        device_id: Stable device identifier from the client
        farm_id: Optional farm scope
        user_agent: Reporting browser's user agent

    Returns:
        RegistrationResult with the stored row and whether it was inserted

    Raises:
        PushError: INVALID_SUBSCRIPTION_DATA when the payload has no endpoint
        SubscriptionValidationError: when keys or endpoint are malformed
        PersistenceError: SUBSCRIPTION_SAVE_FAILED on storage failure
    """
    if not subscription or not subscription.get("endpoint"):
        raise PushError(
            ErrorCode.INVALID_SUBSCRIPTION_DATA,
            "Subscription endpoint is required",
            status_code=400,
        )

    errors = validate_subscription_data(subscription)
    if errors:
        raise SubscriptionValidationError(errors)

    endpoint = subscription["endpoint"]
    keys = subscription["keys"]
    new_id = PushSubscription.generate_id()
    now = utc_now().isoformat()

    conn = get_connection()
    try:
        with conn:
            conn.execute(
                """
                DELETE FROM push_subscriptions
                WHERE endpoint = ? AND NOT (user_id = ? AND device_id = ?)
                """,
                (endpoint, user_id, device_id),
            )
            rows = conn.execute(
                """
                INSERT INTO push_subscriptions
                (id, user_id, device_id, farm_id, endpoint, p256dh, auth, user_agent,
                 is_active, consecutive_failure_count, created_at, updated_at, last_validated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, TRUE, 0, ?, ?, ?)
                ON CONFLICT(user_id, device_id) DO UPDATE SET
                    endpoint = excluded.endpoint,
                    p256dh = excluded.p256dh,
                    auth = excluded.auth,
                    farm_id = excluded.farm_id,
                    user_agent = excluded.user_agent,
                    is_active = TRUE,
                    consecutive_failure_count = 0,
                    updated_at = excluded.updated_at,
                    last_validated_at = excluded.last_validated_at
                RETURNING *
                """,
                (
                    new_id,
                    user_id,
                    device_id,
                    farm_id,
                    endpoint,
                    keys["p256dh"],
                    keys["auth"],
                    user_agent,
                    now,
                    now,
                    now,
                ),
            ).fetchall()
    except sqlite3.Error as e:
        logger.error(
            f"Failed to save push subscription for {user_id} "
            f"(device={device_id}, endpoint={endpoint}): {e}"
        )
        raise PersistenceError(ErrorCode.SUBSCRIPTION_SAVE_FAILED) from e
    finally:
        conn.close()

    stored = PushSubscription.from_row(rows[0])
    created = stored.id == new_id

    logger.info(
        f"Push subscription {'created' if created else 'resubscribed'} "
        f"for {user_id} on {device_id}"
    )
    return RegistrationResult(subscription=stored, created=created)


async def unsubscribe(user_id: str, endpoint: str, farm_id: str | None = None) -> int:
    """
    Hard-delete the user's subscription for an endpoint.

    Rows are keyed per device rather than per farm, so the delete covers
    the endpoint across every farm scope; farm_id is only recorded.

    Returns:
        Number of rows deleted

    Raises:
        PushError: MISSING_ENDPOINT when endpoint is empty
        PersistenceError: SUBSCRIPTION_UNSUBSCRIBE_FAILED on storage failure
    """
    if not endpoint:
        raise PushError(ErrorCode.MISSING_ENDPOINT, "Endpoint is required", status_code=400)

    conn = get_connection()
    try:
        with conn:
            cursor = conn.execute(
                "DELETE FROM push_subscriptions WHERE user_id = ? AND endpoint = ?",
                (user_id, endpoint),
            )
            deleted = cursor.rowcount
    except sqlite3.Error as e:
        logger.error(f"Failed to delete push subscription for {user_id} (endpoint={endpoint}): {e}")
        raise PersistenceError(ErrorCode.SUBSCRIPTION_UNSUBSCRIBE_FAILED) from e
    finally:
        conn.close()

    logger.info(f"Push subscription removed for {user_id} (farm={farm_id}, deleted={deleted})")
    return deleted


async def get_user_subscriptions(
    user_id: str | None,
    farm_id: str | None = None,
    active_only: bool = False,
) -> list[PushSubscription]:
    """
    Get subscriptions for a user, or every subscription when user_id is None.

    Args:
        user_id: The user ID, or None for all users
        farm_id: Only rows scoped to this farm
        active_only: If True, only return active subscriptions
    """
    clauses = []
    params: list[Any] = []

    if user_id is not None:
        clauses.append("user_id = ?")
        params.append(user_id)
    if farm_id is not None:
        clauses.append("farm_id = ?")
        params.append(farm_id)
    if active_only:
        clauses.append("is_active = TRUE")

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    conn = get_connection()
    try:
        rows = conn.execute(
            f"SELECT * FROM push_subscriptions {where} ORDER BY created_at DESC",
            params,
        ).fetchall()
    finally:
        conn.close()

    return [PushSubscription.from_row(row) for row in rows]


async def get_subscription_by_endpoint(endpoint: str) -> PushSubscription | None:
    """Get the subscription holding an endpoint."""
    conn = get_connection()
    try:
        row = conn.execute(
            "SELECT * FROM push_subscriptions WHERE endpoint = ?",
            (endpoint,),
        ).fetchone()
    finally:
        conn.close()

    return PushSubscription.from_row(row) if row else None


async def record_failure(subscription_id: str) -> int:
    """
    Increment the consecutive failure counter.

    Returns:
        The new counter value, or 0 if the row no longer exists
    """
    conn = get_connection()
    try:
        with conn:
            rows = conn.execute(
                """
                UPDATE push_subscriptions
                SET consecutive_failure_count = consecutive_failure_count + 1,
                    updated_at = ?
                WHERE id = ?
                RETURNING consecutive_failure_count
                """,
                (utc_now().isoformat(), subscription_id),
            ).fetchall()
    finally:
        conn.close()

    return rows[0]["consecutive_failure_count"] if rows else 0


async def mark_validated(subscription_id: str) -> None:
    """Reset the failure counter and stamp last_validated_at."""
    now = utc_now().isoformat()
    conn = get_connection()
    try:
        with conn:
            conn.execute(
                """
                UPDATE push_subscriptions
                SET consecutive_failure_count = 0,
                    last_validated_at = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (now, now, subscription_id),
            )
    finally:
        conn.close()


async def deactivate(subscription_id: str) -> bool:
    """Mark a subscription inactive. Delivery skips inactive rows."""
    conn = get_connection()
    try:
        with conn:
            cursor = conn.execute(
                "UPDATE push_subscriptions SET is_active = FALSE, updated_at = ? WHERE id = ?",
                (utc_now().isoformat(), subscription_id),
            )
            updated = cursor.rowcount > 0
    finally:
        conn.close()

    return updated


async def delete_subscriptions(subscription_ids: list[str]) -> int:
    """Hard-delete subscriptions by ID. Returns the number removed."""
    if not subscription_ids:
        return 0

    placeholders = ", ".join("?" for _ in subscription_ids)
    conn = get_connection()
    try:
        with conn:
            cursor = conn.execute(
                f"DELETE FROM push_subscriptions WHERE id IN ({placeholders})",
                subscription_ids,
            )
            deleted = cursor.rowcount
    finally:
        conn.close()

    return deleted


async def purge_inactive(retention_days: int = 30) -> int:
    """
    Hard-delete inactive subscriptions not updated within the retention window.

    Returns:
        Number of rows deleted
    """
    cutoff = utc_now() - timedelta(days=retention_days)
    inactive = [
        sub
        for sub in await get_user_subscriptions(None)
        if not sub.is_active and (sub.updated_at or sub.created_at) < cutoff
    ]
    return await delete_subscriptions([sub.id for sub in inactive])


async def get_subscription_stats(user_id: str | None = None) -> dict:
    """
    Get subscription statistics.

    Args:
        user_id: Optional user ID to filter by

    Returns:
        Statistics dict
    """
    where = "WHERE user_id = ?" if user_id else ""
    params = (user_id,) if user_id else ()

    conn = get_connection()
    try:
        row = conn.execute(
            f"""
            SELECT
                COUNT(*) as total,
                COALESCE(SUM(CASE WHEN is_active = TRUE THEN 1 ELSE 0 END), 0) as active,
                COALESCE(SUM(CASE WHEN is_active = FALSE THEN 1 ELSE 0 END), 0) as inactive,
                COUNT(DISTINCT user_id) as users,
                COUNT(DISTINCT device_id) as devices
            FROM push_subscriptions
            {where}
            """,
            params,
        ).fetchone()
    finally:
        conn.close()

    return dict(row) if row else {}


# CLI interface
if __name__ == "__main__":
    import argparse
    import json

    parser = argparse.ArgumentParser(description="Push subscription management")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    list_parser = subparsers.add_parser("list", help="List subscriptions for a user")
    list_parser.add_argument("--user-id", "-u", required=True, help="User ID")
    list_parser.add_argument("--active", "-a", action="store_true", help="Only active rows")

    purge_parser = subparsers.add_parser("purge", help="Delete inactive subscriptions")
    purge_parser.add_argument("--days", "-d", type=int, default=30, help="Retention in days")

    stats_parser = subparsers.add_parser("stats", help="Get subscription statistics")
    stats_parser.add_argument("--user-id", "-u", help="Optional user ID")

    args = parser.parse_args()

    if args.command == "list":
        subs = asyncio.run(get_user_subscriptions(args.user_id, active_only=args.active))
        print(f"Found {len(subs)} subscriptions:")
        for sub in subs:
            status = "active" if sub.is_active else "inactive"
            print(f"  {sub.id}: {sub.device_id} failures={sub.consecutive_failure_count} [{status}]")

    elif args.command == "purge":
        purged = asyncio.run(purge_inactive(args.days))
        print(f"Purged {purged} inactive subscriptions")

    elif args.command == "stats":
        stats = asyncio.run(get_subscription_stats(args.user_id))
        print(json.dumps(stats, indent=2))

    else:
        parser.print_help()
