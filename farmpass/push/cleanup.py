"""
Tool: Subscription Cleanup
Purpose: Find and remove push subscriptions that can no longer receive messages

Two modes:
    basic     heuristics only, no network: failure counter above the
              threshold, not validated within the retention window,
              missing keys, unparseable endpoint
    realtime  silent probe through the push service: a permanent failure
              deletes the row, a transient one increments its counter

Running either mode twice in a row with no activity in between cleans
nothing the second time.

Usage:
    python -m farmpass.push.cleanup run
    python -m farmpass.push.cleanup run --realtime --user-id user_123
"""

import asyncio
import fnmatch
import logging
from datetime import timedelta
from urllib.parse import urlparse

import requests

from farmpass.push import utc_now
from farmpass.push.config import CleanupConfig, load_push_config
from farmpass.push.errors import VapidKeyNotConfiguredError
from farmpass.push.models import CheckType, CleanupResult, PushSubscription
from farmpass.push.subscription_manager import (
    delete_subscriptions,
    get_user_subscriptions,
    mark_validated,
    record_failure,
)
from farmpass.push.vapid import has_key_pair
from farmpass.push.web_push import probe_subscription


logger = logging.getLogger(__name__)

# Push services we expect to see; anything else is logged, not deleted
KNOWN_PUSH_HOSTS = (
    "fcm.googleapis.com",
    "updates.push.services.mozilla.com",
    "*.notify.windows.com",
    "*.push.apple.com",
    "web.push.apple.com",
)


def _is_known_host(hostname: str) -> bool:
    return any(fnmatch.fnmatch(hostname, pattern) for pattern in KNOWN_PUSH_HOSTS)


def stale_reason(
    subscription: PushSubscription,
    config: CleanupConfig,
    now=None,
) -> str | None:
    """
    Decide whether the basic check should delete a subscription.

    Returns:
        A short reason string, or None to keep the row
    """
    now = now or utc_now()

    if not subscription.endpoint or not subscription.p256dh or not subscription.auth:
        return "incomplete"

    parsed = urlparse(subscription.endpoint)
    if parsed.scheme != "https" or not parsed.hostname:
        return "invalid_endpoint"

    if subscription.consecutive_failure_count > config.fail_count_threshold:
        return "failure_threshold"

    if subscription.last_seen_at < now - timedelta(days=config.cleanup_days):
        return "expired"

    if not _is_known_host(parsed.hostname):
        logger.info(f"Unknown push service host for {subscription.id}: {parsed.hostname}")

    return None


async def _basic_check(
    subscriptions: list[PushSubscription],
    config: CleanupConfig,
) -> tuple[list[str], int]:
    now = utc_now()
    doomed = []
    for sub in subscriptions:
        reason = stale_reason(sub, config, now)
        if reason:
            logger.info(f"Subscription {sub.id} marked for cleanup ({reason})")
            doomed.append(sub.id)
    return doomed, len(subscriptions) - len(doomed)


async def _realtime_check(subscriptions: list[PushSubscription]) -> tuple[list[str], int]:
    doomed = []
    valid = 0
    for sub in subscriptions:
        try:
            outcome = await probe_subscription(sub)
        except requests.RequestException as e:
            failures = await record_failure(sub.id)
            logger.info(f"Probe for {sub.id} failed in transit ({failures} in a row): {e}")
            continue
        except ValueError as e:
            # Stored keys pywebpush cannot load will never encrypt
            logger.info(f"Subscription {sub.id} has unusable keys: {e}")
            doomed.append(sub.id)
            continue
        except Exception as e:
            failures = await record_failure(sub.id)
            logger.warning(f"Probe for {sub.id} failed unexpectedly ({failures} in a row): {e}")
            continue

        if outcome.success:
            valid += 1
            await mark_validated(sub.id)
        elif outcome.permanent_failure:
            logger.info(f"Subscription {sub.id} expired (status {outcome.status_code})")
            doomed.append(sub.id)
        else:
            failures = await record_failure(sub.id)
            logger.info(
                f"Probe for {sub.id} failed with status {outcome.status_code} "
                f"({failures} in a row)"
            )
    return doomed, valid


async def cleanup_subscriptions(
    user_id: str | None = None,
    real_time_check: bool = False,
    config: CleanupConfig | None = None,
) -> CleanupResult:
    """
    Validate subscriptions and delete the dead ones.

    Args:
        user_id: Only check this user's rows; None checks every row
        real_time_check: Probe through the push service instead of heuristics
        config: Thresholds; defaults to args/push.yaml

    Returns:
        CleanupResult summary

    Raises:
        VapidKeyNotConfiguredError: realtime mode without a key pair
    """
    config = config or load_push_config().cleanup
    check_type = CheckType.REALTIME if real_time_check else CheckType.BASIC

    if real_time_check and not has_key_pair():
        logger.warning("Realtime subscription check requested without VAPID keys")
        raise VapidKeyNotConfiguredError("Realtime check requires a VAPID key pair")

    subscriptions = await get_user_subscriptions(user_id)
    if not subscriptions:
        return CleanupResult(0, 0, 0, check_type)

    if real_time_check:
        doomed, valid = await _realtime_check(subscriptions)
    else:
        doomed, valid = await _basic_check(subscriptions, config)

    cleaned = await delete_subscriptions(doomed)

    logger.info(
        f"Subscription cleanup ({check_type.value}) for {user_id or 'all users'}: "
        f"checked={len(subscriptions)} cleaned={cleaned} valid={valid}"
    )
    return CleanupResult(
        cleaned_count=cleaned,
        valid_count=valid,
        total_checked=len(subscriptions),
        check_type=check_type,
    )


# CLI interface
if __name__ == "__main__":
    import argparse
    import json

    parser = argparse.ArgumentParser(description="Push subscription cleanup")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    run_parser = subparsers.add_parser("run", help="Run a cleanup pass")
    run_parser.add_argument("--realtime", "-r", action="store_true", help="Probe each endpoint")
    run_parser.add_argument("--user-id", "-u", help="Only this user's subscriptions")

    args = parser.parse_args()

    if args.command == "run":
        result = asyncio.run(
            cleanup_subscriptions(user_id=args.user_id, real_time_check=args.realtime)
        )
        print(json.dumps(result.to_dict(), indent=2))
    else:
        parser.print_help()
