"""
Push Notification Routes - Web Push API for Dashboard

Provides endpoints for Web Push subscription management:
- VAPID key retrieval and (admin) regeneration
- Subscription register, list and unsubscribe for the calling user
- Cleanup of the caller's stale subscriptions

Errors are raised as PushError and rendered by the application's
exception handler as {success: false, error, message, details?}.
"""

import sqlite3

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from farmpass.dashboard.backend.auth import get_current_user, require_admin
from farmpass.dashboard.backend.models import (
    CleanupRequest,
    CleanupResponse,
    SubscribeRequest,
    SubscribeResponse,
    SubscriptionListResponse,
    SubscriptionOut,
    UnsubscribeRequest,
    UnsubscribeResponse,
    VapidKeyPairResponse,
    VapidPublicKeyResponse,
)
from farmpass.logging_config import get_logger
from farmpass.push.cleanup import cleanup_subscriptions
from farmpass.push.errors import ErrorCode, PersistenceError, PushError
from farmpass.push.models import PushSubscription
from farmpass.push.notification_settings import ensure_default_settings
from farmpass.push.subscription_manager import (
    get_user_subscriptions,
    register_subscription,
    unsubscribe,
)
from farmpass.push.vapid import generate_key_pair, get_public_key


router = APIRouter()

logger = get_logger(__name__)


def _request_logger(request: Request, user: dict):
    return logger.bind(
        user_id=user.get("user_id"),
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def _subscription_out(subscription: PushSubscription) -> SubscriptionOut:
    data = subscription.to_dict()
    return SubscriptionOut(
        id=data["id"],
        userId=data["user_id"],
        deviceId=data["device_id"],
        farmId=data["farm_id"],
        endpoint=data["endpoint"],
        isActive=data["is_active"],
        consecutiveFailureCount=data["consecutive_failure_count"],
        createdAt=data["created_at"],
        updatedAt=data["updated_at"],
        lastValidatedAt=data["last_validated_at"],
    )


# =============================================================================
# VAPID Key Endpoints
# =============================================================================


@router.get("/vapid", response_model=VapidPublicKeyResponse)
async def get_vapid_key(user: dict = Depends(get_current_user)):
    """
    Get the server's VAPID public key for client subscription.

    Fails with VAPID_KEY_NOT_CONFIGURED when no key pair is stored or configured.
    """
    return VapidPublicKeyResponse(publicKey=get_public_key())


@router.post("/vapid", response_model=VapidKeyPairResponse)
async def create_vapid_keys(request: Request, user: dict = Depends(require_admin)):
    """
    Generate a new VAPID key pair, replacing the stored one.

    Subscriptions created under the old key stop authenticating and are
    removed by cleanup once their deliveries fail.
    """
    log = _request_logger(request, user)
    try:
        pair = generate_key_pair(created_by=user["user_id"])
    except sqlite3.Error as e:
        log.error("vapid_key_create_failed", error=str(e))
        raise PersistenceError(ErrorCode.VAPID_KEY_CREATE_FAILED, "Failed to create VAPID keys") from e

    log.info("vapid_key_regenerated")
    return VapidKeyPairResponse(
        publicKey=pair.public_key,
        privateKey=pair.private_key,
        message="VAPID keys generated.",
        warning="Existing subscriptions use the previous key and must subscribe again.",
    )


# =============================================================================
# Subscription Endpoints
# =============================================================================


@router.post("/subscription", response_model=SubscribeResponse)
async def subscribe(
    body: SubscribeRequest,
    request: Request,
    user: dict = Depends(get_current_user),
):
    """
    Register the browser's push subscription for the calling user.

    Returns 201 for a new device and 200 when an existing device row was
    updated (resubscribe).
    """
    log = _request_logger(request, user)
    subscription = body.subscription.model_dump(exclude_none=True) if body.subscription else {}
    if not body.deviceId and subscription:
        raise PushError(
            ErrorCode.INVALID_SUBSCRIPTION_DATA,
            "Device id is required",
            status_code=400,
        )

    try:
        result = await register_subscription(
            user_id=user["user_id"],
            subscription=subscription,
            device_id=body.deviceId or "",
            farm_id=body.farmId,
            user_agent=request.headers.get("user-agent"),
        )
    except PersistenceError as e:
        log.error(
            "push_subscription_save_failed",
            endpoint=subscription.get("endpoint"),
            device_id=body.deviceId,
            error=e.code.value,
        )
        raise

    try:
        await ensure_default_settings(user["user_id"])
    except sqlite3.Error as e:
        log.warning("default_notification_settings_failed", error=str(e))

    log.info(
        "push_subscription_registered",
        device_id=body.deviceId,
        farm_id=body.farmId,
        created=result.created,
    )
    response = SubscribeResponse(
        message="Notifications enabled." if result.created else "Subscription updated.",
        subscription=_subscription_out(result.subscription),
        created=result.created,
    )
    return JSONResponse(status_code=201 if result.created else 200, content=response.model_dump())


@router.get("/subscription", response_model=SubscriptionListResponse)
async def list_subscriptions(
    request: Request,
    farm_id: str | None = Query(None, alias="farmId", description="Only this farm's rows"),
    user: dict = Depends(get_current_user),
):
    """List the calling user's push subscriptions."""
    try:
        subscriptions = await get_user_subscriptions(user["user_id"], farm_id=farm_id)
    except sqlite3.Error as e:
        _request_logger(request, user).error("push_subscription_fetch_failed", error=str(e))
        raise PersistenceError(ErrorCode.SUBSCRIPTION_FETCH_FAILED, "Failed to load subscriptions") from e

    return SubscriptionListResponse(subscriptions=[_subscription_out(s) for s in subscriptions])


@router.delete("/subscription", response_model=UnsubscribeResponse)
async def delete_subscription(
    body: UnsubscribeRequest,
    request: Request,
    user: dict = Depends(get_current_user),
):
    """Hard-delete the calling user's subscription for an endpoint."""
    log = _request_logger(request, user)
    try:
        deleted = await unsubscribe(user["user_id"], body.endpoint or "", farm_id=body.farmId)
    except PersistenceError as e:
        log.error("push_subscription_delete_failed", endpoint=body.endpoint, error=e.code.value)
        raise

    log.info(
        "push_subscription_deleted",
        endpoint=body.endpoint,
        farm_id=body.farmId,
        deleted=deleted,
    )
    message = "Subscription removed." if deleted else "No matching subscription."
    return UnsubscribeResponse(message=message, deleted=deleted)


# =============================================================================
# Cleanup
# =============================================================================


@router.post("/subscription/cleanup", response_model=CleanupResponse)
async def cleanup(
    request: Request,
    body: CleanupRequest | None = None,
    user: dict = Depends(get_current_user),
):
    """
    Validate the caller's subscriptions and delete dead ones.

    realTimeCheck probes each endpoint through its push service; otherwise
    failure count and age heuristics decide.
    """
    log = _request_logger(request, user)
    real_time_check = body.realTimeCheck if body else False

    try:
        result = await cleanup_subscriptions(
            user_id=user["user_id"],
            real_time_check=real_time_check,
        )
    except sqlite3.Error as e:
        log.error("push_subscription_cleanup_failed", error=str(e))
        raise PersistenceError(
            ErrorCode.SUBSCRIPTION_CLEANUP_FAILED, "Failed to clean up subscriptions"
        ) from e

    log.info("push_subscription_cleanup", **result.to_dict())
    return CleanupResponse(**result.to_dict())
