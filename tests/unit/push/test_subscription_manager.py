"""Tests for farmpass/push/subscription_manager.py

Tests the subscription registrar:
- Upsert keyed by (user_id, device_id), insert vs resubscribe
- Endpoint ownership moves with the latest registration
- Payload validation and error codes
- Hard-delete unsubscribe
- Failure counter bookkeeping
"""

import asyncio
import base64
from concurrent.futures import ThreadPoolExecutor

import pytest

from farmpass.push.errors import ErrorCode, PushError, SubscriptionValidationError
from farmpass.push.subscription_manager import (
    deactivate,
    get_subscription_by_endpoint,
    get_subscription_stats,
    get_user_subscriptions,
    mark_validated,
    purge_inactive,
    record_failure,
    register_subscription,
    unsubscribe,
    validate_subscription_data,
)


ENDPOINT_A = "https://fcm.googleapis.com/fcm/send/device-a"
ENDPOINT_B = "https://fcm.googleapis.com/fcm/send/device-b"
ENDPOINT_ROTATED = "https://fcm.googleapis.com/fcm/send/device-a-rotated"


class TestValidateSubscriptionData:
    def test_valid_payload(self, subscription_payload):
        assert validate_subscription_data(subscription_payload(ENDPOINT_A)) == []

    def test_rejects_plain_http(self, subscription_payload):
        errors = validate_subscription_data(subscription_payload("http://push.example/abc"))
        assert "endpoint must be an HTTPS URL" in errors

    def test_rejects_short_keys(self):
        errors = validate_subscription_data(
            {"endpoint": ENDPOINT_A, "keys": {"p256dh": "short", "auth": "tiny"}}
        )
        assert "p256dh key is too short" in errors
        assert "auth key is too short" in errors

    def test_rejects_key_that_is_not_a_curve_point(self, subscription_payload):
        payload = subscription_payload(ENDPOINT_A)
        # Right length, wrong point prefix
        payload["keys"]["p256dh"] = base64.urlsafe_b64encode(b"\x05" * 65).decode().rstrip("=")

        assert validate_subscription_data(payload) == ["p256dh key is not a valid P-256 public key"]

    def test_rejects_auth_secret_of_wrong_size(self, subscription_payload):
        payload = subscription_payload(ENDPOINT_A)
        payload["keys"]["auth"] = base64.urlsafe_b64encode(b"\x01" * 24).decode().rstrip("=")

        assert validate_subscription_data(payload) == ["auth key must decode to 16 bytes"]

    def test_missing_keys(self):
        errors = validate_subscription_data({"endpoint": ENDPOINT_A})
        assert "p256dh key is required" in errors
        assert "auth key is required" in errors


class TestRegisterSubscription:
    @pytest.mark.asyncio
    async def test_first_registration_inserts(self, subscription_payload):
        result = await register_subscription(
            "user_1", subscription_payload(ENDPOINT_A), "Chrome_Windows_desktop", farm_id="farm_1"
        )

        assert result.created is True
        assert result.resubscribed is False
        assert result.subscription.endpoint == ENDPOINT_A
        assert result.subscription.farm_id == "farm_1"
        assert result.subscription.is_active is True
        assert result.subscription.last_validated_at is not None

    @pytest.mark.asyncio
    async def test_same_device_resubscribes_in_place(self, subscription_payload):
        first = await register_subscription(
            "user_1", subscription_payload(ENDPOINT_A), "Chrome_Windows_desktop"
        )
        await record_failure(first.subscription.id)
        await record_failure(first.subscription.id)

        second = await register_subscription(
            "user_1", subscription_payload(ENDPOINT_ROTATED, seed=2), "Chrome_Windows_desktop"
        )

        assert second.created is False
        assert second.subscription.id == first.subscription.id
        assert second.subscription.endpoint == ENDPOINT_ROTATED
        assert second.subscription.consecutive_failure_count == 0

        rows = await get_user_subscriptions("user_1")
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_two_devices_get_two_rows(self, subscription_payload):
        await register_subscription("user_1", subscription_payload(ENDPOINT_A), "Chrome_Windows_desktop")
        await register_subscription("user_1", subscription_payload(ENDPOINT_B), "Safari_iOS_mobile")

        rows = await get_user_subscriptions("user_1")
        assert {row.device_id for row in rows} == {"Chrome_Windows_desktop", "Safari_iOS_mobile"}

    @pytest.mark.asyncio
    async def test_endpoint_moves_to_new_owner(self, subscription_payload):
        await register_subscription("user_1", subscription_payload(ENDPOINT_A), "Chrome_Windows_desktop")
        await register_subscription("user_2", subscription_payload(ENDPOINT_A), "Chrome_Windows_desktop")

        assert await get_user_subscriptions("user_1") == []
        owner = await get_subscription_by_endpoint(ENDPOINT_A)
        assert owner is not None
        assert owner.user_id == "user_2"

    @pytest.mark.asyncio
    async def test_concurrent_resubscribes_leave_one_row(self, subscription_payload):
        endpoints = [f"{ENDPOINT_A}-{n}" for n in range(6)]

        results = await asyncio.gather(
            *(
                register_subscription(
                    "user_1", subscription_payload(endpoint, seed=n + 1), "Chrome_Windows_desktop"
                )
                for n, endpoint in enumerate(endpoints)
            )
        )

        rows = await get_user_subscriptions("user_1")
        assert len(rows) == 1
        assert sum(result.created for result in results) == 1
        assert {result.subscription.id for result in results} == {rows[0].id}
        assert rows[0].endpoint in endpoints

    @pytest.mark.asyncio
    async def test_resubscribes_from_parallel_workers_leave_one_row(self, subscription_payload):
        endpoints = [f"{ENDPOINT_A}-{n}" for n in range(8)]

        def register(n: int):
            return asyncio.run(
                register_subscription(
                    "user_1", subscription_payload(endpoints[n], seed=n + 1), "Chrome_Windows_desktop"
                )
            )

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(register, range(len(endpoints))))

        rows = await get_user_subscriptions("user_1")
        assert len(rows) == 1
        assert sum(result.created for result in results) == 1
        assert rows[0].endpoint in endpoints

    @pytest.mark.asyncio
    async def test_missing_endpoint(self):
        with pytest.raises(PushError) as exc_info:
            await register_subscription("user_1", {"keys": {}}, "Chrome_Windows_desktop")

        assert exc_info.value.code is ErrorCode.INVALID_SUBSCRIPTION_DATA
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_payload_reports_details(self):
        with pytest.raises(SubscriptionValidationError) as exc_info:
            await register_subscription(
                "user_1",
                {"endpoint": ENDPOINT_A, "keys": {"p256dh": "x", "auth": "y"}},
                "Chrome_Windows_desktop",
            )

        error = exc_info.value
        assert error.code is ErrorCode.SUBSCRIPTION_VALIDATION_FAILED
        assert error.to_dict()["details"] == ["p256dh key is too short", "auth key is too short"]


class TestUnsubscribe:
    @pytest.mark.asyncio
    async def test_hard_deletes_row(self, subscription_payload):
        await register_subscription("user_1", subscription_payload(ENDPOINT_A), "Chrome_Windows_desktop")

        deleted = await unsubscribe("user_1", ENDPOINT_A, farm_id="farm_1")

        assert deleted == 1
        assert await get_subscription_by_endpoint(ENDPOINT_A) is None

    @pytest.mark.asyncio
    async def test_other_users_row_is_untouched(self, subscription_payload):
        await register_subscription("user_1", subscription_payload(ENDPOINT_A), "Chrome_Windows_desktop")

        deleted = await unsubscribe("user_2", ENDPOINT_A)

        assert deleted == 0
        assert await get_subscription_by_endpoint(ENDPOINT_A) is not None

    @pytest.mark.asyncio
    async def test_missing_endpoint(self):
        with pytest.raises(PushError) as exc_info:
            await unsubscribe("user_1", "")

        assert exc_info.value.code is ErrorCode.MISSING_ENDPOINT


class TestFailureBookkeeping:
    @pytest.mark.asyncio
    async def test_record_failure_increments(self, subscription_payload):
        result = await register_subscription(
            "user_1", subscription_payload(ENDPOINT_A), "Chrome_Windows_desktop"
        )
        sub_id = result.subscription.id

        assert await record_failure(sub_id) == 1
        assert await record_failure(sub_id) == 2

    @pytest.mark.asyncio
    async def test_record_failure_unknown_row(self):
        assert await record_failure("sub_missing") == 0

    @pytest.mark.asyncio
    async def test_mark_validated_resets_counter(self, subscription_payload):
        result = await register_subscription(
            "user_1", subscription_payload(ENDPOINT_A), "Chrome_Windows_desktop"
        )
        sub_id = result.subscription.id
        await record_failure(sub_id)

        await mark_validated(sub_id)

        stored = await get_subscription_by_endpoint(ENDPOINT_A)
        assert stored.consecutive_failure_count == 0


class TestInactiveRows:
    @pytest.mark.asyncio
    async def test_purge_removes_old_inactive_rows(self, subscription_payload, update_subscription):
        old = await register_subscription("user_1", subscription_payload(ENDPOINT_A), "Chrome_Windows_desktop")
        recent = await register_subscription("user_1", subscription_payload(ENDPOINT_B), "Safari_iOS_mobile")
        await deactivate(old.subscription.id)
        await deactivate(recent.subscription.id)
        update_subscription(old.subscription.id, updated_at="2020-01-01T00:00:00+00:00")

        purged = await purge_inactive(retention_days=30)

        assert purged == 1
        remaining = await get_user_subscriptions("user_1")
        assert [row.id for row in remaining] == [recent.subscription.id]

    @pytest.mark.asyncio
    async def test_stats(self, subscription_payload):
        first = await register_subscription("user_1", subscription_payload(ENDPOINT_A), "Chrome_Windows_desktop")
        await register_subscription("user_2", subscription_payload(ENDPOINT_B), "Safari_iOS_mobile")
        await deactivate(first.subscription.id)

        stats = await get_subscription_stats()

        assert stats["total"] == 2
        assert stats["active"] == 1
        assert stats["inactive"] == 1
        assert stats["users"] == 2
