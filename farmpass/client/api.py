"""
HTTP client for the push REST surface.

Wraps the /api/push routes of the dashboard backend. Failures surface as
PushClientError carrying the server's error code, or NETWORK_ERROR when the
request never got a response.

Usage:
    api = PushApiClient("https://farmpass.example", headers={"Authorization": "Bearer ..."})
    key = await api.get_public_key()
    await api.create_subscription(subscription_json, "Chrome_Windows_desktop")
"""

import logging
from typing import Any

import httpx

from farmpass.client.results import PushClientError
from farmpass.push.errors import ErrorCode


logger = logging.getLogger(__name__)


class PushApiClient:
    """Async client for subscription, key and cleanup routes."""

    def __init__(
        self,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._base_url = base_url
        self._headers = headers or {}
        self._timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={**self._headers, "Content-Type": "application/json"},
                timeout=self._timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        client = await self._get_client()

        try:
            response = await client.request(
                method, path, json=json, params=params, headers=self._headers
            )
        except httpx.RequestError as e:
            logger.error(f"Push API request error: {e}")
            raise PushClientError(ErrorCode.NETWORK_ERROR, f"Could not reach the server: {e}") from e

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {"message": response.text}
        if response.is_success:
            return body

        logger.error(f"Push API error: {response.status_code} - {body}")
        code = ErrorCode.INTERNAL_ERROR
        raw_code = body.get("error") if isinstance(body, dict) else None
        if raw_code in ErrorCode.__members__:
            code = ErrorCode(raw_code)
        message = body.get("message") if isinstance(body, dict) else None
        raise PushClientError(code, message)

    # =========================================================================
    # Keys
    # =========================================================================

    async def get_public_key(self) -> str | None:
        """Current VAPID public key, or None when the server has none configured."""
        try:
            body = await self._request("GET", "/api/push/vapid")
        except PushClientError as e:
            if e.code is ErrorCode.VAPID_KEY_NOT_CONFIGURED:
                return None
            raise
        return body.get("publicKey")

    async def generate_key_pair(self) -> dict[str, Any]:
        return await self._request("POST", "/api/push/vapid")

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def create_subscription(
        self,
        subscription: dict[str, Any],
        device_id: str,
        farm_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Register a browser subscription for the signed-in user.

        Returns:
            Server response with message, subscription and created flag
        """
        payload: dict[str, Any] = {"subscription": subscription, "deviceId": device_id}
        if farm_id:
            payload["farmId"] = farm_id
        return await self._request("POST", "/api/push/subscription", json=payload)

    async def list_subscriptions(self, farm_id: str | None = None) -> list[dict[str, Any]]:
        params = {"farmId": farm_id} if farm_id else None
        body = await self._request("GET", "/api/push/subscription", params=params)
        return body.get("subscriptions", [])

    async def delete_subscription(self, endpoint: str, farm_id: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"endpoint": endpoint}
        if farm_id:
            payload["farmId"] = farm_id
        return await self._request("DELETE", "/api/push/subscription", json=payload)

    async def cleanup_subscriptions(self, real_time_check: bool = False) -> dict[str, Any]:
        return await self._request(
            "POST", "/api/push/subscription/cleanup", json={"realTimeCheck": real_time_check}
        )
