"""Shared test fixtures for FarmPass tests.

This module provides common fixtures used across all test modules:
- Push database isolation with a temporary file per test
- VAPID environment isolation
- Valid browser subscription payloads

Usage:
    def test_something(push_db, subscription_payload):
        # push_db is a fresh database for this test only
        ...
"""

import base64
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec


# ─────────────────────────────────────────────────────────────────────────────
# Environment
# ─────────────────────────────────────────────────────────────────────────────

VAPID_ENV_VARS = (
    "VAPID_PUBLIC_KEY",
    "VAPID_PRIVATE_KEY",
    "VAPID_SUBJECT",
    "FARMPASS_CLEANUP_DAYS",
    "FARMPASS_FAIL_COUNT_THRESHOLD",
)


# ─────────────────────────────────────────────────────────────────────────────
# Database Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def push_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the push store at a temporary database and clear VAPID env.

    Every test gets its own database, so no state leaks between tests.

    Returns:
        Path to the temporary database file
    """
    db_path = tmp_path / "push.db"
    monkeypatch.setattr("farmpass.push.DB_PATH", db_path)
    for name in VAPID_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return db_path


@pytest.fixture
def update_subscription(push_db: Path) -> Callable[..., None]:
    """Overwrite columns of a stored subscription, e.g. to age it."""

    def _update(subscription_id: str, **fields: Any) -> None:
        assignments = ", ".join(f"{name} = ?" for name in fields)
        conn = sqlite3.connect(str(push_db))
        try:
            conn.execute(
                f"UPDATE push_subscriptions SET {assignments} WHERE id = ?",
                [*fields.values(), subscription_id],
            )
            conn.commit()
        finally:
            conn.close()

    return _update


# ─────────────────────────────────────────────────────────────────────────────
# Subscription Payloads
# ─────────────────────────────────────────────────────────────────────────────


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def client_public_key(seed: int = 1) -> str:
    """Deterministic uncompressed P-256 public point, as a browser sends it."""
    private_key = ec.derive_private_key(seed, ec.SECP256R1())
    return _b64url(
        private_key.public_key().public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.UncompressedPoint,
        )
    )


def make_subscription_payload(endpoint: str, seed: int = 1) -> dict[str, Any]:
    """Browser subscription JSON with keys of realistic length."""
    return {
        "endpoint": endpoint,
        "expirationTime": None,
        "keys": {
            "p256dh": client_public_key(seed),
            "auth": _b64url(bytes([seed]) * 16),
        },
    }


@pytest.fixture
def subscription_payload() -> Callable[..., dict[str, Any]]:
    """Factory for valid subscription payloads."""
    return make_subscription_payload
