"""
Integration test fixtures for FarmPass.

Provides fixtures specific to integration testing:
- FastAPI test client over an isolated push database
- Header-based identities for regular users and admins
"""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient


# ─────────────────────────────────────────────────────────────────────────────
# Dashboard API Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def test_client(monkeypatch) -> Generator[TestClient, None, None]:
    """
    Create a FastAPI test client.

    Authentication is switched to trusted headers so tests can act as any
    user with X-User-Id / X-User-Role.
    """
    from farmpass.dashboard.backend.config import security_config
    from farmpass.dashboard.backend.main import app

    monkeypatch.setitem(security_config, "require_auth", False)

    with TestClient(app) as client:
        yield client


@pytest.fixture
def as_user():
    """Headers identifying a regular user."""

    def _headers(user_id: str = "user_1", user_agent: str | None = None) -> dict[str, str]:
        headers = {"X-User-Id": user_id, "X-User-Role": "user"}
        if user_agent:
            headers["User-Agent"] = user_agent
        return headers

    return _headers


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-User-Id": "admin_1", "X-User-Role": "admin"}
