"""Tests for farmpass/logging_config.py"""

import logging

import pytest
import structlog

from farmpass.logging_config import (
    bind_request_context,
    clear_request_context,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _clean_context():
    clear_request_context()
    yield
    clear_request_context()


def test_bind_request_context_uses_given_id():
    request_id = bind_request_context("req-123", method="POST", path="/api/push/subscription")

    assert request_id == "req-123"
    assert structlog.contextvars.get_contextvars() == {
        "request_id": "req-123",
        "method": "POST",
        "path": "/api/push/subscription",
    }


def test_bind_request_context_generates_id():
    request_id = bind_request_context()

    assert len(request_id) == 32
    assert structlog.contextvars.get_contextvars()["request_id"] == request_id


def test_binding_replaces_previous_request():
    bind_request_context("first", path="/api/push/vapid")
    bind_request_context("second")

    assert structlog.contextvars.get_contextvars() == {"request_id": "second"}


def test_clear_request_context():
    bind_request_context("req-123")

    clear_request_context()

    assert structlog.contextvars.get_contextvars() == {}


def test_push_transport_loggers_are_quieted():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    try:
        setup_logging(level="DEBUG")

        assert logging.getLogger("pywebpush").level == logging.WARNING
        assert logging.getLogger("urllib3").level == logging.WARNING
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)
