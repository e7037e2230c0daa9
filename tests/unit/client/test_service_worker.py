"""Tests for farmpass/client/service_worker.py

Tests the background worker handlers:
- Payload parsing: JSON object, plain text, empty, non-object JSON
- Click routing: dismiss, focus same-origin window, open new window
"""

import json

import pytest

from farmpass.client.platform import WindowClient, WorkerGlobalScope
from farmpass.client.service_worker import (
    DEFAULT_URL,
    handle_notification_click,
    handle_notification_close,
    handle_push,
    parse_push_payload,
)


class FakeClient(WindowClient):
    def __init__(self, url: str):
        self._url = url
        self.focused = False
        self.navigated_to: str | None = None

    @property
    def url(self) -> str:
        return self._url

    async def focus(self) -> None:
        self.focused = True

    async def navigate(self, url: str) -> None:
        self.navigated_to = url


class FakeScope(WorkerGlobalScope):
    def __init__(self, clients: list[FakeClient] | None = None):
        self.clients = clients or []
        self.shown: list[tuple[str, dict]] = []
        self.opened: list[str] = []

    @property
    def origin(self) -> str:
        return "https://farm.example"

    async def show_notification(self, title, options):
        self.shown.append((title, options))

    async def match_clients(self):
        return self.clients

    async def open_window(self, url):
        self.opened.append(url)


class TestParsePushPayload:
    def test_json_object_overrides_defaults(self):
        raw = json.dumps(
            {
                "title": "Visitor arrived",
                "body": "Kim checked in at gate 2",
                "data": {"url": "/admin/visitors", "visitorId": "v_1"},
            }
        )

        notification = parse_push_payload(raw)

        assert notification["title"] == "Visitor arrived"
        assert notification["body"] == "Kim checked in at gate 2"
        assert notification["data"]["url"] == "/admin/visitors"
        assert notification["data"]["visitorId"] == "v_1"
        assert "timestamp" in notification["data"]
        assert notification["tag"] == "farm-notification"

    def test_plain_text_becomes_body(self):
        notification = parse_push_payload(b"Gate sensor offline")

        assert notification["body"] == "Gate sensor offline"
        assert notification["title"] == "Farm notification"

    @pytest.mark.parametrize("raw", [None, b"", ""])
    def test_empty_payload_uses_defaults(self, raw):
        notification = parse_push_payload(raw)

        assert notification["body"] == "You have a new notification."
        assert notification["data"]["url"] == DEFAULT_URL

    def test_non_object_json_uses_defaults(self):
        notification = parse_push_payload("[1, 2, 3]")
        assert notification["title"] == "Farm notification"

    def test_non_object_data_keeps_default_data(self):
        notification = parse_push_payload(json.dumps({"title": "Visitor arrived", "data": "oops"}))

        assert notification["title"] == "Visitor arrived"
        assert notification["data"]["url"] == DEFAULT_URL
        assert "timestamp" in notification["data"]

    @pytest.mark.parametrize("title", [None, 42, "", ["Visitor"]])
    def test_unusable_title_falls_back(self, title):
        notification = parse_push_payload(json.dumps({"title": title, "body": 7}))

        assert notification["title"] == "Farm notification"
        assert notification["body"] == "You have a new notification."

    def test_payload_without_title_keeps_default(self):
        notification = parse_push_payload(json.dumps({"body": "Gate 2 opened"}))

        assert notification["title"] == "Farm notification"
        assert notification["body"] == "Gate 2 opened"

    def test_defaults_include_view_and_dismiss(self):
        actions = [a["action"] for a in parse_push_payload(None)["actions"]]
        assert actions == ["view", "dismiss"]


class TestHandlePush:
    @pytest.mark.asyncio
    async def test_shows_exactly_one_notification(self):
        scope = FakeScope()

        await handle_push(scope, json.dumps({"title": "Emergency", "requireInteraction": True}))

        assert len(scope.shown) == 1
        title, options = scope.shown[0]
        assert title == "Emergency"
        assert "title" not in options
        assert options["requireInteraction"] is True


class TestNotificationClick:
    @pytest.mark.asyncio
    async def test_dismiss_does_nothing(self):
        scope = FakeScope([FakeClient("https://farm.example/admin")])

        outcome = await handle_notification_click(scope, {"url": "/admin/visitors"}, action="dismiss")

        assert outcome == "dismissed"
        assert scope.clients[0].focused is False
        assert scope.opened == []

    @pytest.mark.asyncio
    async def test_focuses_same_origin_window(self):
        other = FakeClient("https://elsewhere.example/")
        mine = FakeClient("https://farm.example/admin/settings")
        scope = FakeScope([other, mine])

        outcome = await handle_notification_click(scope, {"url": "/admin/visitors"})

        assert outcome == "focused"
        assert mine.focused is True
        assert mine.navigated_to == "/admin/visitors"
        assert other.focused is False

    @pytest.mark.asyncio
    async def test_opens_window_when_none_match(self):
        scope = FakeScope([FakeClient("https://elsewhere.example/")])

        outcome = await handle_notification_click(scope, None)

        assert outcome == "opened"
        assert scope.opened == [DEFAULT_URL]

    @pytest.mark.asyncio
    async def test_close_has_no_side_effects(self):
        assert await handle_notification_close({"url": "/admin"}) is None
