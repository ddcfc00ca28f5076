"""Tests for webhook notifications and realtime broadcasts."""

from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest

from venue_agent.services.notifications import (
    Notification,
    NotificationDispatcher,
    NotificationReference,
    RealtimeBroadcaster,
    get_broadcaster,
    get_notifier,
)

WEBHOOK = "https://hooks.example.com/notify"


def _notification() -> Notification:
    return Notification(
        recipient_id="owner-1",
        category="agent_escalation",
        headline="Agenten behöver din hjälp",
        body="En kund har en förfrågan",
        reference=NotificationReference(id="action-1"),
        extra={"conversation_id": "conv-1"},
    )


@pytest.fixture
def captured():
    return []


def _client(captured, status_code=200, exc: Exception | None = None) -> httpx.Client:
    def handler(request: httpx.Request) -> httpx.Response:
        if exc is not None:
            raise exc
        captured.append(json.loads(request.content))
        return httpx.Response(status_code, json={"ok": status_code < 400})

    return httpx.Client(transport=httpx.MockTransport(handler))


class TestNotificationDispatcher:
    def test_posts_notification_json(self, captured):
        dispatcher = NotificationDispatcher(WEBHOOK, client=_client(captured))
        assert dispatcher.dispatch(_notification()) is True
        assert captured == [
            {
                "recipient_id": "owner-1",
                "category": "agent_escalation",
                "headline": "Agenten behöver din hjälp",
                "body": "En kund har en förfrågan",
                "reference": {"kind": "agent_action", "id": "action-1"},
                "extra": {"conversation_id": "conv-1"},
            }
        ]

    def test_without_url_only_logs(self, captured):
        dispatcher = NotificationDispatcher("", client=_client(captured))
        assert dispatcher.dispatch(_notification()) is False
        assert captured == []

    def test_http_error_is_swallowed_and_recorded(self, captured):
        dispatcher = NotificationDispatcher(WEBHOOK, client=_client(captured, status_code=503))
        with patch("venue_agent.services.notifications.metrics") as mock_metrics:
            assert dispatcher.dispatch(_notification()) is False
        mock_metrics.record_failure.assert_called_once()
        args, kwargs = mock_metrics.record_failure.call_args
        assert args[:2] == ("notification", "agent_escalation")
        assert kwargs["error_type"] == "HTTPStatusError"

    def test_connection_error_is_swallowed(self, captured):
        dispatcher = NotificationDispatcher(
            WEBHOOK, client=_client(captured, exc=httpx.ConnectError("refused")),
        )
        with patch("venue_agent.services.notifications.metrics") as mock_metrics:
            assert dispatcher.dispatch(_notification()) is False
        assert mock_metrics.record_failure.call_args[1]["error_type"] == "ConnectError"

    def test_success_is_recorded(self, captured):
        dispatcher = NotificationDispatcher(WEBHOOK, client=_client(captured))
        with patch("venue_agent.services.notifications.metrics") as mock_metrics:
            dispatcher.dispatch(_notification())
        mock_metrics.record_success.assert_called_once()


class TestRealtimeBroadcaster:
    def test_broadcast_targets_conversation_channel(self, captured):
        broadcaster = RealtimeBroadcaster(WEBHOOK, client=_client(captured))
        payload = {"actionId": "a-1", "status": "approved", "ownerResponse": None}

        assert broadcaster.broadcast("conv-1", payload) is True
        assert captured == [{"channel": "agent:conv-1", "event": "action_update", "payload": payload}]

    def test_broadcast_failure_returns_false(self, captured):
        broadcaster = RealtimeBroadcaster(WEBHOOK, client=_client(captured, exc=httpx.ReadTimeout("slow")))
        assert broadcaster.broadcast("conv-1", {"actionId": "a-1"}) is False


class TestSingletons:
    def test_get_notifier_is_cached(self):
        assert get_notifier() is get_notifier()

    def test_get_broadcaster_is_cached(self):
        assert get_broadcaster() is get_broadcaster()
