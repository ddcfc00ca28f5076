"""Best-effort notification dispatch and realtime broadcast.

Both collaborators live outside the core: notifications are POSTed to a
webhook that renders and delivers email/push, and realtime updates are
POSTed to a broadcast relay that fans out to live chat sessions on the
``agent:<conversation_id>`` channel.

Neither is allowed to fail the state transition that triggered it.  Every
error is logged and recorded as a metric, then swallowed; nothing is
retried synchronously.  When no webhook URL is configured the payload is
only logged, which keeps local development and tests offline.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import httpx
from pydantic import BaseModel, Field

from venue_agent.config import (
    NOTIFICATION_WEBHOOK_URL,
    REALTIME_WEBHOOK_URL,
    WEBHOOK_TIMEOUT_SECONDS,
)
from venue_agent.services.metrics import metrics

logger = logging.getLogger(__name__)


class NotificationReference(BaseModel):
    kind: str = "agent_action"
    id: str


class Notification(BaseModel):
    recipient_id: str
    category: str  # agent_booking_approval | agent_escalation | agent_counter_offer
    headline: str
    body: str
    reference: NotificationReference
    extra: dict[str, Any] = Field(default_factory=dict)


class _WebhookPoster:
    """Shared POST-and-log plumbing for both collaborators."""

    component = "webhook"

    def __init__(self, url: str | None, *, client: httpx.Client | None = None) -> None:
        self._url = url
        self._client = client or httpx.Client(timeout=WEBHOOK_TIMEOUT_SECONDS)

    def _post(self, operation: str, payload: dict[str, Any]) -> bool:
        if not self._url:
            logger.info("%s %s (no webhook configured): %s", self.component, operation, payload)
            return False

        t0 = time.perf_counter()
        try:
            response = self._client.post(self._url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(self.component, operation, error_type=type(exc).__name__, latency_ms=elapsed)
            logger.warning("%s %s failed: %s", self.component, operation, exc)
            return False
        except Exception as exc:
            metrics.record_failure(self.component, operation, error_type=type(exc).__name__)
            logger.exception("%s %s failed unexpectedly", self.component, operation)
            return False

        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success(self.component, operation, latency_ms=elapsed)
        return True


class NotificationDispatcher(_WebhookPoster):
    component = "notification"

    def __init__(self, url: str | None = None, *, client: httpx.Client | None = None) -> None:
        super().__init__(url if url is not None else NOTIFICATION_WEBHOOK_URL, client=client)

    def dispatch(self, notification: Notification) -> bool:
        """Send *notification*.  Returns ``True`` only if the webhook accepted it."""
        return self._post(notification.category, notification.model_dump(mode="json"))


class RealtimeBroadcaster(_WebhookPoster):
    component = "realtime"

    def __init__(self, url: str | None = None, *, client: httpx.Client | None = None) -> None:
        super().__init__(url if url is not None else REALTIME_WEBHOOK_URL, client=client)

    def broadcast(self, conversation_id: str, payload: dict[str, Any]) -> bool:
        """Publish an ``action_update`` event on the conversation's channel (at most once)."""
        return self._post(
            "action_update",
            {"channel": f"agent:{conversation_id}", "event": "action_update", "payload": payload},
        )


# ── Module-level singletons ─────────────────────────────────────────

_notifier: NotificationDispatcher | None = None
_broadcaster: RealtimeBroadcaster | None = None
_lock = threading.Lock()


def get_notifier() -> NotificationDispatcher:
    global _notifier
    if _notifier is None:
        with _lock:
            if _notifier is None:
                _notifier = NotificationDispatcher()
    return _notifier


def get_broadcaster() -> RealtimeBroadcaster:
    global _broadcaster
    if _broadcaster is None:
        with _lock:
            if _broadcaster is None:
                _broadcaster = RealtimeBroadcaster()
    return _broadcaster
