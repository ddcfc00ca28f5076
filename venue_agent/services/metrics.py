"""CloudWatch custom metrics for tool calls and outbound side effects.

Tracks count, latency and errors for agent tool dispatch, LLM invocations,
owner/customer notifications and realtime broadcasts.

* Data points are buffered in memory behind a lock.
* When ``METRICS_ENABLED=true`` a daemon thread pushes the buffer to
  CloudWatch every ``FLUSH_INTERVAL_SECONDS``; otherwise points are only
  logged at DEBUG and dropped on flush.

>>> from venue_agent.services.metrics import metrics
>>> metrics.record_success("tool", "check_availability", latency_ms=12.5)
>>> metrics.record_failure("notification", "agent_escalation", error_type="ConnectError")
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "VenueAgent"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # PutMetricData limit


def _dims(**pairs: str) -> list[dict[str, str]]:
    return [{"Name": name, "Value": value} for name, value in pairs.items()]


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Public API ────────────────────────────────────────────────────

    def record_success(self, component: str, operation: str, latency_ms: float) -> None:
        now = datetime.now(UTC)
        self._append("Calls", _dims(Component=component, Status="success"), 1, "Count", now)
        self._append(
            "Latency", _dims(Component=component, Operation=operation), latency_ms, "Milliseconds", now,
        )
        logger.debug("Metric: %s %s ok %.1fms", component, operation, latency_ms)

    def record_failure(
        self,
        component: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        now = datetime.now(UTC)
        self._append("Calls", _dims(Component=component, Status="failure"), 1, "Count", now)
        self._append("Errors", _dims(Component=component, ErrorType=error_type), 1, "Count", now)
        if latency_ms > 0:
            self._append(
                "Latency", _dims(Component=component, Operation=operation), latency_ms, "Milliseconds", now,
            )
        logger.debug("Metric: %s %s failed (%s)", component, operation, error_type)

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            batch, self._buffer = self._buffer, []

        if not batch:
            return 0
        if not self._enabled:
            logger.debug("Metrics flush skipped (disabled): %d points dropped", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for start in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[start : start + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    # ── Internal ──────────────────────────────────────────────────────

    def _append(
        self,
        name: str,
        dimensions: list[dict[str, str]],
        value: float,
        unit: str,
        timestamp: datetime,
    ) -> None:
        point = {
            "MetricName": f"Agent/{name}",
            "Dimensions": dimensions,
            "Timestamp": timestamp,
            "Value": value,
            "Unit": unit,
        }
        with self._lock:
            self._buffer.append(point)

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        threading.Thread(target=_loop, daemon=True, name="metrics-flush").start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


metrics = MetricsClient()
