"""
Metrics Collector for WebSocket Gateway.

Counters for observability, exposed through the health endpoint. Every
caller runs on the event loop, so plain integer increments are atomic.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class ConnectionMetrics:
    """Metrics for connection lifecycle."""
    accepted: int = 0
    closed: int = 0
    rejected_origin: int = 0
    forced_disconnects: int = 0
    timeouts: int = 0


@dataclass
class DeliveryMetrics:
    """Metrics for Dispatch API operations."""
    broadcasts: int = 0
    room_messages: int = 0
    direct_messages: int = 0
    publishes: int = 0
    recipients_delivered: int = 0
    recipients_failed: int = 0


@dataclass
class EventMetrics:
    """Metrics for inbound client events."""
    handled: int = 0
    rejected: int = 0


class MetricsCollector:
    """
    Metrics collector for WebSocket Gateway.

    Usage:
        metrics = MetricsCollector()
        metrics.record_delivery("broadcasts", delivered=10, failed=1)
        stats = metrics.get_snapshot()
    """

    def __init__(self):
        self._connection = ConnectionMetrics()
        self._delivery = DeliveryMetrics()
        self._event = EventMetrics()

    # ==========================================================================
    # Connection Metrics
    # ==========================================================================

    def increment_connections_accepted(self) -> None:
        self._connection.accepted += 1

    def increment_connections_closed(self) -> None:
        self._connection.closed += 1

    def increment_connections_rejected_origin(self) -> None:
        self._connection.rejected_origin += 1

    def increment_forced_disconnects(self) -> None:
        self._connection.forced_disconnects += 1

    def increment_connection_timeouts(self) -> None:
        self._connection.timeouts += 1

    # ==========================================================================
    # Delivery Metrics
    # ==========================================================================

    def record_delivery(self, operation: str, delivered: int, failed: int = 0) -> None:
        """
        Record one Dispatch API operation.

        Args:
            operation: Counter name on DeliveryMetrics (broadcasts,
                room_messages, direct_messages, publishes).
            delivered: Recipients the frame was handed to.
            failed: Recipients whose transport rejected the frame.
        """
        if not hasattr(self._delivery, operation) or operation.startswith("recipients_"):
            raise ValueError(f"Unknown delivery operation: {operation}")
        setattr(self._delivery, operation, getattr(self._delivery, operation) + 1)
        self._delivery.recipients_delivered += delivered
        self._delivery.recipients_failed += failed

    # ==========================================================================
    # Event Metrics
    # ==========================================================================

    def increment_events_handled(self) -> None:
        self._event.handled += 1

    def increment_events_rejected(self) -> None:
        self._event.rejected += 1

    # ==========================================================================
    # Snapshot
    # ==========================================================================

    def get_snapshot(self) -> dict[str, Any]:
        """
        Get a snapshot of all metrics.

        Metric names follow the pattern {category}_{metric}.
        """
        snapshot: dict[str, Any] = {}
        for category, metrics in (
            ("connections", self._connection),
            ("delivery", self._delivery),
            ("events", self._event),
        ):
            for name, value in asdict(metrics).items():
                snapshot[f"{category}_{name}"] = value
        return snapshot
