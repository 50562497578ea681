"""
Downstream collaborators fed by accepted transitions.

- NotificationSink: Delivers notification triggers (push, email)
- RecalculationSink: Schedules settlement / receivable recomputation

The engine decides what should happen; these decide how it is delivered.
"""

import queue
from abc import ABC, abstractmethod
from threading import Lock
from typing import Optional

import structlog

from freight_lifecycle.engine.side_effects import NotificationTrigger, RecalculationTrigger


class NotificationSink(ABC):
    """Notification collaborator."""

    @abstractmethod
    def dispatch(self, triggers: list[NotificationTrigger]) -> None:
        """Deliver the given notifications. May raise; callers never roll back on failure."""


class RecalculationSink(ABC):
    """Financial collaborator."""

    @abstractmethod
    def enqueue(self, triggers: list[RecalculationTrigger]) -> None:
        """Hand triggers to the asynchronous recalculation pipeline."""


class InMemoryNotificationSink(NotificationSink):
    """Collects notifications in order, e.g. for an outbox or for tests."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.sent: list[NotificationTrigger] = []

    def dispatch(self, triggers: list[NotificationTrigger]) -> None:
        with self._lock:
            self.sent.extend(triggers)


class LoggingNotificationSink(NotificationSink):
    """Writes each notification to the structured log instead of delivering it."""

    def __init__(self, logger: Optional[structlog.BoundLogger] = None) -> None:
        self.logger = logger or structlog.get_logger(sink="notifications")

    def dispatch(self, triggers: list[NotificationTrigger]) -> None:
        for trigger in triggers:
            self.logger.info(
                "notification",
                notification_event=trigger.event.value,
                recipient_role=trigger.recipient_role.value,
                recipient_id=trigger.recipient_id,
                payload=trigger.payload,
            )


class QueueRecalculationSink(RecalculationSink):
    """
    Puts triggers on a thread-safe queue.

    A worker elsewhere drains it with ``drain()`` or ``queue.get()``, so
    recalculation runs independently of the transition commit.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self.queue: "queue.Queue[RecalculationTrigger]" = queue.Queue(maxsize=maxsize)

    def enqueue(self, triggers: list[RecalculationTrigger]) -> None:
        for trigger in triggers:
            self.queue.put_nowait(trigger)

    def drain(self) -> list[RecalculationTrigger]:
        """Remove and return everything currently queued."""
        drained = []
        while True:
            try:
                drained.append(self.queue.get_nowait())
            except queue.Empty:
                return drained
