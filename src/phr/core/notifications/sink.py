"""User-facing notifications emitted after record writes."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Literal, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

Severity = Literal["info", "error"]


@dataclass(frozen=True)
class Notification:
    """A single toast-style message for the user."""

    title: str
    description: str
    severity: Severity = "info"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@runtime_checkable
class NotificationSink(Protocol):
    """Fire-and-forget receiver of notifications. Never awaited, never retried."""

    def notify(self, notification: Notification) -> None:
        ...


class LoggingNotificationSink:
    """Writes notifications to the application log only."""

    def notify(self, notification: Notification) -> None:
        level = logging.WARNING if notification.severity == "error" else logging.INFO
        logger.log(level, "%s: %s", notification.title, notification.description)


class RecordingNotificationSink(LoggingNotificationSink):
    """Logs notifications and keeps the most recent ones for display.

    Usage::

        sink = RecordingNotificationSink(maxlen=20)
        sink.notify(Notification("Reading added", "New Heart Rate reading has been added"))
        sink.recent()[-1].title  # "Reading added"
    """

    def __init__(self, maxlen: int = 50) -> None:
        self._history: deque[Notification] = deque(maxlen=maxlen)

    def notify(self, notification: Notification) -> None:
        super().notify(notification)
        self._history.append(notification)

    def recent(self, limit: int | None = None) -> list[Notification]:
        """Return notifications oldest first, optionally only the last ``limit``."""
        items = list(self._history)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    @property
    def last(self) -> Notification | None:
        return self._history[-1] if self._history else None

    def clear(self) -> None:
        self._history.clear()
