"""
Notification sink for user-visible outcomes.

The core calls notify(message, severity) for every create/update/delete
confirmation or failure, bootstrap degradation and cleanup summary.
NotificationCenter is the default sink: it keeps a bounded history and
tracks the toast currently shown to the user.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Protocol

from .store.records import utcnow

logger = logging.getLogger(__name__)


class Severity(Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


class Notifier(Protocol):
    """Callable notification sink."""

    def __call__(self, message: str, severity: Severity) -> None:
        ...


@dataclass(frozen=True)
class Notification:
    """A notification as stored in history."""

    message: str
    severity: Severity
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=utcnow)


_LOG_LEVELS = {
    Severity.SUCCESS: logging.INFO,
    Severity.INFO: logging.INFO,
    Severity.ERROR: logging.WARNING,
}


class NotificationCenter:
    """Default notification sink with bounded, newest-first history.

    Errors are always shown; success and info toasts are suppressed while
    notifications are disabled but still recorded in history.

    Example:
        >>> center = NotificationCenter(limit=10)
        >>> center("Fee payment recorded", Severity.SUCCESS)
        >>> center.history[0].message
        'Fee payment recorded'
    """

    def __init__(self, limit: int = 10, enabled: bool = True) -> None:
        self.limit = limit
        self.enabled = enabled
        self._history: list[Notification] = []
        self._current: Notification | None = None
        self._subscribers: list[Callable[[Notification], None]] = []

    def __call__(self, message: str, severity: Severity) -> None:
        notification = Notification(message=message, severity=severity)
        logger.log(
            _LOG_LEVELS[severity],
            message,
            extra={"severity": severity.value, "notification_id": notification.id},
        )
        if self.enabled or severity is Severity.ERROR:
            self._current = notification
        self._history = [notification, *self._history][: max(self.limit, 0)]
        for subscriber in list(self._subscribers):
            subscriber(notification)

    @property
    def history(self) -> list[Notification]:
        return list(self._history)

    @property
    def current(self) -> Notification | None:
        """The toast currently visible, if any."""
        return self._current

    def dismiss(self) -> None:
        self._current = None

    def clear(self) -> None:
        self._history = []

    def subscribe(self, callback: Callable[[Notification], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        self._subscribers.append(callback)
        return lambda: self._subscribers.remove(callback)

    def configure(self, settings: dict) -> None:
        """Apply notification settings from the configuration record.

        Missing, null or non-numeric values keep the current setting.
        """
        enabled = settings.get("enableNotifications")
        if isinstance(enabled, bool):
            self.enabled = enabled
        try:
            limit = int(settings.get("notificationLimit"))
        except (TypeError, ValueError):
            return
        if limit > 0:
            self.limit = limit
