"""
User-facing notifications.

Two kinds exist. Transient notifications (progress, launch confirmations,
single failed polls) expire on their own after a short TTL. Persistent
notifications (migration failure, resource fetch failure) stay until the
user dismisses them.

Listeners registered with add_listener() are called synchronously for
every notification, which is how a UI layer mirrors them.

Example:
    >>> center = NotificationCenter()
    >>> center.add_listener(lambda n: print(n.level.value, n.message))
    >>> center.transient("Migration started successfully", NotificationLevel.SUCCESS)
    >>> failure = center.persistent("connection refused")
    >>> center.dismiss(failure.notification_id)
"""

from __future__ import annotations

import itertools
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

from migrateflow.config import NotificationConfig

logger = logging.getLogger(__name__)


class NotificationLevel(Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class NotificationKind(Enum):
    TRANSIENT = "transient"
    PERSISTENT = "persistent"


@dataclass(frozen=True)
class Notification:
    """
    A message shown to the user.

    Attributes:
        notification_id: Identifier used to dismiss the notification.
        message: Text to display.
        level: Visual severity.
        kind: Whether the notification expires on its own.
        created_at: When it was raised.
        expires_at: When a transient notification stops being active.
    """

    notification_id: int
    message: str
    level: NotificationLevel
    kind: NotificationKind
    created_at: datetime
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


NotificationListener = Callable[[Notification], None]


class NotificationCenter:
    """
    Collects notifications and fans them out to listeners.

    Args:
        config: TTL and history settings.
        clock: Returns the current time. Defaults to ``datetime.now(UTC)``.
    """

    def __init__(
        self,
        config: NotificationConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or NotificationConfig()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._ids = itertools.count(1)
        self._active: dict[int, Notification] = {}
        self._history: deque[Notification] = deque(maxlen=self._config.max_history)
        self._listeners: list[NotificationListener] = []

    def add_listener(self, listener: NotificationListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: NotificationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def transient(
        self,
        message: str,
        level: NotificationLevel = NotificationLevel.INFO,
    ) -> Notification:
        """Raise a notification that expires after the configured TTL."""
        now = self._clock()
        return self._publish(
            Notification(
                notification_id=next(self._ids),
                message=message,
                level=level,
                kind=NotificationKind.TRANSIENT,
                created_at=now,
                expires_at=now + timedelta(seconds=self._config.transient_ttl_seconds),
            )
        )

    def persistent(
        self,
        message: str,
        level: NotificationLevel = NotificationLevel.ERROR,
    ) -> Notification:
        """Raise a notification that stays active until dismissed."""
        return self._publish(
            Notification(
                notification_id=next(self._ids),
                message=message,
                level=level,
                kind=NotificationKind.PERSISTENT,
                created_at=self._clock(),
            )
        )

    def dismiss(self, notification_id: int) -> bool:
        """
        Remove an active notification.

        Returns:
            True if the notification was active.
        """
        return self._active.pop(notification_id, None) is not None

    def active(self) -> list[Notification]:
        """Notifications still visible, oldest first. Expired ones are pruned."""
        now = self._clock()
        for notification_id in [n.notification_id for n in self._active.values()]:
            if self._active[notification_id].is_expired(now):
                del self._active[notification_id]
        return list(self._active.values())

    @property
    def history(self) -> list[Notification]:
        return list(self._history)

    def _publish(self, notification: Notification) -> Notification:
        self._active[notification.notification_id] = notification
        self._history.append(notification)
        logger.debug(
            "Notification %d (%s/%s): %s",
            notification.notification_id,
            notification.kind.value,
            notification.level.value,
            notification.message,
        )
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification listener %r failed", listener)
        return notification


__all__ = [
    "NotificationLevel",
    "NotificationKind",
    "Notification",
    "NotificationListener",
    "NotificationCenter",
]
