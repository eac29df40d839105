"""Stage outcome notifications."""

from nolej.services.notifications.inbox import InboxEntry, NotificationInbox
from nolej.services.notifications.notifier import (
    InMemoryNotifier,
    LoggingNotifier,
    Notification,
    Notifier,
    build_notification,
)

__all__ = [
    "InMemoryNotifier",
    "InboxEntry",
    "LoggingNotifier",
    "Notification",
    "NotificationInbox",
    "Notifier",
    "build_notification",
]
