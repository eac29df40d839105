"""User notifications for completed workflow stages.

Notifications are derived from stored activity records. Delivery is
pluggable through the Notifier protocol; the default implementation
writes to the log, the browser picks records up through the
notifications endpoint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final, Protocol, runtime_checkable

from nolej.models.activity import ActivityRecord

logger = logging.getLogger(__name__)

# (title, body) per activity action; body placeholders: {title}, {error}.
_TEMPLATES: Final[dict[tuple[str, bool], tuple[str, str]]] = {
    ("transcription", True): (
        "Document submitted",
        "{title} was sent to Nolej for transcription.",
    ),
    ("transcription", False): ("Document not submitted", "{title} could not be sent: {error}"),
    ("transcription_ok", True): ("Transcription ready", "The transcription of {title} is ready."),
    ("transcription_ko", False): (
        "Transcription failed",
        "The transcription of {title} failed: {error}",
    ),
    ("analysis", True): ("Analysis started", "Nolej is analysing {title}."),
    ("analysis", False): (
        "Analysis not started",
        "The analysis of {title} could not be started: {error}",
    ),
    ("analysis_ok", True): ("Analysis ready", "The analysis of {title} is ready for review."),
    ("analysis_ko", False): ("Analysis failed", "The analysis of {title} failed: {error}"),
    ("activities", True): (
        "Generation started",
        "Nolej is generating the activities of {title}.",
    ),
    ("activities", False): (
        "Generation not started",
        "The activities of {title} could not be requested: {error}",
    ),
    ("activities_ok", True): (
        "Activities ready",
        "The activities of {title} were generated and imported.",
    ),
    ("activities_ko", False): ("Activities failed", "The activities of {title} failed: {error}"),
}


@dataclass(frozen=True)
class Notification:
    """Message for one user about one stage outcome."""

    user_id: int
    document_id: str
    action: str
    succeeded: bool
    title: str
    body: str


def build_notification(record: ActivityRecord, document_title: str | None = None) -> Notification:
    """Render the notification of an activity record.

    Args:
        record: Stored activity record.
        document_title: Title of the document, the id is used when absent.

    Returns:
        Notification with English title and body.
    """
    title, body = _TEMPLATES.get(
        (record.action, record.succeeded),
        ("Nolej update", "{title}: " + record.action + " " + record.status),
    )
    return Notification(
        user_id=record.user_id,
        document_id=record.document_id,
        action=record.action,
        succeeded=record.succeeded,
        title=title,
        body=body.format(
            title=document_title or record.document_id,
            error=record.error_message or f"error {record.code}",
        ),
    )


@runtime_checkable
class Notifier(Protocol):
    """Protocol for notification delivery."""

    def notify(self, notification: Notification) -> None:
        """Deliver a notification.

        Args:
            notification: Notification to deliver.
        """
        ...


class LoggingNotifier:
    """Notifier that writes notifications to the log."""

    def notify(self, notification: Notification) -> None:
        logger.info(
            "Notify user %s about document %s: %s - %s",
            notification.user_id,
            notification.document_id,
            notification.title,
            notification.body,
        )


class InMemoryNotifier:
    """Notifier that keeps notifications in a list (for tests)."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.sent.append(notification)

    def actions(self) -> list[str]:
        return [n.action for n in self.sent]
