"""Notification inbox read by the browser client.

Entries are the unnotified activity records of a user, the latest one per
document. Dismissing a document marks its records as notified.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from nolej.models.activity import ActivityRecord
from nolej.persistence.db import begin_conn
from nolej.persistence.repositories.activities import ActivitiesRepository
from nolej.persistence.repositories.documents import DocumentsRepository
from nolej.services.notifications.notifier import Notification, build_notification

if TYPE_CHECKING:
    from sqlalchemy import Engine


@dataclass(frozen=True)
class InboxEntry:
    record: ActivityRecord
    notification: Notification


class NotificationInbox:
    """Per-user view over activity records.

    Args:
        engine: Database engine.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def entries(
        self, user_id: int, since: int = 0, until: int | None = None
    ) -> list[InboxEntry]:
        """Unread entries of a user in the time window, newest first."""
        with begin_conn(self._engine) as conn:
            records = ActivitiesRepository(conn).list_for_user(user_id, since, until)
            documents = DocumentsRepository(conn)
            titles: dict[str, str | None] = {}
            for record in records:
                document = documents.get(record.document_id)
                titles[record.document_id] = document.title if document is not None else None
        return [
            InboxEntry(
                record=record,
                notification=build_notification(record, titles[record.document_id]),
            )
            for record in records
        ]

    def count_new(self, user_id: int, since: int = 0) -> int:
        with begin_conn(self._engine) as conn:
            return ActivitiesRepository(conn).count_new(user_id, since)

    def latest_timestamp(self, user_id: int) -> int | None:
        with begin_conn(self._engine) as conn:
            return ActivitiesRepository(conn).latest_timestamp(user_id)

    def dismiss(self, document_id: str, user_id: int) -> int:
        """Mark the entries of a document as read.

        Returns:
            Number of records changed.
        """
        with begin_conn(self._engine) as conn:
            return ActivitiesRepository(conn).dismiss(document_id, user_id)
