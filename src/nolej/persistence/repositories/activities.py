"""Activity records repository.

One row per (document_id, user_id, action). Storing a record for an
existing key replaces the outcome, refreshes the timestamp and makes the
record visible to the user again (notified = 'n').
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Final

from sqlalchemy import text

from nolej.models.activity import ActivityRecord
from nolej.persistence.schema import TABLE_ACTIVITIES

if TYPE_CHECKING:
    from sqlalchemy import Connection

logger = logging.getLogger(__name__)

# Width of the error_message column.
ERROR_MESSAGE_MAX_LENGTH: Final[int] = 200

_COLUMNS = (
    "document_id, user_id, action, tstamp, status, code, error_message, "
    "consumed_credit, notified"
)


class ActivitiesRepository:
    """Repository for nolej_activities rows.

    Args:
        conn: SQLAlchemy connection (must be in a transaction).
    """

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def upsert(self, record: ActivityRecord) -> ActivityRecord:
        """Insert or replace the record for (document_id, user_id, action).

        A zero tstamp is replaced by the current time.

        Args:
            record: Record to store.

        Returns:
            The stored record (with its effective timestamp, not notified).
        """
        tstamp = record.tstamp or int(time.time())
        stored = record.model_copy(update={"tstamp": tstamp, "notified": False})
        self._conn.execute(
            text(
                f"""
                INSERT INTO {TABLE_ACTIVITIES} ({_COLUMNS})
                VALUES
                    (:document_id, :user_id, :action, :tstamp, :status, :code,
                     :error_message, :consumed_credit, 'n')
                ON CONFLICT (document_id, user_id, action) DO UPDATE SET
                    tstamp = excluded.tstamp,
                    status = excluded.status,
                    code = excluded.code,
                    error_message = excluded.error_message,
                    consumed_credit = excluded.consumed_credit,
                    notified = 'n'
                """
            ),
            {
                "document_id": stored.document_id,
                "user_id": stored.user_id,
                "action": stored.action,
                "tstamp": stored.tstamp,
                "status": stored.status,
                "code": stored.code,
                "error_message": stored.error_message[:ERROR_MESSAGE_MAX_LENGTH],
                "consumed_credit": stored.consumed_credit,
            },
        )
        logger.debug(
            "Stored activity %s for document %s user %s",
            stored.action,
            stored.document_id,
            stored.user_id,
        )
        return stored

    def get(self, document_id: str, user_id: int, action: str) -> ActivityRecord | None:
        row = self._conn.execute(
            text(
                f"""
                SELECT {_COLUMNS} FROM {TABLE_ACTIVITIES}
                WHERE document_id = :document_id AND user_id = :user_id AND action = :action
                """
            ),
            {"document_id": document_id, "user_id": user_id, "action": action},
        ).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def list_for_document(self, document_id: str) -> list[ActivityRecord]:
        """All records of a document, newest first."""
        rows = self._conn.execute(
            text(
                f"""
                SELECT {_COLUMNS} FROM {TABLE_ACTIVITIES}
                WHERE document_id = :document_id
                ORDER BY tstamp DESC, action DESC
                """
            ),
            {"document_id": document_id},
        ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def list_for_user(
        self,
        user_id: int,
        since: int,
        until: int | None = None,
    ) -> list[ActivityRecord]:
        """Unnotified records of a user, the latest one per document.

        Args:
            user_id: User to list for.
            since: Lower bound (inclusive) of the record timestamp.
            until: Optional upper bound (inclusive).

        Returns:
            At most one record per document, newest first.
        """
        params: dict[str, Any] = {"user_id": user_id, "since": since}
        window = "tstamp >= :since"
        if until is not None:
            window += " AND tstamp <= :until"
            params["until"] = until

        rows = self._conn.execute(
            text(
                f"""
                SELECT {_COLUMNS} FROM {TABLE_ACTIVITIES}
                WHERE user_id = :user_id AND notified = 'n' AND {window}
                ORDER BY tstamp DESC, action DESC
                """
            ),
            params,
        ).fetchall()

        latest: dict[str, ActivityRecord] = {}
        for row in rows:
            if row.document_id not in latest:
                latest[row.document_id] = self._row_to_record(row)
        return list(latest.values())

    def count_new(self, user_id: int, since: int) -> int:
        """Number of documents with unnotified records since the given time."""
        row = self._conn.execute(
            text(
                f"""
                SELECT COUNT(DISTINCT document_id) AS n FROM {TABLE_ACTIVITIES}
                WHERE user_id = :user_id AND notified = 'n' AND tstamp >= :since
                """
            ),
            {"user_id": user_id, "since": since},
        ).fetchone()
        return int(row.n) if row is not None else 0

    def latest_timestamp(self, user_id: int) -> int | None:
        """Timestamp of the most recent record of a user, if any."""
        row = self._conn.execute(
            text(f"SELECT MAX(tstamp) AS ts FROM {TABLE_ACTIVITIES} WHERE user_id = :user_id"),
            {"user_id": user_id},
        ).fetchone()
        if row is None or row.ts is None:
            return None
        return int(row.ts)

    def dismiss(self, document_id: str, user_id: int) -> int:
        """Mark every record of the user for the document as notified.

        Returns:
            Number of records changed.
        """
        result = self._conn.execute(
            text(
                f"""
                UPDATE {TABLE_ACTIVITIES} SET notified = 'y'
                WHERE document_id = :document_id AND user_id = :user_id AND notified = 'n'
                """
            ),
            {"document_id": document_id, "user_id": user_id},
        )
        return result.rowcount

    def _row_to_record(self, row: Any) -> ActivityRecord:
        """Convert database row to ActivityRecord."""
        return ActivityRecord(
            document_id=row.document_id,
            user_id=int(row.user_id),
            action=row.action,
            tstamp=int(row.tstamp),
            status=row.status or "",
            code=int(row.code or 0),
            error_message=row.error_message or "",
            consumed_credit=int(row.consumed_credit or 0),
            notified=row.notified == "y",
        )
