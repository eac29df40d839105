"""Documents repository.

Status changes come in two flavours:
- set_status(): unconditional overwrite, used by client actions that have
  already checked the current state.
- compare_and_set_status(): conditional UPDATE guarded by the expected
  status. The affected row count tells the caller whether it won the
  transition, so two concurrent deliveries cannot both apply it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import text

from nolej.models.document import Document
from nolej.models.status import DocumentStatus
from nolej.persistence.schema import TABLE_ACTIVITIES, TABLE_DOCUMENTS, TABLE_PACKAGES

if TYPE_CHECKING:
    from sqlalchemy import Connection

logger = logging.getLogger(__name__)


class DocumentsRepository:
    """Repository for nolej_documents rows.

    Args:
        conn: SQLAlchemy connection (must be in a transaction).
    """

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def create(
        self,
        *,
        document_id: str,
        status: DocumentStatus,
        title: str | None,
        doc_url: str,
        media_type: str,
        automatic_mode: bool,
        language: str,
        consumed_credit: int = 0,
    ) -> Document:
        """Insert a new document row.

        Args:
            document_id: Identifier issued by Nolej.
            status: Initial status.
            title: Module title.
            doc_url: Source URL.
            media_type: Source media type.
            automatic_mode: Whether Nolej runs without review.
            language: Source language code.
            consumed_credit: Credits already consumed.

        Returns:
            The stored document.
        """
        self._conn.execute(
            text(
                f"""
                INSERT INTO {TABLE_DOCUMENTS}
                    (document_id, status, title, consumed_credit, doc_url,
                     media_type, automatic_mode, language)
                VALUES
                    (:document_id, :status, :title, :consumed_credit, :doc_url,
                     :media_type, :automatic_mode, :language)
                """
            ),
            {
                "document_id": document_id,
                "status": int(status),
                "title": title,
                "consumed_credit": consumed_credit,
                "doc_url": doc_url,
                "media_type": media_type,
                "automatic_mode": "y" if automatic_mode else "n",
                "language": language,
            },
        )
        return Document(
            document_id=document_id,
            status=status,
            title=title,
            consumed_credit=consumed_credit,
            doc_url=doc_url,
            media_type=media_type,
            automatic_mode=automatic_mode,
            language=language,
        )

    def get(self, document_id: str) -> Document | None:
        """Get a document by ID.

        Returns:
            Document, or None if not found.
        """
        row = self._conn.execute(
            text(
                f"""
                SELECT document_id, status, title, consumed_credit, doc_url,
                       media_type, automatic_mode, language
                FROM {TABLE_DOCUMENTS}
                WHERE document_id = :document_id
                """
            ),
            {"document_id": document_id},
        ).fetchone()
        if row is None:
            return None
        return self._row_to_document(row)

    def get_status(self, document_id: str) -> DocumentStatus | None:
        row = self._conn.execute(
            text(f"SELECT status FROM {TABLE_DOCUMENTS} WHERE document_id = :document_id"),
            {"document_id": document_id},
        ).fetchone()
        if row is None:
            return None
        return DocumentStatus(int(row.status))

    def set_status(self, document_id: str, status: DocumentStatus) -> bool:
        """Overwrite the status of a document.

        Returns:
            True if the document exists.
        """
        result = self._conn.execute(
            text(
                f"""
                UPDATE {TABLE_DOCUMENTS} SET status = :status
                WHERE document_id = :document_id
                """
            ),
            {"document_id": document_id, "status": int(status)},
        )
        return result.rowcount == 1

    def compare_and_set_status(
        self,
        document_id: str,
        *,
        expected: DocumentStatus,
        status: DocumentStatus,
        consumed_credit: int | None = None,
    ) -> bool:
        """Move a document to a new status only if it is in the expected one.

        Args:
            document_id: Document to update.
            expected: Status the document must currently have.
            status: New status.
            consumed_credit: Optional credit value stored with the transition.

        Returns:
            True if this call applied the transition.
        """
        params: dict[str, Any] = {
            "document_id": document_id,
            "expected": int(expected),
            "status": int(status),
        }
        if consumed_credit is None:
            sql = f"""
                UPDATE {TABLE_DOCUMENTS} SET status = :status
                WHERE document_id = :document_id AND status = :expected
                """
        else:
            params["consumed_credit"] = consumed_credit
            sql = f"""
                UPDATE {TABLE_DOCUMENTS}
                SET status = :status, consumed_credit = :consumed_credit
                WHERE document_id = :document_id AND status = :expected
                """
        result = self._conn.execute(text(sql), params)
        return result.rowcount == 1

    def update_title(self, document_id: str, title: str) -> None:
        self._conn.execute(
            text(f"UPDATE {TABLE_DOCUMENTS} SET title = :title WHERE document_id = :document_id"),
            {"document_id": document_id, "title": title},
        )

    def update_consumed_credit(self, document_id: str, consumed_credit: int) -> None:
        self._conn.execute(
            text(
                f"""
                UPDATE {TABLE_DOCUMENTS} SET consumed_credit = :consumed_credit
                WHERE document_id = :document_id
                """
            ),
            {"document_id": document_id, "consumed_credit": consumed_credit},
        )

    def find_in_status_with_user(
        self, document_id: str, status: DocumentStatus
    ) -> tuple[Document, int] | None:
        """Find a document in the given status together with its current user.

        The user is the one of the most recent activity record of the
        document. Documents without any activity record are not returned.

        Args:
            document_id: Document to look up.
            status: Status the document must have.

        Returns:
            (document, user_id), or None if there is no match.
        """
        row = self._conn.execute(
            text(
                f"""
                SELECT d.document_id, d.status, d.title, d.consumed_credit, d.doc_url,
                       d.media_type, d.automatic_mode, d.language, a.user_id
                FROM {TABLE_DOCUMENTS} d
                INNER JOIN {TABLE_ACTIVITIES} a ON a.document_id = d.document_id
                WHERE d.document_id = :document_id AND d.status = :status
                ORDER BY a.tstamp DESC
                LIMIT 1
                """
            ),
            {"document_id": document_id, "status": int(status)},
        ).fetchone()
        if row is None:
            return None
        return self._row_to_document(row), int(row.user_id)

    def delete(self, document_id: str) -> bool:
        """Delete a document with its activity and package rows.

        Returns:
            True if the document row existed.
        """
        params = {"document_id": document_id}
        self._conn.execute(
            text(f"DELETE FROM {TABLE_ACTIVITIES} WHERE document_id = :document_id"), params
        )
        self._conn.execute(
            text(f"DELETE FROM {TABLE_PACKAGES} WHERE document_id = :document_id"), params
        )
        result = self._conn.execute(
            text(f"DELETE FROM {TABLE_DOCUMENTS} WHERE document_id = :document_id"), params
        )
        return result.rowcount == 1

    def _row_to_document(self, row: Any) -> Document:
        """Convert database row to Document."""
        return Document(
            document_id=row.document_id,
            status=DocumentStatus(int(row.status)),
            title=row.title,
            consumed_credit=int(row.consumed_credit or 0),
            doc_url=row.doc_url,
            media_type=row.media_type,
            automatic_mode=row.automatic_mode == "y",
            language=row.language,
        )
