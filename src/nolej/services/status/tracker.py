"""Status tracker for Nolej documents.

Holds the current workflow status of each document. transition() is an
unconditional overwrite: callers are responsible for requesting legal
edges. compare_and_transition() is the guarded variant used wherever a
concurrent webhook or client action could race for the same document.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from nolej.models.status import DocumentStatus
from nolej.persistence.db import begin_conn
from nolej.persistence.repositories.documents import DocumentsRepository

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


class UnknownDocumentError(Exception):
    """Raised when a transition targets a document that does not exist."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id


class StatusTracker:
    """Reads and writes document statuses.

    Each call runs in its own transaction, so a committed transition is
    immediately visible to the polling endpoint.

    Args:
        engine: Database engine.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def current(self, document_id: str) -> DocumentStatus | None:
        """Current status of a document, or None if it does not exist."""
        with begin_conn(self._engine) as conn:
            return DocumentsRepository(conn).get_status(document_id)

    def transition(self, document_id: str, new_status: DocumentStatus) -> None:
        """Overwrite the status of a document.

        Args:
            document_id: Document to update.
            new_status: Status to store.

        Raises:
            UnknownDocumentError: If the document does not exist.
        """
        with begin_conn(self._engine) as conn:
            if not DocumentsRepository(conn).set_status(document_id, new_status):
                raise UnknownDocumentError(document_id)
        logger.info("Document %s -> %s", document_id, new_status.name)

    def compare_and_transition(
        self,
        document_id: str,
        expected: DocumentStatus,
        new_status: DocumentStatus,
        consumed_credit: int | None = None,
    ) -> bool:
        """Atomically move a document from expected to new_status.

        Args:
            document_id: Document to update.
            expected: Status the document must have for the move to apply.
            new_status: Status to store.
            consumed_credit: Optional credit value stored with the transition.

        Returns:
            True if the transition was applied by this call, False if the
            document is missing or no longer in the expected status.
        """
        with begin_conn(self._engine) as conn:
            applied = DocumentsRepository(conn).compare_and_set_status(
                document_id,
                expected=expected,
                status=new_status,
                consumed_credit=consumed_credit,
            )
        if applied:
            logger.info(
                "Document %s %s -> %s", document_id, expected.name, new_status.name
            )
        else:
            logger.warning(
                "Document %s not in %s, transition to %s skipped",
                document_id,
                expected.name,
                new_status.name,
            )
        return applied
