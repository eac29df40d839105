"""Generated packages repository.

Rows are append-only. The current package of a (document, type) pair is
the one with the highest generated timestamp.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import text

from nolej.models.package import GeneratedPackage
from nolej.persistence.schema import TABLE_PACKAGES

if TYPE_CHECKING:
    from sqlalchemy import Connection

logger = logging.getLogger(__name__)


class PackagesRepository:
    """Repository for nolej_packages rows.

    Args:
        conn: SQLAlchemy connection (must be in a transaction).
    """

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def add(self, package: GeneratedPackage) -> None:
        """Record an imported package."""
        self._conn.execute(
            text(
                f"""
                INSERT INTO {TABLE_PACKAGES} (content_id, document_id, type, generated)
                VALUES (:content_id, :document_id, :type, :generated)
                """
            ),
            {
                "content_id": package.content_id,
                "document_id": package.document_id,
                "type": package.type,
                "generated": package.generated_at,
            },
        )

    def latest_content_id(self, document_id: str, package_type: str) -> int | None:
        """Content id of the current package of the given type.

        Args:
            document_id: Document that produced the package.
            package_type: Artifact kind.

        Returns:
            Content id, or None if the type was never imported.
        """
        row = self._conn.execute(
            text(
                f"""
                SELECT content_id FROM {TABLE_PACKAGES}
                WHERE document_id = :document_id AND type = :type
                ORDER BY generated DESC, content_id DESC
                LIMIT 1
                """
            ),
            {"document_id": document_id, "type": package_type},
        ).fetchone()
        return int(row.content_id) if row is not None else None

    def list_current(self, document_id: str) -> list[GeneratedPackage]:
        """Current package of every type imported for a document, by type."""
        rows = self._conn.execute(
            text(
                f"""
                SELECT content_id, document_id, type, generated FROM {TABLE_PACKAGES}
                WHERE document_id = :document_id
                ORDER BY type, generated DESC, content_id DESC
                """
            ),
            {"document_id": document_id},
        ).fetchall()

        current: dict[str, GeneratedPackage] = {}
        for row in rows:
            if row.type not in current:
                current[row.type] = self._row_to_package(row)
        return list(current.values())

    def _row_to_package(self, row: Any) -> GeneratedPackage:
        return GeneratedPackage(
            content_id=int(row.content_id),
            document_id=row.document_id,
            type=row.type or "",
            generated_at=int(row.generated or 0),
        )
