"""Table definitions for the Nolej bridge.

Portable DDL shared by the Alembic migration and by ensure_schema(), which
creates missing tables for development databases and tests.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from sqlalchemy import text

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

TABLE_DOCUMENTS: Final[str] = "nolej_documents"
TABLE_ACTIVITIES: Final[str] = "nolej_activities"
TABLE_PACKAGES: Final[str] = "nolej_packages"
TABLE_CONFIG: Final[str] = "nolej_config"

CREATE_STATEMENTS: Final[tuple[str, ...]] = (
    f"""
    CREATE TABLE IF NOT EXISTS {TABLE_DOCUMENTS} (
        document_id VARCHAR(50) PRIMARY KEY,
        status INTEGER NOT NULL,
        title VARCHAR(250),
        consumed_credit INTEGER NOT NULL DEFAULT 0,
        doc_url TEXT NOT NULL,
        media_type VARCHAR(20) NOT NULL,
        automatic_mode CHAR(1) NOT NULL DEFAULT 'n',
        language VARCHAR(5) NOT NULL
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {TABLE_ACTIVITIES} (
        document_id VARCHAR(50) NOT NULL,
        user_id INTEGER NOT NULL,
        action VARCHAR(30) NOT NULL,
        tstamp INTEGER NOT NULL,
        status VARCHAR(10),
        code INTEGER NOT NULL DEFAULT 0,
        error_message VARCHAR(200) NOT NULL DEFAULT '',
        consumed_credit INTEGER,
        notified CHAR(1) NOT NULL DEFAULT 'n',
        PRIMARY KEY (document_id, user_id, action)
    )
    """,
    f"""
    CREATE INDEX IF NOT EXISTS ix_{TABLE_ACTIVITIES}_user_tstamp
    ON {TABLE_ACTIVITIES} (user_id, tstamp)
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {TABLE_PACKAGES} (
        content_id INTEGER PRIMARY KEY,
        document_id VARCHAR(50) NOT NULL,
        type VARCHAR(250),
        generated INTEGER
    )
    """,
    f"""
    CREATE INDEX IF NOT EXISTS ix_{TABLE_PACKAGES}_document_type
    ON {TABLE_PACKAGES} (document_id, type, generated)
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {TABLE_CONFIG} (
        keyword VARCHAR(100) PRIMARY KEY,
        value VARCHAR(200) NOT NULL
    )
    """,
)

DROP_STATEMENTS: Final[tuple[str, ...]] = (
    f"DROP TABLE IF EXISTS {TABLE_CONFIG}",
    f"DROP TABLE IF EXISTS {TABLE_PACKAGES}",
    f"DROP TABLE IF EXISTS {TABLE_ACTIVITIES}",
    f"DROP TABLE IF EXISTS {TABLE_DOCUMENTS}",
)


def ensure_schema(engine: Engine) -> None:
    """Create all tables and indexes that do not exist yet.

    Args:
        engine: Engine to create the schema on.
    """
    with engine.begin() as conn:
        for statement in CREATE_STATEMENTS:
            conn.execute(text(statement))
    logger.info("Schema ensured on %s", engine.url.get_backend_name())
