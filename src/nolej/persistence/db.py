"""Database connectivity helpers for the Nolej bridge.

Provides engine creation and transactional connection scopes. The same SQL
runs on SQLite (development, tests) and PostgreSQL (production).

Design Requirements:
    - One connection + transaction per unit of work (request, webhook, CLI call)
    - Fail closed on missing configuration
    - Status transitions are guarded by conditional UPDATEs, not by locks
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = logging.getLogger(__name__)


class DatabaseConfigError(Exception):
    """Raised when NOLEJ_DATABASE_URL is empty or cannot be parsed."""


def _normalize_url(url: str) -> str:
    """Accept the legacy postgres:// scheme.

    Args:
        url: Original database URL.

    Returns:
        URL usable by SQLAlchemy.
    """
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine for the given URL.

    SQLite files get their parent directory created and are opened with
    check_same_thread disabled, since FastAPI runs sync endpoints in a
    thread pool.

    Args:
        url: SQLAlchemy database URL.
        echo: Log emitted SQL.

    Returns:
        SQLAlchemy Engine.

    Raises:
        DatabaseConfigError: If the URL is empty or malformed.
    """
    if not url:
        raise DatabaseConfigError("Database URL not configured. Set NOLEJ_DATABASE_URL.")

    url = _normalize_url(url)
    try:
        parsed = make_url(url)
    except ArgumentError as e:
        raise DatabaseConfigError(f"Invalid database URL: {e}") from e

    if parsed.get_backend_name() == "sqlite":
        database = parsed.database
        if database and database != ":memory:":
            Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            url,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            echo=echo,
        )

    logger.info("Created database engine for backend %s", parsed.get_backend_name())
    return engine


@contextmanager
def begin_conn(engine: Engine) -> Generator[Connection, None, None]:
    """Context manager for a connection with a transaction.

    Commits on success, rolls back on error.

    Args:
        engine: Engine to connect with.

    Yields:
        SQLAlchemy Connection in a transaction.
    """
    with engine.connect() as conn, conn.begin():
        yield conn
