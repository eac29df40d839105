"""Persistence layer: engine helpers, schema, migrations and repositories."""

from nolej.persistence.db import DatabaseConfigError, begin_conn, create_db_engine
from nolej.persistence.schema import ensure_schema

__all__ = [
    "DatabaseConfigError",
    "begin_conn",
    "create_db_engine",
    "ensure_schema",
]
