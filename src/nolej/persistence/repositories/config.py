"""Key/value configuration repository (api_key, interval)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import text

from nolej.persistence.schema import TABLE_CONFIG

if TYPE_CHECKING:
    from sqlalchemy import Connection


class ConfigRepository:
    """Repository for nolej_config rows.

    Args:
        conn: SQLAlchemy connection (must be in a transaction).
    """

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def get(self, keyword: str) -> str | None:
        row = self._conn.execute(
            text(f"SELECT value FROM {TABLE_CONFIG} WHERE keyword = :keyword"),
            {"keyword": keyword},
        ).fetchone()
        return row.value if row is not None else None

    def save(self, keyword: str, value: str) -> None:
        """Insert or replace a configuration value."""
        self._conn.execute(
            text(
                f"""
                INSERT INTO {TABLE_CONFIG} (keyword, value) VALUES (:keyword, :value)
                ON CONFLICT (keyword) DO UPDATE SET value = excluded.value
                """
            ),
            {"keyword": keyword, "value": value},
        )

    def all(self) -> dict[str, str]:
        rows = self._conn.execute(text(f"SELECT keyword, value FROM {TABLE_CONFIG}")).fetchall()
        return {row.keyword: row.value for row in rows}
