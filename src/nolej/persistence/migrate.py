"""Run the bridge migrations from Python.

The scripts in nolej/persistence/migrations are driven without an
alembic.ini: the script location is set in code and the connection is
handed to env.py through config.attributes, so the migration runs in the
caller's transaction.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def _alembic_config() -> Config:
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    return config


def get_head_revision() -> str | None:
    """Newest revision shipped with the package."""
    return ScriptDirectory.from_config(_alembic_config()).get_current_head()


def get_current_revision(engine: Engine) -> str | None:
    """Revision recorded in the database, None before the first upgrade."""
    with engine.connect() as conn:
        return MigrationContext.configure(conn).get_current_revision()


def _run(engine: Engine, upgrade: bool, revision: str) -> None:
    config = _alembic_config()
    with engine.begin() as conn:
        config.attributes["connection"] = conn
        if upgrade:
            command.upgrade(config, revision)
        else:
            command.downgrade(config, revision)
    logger.info(
        "Database %s to %s (now at %s)",
        "upgraded" if upgrade else "downgraded",
        revision,
        get_current_revision(engine),
    )


def run_upgrade(engine: Engine, revision: str = "head") -> None:
    """Apply migrations up to revision (default: the head)."""
    _run(engine, True, revision)


def run_downgrade(engine: Engine, revision: str = "base") -> None:
    """Revert migrations down to revision (default: an empty schema)."""
    _run(engine, False, revision)
