"""Alembic environment configuration for Nolej bridge migrations.

Runs against the connection handed over in config.attributes["connection"]
(see nolej.persistence.migrate) or, from the alembic CLI, against
NOLEJ_DATABASE_URL.
"""

from __future__ import annotations

import logging
import os

from alembic import context

from nolej.config import DEFAULT_DATABASE_URL, NOLEJ_DATABASE_URL_ENV
from nolej.persistence.db import create_db_engine

logger = logging.getLogger(__name__)

target_metadata = None


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode, emitting SQL to stdout."""
    url = os.environ.get(NOLEJ_DATABASE_URL_ENV, DEFAULT_DATABASE_URL)
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode on a shared or fresh connection."""
    connection = context.config.attributes.get("connection")
    if connection is not None:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()
        return

    engine = create_db_engine(os.environ.get(NOLEJ_DATABASE_URL_ENV, DEFAULT_DATABASE_URL))
    with engine.connect() as conn:
        context.configure(connection=conn, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
