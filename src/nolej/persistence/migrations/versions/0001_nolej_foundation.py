"""Nolej foundation: documents, activities, packages and config tables.

Revision ID: 0001
Revises:
Create Date: 2026-09-28

Tables:
- nolej_documents: one row per Nolej document, holds the workflow status
- nolej_activities: stage outcomes per (document, user, action), upsert target
- nolej_packages: imported H5P packages, latest per (document, type) is current
- nolej_config: key/value store (api_key, interval)
"""

from alembic import op

from nolej.persistence.schema import CREATE_STATEMENTS, DROP_STATEMENTS

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the bridge tables."""
    for statement in CREATE_STATEMENTS:
        op.execute(statement)


def downgrade() -> None:
    """Drop the bridge tables."""
    for statement in DROP_STATEMENTS:
        op.execute(statement)
