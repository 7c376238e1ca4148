"""allow one active sync run per source

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 15:30:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None

ACTIVE_RUN_PREDICATE = "status IN ('pending', 'running')"


def upgrade() -> None:
    op.create_index(
        "uq_sync_runs_active_source",
        "sync_runs",
        ["source_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_RUN_PREDICATE),
        sqlite_where=sa.text(ACTIVE_RUN_PREDICATE),
    )


def downgrade() -> None:
    op.drop_index("uq_sync_runs_active_source", table_name="sync_runs")
