"""Create the journalUsers credential table.

Revision ID: 20261019_journal_users
Revises: 20261019_journal_entries
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_journal_users"
down_revision = "20261019_journal_entries"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "journalUsers",
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("journalUsers")
