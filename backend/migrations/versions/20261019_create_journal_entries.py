"""Create the journalEntries document table.

Revision ID: 20261019_journal_entries
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_journal_entries"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "journalEntries",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("title", sa.Text(), nullable=False, server_default=""),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("userId", sa.String(length=128), nullable=False),
    )
    op.create_index(
        "ix_journalEntries_owner_timestamp",
        "journalEntries",
        ["userId", "timestamp"],
    )


def downgrade() -> None:
    op.drop_index("ix_journalEntries_owner_timestamp", table_name="journalEntries")
    op.drop_table("journalEntries")
