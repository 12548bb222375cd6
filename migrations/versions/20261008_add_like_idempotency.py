"""add like idempotency key

Revision ID: 20261008_add_like_idempotency
Revises: 20261001_init_ledger_schema
Create Date: 2026-10-08 12:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261008_add_like_idempotency"
down_revision = "20261001_init_ledger_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("likes") as batch_op:
        batch_op.add_column(sa.Column("idempotency_key", sa.String(128), nullable=True))
        batch_op.create_unique_constraint(
            "uq_likes_idempotency_key", ["idempotency_key"]
        )


def downgrade() -> None:
    with op.batch_alter_table("likes") as batch_op:
        batch_op.drop_constraint("uq_likes_idempotency_key", type_="unique")
        batch_op.drop_column("idempotency_key")
