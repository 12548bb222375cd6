"""init ledger schema

Revision ID: 20261001_init_ledger_schema
Revises:
Create Date: 2026-10-01 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261001_init_ledger_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("display_name", sa.String(128)),
        sa.Column("department", sa.String(128)),
        sa.Column("is_admin", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "point_balances",
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("weekly_balance", sa.Integer, nullable=False),
        sa.Column("weekly_cap", sa.Integer, nullable=False, server_default="500"),
        sa.Column("lifetime_received", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_reset_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("weekly_balance >= 0", name="ck_point_balances_weekly_nonneg"),
        sa.CheckConstraint(
            "lifetime_received >= 0", name="ck_point_balances_lifetime_nonneg"
        ),
    )

    op.create_table(
        "cards",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("sender_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("recipient_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("message", sa.String(140), nullable=False),
        sa.Column("points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("like_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("hidden", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("points >= 0 AND points <= 140", name="ck_cards_points_range"),
        sa.CheckConstraint(
            "like_count >= 0 AND like_count <= 50", name="ck_cards_like_count_range"
        ),
    )
    op.create_index("ix_cards_sender_created", "cards", ["sender_id", "created_at"])
    op.create_index("ix_cards_created_at", "cards", ["created_at"])

    op.create_table(
        "card_recipients",
        sa.Column(
            "card_id",
            sa.Integer,
            sa.ForeignKey("cards.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("is_primary", sa.Boolean, nullable=False, server_default=sa.false()),
    )
    op.create_index(
        "ix_card_recipients_user_card", "card_recipients", ["user_id", "card_id"]
    )

    op.create_table(
        "likes",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("card_id", sa.Integer, sa.ForeignKey("cards.id"), nullable=False),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "beneficiary_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("points", sa.Integer, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_likes_user_created", "likes", ["user_id", "created_at"])
    op.create_index(
        "ix_likes_beneficiary_created", "likes", ["beneficiary_id", "created_at"]
    )
    op.create_index("ix_likes_card_id", "likes", ["card_id"])


def downgrade() -> None:
    op.drop_index("ix_likes_card_id", table_name="likes")
    op.drop_index("ix_likes_beneficiary_created", table_name="likes")
    op.drop_index("ix_likes_user_created", table_name="likes")
    op.drop_table("likes")
    op.drop_index("ix_card_recipients_user_card", table_name="card_recipients")
    op.drop_table("card_recipients")
    op.drop_index("ix_cards_created_at", table_name="cards")
    op.drop_index("ix_cards_sender_created", table_name="cards")
    op.drop_table("cards")
    op.drop_table("point_balances")
    op.drop_table("users")
