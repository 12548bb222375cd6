from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)

from .base import Base


def _now():
    return datetime.now(timezone.utc)


class Card(Base):
    """Recognition card. Immutable apart from ``like_count`` and ``hidden``."""

    __tablename__ = "cards"
    __table_args__ = (
        CheckConstraint("points >= 0 AND points <= 140", name="ck_cards_points_range"),
        CheckConstraint(
            "like_count >= 0 AND like_count <= 50", name="ck_cards_like_count_range"
        ),
        Index("ix_cards_sender_created", "sender_id", "created_at"),
        Index("ix_cards_created_at", "created_at"),
    )

    id = Column(Integer, primary_key=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    message = Column(String(140), nullable=False)
    points = Column(Integer, nullable=False, default=0)
    like_count = Column(Integer, nullable=False, default=0, server_default="0")
    hidden = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)


class CardRecipient(Base):
    """One row per recipient of a card, the primary recipient included."""

    __tablename__ = "card_recipients"
    __table_args__ = (Index("ix_card_recipients_user_card", "user_id", "card_id"),)

    card_id = Column(
        Integer, ForeignKey("cards.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    is_primary = Column(Boolean, nullable=False, default=False)


__all__ = ["Card", "CardRecipient"]
