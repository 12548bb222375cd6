from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint

from .base import Base


class Like(Base):
    __tablename__ = "likes"
    __table_args__ = (
        Index("ix_likes_user_created", "user_id", "created_at"),
        Index("ix_likes_beneficiary_created", "beneficiary_id", "created_at"),
        Index("ix_likes_card_id", "card_id"),
        UniqueConstraint("idempotency_key", name="uq_likes_idempotency_key"),
    )

    id = Column(Integer, primary_key=True)
    card_id = Column(Integer, ForeignKey("cards.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)  # actor
    beneficiary_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    points = Column(Integer, nullable=False)
    idempotency_key = Column(String(128), nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )


__all__ = ["Like"]
