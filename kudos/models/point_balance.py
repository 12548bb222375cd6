"""Per-user point balances.

``weekly_balance`` is the spendable allowance, restored to ``weekly_cap`` by
the weekly reset. ``lifetime_received`` only ever grows.
"""
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer

from .base import Base


def _now():
    return datetime.now(timezone.utc)


class PointBalance(Base):
    __tablename__ = "point_balances"
    __table_args__ = (
        CheckConstraint("weekly_balance >= 0", name="ck_point_balances_weekly_nonneg"),
        CheckConstraint("lifetime_received >= 0", name="ck_point_balances_lifetime_nonneg"),
    )

    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    weekly_balance = Column(Integer, nullable=False)
    weekly_cap = Column(Integer, nullable=False)
    lifetime_received = Column(Integer, nullable=False, default=0, server_default="0")
    last_reset_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)


__all__ = ["PointBalance"]
