"""Point balance ledger.

Every mutation is a single SQL ``UPDATE`` whose arithmetic and guard run in
the database, so concurrent callers serialize on the balance row instead of
racing on a read followed by a write. Functions take the caller's session
and never commit: the caller owns the transaction boundary.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import NamedTuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from kudos.config import Settings
from kudos.models import PointBalance
from kudos.services.clock import ensure_utc, utcnow
from kudos.services.errors import BalanceNotFound, InsufficientBalance

settings = Settings()
logger = logging.getLogger(__name__)


class BalanceSnapshot(NamedTuple):
    user_id: int
    weekly_balance: int
    weekly_cap: int
    lifetime_received: int
    last_reset_at: datetime | None


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValueError(f"amount must be a positive integer, got {amount!r}")


def open_balance(db: Session, user_id: int, now: datetime | None = None) -> PointBalance:
    """Create the balance row for a new user; returns the existing row if present."""
    existing = db.get(PointBalance, user_id)
    if existing is not None:
        return existing
    cap = settings.weekly_point_cap
    record = PointBalance(
        user_id=user_id,
        weekly_balance=cap,
        weekly_cap=cap,
        lifetime_received=0,
        last_reset_at=None,
        updated_at=now or utcnow(),
    )
    db.add(record)
    db.flush()
    return record


def snapshot(db: Session, user_id: int) -> BalanceSnapshot:
    row = (
        db.query(
            PointBalance.weekly_balance,
            PointBalance.weekly_cap,
            PointBalance.lifetime_received,
            PointBalance.last_reset_at,
        )
        .filter(PointBalance.user_id == user_id)
        .one_or_none()
    )
    if row is None:
        raise BalanceNotFound(f"No balance for user {user_id}", user_id=user_id)
    return BalanceSnapshot(
        user_id=user_id,
        weekly_balance=row[0],
        weekly_cap=row[1],
        lifetime_received=row[2],
        last_reset_at=ensure_utc(row[3]),
    )


def _apply(db: Session, user_id: int, *conditions, **values) -> int:
    stmt = (
        update(PointBalance)
        .where(PointBalance.user_id == user_id, *conditions)
        .values(updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount


def debit(db: Session, user_id: int, amount: int) -> int:
    """Subtract ``amount`` from the weekly balance; returns the new balance.

    The guard ``weekly_balance >= amount`` is part of the same statement, so
    two debits that would jointly overdraw cannot both succeed.
    """
    _check_amount(amount)
    updated = _apply(
        db,
        user_id,
        PointBalance.weekly_balance >= amount,
        weekly_balance=PointBalance.weekly_balance - amount,
    )
    if not updated:
        current = snapshot(db, user_id)
        raise InsufficientBalance(
            f"Weekly balance {current.weekly_balance} is below {amount}",
            user_id=user_id,
            balance=current.weekly_balance,
            amount=amount,
        )
    return snapshot(db, user_id).weekly_balance


def credit(db: Session, user_id: int, amount: int) -> int:
    """Add ``amount`` to the weekly balance. The cap only applies at reset."""
    _check_amount(amount)
    if not _apply(db, user_id, weekly_balance=PointBalance.weekly_balance + amount):
        raise BalanceNotFound(f"No balance for user {user_id}", user_id=user_id)
    return snapshot(db, user_id).weekly_balance


def credit_lifetime(db: Session, user_id: int, amount: int) -> int:
    _check_amount(amount)
    if not _apply(
        db, user_id, lifetime_received=PointBalance.lifetime_received + amount
    ):
        raise BalanceNotFound(f"No balance for user {user_id}", user_id=user_id)
    return snapshot(db, user_id).lifetime_received


__all__ = [
    "BalanceSnapshot",
    "open_balance",
    "snapshot",
    "debit",
    "credit",
    "credit_lifetime",
]
