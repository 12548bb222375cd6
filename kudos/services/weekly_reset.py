"""Weekly allowance reset.

A user is due when ``last_reset_at`` is NULL or earlier than the current
week's Monday 00:00 (deployment time zone). Resetting is one conditional
``UPDATE`` per user, the same primitive the ledger uses, so a reset racing a
like on the same row serializes instead of overwriting it. Because the due
condition stays true until a reset commits, a failed attempt is simply picked
up on the next tick; running more often than weekly is a no-op.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kudos import db as db_module
from kudos.metrics import weekly_reset_users_total
from kudos.models import PointBalance
from kudos.services.clock import ensure_utc, utcnow, week_start

logger = logging.getLogger(__name__)


@dataclass
class ResetReport:
    week_start: datetime
    checked: int = 0
    reset: int = 0
    failed: int = 0
    forced: bool = False


def _due_clause(boundary: datetime):
    return or_(
        PointBalance.last_reset_at.is_(None),
        PointBalance.last_reset_at < boundary,
    )


def reset_user_if_due(
    db: Session, user_id: int, now: datetime | None = None, *, force: bool = False
) -> bool:
    """Restore ``weekly_balance`` to ``weekly_cap`` if this week's reset is pending.

    Returns ``True`` when a reset was applied. Does not commit.
    """
    now = ensure_utc(now) or utcnow()
    stmt = update(PointBalance).where(PointBalance.user_id == user_id)
    if not force:
        stmt = stmt.where(_due_clause(week_start(now)))
    stmt = stmt.values(
        weekly_balance=PointBalance.weekly_cap,
        last_reset_at=now,
        updated_at=now,
    ).execution_options(synchronize_session=False)
    return db.execute(stmt).rowcount > 0


def due_user_ids(db: Session, now: datetime, *, force: bool = False) -> list[int]:
    query = db.query(PointBalance.user_id)
    if not force:
        query = query.filter(_due_clause(week_start(now)))
    return [row[0] for row in query.order_by(PointBalance.user_id).all()]


def refresh_balance(user_id: int, now: datetime | None = None) -> bool:
    """Apply a pending reset before a balance read.

    Errors are logged and swallowed: the read goes ahead on the stale value
    and the next scheduler tick retries the reset.
    """
    try:
        with db_module.SessionLocal() as db:
            applied = reset_user_if_due(db, user_id, now)
            db.commit()
    except SQLAlchemyError:
        logger.exception("on-read weekly reset failed for user %s", user_id)
        return False
    if applied:
        weekly_reset_users_total.labels(result="reset").inc()
    return applied


def run_weekly_reset(
    now: datetime | None = None, *, force: bool = False, dry_run: bool = False
) -> ResetReport:
    """Sweep every due user, one transaction per user."""
    now = ensure_utc(now) or utcnow()
    report = ResetReport(week_start=week_start(now), forced=force)
    with db_module.SessionLocal() as db:
        user_ids = due_user_ids(db, now, force=force)
    report.checked = len(user_ids)
    if dry_run:
        logger.info("weekly reset dry-run: %s users due", len(user_ids))
        return report

    for user_id in user_ids:
        try:
            with db_module.SessionLocal() as db:
                applied = reset_user_if_due(db, user_id, now, force=force)
                db.commit()
        except SQLAlchemyError:
            report.failed += 1
            weekly_reset_users_total.labels(result="failed").inc()
            logger.exception("weekly reset failed for user %s", user_id)
            continue
        if applied:
            report.reset += 1
            weekly_reset_users_total.labels(result="reset").inc()

    logger.info(
        "weekly reset done: checked=%s reset=%s failed=%s forced=%s",
        report.checked,
        report.reset,
        report.failed,
        force,
    )
    return report


__all__ = [
    "ResetReport",
    "reset_user_if_due",
    "due_user_ids",
    "refresh_balance",
    "run_weekly_reset",
]
