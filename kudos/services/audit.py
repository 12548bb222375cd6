"""Consistency checks over the ledger tables.

Read-only. Each check counts rows that break an invariant the write path is
supposed to maintain; a healthy ledger reports zero everywhere.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from sqlalchemy import and_, exists, func, or_
from sqlalchemy.orm import Session

from kudos.config import Settings
from kudos.models import Card, CardRecipient, Like, PointBalance

settings = Settings()
logger = logging.getLogger(__name__)


@dataclass
class AuditReport:
    negative_balances: int = 0
    like_count_mismatches: int = 0
    cards_over_like_cap: int = 0
    mispriced_likes: int = 0
    self_likes: int = 0

    @property
    def ok(self) -> bool:
        return not any(asdict(self).values())


def audit_ledger(db: Session) -> AuditReport:
    report = AuditReport()
    report.negative_balances = (
        db.query(func.count(PointBalance.user_id))
        .filter(
            or_(PointBalance.weekly_balance < 0, PointBalance.lifetime_received < 0)
        )
        .scalar()
        or 0
    )

    counted = (
        db.query(Like.card_id.label("card_id"), func.count(Like.id).label("n"))
        .group_by(Like.card_id)
        .subquery()
    )
    report.like_count_mismatches = (
        db.query(func.count(Card.id))
        .outerjoin(counted, counted.c.card_id == Card.id)
        .filter(Card.like_count != func.coalesce(counted.c.n, 0))
        .scalar()
        or 0
    )
    report.cards_over_like_cap = (
        db.query(func.count(Card.id))
        .filter(Card.like_count > settings.max_likes_per_card)
        .scalar()
        or 0
    )
    report.mispriced_likes = (
        db.query(func.count(Like.id)).filter(Like.points != settings.like_cost).scalar()
        or 0
    )
    actor_is_recipient = exists().where(
        and_(
            CardRecipient.card_id == Like.card_id,
            CardRecipient.user_id == Like.user_id,
        )
    )
    report.self_likes = (
        db.query(func.count(Like.id))
        .join(Card, Card.id == Like.card_id)
        .filter(
            or_(
                Like.user_id == Card.sender_id,
                Like.user_id == Like.beneficiary_id,
                actor_is_recipient,
            )
        )
        .scalar()
        or 0
    )

    if report.ok:
        logger.info("ledger audit clean")
    else:
        logger.warning("ledger audit found inconsistencies: %s", asdict(report))
    return report


__all__ = ["AuditReport", "audit_ledger"]
