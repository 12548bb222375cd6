"""Read-side statistics over cards and likes.

Nothing here writes. Each leaderboard is a grouped query producing
``(user_id, total)``; ranking orders by ``total`` descending and ``user_id``
ascending so ties come back in the same order on every call. Windows are
half-open ``[start, end)`` over ``created_at`` and hit the
``(sender_id, created_at)`` / ``(user_id, created_at)`` indexes.

Likes commit atomically, so a query sees a like together with every balance
change it caused, or none of it.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, Literal, NamedTuple, TypeVar

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Query, Session

from kudos import db as db_module
from kudos.config import Settings
from kudos.metrics import stats_unavailable_total
from kudos.models import Card, CardRecipient, Like
from kudos.services.clock import ensure_utc, month_start, utcnow, week_start
from kudos.services.errors import StatsUnavailable
from kudos.services.ledger import snapshot
from kudos.services.users import user_names

settings = Settings()
logger = logging.getLogger(__name__)

# points_sent counts each card as one point of effort alongside like debits
CARD_POINT_WEIGHT = 1
PARTNER_LIMIT = 30

T = TypeVar("T")


class Window(NamedTuple):
    start: datetime | None = None
    end: datetime | None = None


class RankingEntry(NamedTuple):
    rank: int
    user_id: int
    name: str | None
    count: int


class PersonalStats(NamedTuple):
    cards_sent: int
    cards_received: int
    likes_sent: int
    likes_received: int
    lifetime_credits: int
    points_sent: int
    points_received: int


def week_window(now: datetime | None = None) -> Window:
    now = ensure_utc(now) or utcnow()
    return Window(week_start(now), now)


def month_window(now: datetime | None = None) -> Window:
    now = ensure_utc(now) or utcnow()
    return Window(month_start(now), now)


def lifetime_window() -> Window:
    return Window()


def _in_window(column, window: Window) -> list:
    clauses = []
    if window.start is not None:
        clauses.append(column >= ensure_utc(window.start))
    if window.end is not None:
        clauses.append(column < ensure_utc(window.end))
    return clauses


# grouped (user_id, total) queries, one per leaderboard


def _card_senders(db: Session, window: Window) -> Query:
    return (
        db.query(Card.sender_id.label("user_id"), func.count(Card.id).label("total"))
        .filter(*_in_window(Card.created_at, window))
        .group_by(Card.sender_id)
    )


def _card_receivers(db: Session, window: Window) -> Query:
    return (
        db.query(
            CardRecipient.user_id.label("user_id"),
            func.count(CardRecipient.card_id).label("total"),
        )
        .join(Card, Card.id == CardRecipient.card_id)
        .filter(*_in_window(Card.created_at, window))
        .group_by(CardRecipient.user_id)
    )


def _like_senders(db: Session, window: Window) -> Query:
    return (
        db.query(Like.user_id.label("user_id"), func.count(Like.id).label("total"))
        .filter(*_in_window(Like.created_at, window))
        .group_by(Like.user_id)
    )


def _like_receivers(db: Session, window: Window) -> Query:
    # the card's sender is the party credited on every like
    return (
        db.query(Card.sender_id.label("user_id"), func.count(Like.id).label("total"))
        .join(Card, Card.id == Like.card_id)
        .filter(*_in_window(Like.created_at, window))
        .group_by(Card.sender_id)
    )


def _point_givers(db: Session, window: Window) -> Query:
    return (
        db.query(Like.user_id.label("user_id"), func.sum(Like.points).label("total"))
        .filter(*_in_window(Like.created_at, window))
        .group_by(Like.user_id)
    )


def _point_receivers(db: Session, window: Window) -> Query:
    return (
        db.query(
            Like.beneficiary_id.label("user_id"),
            (func.count(Like.id) * settings.like_beneficiary_credit).label("total"),
        )
        .filter(*_in_window(Like.created_at, window))
        .group_by(Like.beneficiary_id)
    )


BOARDS: dict[str, Callable[[Session, Window], Query]] = {
    "card_senders": _card_senders,
    "card_receivers": _card_receivers,
    "like_senders": _like_senders,
    "like_receivers": _like_receivers,
    "point_givers": _point_givers,
    "point_receivers": _point_receivers,
}


def _top(db: Session, grouped: Query, limit: int) -> list[RankingEntry]:
    sub = grouped.subquery()
    rows = (
        db.query(sub.c.user_id, sub.c.total)
        .order_by(sub.c.total.desc(), sub.c.user_id.asc())
        .limit(limit)
        .all()
    )
    names = user_names(db, [row[0] for row in rows])
    return [
        RankingEntry(rank=i + 1, user_id=row[0], name=names.get(row[0]), count=int(row[1]))
        for i, row in enumerate(rows)
    ]


def _position(db: Session, grouped: Query, user_id: int) -> int:
    """1-based place of ``user_id`` in the board, 0 when absent."""
    sub = grouped.subquery()
    mine = db.query(sub.c.total).filter(sub.c.user_id == user_id).scalar()
    if not mine:
        return 0
    ahead = (
        db.query(func.count())
        .select_from(sub)
        .filter(
            or_(
                sub.c.total > mine,
                and_(sub.c.total == mine, sub.c.user_id < user_id),
            )
        )
        .scalar()
    )
    return int(ahead) + 1


def leaderboard(
    db: Session, board: str, window: Window, limit: int | None = None
) -> list[RankingEntry]:
    return _top(db, BOARDS[board](db, window), limit or settings.ranking_limit)


def top_card_senders(db: Session, window: Window, limit: int | None = None) -> list[RankingEntry]:
    return leaderboard(db, "card_senders", window, limit)


def top_card_receivers(db: Session, window: Window, limit: int | None = None) -> list[RankingEntry]:
    return leaderboard(db, "card_receivers", window, limit)


def top_like_senders(db: Session, window: Window, limit: int | None = None) -> list[RankingEntry]:
    return leaderboard(db, "like_senders", window, limit)


def top_like_receivers(db: Session, window: Window, limit: int | None = None) -> list[RankingEntry]:
    return leaderboard(db, "like_receivers", window, limit)


def top_point_givers(db: Session, window: Window, limit: int | None = None) -> list[RankingEntry]:
    return leaderboard(db, "point_givers", window, limit)


def top_point_receivers(db: Session, window: Window, limit: int | None = None) -> list[RankingEntry]:
    return leaderboard(db, "point_receivers", window, limit)


def rank_of(db: Session, board: str, user_id: int, window: Window) -> int:
    return _position(db, BOARDS[board](db, window), user_id)


def _count(query: Query) -> int:
    return int(query.scalar() or 0)


def personal_stats(db: Session, user_id: int, window: Window) -> PersonalStats:
    cards_sent = _count(
        db.query(func.count(Card.id)).filter(
            Card.sender_id == user_id, *_in_window(Card.created_at, window)
        )
    )
    cards_received = _count(
        db.query(func.count(CardRecipient.card_id))
        .join(Card, Card.id == CardRecipient.card_id)
        .filter(CardRecipient.user_id == user_id, *_in_window(Card.created_at, window))
    )
    likes_sent = _count(
        db.query(func.count(Like.id)).filter(
            Like.user_id == user_id, *_in_window(Like.created_at, window)
        )
    )
    likes_received = _count(
        db.query(func.count(Like.id))
        .join(Card, Card.id == Like.card_id)
        .filter(Card.sender_id == user_id, *_in_window(Like.created_at, window))
    )
    lifetime_credits = _count(
        db.query(func.count(Like.id)).filter(
            Like.beneficiary_id == user_id, *_in_window(Like.created_at, window)
        )
    )
    return PersonalStats(
        cards_sent=cards_sent,
        cards_received=cards_received,
        likes_sent=likes_sent,
        likes_received=likes_received,
        lifetime_credits=lifetime_credits,
        points_sent=cards_sent * CARD_POINT_WEIGHT + likes_sent * settings.like_cost,
        points_received=likes_received * settings.like_sender_credit
        + lifetime_credits * settings.like_beneficiary_credit,
    )


def top_partners(
    db: Session,
    user_id: int,
    window: Window,
    direction: Literal["sent", "received"],
    limit: int = PARTNER_LIMIT,
) -> list[RankingEntry]:
    """Colleagues this user sent the most cards to, or received the most from."""
    if direction == "sent":
        grouped = (
            db.query(
                CardRecipient.user_id.label("user_id"),
                func.count(CardRecipient.card_id).label("total"),
            )
            .join(Card, Card.id == CardRecipient.card_id)
            .filter(Card.sender_id == user_id, *_in_window(Card.created_at, window))
            .group_by(CardRecipient.user_id)
        )
    else:
        grouped = (
            db.query(Card.sender_id.label("user_id"), func.count(Card.id).label("total"))
            .join(CardRecipient, CardRecipient.card_id == Card.id)
            .filter(CardRecipient.user_id == user_id, *_in_window(Card.created_at, window))
            .group_by(Card.sender_id)
        )
    return _top(db, grouped, limit)


class Activity(NamedTuple):
    kind: Literal["new_card", "card_like"]
    id: str
    card_id: int
    user_id: int
    name: str | None
    created_at: datetime


def recent_activity(db: Session, user_id: int, limit: int = 20) -> list[Activity]:
    """Cards this user received and likes on cards they sent, newest first.

    Each source is read up to ``limit`` rows before the merge, so the cut
    is exact. Hidden cards are left out of both.
    """
    received = (
        db.query(Card.id, Card.sender_id, Card.created_at)
        .join(CardRecipient, CardRecipient.card_id == Card.id)
        .filter(CardRecipient.user_id == user_id, Card.hidden.is_(False))
        .order_by(Card.created_at.desc(), Card.id.desc())
        .limit(limit)
        .all()
    )
    liked = (
        db.query(Like.id, Like.card_id, Like.user_id, Like.created_at)
        .join(Card, Card.id == Like.card_id)
        .filter(Card.sender_id == user_id, Card.hidden.is_(False))
        .order_by(Like.created_at.desc(), Like.id.desc())
        .limit(limit)
        .all()
    )
    items = [
        ("new_card", f"card_{card_id}", card_id, sender_id, ensure_utc(created_at))
        for card_id, sender_id, created_at in received
    ] + [
        ("card_like", f"like_{like_id}", card_id, actor_id, ensure_utc(created_at))
        for like_id, card_id, actor_id, created_at in liked
    ]
    items.sort(key=lambda item: item[4], reverse=True)
    items = items[:limit]
    names = user_names(db, [item[3] for item in items])
    return [
        Activity(kind, key, card_id, other, names.get(other), created_at)
        for kind, key, card_id, other, created_at in items
    ]


def with_read_retry(fn: Callable[[Session], T]) -> T:
    """Run ``fn`` in a fresh session, retrying transient database errors."""
    attempts = settings.aggregation_retries
    for attempt in range(1, attempts + 1):
        try:
            with db_module.SessionLocal() as db:
                return fn(db)
        except OperationalError:
            logger.warning(
                "aggregation query failed (attempt %s/%s)", attempt, attempts, exc_info=True
            )
            if attempt < attempts:
                time.sleep(settings.aggregation_retry_delay_s)
    stats_unavailable_total.inc()
    raise StatsUnavailable("Stats temporarily unavailable")


def _entries(entries: list[RankingEntry]) -> list[dict[str, Any]]:
    return [entry._asdict() for entry in entries]


def get_rankings(window: Window | None = None, limit: int | None = None) -> dict[str, Any]:
    window = window or month_window()

    def _fetch(db: Session) -> dict[str, Any]:
        return {
            board: _entries(leaderboard(db, board, window, limit)) for board in BOARDS
        }

    return with_read_retry(_fetch)


def get_dashboard_stats(user_id: int, now: datetime | None = None) -> dict[str, Any]:
    now = ensure_utc(now) or utcnow()
    monthly = month_window(now)

    def _fetch(db: Session) -> dict[str, Any]:
        balance = snapshot(db, user_id)
        cap = balance.weekly_cap
        spent = cap - balance.weekly_balance
        conversion = 0 if cap <= 0 else round(min(100.0, max(0.0, spent / cap * 100)))
        return {
            "user_id": user_id,
            "balance": balance._asdict(),
            "point_conversion_rate": conversion,
            "weekly": personal_stats(db, user_id, week_window(now))._asdict(),
            "monthly": personal_stats(db, user_id, monthly)._asdict(),
            "lifetime": personal_stats(db, user_id, lifetime_window())._asdict(),
            "rankings": {
                "card_sender_rank": rank_of(db, "card_senders", user_id, monthly),
                "like_sender_rank": rank_of(db, "like_senders", user_id, monthly),
            },
            "partners": {
                "sent": _entries(top_partners(db, user_id, lifetime_window(), "sent")),
                "received": _entries(
                    top_partners(db, user_id, lifetime_window(), "received")
                ),
            },
        }

    return with_read_retry(_fetch)


def get_notifications(user_id: int, limit: int = 20) -> list[dict[str, Any]]:
    def _fetch(db: Session) -> list[dict[str, Any]]:
        return [
            {**item._asdict(), "created_at": item.created_at.isoformat()}
            for item in recent_activity(db, user_id, limit)
        ]

    return with_read_retry(_fetch)


__all__ = [
    "Window",
    "RankingEntry",
    "PersonalStats",
    "BOARDS",
    "week_window",
    "month_window",
    "lifetime_window",
    "leaderboard",
    "top_card_senders",
    "top_card_receivers",
    "top_like_senders",
    "top_like_receivers",
    "top_point_givers",
    "top_point_receivers",
    "rank_of",
    "personal_stats",
    "top_partners",
    "Activity",
    "recent_activity",
    "with_read_retry",
    "get_rankings",
    "get_dashboard_stats",
    "get_notifications",
]
