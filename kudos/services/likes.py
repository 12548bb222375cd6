"""Like transaction processor: the only path by which points move.

One like is one database transaction:

1. load the card and its recipient set ``R``;
2. reject the sender and every member of ``R``;
3. replay an earlier like carrying the same idempotency key;
4. apply a pending weekly reset to the actor and the sender;
5. claim a like slot with ``like_count = like_count + 1 WHERE like_count < cap``;
6. debit the actor, credit the sender's weekly balance, credit the lifetime
   counter of one recipient drawn uniformly from ``R``;
7. insert the like row and commit.

Step 5 is the serialization point for concurrent likes on the same card: the
conditional increment takes the card's row lock, so the cap holds the way a
unique constraint would. Any failure rolls back every step, including the
slot claim, so readers never see a partial transfer.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from kudos import db as db_module
from kudos.config import Settings
from kudos.metrics import like_latency_seconds, likes_total
from kudos.models import Card, Like
from kudos.services.cards import card_recipient_ids
from kudos.services.clock import ensure_utc, utcnow
from kudos.services.errors import (
    CapacityError,
    CardNotFound,
    IdempotencyConflict,
    LedgerError,
    LikeLimitReached,
    SelfInteraction,
    TransientLedgerError,
)
from kudos.services.ledger import BalanceSnapshot, credit, credit_lifetime, debit, snapshot
from kudos.services.weekly_reset import reset_user_if_due

settings = Settings()
logger = logging.getLogger(__name__)

_rng = random.Random(settings.like_rng_seed)


@dataclass
class LikeResult:
    like: Like
    actor_balance: BalanceSnapshot
    sender_balance: BalanceSnapshot
    beneficiary_balance: BalanceSnapshot
    replayed: bool = False


def choose_beneficiary(recipient_ids: Iterable[int], rng: random.Random | None = None) -> int:
    """Draw one recipient uniformly. Sorted first so a seeded rng is reproducible."""
    pool = sorted(set(recipient_ids))
    if not pool:
        raise ValueError("card has no recipients")
    return (rng or _rng).choice(pool)


def _claim_like_slot(db: Session, card_id: int) -> bool:
    stmt = (
        update(Card)
        .where(Card.id == card_id, Card.like_count < settings.max_likes_per_card)
        .values(like_count=Card.like_count + 1)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount > 0


def _find_by_key(db: Session, idempotency_key: str) -> Like | None:
    return db.query(Like).filter(Like.idempotency_key == idempotency_key).one_or_none()


def _replay(db: Session, like: Like, card: Card, actor_id: int) -> LikeResult:
    if like.user_id != actor_id or like.card_id != card.id:
        raise IdempotencyConflict(
            "Idempotency key already used for a different like",
            like_id=like.id,
        )
    return LikeResult(
        like=like,
        actor_balance=snapshot(db, actor_id),
        sender_balance=snapshot(db, card.sender_id),
        beneficiary_balance=snapshot(db, like.beneficiary_id),
        replayed=True,
    )


def _load_eligible_card(db: Session, card_id: int, actor_id: int) -> tuple[Card, list[int]]:
    card = db.get(Card, card_id)
    if card is None:
        raise CardNotFound(f"Card {card_id} not found", card_id=card_id)
    recipients = card_recipient_ids(db, card_id)
    if actor_id == card.sender_id or actor_id in recipients:
        raise SelfInteraction(
            "Senders and recipients cannot like their own card",
            card_id=card_id,
            user_id=actor_id,
        )
    return card, recipients


def _like_tx(
    card_id: int,
    actor_id: int,
    idempotency_key: str | None,
    rng: random.Random | None,
    now: datetime,
) -> LikeResult:
    with db_module.SessionLocal() as db:
        try:
            card, recipients = _load_eligible_card(db, card_id, actor_id)
            if idempotency_key:
                existing = _find_by_key(db, idempotency_key)
                if existing is not None:
                    return _replay(db, existing, card, actor_id)

            reset_user_if_due(db, actor_id, now)
            reset_user_if_due(db, card.sender_id, now)

            if not _claim_like_slot(db, card.id):
                raise LikeLimitReached(
                    f"Card {card.id} already has {settings.max_likes_per_card} likes",
                    card_id=card.id,
                )
            debit(db, actor_id, settings.like_cost)
            credit(db, card.sender_id, settings.like_sender_credit)
            beneficiary_id = choose_beneficiary(recipients, rng)
            credit_lifetime(db, beneficiary_id, settings.like_beneficiary_credit)

            like = Like(
                card_id=card.id,
                user_id=actor_id,
                beneficiary_id=beneficiary_id,
                points=settings.like_cost,
                idempotency_key=idempotency_key,
                created_at=now,
            )
            db.add(like)
            db.flush()
            result = LikeResult(
                like=like,
                actor_balance=snapshot(db, actor_id),
                sender_balance=snapshot(db, card.sender_id),
                beneficiary_balance=snapshot(db, beneficiary_id),
            )
            db.commit()
            return result
        except LedgerError:
            db.rollback()
            raise
        except IntegrityError as exc:
            db.rollback()
            if idempotency_key:
                # a concurrent request with the same key committed first
                return _replay_committed(card_id, actor_id, idempotency_key, exc)
            raise TransientLedgerError("Like transaction conflicted, retry") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise TransientLedgerError("Like transaction aborted, retry") from exc


def _replay_committed(
    card_id: int, actor_id: int, idempotency_key: str, cause: Exception
) -> LikeResult:
    with db_module.SessionLocal() as db:
        existing = _find_by_key(db, idempotency_key)
        if existing is None:
            raise TransientLedgerError("Like transaction conflicted, retry") from cause
        card = db.get(Card, card_id)
        if card is None:
            raise CardNotFound(f"Card {card_id} not found", card_id=card_id)
        return _replay(db, existing, card, actor_id)


def create_like(
    card_id: int,
    actor_id: int,
    *,
    idempotency_key: str | None = None,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> LikeResult:
    """Run the like transaction; raises a ``LedgerError`` subclass on rejection."""
    now = ensure_utc(now) or utcnow()
    start_time = time.perf_counter()
    try:
        result = _like_tx(card_id, actor_id, idempotency_key, rng, now)
    except CapacityError as exc:
        likes_total.labels(status=exc.code.value.lower()).inc()
        logger.info(
            "like rejected: %s",
            exc.message,
            extra={"card_id": card_id, "actor_id": actor_id, "reason": exc.code.value},
        )
        raise
    except TransientLedgerError:
        likes_total.labels(status="transient").inc()
        logger.warning(
            "like transaction rolled back",
            extra={"card_id": card_id, "actor_id": actor_id},
            exc_info=True,
        )
        raise
    except LedgerError as exc:
        likes_total.labels(status=exc.code.value.lower()).inc()
        raise
    finally:
        like_latency_seconds.observe(time.perf_counter() - start_time)

    likes_total.labels(status="replayed" if result.replayed else "ok").inc()
    if not result.replayed:
        logger.info(
            "like committed",
            extra={
                "like_id": result.like.id,
                "card_id": card_id,
                "actor_id": actor_id,
                "beneficiary_id": result.like.beneficiary_id,
            },
        )
    return result


__all__ = ["LikeResult", "choose_beneficiary", "create_like"]
