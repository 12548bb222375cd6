"""Card storage: creation, lookup and listing.

``Card.points`` is descriptive: creating a card never touches a balance.
Points only move through likes (see ``kudos.services.likes``).
"""
from __future__ import annotations

import logging
from typing import Literal, NamedTuple

from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy.orm import Session

from kudos.metrics import cards_created_total
from kudos.models import Card, CardRecipient, Like, User
from kudos.services.errors import CardNotFound, ValidationFailed

logger = logging.getLogger(__name__)

POINT_STEP = 5
CardView = Literal["all", "sent", "received", "liked"]


class CardDraft(BaseModel):
    recipient_id: int
    additional_recipient_ids: list[int] = Field(default_factory=list)
    message: str = Field(min_length=1, max_length=140)
    points: int = Field(0, ge=0, le=140, multiple_of=POINT_STEP)

    @field_validator("message")
    @classmethod
    def _strip_message(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("message must not be blank")
        return value


class CardWithRecipients(NamedTuple):
    card: Card
    recipient_ids: list[int]


def _first_error(exc: ValidationError) -> ValidationFailed:
    err = exc.errors()[0]
    field = ".".join(str(part) for part in err.get("loc", ())) or "body"
    return ValidationFailed(field, err.get("msg", "invalid value"))


def card_recipient_ids(db: Session, card_id: int) -> list[int]:
    """Primary recipient first, then the additional ones by id."""
    rows = (
        db.query(CardRecipient.user_id, CardRecipient.is_primary)
        .filter(CardRecipient.card_id == card_id)
        .all()
    )
    return [row[0] for row in sorted(rows, key=lambda r: (not r[1], r[0]))]


def _recipients_for(db: Session, card_ids: list[int]) -> dict[int, list[int]]:
    if not card_ids:
        return {}
    rows = (
        db.query(CardRecipient.card_id, CardRecipient.user_id, CardRecipient.is_primary)
        .filter(CardRecipient.card_id.in_(card_ids))
        .all()
    )
    grouped: dict[int, list[tuple[bool, int]]] = {}
    for card_id, user_id, is_primary in rows:
        grouped.setdefault(card_id, []).append((not is_primary, user_id))
    return {card_id: [uid for _, uid in sorted(items)] for card_id, items in grouped.items()}


def create_card(
    db: Session,
    *,
    sender_id: int,
    recipient_id: int,
    additional_recipient_ids: list[int] | None = None,
    message: str,
    points: int = 0,
) -> CardWithRecipients:
    """Validate and persist a card with its recipient rows. Commits."""
    try:
        draft = CardDraft(
            recipient_id=recipient_id,
            additional_recipient_ids=additional_recipient_ids or [],
            message=message,
            points=points,
        )
    except ValidationError as exc:
        raise _first_error(exc) from exc

    extra = sorted(set(draft.additional_recipient_ids) - {draft.recipient_id})
    if sender_id == draft.recipient_id:
        raise ValidationFailed("recipient_id", "cannot send a card to yourself")
    if sender_id in extra:
        raise ValidationFailed("additional_recipient_ids", "cannot send a card to yourself")

    wanted = {sender_id, draft.recipient_id, *extra}
    known = {
        row[0]
        for row in db.query(User.id)
        .filter(User.id.in_(wanted), User.is_active.is_(True))
        .all()
    }
    if sender_id not in known:
        raise ValidationFailed("sender_id", f"unknown user {sender_id}")
    if draft.recipient_id not in known:
        raise ValidationFailed("recipient_id", f"unknown user {draft.recipient_id}")
    missing = [uid for uid in extra if uid not in known]
    if missing:
        raise ValidationFailed(
            "additional_recipient_ids", f"unknown users {missing}"
        )

    card = Card(
        sender_id=sender_id,
        recipient_id=draft.recipient_id,
        message=draft.message,
        points=draft.points,
        like_count=0,
        hidden=False,
    )
    db.add(card)
    db.flush()
    db.add(CardRecipient(card_id=card.id, user_id=draft.recipient_id, is_primary=True))
    for uid in extra:
        db.add(CardRecipient(card_id=card.id, user_id=uid, is_primary=False))
    db.commit()

    cards_created_total.inc()
    logger.info(
        "card created",
        extra={"card_id": card.id, "sender_id": sender_id, "recipients": 1 + len(extra)},
    )
    return CardWithRecipients(card, [draft.recipient_id, *extra])


def get_card(db: Session, card_id: int) -> CardWithRecipients:
    card = db.get(Card, card_id)
    if card is None:
        raise CardNotFound(f"Card {card_id} not found", card_id=card_id)
    return CardWithRecipients(card, card_recipient_ids(db, card_id))


def list_cards(
    db: Session,
    *,
    view: CardView = "all",
    user_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[CardWithRecipients]:
    query = db.query(Card).filter(Card.hidden.is_(False))
    if view != "all" and user_id is None:
        raise ValueError(f"view {view!r} needs a user_id")
    if view == "sent":
        query = query.filter(Card.sender_id == user_id)
    elif view == "received":
        query = query.filter(
            Card.id.in_(
                db.query(CardRecipient.card_id).filter(CardRecipient.user_id == user_id)
            )
        )
    elif view == "liked":
        query = query.filter(
            Card.id.in_(db.query(Like.card_id).filter(Like.user_id == user_id))
        )
    cards = (
        query.order_by(Card.created_at.desc(), Card.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    recipients = _recipients_for(db, [c.id for c in cards])
    return [CardWithRecipients(c, recipients.get(c.id, [])) for c in cards]


def list_card_likes(db: Session, card_id: int) -> list[Like]:
    if db.get(Card, card_id) is None:
        raise CardNotFound(f"Card {card_id} not found", card_id=card_id)
    return (
        db.query(Like)
        .filter(Like.card_id == card_id)
        .order_by(Like.created_at.desc(), Like.id.desc())
        .all()
    )


def set_card_hidden(db: Session, card_id: int, hidden: bool) -> Card:
    """Moderation flag. Likes, balances and statistics are unaffected. Commits."""
    card = db.get(Card, card_id)
    if card is None:
        raise CardNotFound(f"Card {card_id} not found", card_id=card_id)
    card.hidden = hidden
    db.commit()
    logger.info("card visibility changed", extra={"card_id": card_id, "hidden": hidden})
    return card


__all__ = [
    "CardDraft",
    "CardWithRecipients",
    "card_recipient_ids",
    "create_card",
    "get_card",
    "list_cards",
    "list_card_likes",
    "set_card_hidden",
]
