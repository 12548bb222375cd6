import asyncio
import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from kudos import db as db_module
from kudos.dependencies import ErrorResponse, http_error, rate_limit, require_admin_signature
from kudos.services import cards as card_service
from kudos.services.errors import LedgerError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cards")


class CardCreate(BaseModel):
    recipient_id: int
    additional_recipient_ids: list[int] = Field(default_factory=list)
    message: str
    points: int = 0


class CardOut(BaseModel):
    id: int
    sender_id: int
    recipient_id: int
    recipient_ids: list[int]
    message: str
    points: int
    like_count: int
    hidden: bool
    created_at: datetime

    @classmethod
    def from_record(cls, record: card_service.CardWithRecipients) -> "CardOut":
        card = record.card
        return cls(
            id=card.id,
            sender_id=card.sender_id,
            recipient_id=card.recipient_id,
            recipient_ids=record.recipient_ids,
            message=card.message,
            points=card.points,
            like_count=card.like_count,
            hidden=card.hidden,
            created_at=card.created_at,
        )


class LikeOut(BaseModel):
    id: int
    card_id: int
    user_id: int
    beneficiary_id: int
    points: int
    created_at: datetime


class VisibilityUpdate(BaseModel):
    hidden: bool


@router.post(
    "",
    status_code=201,
    response_model=CardOut,
    responses={422: {"model": ErrorResponse}},
)
async def create_card(body: CardCreate, user_id: int = Depends(rate_limit)):
    def _db_call() -> CardOut:
        with db_module.SessionLocal() as db:
            record = card_service.create_card(
                db,
                sender_id=user_id,
                recipient_id=body.recipient_id,
                additional_recipient_ids=body.additional_recipient_ids,
                message=body.message,
                points=body.points,
            )
            return CardOut.from_record(record)

    try:
        return await asyncio.to_thread(_db_call)
    except LedgerError as exc:
        raise http_error(exc) from exc


@router.get("", response_model=list[CardOut])
async def list_cards(
    view: Literal["all", "sent", "received", "liked"] = "all",
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: int = Depends(rate_limit),
):
    def _db_call() -> list[CardOut]:
        with db_module.SessionLocal() as db:
            records = card_service.list_cards(
                db, view=view, user_id=user_id, limit=limit, offset=offset
            )
            return [CardOut.from_record(r) for r in records]

    return await asyncio.to_thread(_db_call)


@router.get(
    "/{card_id}",
    response_model=CardOut,
    responses={404: {"model": ErrorResponse}},
)
async def get_card(card_id: int, _user_id: int = Depends(rate_limit)):
    def _db_call() -> CardOut:
        with db_module.SessionLocal() as db:
            return CardOut.from_record(card_service.get_card(db, card_id))

    try:
        return await asyncio.to_thread(_db_call)
    except LedgerError as exc:
        raise http_error(exc) from exc


@router.get(
    "/{card_id}/likes",
    response_model=list[LikeOut],
    responses={404: {"model": ErrorResponse}},
)
async def get_card_likes(card_id: int, _user_id: int = Depends(rate_limit)):
    def _db_call() -> list[LikeOut]:
        with db_module.SessionLocal() as db:
            return [
                LikeOut.model_validate(like, from_attributes=True)
                for like in card_service.list_card_likes(db, card_id)
            ]

    try:
        return await asyncio.to_thread(_db_call)
    except LedgerError as exc:
        raise http_error(exc) from exc


@router.patch(
    "/{card_id}/visibility",
    response_model=CardOut,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def set_visibility(
    card_id: int,
    body: VisibilityUpdate,
    _scope: str = Depends(require_admin_signature("cards")),
    user_id: int = Depends(rate_limit),
):
    def _db_call() -> CardOut:
        with db_module.SessionLocal() as db:
            card_service.set_card_hidden(db, card_id, body.hidden)
            return CardOut.from_record(card_service.get_card(db, card_id))

    try:
        card = await asyncio.to_thread(_db_call)
    except LedgerError as exc:
        raise http_error(exc) from exc
    logger.info("audit: card %s hidden=%s by user %s", card_id, body.hidden, user_id)
    return card
