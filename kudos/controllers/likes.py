import asyncio

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel

from kudos.controllers.cards import LikeOut
from kudos.controllers.users import BalanceOut
from kudos.dependencies import ErrorResponse, http_error, rate_limit
from kudos.services.errors import LedgerError
from kudos.services.likes import create_like

router = APIRouter()


class LikeBalances(BaseModel):
    actor: BalanceOut
    sender: BalanceOut
    beneficiary: BalanceOut


class LikeResponse(BaseModel):
    like: LikeOut
    balances: LikeBalances
    replayed: bool = False


@router.post(
    "/cards/{card_id}/likes",
    status_code=201,
    response_model=LikeResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def like_card(
    card_id: int,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key", max_length=128),
    user_id: int = Depends(rate_limit),
):
    try:
        result = await asyncio.to_thread(
            create_like, card_id, user_id, idempotency_key=idempotency_key
        )
    except LedgerError as exc:
        raise http_error(exc) from exc

    return LikeResponse(
        like=LikeOut.model_validate(result.like, from_attributes=True),
        balances=LikeBalances(
            actor=BalanceOut(**result.actor_balance._asdict()),
            sender=BalanceOut(**result.sender_balance._asdict()),
            beneficiary=BalanceOut(**result.beneficiary_balance._asdict()),
        ),
        replayed=result.replayed,
    )
