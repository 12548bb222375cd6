import asyncio
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError

from kudos import db as db_module
from kudos.dependencies import ErrorResponse, http_error, rate_limit, require_admin_signature
from kudos.models import ErrorCode
from kudos.services.errors import LedgerError
from kudos.services.ledger import snapshot
from kudos.services.users import create_user
from kudos.services.weekly_reset import refresh_balance

logger = logging.getLogger(__name__)

router = APIRouter()


class UserCreate(BaseModel):
    user_id: int | None = Field(None, gt=0)
    name: str = Field(min_length=1, max_length=100)
    display_name: str | None = Field(None, max_length=100)
    department: str | None = Field(None, max_length=100)
    is_admin: bool = False


class BalanceOut(BaseModel):
    user_id: int
    weekly_balance: int
    weekly_cap: int
    lifetime_received: int
    last_reset_at: datetime | None = None


class UserOut(BaseModel):
    id: int
    name: str
    display_name: str | None = None
    department: str | None = None
    is_admin: bool
    balance: BalanceOut


@router.post(
    "/users",
    status_code=201,
    response_model=UserOut,
    responses={401: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def register_user(
    body: UserCreate,
    _scope: str = Depends(require_admin_signature("users")),
    _auth_user: int = Depends(rate_limit),
):
    def _db_call() -> UserOut:
        with db_module.SessionLocal() as db:
            user = create_user(
                db,
                name=body.name,
                user_id=body.user_id,
                display_name=body.display_name,
                department=body.department,
                is_admin=body.is_admin,
            )
            balance = snapshot(db, user.id)
            db.commit()
            return UserOut(
                id=user.id,
                name=user.name,
                display_name=user.display_name,
                department=user.department,
                is_admin=user.is_admin,
                balance=BalanceOut(**balance._asdict()),
            )

    try:
        user = await asyncio.to_thread(_db_call)
    except IntegrityError as exc:
        err = ErrorResponse(code=ErrorCode.BAD_REQUEST, message="User already exists")
        raise HTTPException(status_code=409, detail=err.model_dump(exclude_none=True)) from exc
    logger.info("user registered", extra={"user_id": user.id})
    return user


@router.get(
    "/users/{user_id}/balance",
    response_model=BalanceOut,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_balance(user_id: int, auth_user: int = Depends(rate_limit)):
    if auth_user != user_id:
        err = ErrorResponse(code=ErrorCode.FORBIDDEN, message="Cannot access other user")
        raise HTTPException(status_code=403, detail=err.model_dump(exclude_none=True))

    def _db_call() -> BalanceOut:
        refresh_balance(user_id)
        with db_module.SessionLocal() as db:
            return BalanceOut(**snapshot(db, user_id)._asdict())

    try:
        return await asyncio.to_thread(_db_call)
    except LedgerError as exc:
        raise http_error(exc) from exc
