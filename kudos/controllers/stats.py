import asyncio
from typing import Literal

from fastapi import APIRouter, Depends, Query

from kudos.dependencies import ErrorResponse, http_error, rate_limit
from kudos.services import aggregation
from kudos.services.errors import LedgerError
from kudos.services.weekly_reset import refresh_balance

router = APIRouter()

_WINDOWS = {
    "week": aggregation.week_window,
    "month": aggregation.month_window,
    "lifetime": aggregation.lifetime_window,
}


@router.get(
    "/dashboard/stats",
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def dashboard_stats(user_id: int = Depends(rate_limit)):
    def _call() -> dict:
        refresh_balance(user_id)
        return aggregation.get_dashboard_stats(user_id)

    try:
        return await asyncio.to_thread(_call)
    except LedgerError as exc:
        raise http_error(exc) from exc


@router.get("/rankings", responses={503: {"model": ErrorResponse}})
async def rankings(
    period: Literal["week", "month", "lifetime"] = "month",
    limit: int | None = Query(None, ge=1, le=100),
    _user_id: int = Depends(rate_limit),
):
    window = _WINDOWS[period]()
    try:
        boards = await asyncio.to_thread(aggregation.get_rankings, window, limit)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return {"period": period, **boards}


@router.get("/notifications", responses={503: {"model": ErrorResponse}})
async def notifications(
    limit: int = Query(20, ge=1, le=50),
    user_id: int = Depends(rate_limit),
):
    try:
        return await asyncio.to_thread(aggregation.get_notifications, user_id, limit)
    except LedgerError as exc:
        raise http_error(exc) from exc
