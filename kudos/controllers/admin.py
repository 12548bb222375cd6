import asyncio
import logging

from fastapi import APIRouter, Depends

from kudos.dependencies import ErrorResponse, rate_limit, require_admin_signature
from kudos.services.weekly_reset import run_weekly_reset

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin")


@router.post("/weekly_reset", responses={401: {"model": ErrorResponse}})
async def weekly_reset(
    force: bool = False,
    dry_run: bool = False,
    _scope: str = Depends(require_admin_signature("weekly_reset")),
    user_id: int = Depends(rate_limit),
):
    logger.info("audit: weekly reset requested by user %s (force=%s)", user_id, force)
    report = await asyncio.to_thread(run_weekly_reset, force=force, dry_run=dry_run)
    return {
        "week_start": report.week_start,
        "checked": report.checked,
        "reset": report.reset,
        "failed": report.failed,
        "forced": report.forced,
        "dry_run": dry_run,
    }
