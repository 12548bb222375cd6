"""Background thread running the weekly reset sweep on a fixed interval.

Started and stopped from the FastAPI lifespan. The sweep itself is
idempotent, so ticks far more frequent than weekly are harmless and a
restarted process simply catches up on its first tick.
"""
from __future__ import annotations

import logging
import threading

from kudos.services.weekly_reset import run_weekly_reset

logger = logging.getLogger(__name__)


_SCHEDULER_THREAD: threading.Thread | None = None
_SCHEDULER_STOP_EVENT: threading.Event | None = None


def _tick(label: str) -> None:
    try:
        report = run_weekly_reset()
        logger.info(
            "weekly reset tick completed (%s): reset=%s failed=%s",
            label,
            report.reset,
            report.failed,
        )
    except Exception:  # noqa: BLE001
        logger.exception("weekly reset tick failed (%s)", label)


def _run_scheduler_loop(stop_event: threading.Event, interval: float) -> None:
    logger.info("weekly reset scheduler started (interval=%.0f seconds)", interval)
    _tick("initial run")
    while not stop_event.wait(interval):
        _tick("scheduled run")
    logger.info("weekly reset scheduler thread exiting")


def start_weekly_reset_scheduler(interval: float) -> bool:
    """Launch the scheduler thread; returns ``False`` when disabled or running."""

    global _SCHEDULER_THREAD, _SCHEDULER_STOP_EVENT

    if interval <= 0:
        logger.info("weekly reset scheduler disabled")
        return False
    if _SCHEDULER_THREAD and _SCHEDULER_THREAD.is_alive():
        return False

    stop_event = threading.Event()
    thread = threading.Thread(
        target=_run_scheduler_loop,
        args=(stop_event, float(interval)),
        name="weekly-reset-scheduler",
        daemon=True,
    )

    _SCHEDULER_STOP_EVENT = stop_event
    _SCHEDULER_THREAD = thread

    thread.start()
    return True


def stop_weekly_reset_scheduler() -> None:
    global _SCHEDULER_THREAD, _SCHEDULER_STOP_EVENT

    if _SCHEDULER_THREAD is None or _SCHEDULER_STOP_EVENT is None:
        return

    _SCHEDULER_STOP_EVENT.set()
    _SCHEDULER_THREAD.join(timeout=10.0)

    _SCHEDULER_THREAD = None
    _SCHEDULER_STOP_EVENT = None

    logger.info("weekly reset scheduler stopped by shutdown")
