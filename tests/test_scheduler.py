import threading

from kudos.scheduler import weekly_reset_scheduler as scheduler
from kudos.services.weekly_reset import ResetReport


def test_disabled_when_interval_not_positive():
    assert scheduler.start_weekly_reset_scheduler(0) is False
    assert scheduler._SCHEDULER_THREAD is None


def test_runs_initial_tick_and_stops(monkeypatch):
    ticked = threading.Event()

    def fake_reset():
        ticked.set()
        return ResetReport(week_start=None)

    monkeypatch.setattr(scheduler, "run_weekly_reset", fake_reset)
    try:
        assert scheduler.start_weekly_reset_scheduler(3600) is True
        assert scheduler.start_weekly_reset_scheduler(3600) is False
        assert ticked.wait(5)
    finally:
        scheduler.stop_weekly_reset_scheduler()
    assert scheduler._SCHEDULER_THREAD is None


def test_tick_swallows_errors(monkeypatch, caplog):
    def boom():
        raise RuntimeError("db down")

    monkeypatch.setattr(scheduler, "run_weekly_reset", boom)
    scheduler._tick("manual")
    assert "weekly reset tick failed" in caplog.text
