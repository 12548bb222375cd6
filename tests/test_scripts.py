import json
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from kudos.db import SessionLocal
from kudos.services import weekly_reset
from kudos.services.clock import utcnow
from kudos.services.ledger import snapshot
from scripts import ledger_audit, weekly_reset_runner
from tests.utils.ledger import make_users, set_balance


def test_weekly_reset_runner_resets_due_users(capsys):
    a, b = make_users("a", "b")
    set_balance(a, weekly_balance=4, last_reset_at=utcnow() - timedelta(days=8))
    set_balance(b, weekly_balance=6, last_reset_at=utcnow())

    assert weekly_reset_runner.main([]) == 0

    assert "checked=1 reset=1 failed=0" in capsys.readouterr().out
    with SessionLocal() as session:
        assert snapshot(session, a).weekly_balance == 500
        assert snapshot(session, b).weekly_balance == 6


def test_weekly_reset_runner_dry_run(capsys):
    (a,) = make_users("a")
    set_balance(a, weekly_balance=4, last_reset_at=None)
    assert weekly_reset_runner.main(["--dry-run"]) == 0
    assert "checked=1 reset=0" in capsys.readouterr().out
    with SessionLocal() as session:
        assert snapshot(session, a).weekly_balance == 4


def test_ledger_audit_json(capsys):
    make_users("a")
    assert ledger_audit.main(["--json"]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["negative_balances"] == 0
    assert report["like_count_mismatches"] == 0


class _StopLoop(Exception):
    pass


def test_weekly_reset_loop_survives_database_error(monkeypatch, capsys):
    (a,) = make_users("a")
    set_balance(a, weekly_balance=4, last_reset_at=utcnow() - timedelta(days=8))
    real_due = weekly_reset.due_user_ids
    calls = []

    def flaky_due(db, now, *, force=False):
        calls.append(1)
        if len(calls) == 1:
            raise OperationalError("SELECT user_id", {}, Exception("db down"))
        return real_due(db, now, force=force)

    sleeps = []

    def fake_sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) == 2:
            raise _StopLoop

    monkeypatch.setattr(weekly_reset, "due_user_ids", flaky_due)
    monkeypatch.setattr(weekly_reset_runner.time, "sleep", fake_sleep)

    with pytest.raises(_StopLoop):
        weekly_reset_runner.main(["--loop", "--interval", "1"])

    assert len(calls) == 2
    assert sleeps == [1, 1]
    assert "checked=1 reset=1 failed=0" in capsys.readouterr().out
    with SessionLocal() as session:
        assert snapshot(session, a).weekly_balance == 500


def test_weekly_reset_single_run_reports_database_error(monkeypatch):
    def broken_due(db, now, *, force=False):
        raise OperationalError("SELECT user_id", {}, Exception("db down"))

    monkeypatch.setattr(weekly_reset, "due_user_ids", broken_due)
    assert weekly_reset_runner.main([]) == 1
