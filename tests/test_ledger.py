import pytest

from kudos.db import SessionLocal
from kudos.services.errors import BalanceNotFound, InsufficientBalance
from kudos.services.ledger import credit, credit_lifetime, debit, open_balance, snapshot
from tests.utils.ledger import make_users, set_balance


def test_new_user_starts_at_weekly_cap():
    (uid,) = make_users("alice")
    with SessionLocal() as session:
        bal = snapshot(session, uid)
    assert bal.weekly_balance == 500
    assert bal.weekly_cap == 500
    assert bal.lifetime_received == 0
    assert bal.last_reset_at is None


def test_open_balance_is_idempotent():
    (uid,) = make_users("alice")
    set_balance(uid, weekly_balance=120)
    with SessionLocal() as session:
        open_balance(session, uid)
        session.commit()
        assert snapshot(session, uid).weekly_balance == 120


def test_debit_and_credit_adjust_weekly_balance():
    (uid,) = make_users("alice")
    with SessionLocal() as session:
        assert debit(session, uid, 2) == 498
        assert credit(session, uid, 1) == 499
        session.commit()
    with SessionLocal() as session:
        assert snapshot(session, uid).weekly_balance == 499


def test_credit_may_exceed_cap():
    (uid,) = make_users("alice")
    with SessionLocal() as session:
        assert credit(session, uid, 3) == 503
        session.commit()


def test_debit_below_amount_rejected_without_change():
    (uid,) = make_users("alice")
    set_balance(uid, weekly_balance=1)
    with SessionLocal() as session:
        with pytest.raises(InsufficientBalance) as exc:
            debit(session, uid, 2)
        assert exc.value.context["balance"] == 1
        session.commit()
    with SessionLocal() as session:
        assert snapshot(session, uid).weekly_balance == 1


def test_debit_to_exactly_zero_allowed():
    (uid,) = make_users("alice")
    set_balance(uid, weekly_balance=2)
    with SessionLocal() as session:
        assert debit(session, uid, 2) == 0
        session.commit()


def test_credit_lifetime_only_touches_lifetime_counter():
    (uid,) = make_users("alice")
    with SessionLocal() as session:
        assert credit_lifetime(session, uid, 1) == 1
        session.commit()
        bal = snapshot(session, uid)
    assert bal.weekly_balance == 500
    assert bal.lifetime_received == 1


@pytest.mark.parametrize("amount", [0, -2, 1.5, True])
def test_non_positive_or_non_integer_amount_rejected(amount):
    (uid,) = make_users("alice")
    with SessionLocal() as session:
        with pytest.raises(ValueError):
            debit(session, uid, amount)
        with pytest.raises(ValueError):
            credit(session, uid, amount)


def test_unknown_user_has_no_balance():
    with SessionLocal() as session:
        with pytest.raises(BalanceNotFound):
            snapshot(session, 999_999)
        with pytest.raises(BalanceNotFound):
            debit(session, 999_999, 2)
        with pytest.raises(BalanceNotFound):
            credit(session, 999_999, 1)
