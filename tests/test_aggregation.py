from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from kudos.db import SessionLocal
from kudos.services import aggregation
from kudos.services.aggregation import (
    Window,
    get_dashboard_stats,
    get_notifications,
    get_rankings,
    lifetime_window,
    month_window,
    personal_stats,
    rank_of,
    recent_activity,
    top_card_receivers,
    top_card_senders,
    top_like_receivers,
    top_like_senders,
    top_partners,
    top_point_givers,
    top_point_receivers,
    week_window,
    with_read_retry,
)
from kudos.services.cards import set_card_hidden
from kudos.services.errors import StatsUnavailable
from kudos.services.likes import create_like
from tests.utils.ledger import make_users, send_card

# Wednesday 2026-10-14 12:00 JST
NOW = datetime(2026, 10, 14, 3, 0, tzinfo=timezone.utc)
THIS_WEEK = NOW - timedelta(hours=2)
EARLIER_THIS_MONTH = datetime(2026, 10, 5, 3, 0, tzinfo=timezone.utc)
LAST_MONTH = datetime(2026, 9, 20, 3, 0, tzinfo=timezone.utc)


def _ids(entries):
    return [(e.user_id, e.count) for e in entries]


def test_windows_follow_local_calendar():
    week = week_window(NOW)
    month = month_window(NOW)
    assert week == Window(datetime(2026, 10, 11, 15, 0, tzinfo=timezone.utc), NOW)
    assert month == Window(datetime(2026, 9, 30, 15, 0, tzinfo=timezone.utc), NOW)
    assert lifetime_window() == Window(None, None)


def test_card_rankings_by_window():
    a, b, c = make_users("a", "b", "c")
    send_card(a, b, created_at=THIS_WEEK)
    send_card(a, c, created_at=EARLIER_THIS_MONTH)
    send_card(b, c, created_at=LAST_MONTH)
    send_card(c, a, created_at=LAST_MONTH)
    send_card(c, b, created_at=LAST_MONTH)

    with SessionLocal() as session:
        assert _ids(top_card_senders(session, week_window(NOW))) == [(a, 1)]
        assert _ids(top_card_senders(session, month_window(NOW))) == [(a, 2)]
        assert _ids(top_card_senders(session, lifetime_window())) == [(a, 2), (c, 2), (b, 1)]
        assert _ids(top_card_receivers(session, month_window(NOW))) == [(b, 1), (c, 1)]
        assert _ids(top_card_receivers(session, lifetime_window())) == [
            (b, 2),
            (c, 2),
            (a, 1),
        ]


def test_additional_recipients_count_as_received():
    a, b, d = make_users("a", "b", "d")
    send_card(a, b, d)
    with SessionLocal() as session:
        assert _ids(top_card_receivers(session, lifetime_window())) == [(b, 1), (d, 1)]


def test_ties_break_by_user_id_every_time():
    users = make_users("u1", "u2", "u3", "u4")
    target = users[0]
    for sender in reversed(users[1:]):
        send_card(sender, target)
    with SessionLocal() as session:
        first = top_card_senders(session, lifetime_window())
        second = top_card_senders(session, lifetime_window())
    assert first == second
    assert [e.user_id for e in first] == sorted(users[1:])
    assert [e.rank for e in first] == [1, 2, 3]


def test_like_rankings():
    a, b, c, d = make_users("a", "b", "c", "d")
    card_ab = send_card(a, b, created_at=THIS_WEEK)
    card_ba = send_card(b, a, created_at=THIS_WEEK)
    for _ in range(3):
        create_like(card_ab, c, now=THIS_WEEK)
    create_like(card_ba, d, now=THIS_WEEK)
    create_like(card_ab, d, now=LAST_MONTH)

    window = month_window(NOW)
    with SessionLocal() as session:
        assert _ids(top_like_senders(session, window)) == [(c, 3), (d, 1)]
        assert _ids(top_like_receivers(session, window)) == [(a, 3), (b, 1)]
        assert _ids(top_point_givers(session, window)) == [(c, 6), (d, 2)]
        assert _ids(top_point_receivers(session, window)) == [(b, 3), (a, 1)]
        assert _ids(top_like_receivers(session, lifetime_window())) == [(a, 4), (b, 1)]


def test_ranking_limit():
    users = make_users(*[f"u{i}" for i in range(13)])
    target, senders = users[0], users[1:]
    for sender in senders:
        send_card(sender, target)
    with SessionLocal() as session:
        assert len(top_card_senders(session, lifetime_window())) == 10
        assert len(top_card_senders(session, lifetime_window(), limit=3)) == 3


def test_personal_stats():
    a, b, c = make_users("a", "b", "c")
    card_id = send_card(a, b, created_at=THIS_WEEK)
    send_card(a, c, created_at=EARLIER_THIS_MONTH)
    for _ in range(3):
        create_like(card_id, c, now=THIS_WEEK)

    with SessionLocal() as session:
        sender = personal_stats(session, a, month_window(NOW))
        liker = personal_stats(session, c, week_window(NOW))
        recipient = personal_stats(session, b, lifetime_window())

    assert sender.cards_sent == 2
    assert sender.likes_received == 3
    assert sender.points_sent == 2
    assert sender.points_received == 3
    assert liker.likes_sent == 3
    assert liker.points_sent == 6
    assert liker.cards_received == 0
    assert recipient.cards_received == 1
    assert recipient.lifetime_credits == 3
    assert recipient.points_received == 3


def test_rank_of_and_partners():
    a, b, c = make_users("a", "b", "c")
    send_card(a, b)
    send_card(a, b)
    send_card(a, c)
    send_card(b, a)
    send_card(c, a)
    send_card(c, a)

    with SessionLocal() as session:
        window = lifetime_window()
        assert rank_of(session, "card_senders", a, window) == 1
        assert rank_of(session, "card_senders", c, window) == 2
        assert rank_of(session, "like_senders", a, window) == 0
        assert _ids(top_partners(session, a, window, "sent")) == [(b, 2), (c, 1)]
        assert _ids(top_partners(session, a, window, "received")) == [(c, 2), (b, 1)]


def test_hidden_cards_still_count():
    a, b = make_users("a", "b")
    card_id = send_card(a, b)
    with SessionLocal() as session:
        set_card_hidden(session, card_id, True)
        assert _ids(top_card_senders(session, lifetime_window())) == [(a, 1)]


def test_dashboard_stats():
    a, b, c = make_users("a", "b", "c")
    card_id = send_card(a, b, created_at=THIS_WEEK)
    for _ in range(5):
        create_like(card_id, c, now=THIS_WEEK)

    stats = get_dashboard_stats(c, now=NOW)

    assert stats["user_id"] == c
    assert stats["balance"]["weekly_balance"] == 490
    assert stats["point_conversion_rate"] == 2
    assert stats["weekly"]["likes_sent"] == 5
    assert stats["monthly"]["points_sent"] == 10
    assert stats["lifetime"]["likes_sent"] == 5
    assert stats["rankings"] == {"card_sender_rank": 0, "like_sender_rank": 1}
    assert stats["partners"] == {"sent": [], "received": []}

    sender = get_dashboard_stats(a, now=NOW)
    assert sender["rankings"]["card_sender_rank"] == 1
    assert sender["partners"]["sent"][0]["user_id"] == b
    assert sender["partners"]["sent"][0]["name"] == "b"


def test_get_rankings_returns_every_board():
    a, b, c = make_users("a", "b", "c")
    card_id = send_card(a, b)
    create_like(card_id, c)
    boards = get_rankings(lifetime_window())
    assert set(boards) == {
        "card_senders",
        "card_receivers",
        "like_senders",
        "like_receivers",
        "point_givers",
        "point_receivers",
    }
    assert boards["card_senders"] == [{"rank": 1, "user_id": a, "name": "a", "count": 1}]
    assert boards["point_givers"][0]["count"] == 2


def test_read_retry_gives_up_with_stats_unavailable(monkeypatch):
    monkeypatch.setattr(aggregation.settings, "aggregation_retry_delay_s", 0)
    calls = []

    def _broken(db):
        calls.append(1)
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    with pytest.raises(StatsUnavailable):
        with_read_retry(_broken)
    assert len(calls) == aggregation.settings.aggregation_retries


def test_read_retry_recovers_from_transient_error(monkeypatch):
    monkeypatch.setattr(aggregation.settings, "aggregation_retry_delay_s", 0)
    calls = []

    def _flaky(db):
        calls.append(1)
        if len(calls) == 1:
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        return "ok"

    assert with_read_retry(_flaky) == "ok"
    assert len(calls) == 2


def test_recent_activity_merges_cards_and_likes_newest_first():
    a, b, c, d = make_users("a", "b", "c", "d")
    older_card = send_card(b, a, created_at=EARLIER_THIS_MONTH)
    own_card = send_card(a, b, created_at=LAST_MONTH)
    like = create_like(own_card, c, now=THIS_WEEK)
    cc_card = send_card(d, b, a, created_at=NOW - timedelta(hours=1))
    hidden_card = send_card(c, a, created_at=NOW)
    with SessionLocal() as session:
        set_card_hidden(session, hidden_card, True)
        feed = recent_activity(session, a)
        top = recent_activity(session, a, limit=2)

    assert [(item.kind, item.card_id, item.user_id) for item in feed] == [
        ("new_card", cc_card, d),
        ("card_like", own_card, c),
        ("new_card", older_card, b),
    ]
    assert feed[1].id == f"like_{like.like.id}"
    assert feed[0].id == f"card_{cc_card}"
    assert feed[0].name == "d"
    assert [item.id for item in top] == [feed[0].id, feed[1].id]


def test_notifications_for_quiet_user_are_empty():
    a, b = make_users("a", "b")
    send_card(a, b)
    assert get_notifications(a) == []
    feed = get_notifications(b)
    assert len(feed) == 1
    assert feed[0]["kind"] == "new_card"
    assert feed[0]["user_id"] == a
