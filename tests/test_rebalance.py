from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from db import Exercise, Muscle
from rebalance import RebalanceResult, detect_gaps

from conftest import USER


@pytest.fixture
def muscles(db):
    for i, key in enumerate(["quads", "glutes", "chest", "lats", "biceps"], start=1):
        db.add(Muscle(key=key, display_name=key.title(), group="all", sort_order=i))
    db.add(Muscle(key="retired", display_name="Retired", group="all", sort_order=99, is_active=False))
    db.commit()


def test_no_sessions_is_not_triggered(db, muscles):
    assert detect_gaps(db, USER) == RebalanceResult()


def test_missed_muscles_are_reported(db, muscles, make_exercise, add_custom, log_session):
    make_exercise("sq-1", primary=["quads"], implicit={"glutes": 0.5})
    add_custom("custom-curl", primary=["biceps"])
    log_session([("sq-1", [(8, 100.0, None)]), ("custom-curl", [(12, 10.0, None)])])
    # not completed, must not count as coverage
    make_exercise("bench", primary=["chest"])
    log_session([("bench", [(8, 60.0, None)])], status="active")

    result = detect_gaps(db, USER)

    assert result.triggered
    assert result.missed_muscles == ["chest", "lats"]
    assert result.reasons == ["2 muscles not hit in last 1 session: chest, lats"]


def test_below_threshold_is_not_triggered(db, muscles, make_exercise, log_session):
    make_exercise("sq-1", primary=["quads", "glutes", "chest", "lats"])
    log_session([("sq-1", [(8, 100.0, None)])])

    result = detect_gaps(db, USER, min_gap_muscles=2)

    assert not result.triggered
    assert result.missed_muscles == ["biceps"]
    assert result.reasons == []


def test_only_recent_sessions_count(db, muscles, make_exercise, log_session):
    make_exercise("everything", primary=["quads", "glutes", "chest", "lats", "biceps"])
    make_exercise("sq-1", primary=["quads"])
    log_session([("everything", [(8, 10.0, None)])], started_at=datetime(2026, 9, 1))
    log_session([("sq-1", [(8, 10.0, None)])], started_at=datetime(2026, 9, 2))
    log_session([("sq-1", [(8, 10.0, None)])], started_at=datetime(2026, 9, 3))

    result = detect_gaps(db, USER, lookback_sessions=2)

    assert result.missed_muscles == ["glutes", "chest", "lats", "biceps"]
    assert result.reasons[0].startswith("4 muscles not hit in last 2 sessions")


def test_long_reason_is_truncated(db, make_exercise, log_session):
    for i in range(7):
        db.add(Muscle(key=f"m{i}", display_name=f"M{i}", group="all", sort_order=i))
    db.commit()
    make_exercise("sq-1", primary=["quads"])
    log_session([("sq-1", [(8, 100.0, None)])])

    result = detect_gaps(db, USER)

    assert result.reasons == ["7 muscles not hit in last 1 session: m0, m1, m2, m3, m4..."]


def test_malformed_catalog_row_is_absorbed(db, muscles, make_exercise, log_session):
    # implicit_hits should be a muscle -> weight map
    make_exercise("broken", primary=["quads"], implicit=None)
    db.get(Exercise, "broken").implicit_hits = ["glutes"]
    db.commit()
    log_session([("broken", [(8, 100.0, None)])])

    assert detect_gaps(db, USER) == RebalanceResult()


def test_failures_are_absorbed():
    db = MagicMock()
    db.query.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))

    assert detect_gaps(db, USER) == RebalanceResult()
