"""
Tests for portfolio history ranges, downsampling and stats.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from chainpulse.portfolio.history import (
    HistoryPoint,
    HistoryRange,
    downsample,
    get_history,
    history_stats,
    parse_range,
    range_start,
)
from tests.conftest import USER_ID

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_parse_range_defaults_to_week():
    assert parse_range("1m") is HistoryRange.MONTH
    assert parse_range("ytd") is HistoryRange.YEAR_TO_DATE
    assert parse_range(None) is HistoryRange.WEEK
    assert parse_range("5Y") is HistoryRange.WEEK


def test_range_start():
    assert range_start(HistoryRange.DAY, NOW) == NOW - timedelta(days=1)
    assert range_start(HistoryRange.YEAR_TO_DATE, NOW) == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert range_start(HistoryRange.ALL, NOW).year == 1970


def test_downsample_keeps_last_point():
    points = list(range(250))
    sampled = downsample(points)
    assert sampled[0] == 0
    assert sampled[-1] == 249
    assert len(sampled) <= 126
    assert downsample([1, 2, 3]) == [1, 2, 3]


def test_history_stats():
    points = [HistoryPoint("t0", 100.0), HistoryPoint("t1", 150.0), HistoryPoint("t2", 80.0), HistoryPoint("t3", 120.0)]
    assert history_stats(points) == {
        "startValue": 100.0,
        "endValue": 120.0,
        "change": 20.0,
        "changePercent": 20.0,
        "high": 150.0,
        "low": 80.0,
    }
    assert history_stats([])["changePercent"] == 0
    assert history_stats([HistoryPoint("t0", 0.0), HistoryPoint("t1", 5.0)])["changePercent"] == 0


def test_week_reads_hourly_snapshots(db):
    for hours_ago, value in ((200, 1.0), (48, 100.0), (24, 110.0), (1, 120.0)):
        db.insert_snapshot(USER_ID, value, {}, created_at=NOW - timedelta(hours=hours_ago))

    body = get_history(USER_ID, "1W", now=NOW)
    assert body["range"] == "1W"
    assert [p["value"] for p in body["data"]] == [100.0, 110.0, 120.0]
    assert body["stats"]["change"] == 20.0


def test_month_prefers_daily_close(db):
    db.insert_snapshot(USER_ID, 999.0, {}, created_at=NOW - timedelta(hours=2))
    for offset, close in ((3, 100.0), (2, 90.0), (1, 130.0)):
        db.upsert_daily(
            USER_ID,
            date(2026, 3, 10) - timedelta(days=offset),
            open_value=close,
            close_value=close,
            high_value=close,
            low_value=close,
        )

    body = get_history(USER_ID, "1M", now=NOW)
    assert [p["value"] for p in body["data"]] == [100.0, 90.0, 130.0]
    assert body["data"][0]["timestamp"] == "2026-03-07T00:00:00+00:00"
    assert body["stats"]["low"] == 90.0


def test_long_range_falls_back_to_hourly(db):
    db.insert_snapshot(USER_ID, 42.0, {}, created_at=NOW - timedelta(hours=3))
    body = get_history(USER_ID, "ALL", now=NOW)
    assert [p["value"] for p in body["data"]] == [42.0]


def test_no_data_is_empty(db):
    body = get_history(USER_ID, None, now=NOW)
    assert body == {
        "range": "1W",
        "data": [],
        "stats": {"startValue": 0, "endValue": 0, "change": 0, "changePercent": 0, "high": 0, "low": 0},
    }
