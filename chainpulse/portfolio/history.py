"""
Portfolio value history for sparklines.

Short ranges (1D, 1W) read hourly snapshots. Longer ranges read the daily
rollup (close values) and fall back to hourly snapshots when no daily rows
exist yet. Series are downsampled to about MAX_POINTS points, always keeping
the last one.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any

from chainpulse.database import repositories

MAX_POINTS = 100


class HistoryRange(str, Enum):
    DAY = "1D"
    WEEK = "1W"
    MONTH = "1M"
    QUARTER = "3M"
    YEAR_TO_DATE = "YTD"
    YEAR = "1Y"
    ALL = "ALL"


DEFAULT_RANGE = HistoryRange.WEEK

_HOURLY_RANGES = frozenset({HistoryRange.DAY, HistoryRange.WEEK})
_RANGE_DAYS = {
    HistoryRange.DAY: 1,
    HistoryRange.WEEK: 7,
    HistoryRange.MONTH: 30,
    HistoryRange.QUARTER: 90,
    HistoryRange.YEAR: 365,
}


def parse_range(value: str | None) -> HistoryRange:
    """Unknown or empty values fall back to the default range."""
    try:
        return HistoryRange((value or "").strip().upper())
    except ValueError:
        return DEFAULT_RANGE


def range_start(history_range: HistoryRange, now: datetime) -> datetime:
    if history_range is HistoryRange.YEAR_TO_DATE:
        return datetime(now.year, 1, 1, tzinfo=timezone.utc)
    if history_range is HistoryRange.ALL:
        return datetime(1970, 1, 1, tzinfo=timezone.utc)
    return now - timedelta(days=_RANGE_DAYS[history_range])


def downsample(points: list[Any], max_points: int = MAX_POINTS) -> list[Any]:
    step = max(1, len(points) // max_points)
    return [p for i, p in enumerate(points) if i % step == 0 or i == len(points) - 1]


@dataclass
class HistoryPoint:
    timestamp: str
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "value": self.value}


def history_stats(points: list[HistoryPoint]) -> dict[str, float]:
    if not points:
        return {"startValue": 0, "endValue": 0, "change": 0, "changePercent": 0, "high": 0, "low": 0}
    values = [p.value for p in points]
    start, end = values[0], values[-1]
    change = end - start
    return {
        "startValue": start,
        "endValue": end,
        "change": change,
        "changePercent": (change / start * 100) if start > 0 else 0,
        "high": max(values),
        "low": min(values),
    }


def _daily_points(user_id: str, since: datetime) -> list[HistoryPoint]:
    rows = repositories.list_daily(user_id, since.date())
    return [
        HistoryPoint(
            timestamp=datetime.combine(date.fromisoformat(r["date"]), time(), tzinfo=timezone.utc).isoformat(),
            value=r["close_value"],
        )
        for r in rows
    ]


def _hourly_points(user_id: str, since: datetime) -> list[HistoryPoint]:
    rows = repositories.list_snapshots(user_id, since)
    return [HistoryPoint(timestamp=r["created_at"], value=r["total_value"]) for r in rows]


def get_history(user_id: str, range_value: str | None = None, *, now: datetime | None = None) -> dict[str, Any]:
    """JSON body for GET /api/portfolio/history."""
    history_range = parse_range(range_value)
    now = now or datetime.now(timezone.utc)
    since = range_start(history_range, now)

    points: list[HistoryPoint] = []
    if history_range not in _HOURLY_RANGES:
        points = _daily_points(user_id, since)
    if not points:
        points = _hourly_points(user_id, since)
    points = downsample(points)

    return {
        "range": history_range.value,
        "data": [p.to_dict() for p in points],
        "stats": history_stats(points),
    }
