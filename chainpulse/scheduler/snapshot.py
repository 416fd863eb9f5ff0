"""
Portfolio snapshot job.

For every user with at least one tracked wallet: fetch the merged portfolio,
append a snapshot (total value and value per chain), then recompute today's
(UTC) daily open/close/high/low from today's snapshots and upsert it.
Users are processed concurrently; one user's failure is logged and counted,
never aborting the others.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any

from chainpulse.database import repositories
from chainpulse.logging import get_logger, mask_user_id
from chainpulse.portfolio.merger import FetchFn, MergedPortfolio, load_user_portfolio

logger = get_logger(__name__)


def value_by_chain(portfolio: MergedPortfolio) -> dict[str, float]:
    totals: dict[str, float] = {}
    for asset in portfolio.assets:
        totals[asset.chain] = totals.get(asset.chain, 0.0) + asset.value
    return totals


def daily_rollup(values: list[float]) -> dict[str, float]:
    """Open/close/high/low of one day's snapshot values, oldest first."""
    return {
        "open_value": values[0],
        "close_value": values[-1],
        "high_value": max(values),
        "low_value": min(values),
    }


def _store_snapshot(user_id: str, total: float, by_chain: dict[str, float], now: datetime) -> None:
    repositories.insert_snapshot(user_id, total, by_chain, created_at=now)
    day_start = datetime(now.year, now.month, now.day, tzinfo=timezone.utc)
    todays = repositories.list_snapshots(user_id, day_start)
    values = [s["total_value"] for s in todays] or [total]
    repositories.upsert_daily(user_id, day_start.date(), **daily_rollup(values))


async def snapshot_user(fetch: FetchFn, user_id: str, now: datetime) -> float:
    portfolio = await load_user_portfolio(fetch, user_id)
    total = portfolio.total_value
    await asyncio.to_thread(_store_snapshot, user_id, total, value_by_chain(portfolio), now)
    logger.info("snapshot_stored", user=mask_user_id(user_id), total_value=round(total, 2))
    return total


async def run_snapshot(fetch: FetchFn, *, now: datetime | None = None) -> dict[str, Any]:
    """Snapshot every user. Returns the JSON body for the cron endpoint."""
    started = time.monotonic()
    now = now or datetime.now(timezone.utc)
    user_ids = await asyncio.to_thread(repositories.list_user_ids_with_wallets)
    if not user_ids:
        logger.info("snapshot_no_users")
        return {"message": "No users to snapshot", "count": 0}

    results = await asyncio.gather(*(snapshot_user(fetch, u, now) for u in user_ids), return_exceptions=True)
    failed = 0
    for user_id, outcome in zip(user_ids, results):
        if isinstance(outcome, BaseException):
            failed += 1
            logger.error("snapshot_user_failed", user=mask_user_id(user_id), error=str(outcome))

    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info("snapshot_complete", users=len(user_ids), failed=failed, duration_ms=duration_ms)
    return {
        "message": "Snapshot complete",
        "users": len(user_ids),
        "successful": len(user_ids) - failed,
        "failed": failed,
        "duration": f"{duration_ms}ms",
    }
