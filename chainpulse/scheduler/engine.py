"""
Chainpulse snapshot scheduler: run the portfolio snapshot job hourly (UTC) via APScheduler.

Usage:
  python -m chainpulse.scheduler.engine           # start scheduler (runs at minute SNAPSHOT_CRON_MINUTE)
  python -m chainpulse.scheduler.engine --run-now # run once, then exit
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any

from apscheduler.schedulers.blocking import BlockingScheduler
from pytz import utc

from chainpulse.config.env import SNAPSHOT_CRON_MINUTE
from chainpulse.database import init_db
from chainpulse.logging import get_logger
from chainpulse.portfolio.aggregator import PortfolioAggregator
from chainpulse.scheduler.snapshot import run_snapshot

logger = get_logger(__name__)


def run_once() -> dict[str, Any]:
    """Run one snapshot pass in a fresh event loop."""
    aggregator = PortfolioAggregator()
    return asyncio.run(run_snapshot(aggregator.fetch))


def job_snapshot() -> None:
    """Scheduled job: log start, run snapshot, log end."""
    logger.info("snapshot_scheduler_job_start")
    try:
        result = run_once()
        logger.info("snapshot_scheduler_job_end", **result)
    except Exception as e:
        logger.exception("snapshot_scheduler_job_error", error=str(e))
        raise


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run Chainpulse portfolio snapshots hourly (UTC).")
    parser.add_argument(
        "--run-now",
        action="store_true",
        help="Run the snapshot once immediately, then exit.",
    )
    args = parser.parse_args(argv)

    init_db()
    if args.run_now:
        logger.info("snapshot_scheduler_manual_run_start")
        result = run_once()
        logger.info("snapshot_scheduler_manual_run_end", **result)
        return 0

    scheduler = BlockingScheduler()
    scheduler.add_job(
        job_snapshot,
        "cron",
        minute=SNAPSHOT_CRON_MINUTE,
        timezone=utc,
        id="chainpulse_portfolio_snapshot",
    )
    logger.info("snapshot_scheduler_started", run_time=f"every hour at :{SNAPSHOT_CRON_MINUTE:02d} UTC")

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("snapshot_scheduler_stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
