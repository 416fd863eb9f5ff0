"""
Tests for the APScheduler entrypoint.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from chainpulse.scheduler import engine


def test_run_now_runs_once_and_exits(monkeypatch):
    init_db = MagicMock()
    run_once = MagicMock(return_value={"message": "Snapshot complete", "users": 0})
    monkeypatch.setattr(engine, "init_db", init_db)
    monkeypatch.setattr(engine, "run_once", run_once)

    assert engine.main(["--run-now"]) == 0
    init_db.assert_called_once_with()
    run_once.assert_called_once_with()


def test_scheduler_registers_hourly_utc_job(monkeypatch):
    scheduler = MagicMock()
    scheduler.start.side_effect = KeyboardInterrupt
    monkeypatch.setattr(engine, "init_db", MagicMock())
    monkeypatch.setattr(engine, "BlockingScheduler", MagicMock(return_value=scheduler))

    assert engine.main([]) == 0
    scheduler.add_job.assert_called_once()
    args, kwargs = scheduler.add_job.call_args
    assert args == (engine.job_snapshot, "cron")
    assert kwargs["minute"] == engine.SNAPSHOT_CRON_MINUTE
    assert str(kwargs["timezone"]) == "UTC"
    assert kwargs["id"] == "chainpulse_portfolio_snapshot"


def test_job_snapshot_reraises(monkeypatch):
    monkeypatch.setattr(engine, "run_once", MagicMock(side_effect=RuntimeError("db down")))
    with pytest.raises(RuntimeError, match="db down"):
        engine.job_snapshot()
