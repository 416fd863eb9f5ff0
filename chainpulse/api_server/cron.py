"""
FastAPI router: POST|GET /cron/snapshot, called by an external scheduler.

Guarded by the x-cron-secret header. With no CRON_SECRET configured the
endpoint refuses to run (503) instead of running unauthenticated.
"""

from __future__ import annotations

import hmac

from fastapi import APIRouter, Depends, Header, HTTPException

from chainpulse.api_server.deps import get_aggregator, get_settings
from chainpulse.config import Settings
from chainpulse.core.exceptions import AuthenticationError, ConfigurationError
from chainpulse.logging import get_logger
from chainpulse.portfolio.aggregator import PortfolioAggregator
from chainpulse.scheduler.snapshot import run_snapshot

logger = get_logger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


def require_cron_secret(
    x_cron_secret: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    if not settings.cron_secret:
        raise ConfigurationError("CRON_SECRET is not configured")
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret.encode(), settings.cron_secret.encode()):
        logger.warning("cron_unauthorized")
        raise AuthenticationError("Unauthorized")


@router.api_route("/snapshot", methods=["GET", "POST"], dependencies=[Depends(require_cron_secret)])
async def snapshot(aggregator: PortfolioAggregator = Depends(get_aggregator)) -> dict:
    try:
        return await run_snapshot(aggregator.fetch)
    except Exception as e:
        logger.exception("cron_snapshot_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Snapshot failed") from e
