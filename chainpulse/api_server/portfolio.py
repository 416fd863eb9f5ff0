"""
FastAPI router: GET /portfolio (one address on one chain), GET /portfolio/history.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query

from chainpulse.api_server.deps import CurrentUser, get_aggregator, get_current_user
from chainpulse.core.exceptions import InvalidAddressError, UnsupportedChainError
from chainpulse.logging import get_logger, mask_address
from chainpulse.portfolio.aggregator import PortfolioAggregator
from chainpulse.portfolio.history import get_history

logger = get_logger(__name__)

router = APIRouter(tags=["portfolio"])


@router.get("/portfolio")
async def get_portfolio(
    address: str | None = Query(None),
    chain: str | None = Query(None),
    viewing_key: str | None = Query(None, alias="viewingKey"),
    aggregator: PortfolioAggregator = Depends(get_aggregator),
) -> dict:
    """Priced holdings, NFTs and domains for one address on one chain."""
    if not (address or "").strip() or not (chain or "").strip():
        raise HTTPException(status_code=400, detail="Address and chain are required")
    try:
        return await aggregator.get_portfolio(address, chain, viewing_key)
    except (InvalidAddressError, UnsupportedChainError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.exception("portfolio_fetch_failed", chain=chain, address=mask_address(address), error=str(e))
        raise HTTPException(status_code=500, detail="Failed to fetch portfolio data") from e


@router.get("/portfolio/history")
async def portfolio_history(
    range_value: str | None = Query(None, alias="range"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        return await asyncio.to_thread(get_history, user.id, range_value)
    except Exception as e:
        logger.exception("portfolio_history_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to fetch history") from e
