"""
FastAPI router: the signed-in user's tracked wallets and their merged portfolio.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from chainpulse.api_server.deps import CurrentUser, get_aggregator, get_current_user
from chainpulse.chains import normalize_address
from chainpulse.core.exceptions import InvalidAddressError, UnsupportedChainError
from chainpulse.database import repositories
from chainpulse.logging import get_logger, mask_user_id
from chainpulse.portfolio.aggregator import PortfolioAggregator
from chainpulse.portfolio.merger import load_user_portfolio

logger = get_logger(__name__)

router = APIRouter(prefix="/wallets", tags=["wallets"])


class AddWalletRequest(BaseModel):
    """POST /wallets body."""

    address: str = Field(..., min_length=1, max_length=256, description="Wallet address")
    chain: str = Field(..., min_length=1, max_length=32, description="Chain id, e.g. bitcoin, ethereum")
    label: str | None = Field(None, max_length=256, description="Optional label")


@router.get("")
async def list_wallets(user: CurrentUser = Depends(get_current_user)) -> dict:
    try:
        wallets = await asyncio.to_thread(repositories.list_wallets, user.id)
    except Exception as e:
        logger.exception("wallets_list_failed", user=mask_user_id(user.id), error=str(e))
        raise HTTPException(status_code=500, detail="Failed to fetch wallets") from e
    return {"wallets": wallets}


@router.post("")
async def add_wallet(
    body: AddWalletRequest,
    user: CurrentUser = Depends(get_current_user),
    aggregator: PortfolioAggregator = Depends(get_aggregator),
):
    """Track a wallet. 201 when added, 409 when the user already tracks it."""
    try:
        address, chain, _ = aggregator.validate(body.address, body.chain)
    except (InvalidAddressError, UnsupportedChainError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    address = normalize_address(address, chain)
    try:
        row = await asyncio.to_thread(repositories.add_wallet, user.id, address, chain.value, body.label)
    except Exception as e:
        logger.exception("wallet_add_failed", user=mask_user_id(user.id), error=str(e))
        raise HTTPException(status_code=500, detail="Failed to add wallet") from e
    if row is None:
        raise HTTPException(status_code=409, detail="Wallet already tracked")
    return JSONResponse(status_code=201, content={"wallet": row})


@router.delete("")
async def remove_wallet(
    address: str = Query(...),
    chain: str = Query(...),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        address = normalize_address(address, chain)
    except UnsupportedChainError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    try:
        removed = await asyncio.to_thread(repositories.remove_wallet, user.id, address, chain.strip().lower())
    except Exception as e:
        logger.exception("wallet_remove_failed", user=mask_user_id(user.id), error=str(e))
        raise HTTPException(status_code=500, detail="Failed to remove wallet") from e
    if not removed:
        raise HTTPException(status_code=404, detail="Wallet not found")
    return {"success": True}


@router.get("/portfolio")
async def merged_portfolio(
    user: CurrentUser = Depends(get_current_user),
    aggregator: PortfolioAggregator = Depends(get_aggregator),
) -> dict:
    """All of the user's wallets merged into one view."""
    try:
        portfolio = await load_user_portfolio(aggregator.fetch, user.id)
    except Exception as e:
        logger.exception("merged_portfolio_failed", user=mask_user_id(user.id), error=str(e))
        raise HTTPException(status_code=500, detail="Failed to fetch portfolio data") from e
    return portfolio.to_dict()
