"""
Hyperliquid adapter: spot balances from spotClearinghouseState plus
delegated HYPE from delegatorSummary (reported as a staked asset).
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from chainpulse.chains.base import (
    MIN_NATIVE_BALANCE,
    AdapterContext,
    Chain,
    ChainAdapter,
    compile_patterns,
    is_dust,
    native_asset,
)
from chainpulse.core.exceptions import UpstreamError
from chainpulse.core.http import post_json
from chainpulse.logging import get_logger, mask_address
from chainpulse.portfolio.models import Asset, Holdings
from chainpulse.pricing.symbols import icon_for, token_name

logger = get_logger(__name__)

HYPERLIQUID_INFO_URL = "https://api.hyperliquid.xyz/info"


class HyperliquidAdapter(ChainAdapter):
    chain = Chain.HYPERLIQUID
    address_patterns = compile_patterns(r"^0x[a-fA-F0-9]{40}$")

    def __init__(self, info_url: str = HYPERLIQUID_INFO_URL) -> None:
        self._info_url = info_url

    async def _info(self, ctx: AdapterContext, request_type: str, address: str) -> Any:
        """One info request; a failure yields None so spot and staking stand alone."""
        try:
            return await post_json(ctx.client, self._info_url, {"type": request_type, "user": address})
        except (httpx.HTTPError, UpstreamError, ValueError) as e:
            logger.info(
                "hyperliquid_info_failed",
                request_type=request_type,
                address=mask_address(address),
                error=str(e),
            )
            return None

    async def fetch_holdings(self, address, ctx: AdapterContext, *, viewing_key=None) -> Holdings | None:
        address = address.lower()
        spot, delegation = await asyncio.gather(
            self._info(ctx, "spotClearinghouseState", address),
            self._info(ctx, "delegatorSummary", address),
        )

        balances: list[tuple[str, float, float]] = []
        for entry in (spot or {}).get("balances") or []:
            total = float(entry.get("total") or 0)
            if total > MIN_NATIVE_BALANCE:
                balances.append((str(entry.get("coin") or "").upper(), total, float(entry.get("hold") or 0)))
        delegated = float((delegation or {}).get("delegated") or 0)

        symbols = {coin for coin, _, _ in balances}
        if delegated > 0:
            symbols.add("HYPE")
        quotes = await ctx.prices.coingecko_prices(ctx.client, symbols)

        holdings = Holdings(details={"spotTokenCount": len(balances), "delegatedHype": delegated})
        for coin, total, hold in balances:
            asset = Asset(
                symbol=coin,
                name=token_name(coin),
                chain=self.chain.value,
                balance=total,
                icon=icon_for(coin),
            )
            quote = quotes.get(coin)
            if quote is not None:
                asset.attach_price(quote.price, quote.change24h)
            if coin not in ("HYPE", "USDC") and is_dust(coin, total, asset.price):
                continue
            holdings.assets.append(asset)

        if delegated > 0:
            staked = native_asset(
                self.chain,
                "HYPE",
                delegated,
                quotes,
                name="Staked HYPE",
                is_staked=True,
                staking_protocol="Hyperliquid",
            )
            if staked is not None:
                holdings.assets.append(staked)
        return holdings
