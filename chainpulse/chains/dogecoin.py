"""
Dogecoin adapter: BlockCypher, falling back to Dogechain when BlockCypher fails.

BlockCypher reports koinu (1e8 per DOGE); Dogechain reports DOGE directly.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from chainpulse.chains.base import AdapterContext, Chain, ChainAdapter, compile_patterns, native_asset
from chainpulse.core.exceptions import UpstreamError
from chainpulse.core.http import get_json
from chainpulse.logging import get_logger, mask_address
from chainpulse.portfolio.models import Holdings

logger = get_logger(__name__)

BLOCKCYPHER_DOGE_API = "https://api.blockcypher.com/v1/doge/main"
DOGECHAIN_API = "https://dogechain.info/api/v1"
KOINU_PER_DOGE = 1e8


class DogecoinAdapter(ChainAdapter):
    chain = Chain.DOGECOIN
    address_patterns = compile_patterns(r"^[DA][1-9A-HJ-NP-Za-km-z]{33}$")

    def __init__(self, api_url: str = BLOCKCYPHER_DOGE_API, fallback_url: str = DOGECHAIN_API) -> None:
        self._api = api_url.rstrip("/")
        self._fallback = fallback_url.rstrip("/")

    async def _blockcypher(self, ctx: AdapterContext, address: str) -> dict[str, Any]:
        data = await get_json(ctx.client, f"{self._api}/addrs/{address}/balance")
        return {
            "koinu": int(data.get("balance") or 0),
            "unconfirmed": int(data.get("unconfirmed_balance") or 0),
            "tx_count": int(data.get("n_tx") or 0),
            "source": "blockcypher",
        }

    async def _dogechain(self, ctx: AdapterContext, address: str) -> dict[str, Any]:
        data = await get_json(ctx.client, f"{self._fallback}/address/balance/{address}")
        if data.get("success") != 1:
            raise UpstreamError("dogechain: success != 1")
        return {
            "koinu": round(float(data.get("balance") or 0) * KOINU_PER_DOGE),
            "unconfirmed": 0,
            "tx_count": 0,
            "source": "dogechain",
        }

    async def _balance(self, ctx: AdapterContext, address: str) -> dict[str, Any]:
        try:
            return await self._blockcypher(ctx, address)
        except (httpx.HTTPError, UpstreamError, ValueError) as e:
            logger.info("dogecoin_primary_failed", address=mask_address(address), error=str(e))
        return await self._dogechain(ctx, address)

    async def fetch_holdings(self, address, ctx: AdapterContext, *, viewing_key=None) -> Holdings | None:
        info, quotes = await asyncio.gather(
            self._balance(ctx, address),
            ctx.prices.coingecko_prices(ctx.client, ["DOGE"]),
        )
        holdings = Holdings(
            details={
                "txCount": info["tx_count"],
                "unconfirmedBalance": info["unconfirmed"] / KOINU_PER_DOGE,
                "source": info["source"],
            }
        )
        asset = native_asset(self.chain, "DOGE", info["koinu"] / KOINU_PER_DOGE, quotes)
        if asset is not None:
            holdings.assets.append(asset)
        return holdings
