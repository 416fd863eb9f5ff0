"""Litecoin adapter: BlockCypher address balance (litoshis / 1e8)."""

from __future__ import annotations

import asyncio

from chainpulse.chains.base import AdapterContext, Chain, ChainAdapter, compile_patterns, native_asset
from chainpulse.core.http import get_json
from chainpulse.portfolio.models import Holdings

BLOCKCYPHER_LTC_API = "https://api.blockcypher.com/v1/ltc/main"
LITOSHIS_PER_LTC = 1e8


class LitecoinAdapter(ChainAdapter):
    chain = Chain.LITECOIN
    address_patterns = compile_patterns(
        r"^L[a-km-zA-HJ-NP-Z1-9]{26,33}$",
        r"^[M3][a-km-zA-HJ-NP-Z1-9]{26,33}$",
        r"^ltc1[a-z0-9]{39,59}$",
    )

    def __init__(self, api_url: str = BLOCKCYPHER_LTC_API) -> None:
        self._api = api_url.rstrip("/")

    async def fetch_holdings(self, address, ctx: AdapterContext, *, viewing_key=None) -> Holdings | None:
        data, quotes = await asyncio.gather(
            get_json(ctx.client, f"{self._api}/addrs/{address}/balance"),
            ctx.prices.coingecko_prices(ctx.client, ["LTC"]),
        )
        balance = int(data.get("balance") or 0) / LITOSHIS_PER_LTC
        holdings = Holdings(
            details={
                "txCount": int(data.get("n_tx") or 0),
                "unconfirmedBalance": int(data.get("unconfirmed_balance") or 0) / LITOSHIS_PER_LTC,
            }
        )
        asset = native_asset(self.chain, "LTC", balance, quotes)
        if asset is not None:
            holdings.assets.append(asset)
        return holdings
