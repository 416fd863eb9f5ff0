"""
Bitcoin adapter: Mempool.space address stats.

Balance is confirmed plus mempool (funded - spent) satoshis / 1e8.
"""

from __future__ import annotations

import asyncio

from chainpulse.chains.base import AdapterContext, Chain, ChainAdapter, compile_patterns, native_asset
from chainpulse.core.http import get_json
from chainpulse.portfolio.models import Holdings

MEMPOOL_API = "https://mempool.space/api"
SATOSHIS_PER_BTC = 1e8


def bitcoin_address_type(address: str) -> str:
    if address.startswith("bc1p"):
        return "taproot"
    if address.startswith("bc1q"):
        return "segwit"
    if address.startswith("3"):
        return "p2sh"
    if address.startswith("1"):
        return "legacy"
    return "unknown"


def _net_satoshis(stats: dict | None) -> int:
    if not stats:
        return 0
    return int(stats.get("funded_txo_sum") or 0) - int(stats.get("spent_txo_sum") or 0)


class BitcoinAdapter(ChainAdapter):
    chain = Chain.BITCOIN
    address_patterns = compile_patterns(
        r"^1[a-km-zA-HJ-NP-Z1-9]{25,34}$",
        r"^3[a-km-zA-HJ-NP-Z1-9]{25,34}$",
        r"^bc1q[a-zA-HJ-NP-Z0-9]{38,58}$",
        r"^bc1p[a-zA-HJ-NP-Z0-9]{58}$",
    )

    def __init__(self, api_url: str = MEMPOOL_API) -> None:
        self._api = api_url.rstrip("/")

    async def fetch_holdings(self, address, ctx: AdapterContext, *, viewing_key=None) -> Holdings | None:
        data, quotes = await asyncio.gather(
            get_json(ctx.client, f"{self._api}/address/{address}"),
            ctx.prices.coingecko_prices(ctx.client, ["BTC"]),
        )
        chain_stats = data.get("chain_stats") or {}
        mempool_stats = data.get("mempool_stats") or {}
        sats = _net_satoshis(chain_stats) + _net_satoshis(mempool_stats)
        balance = sats / SATOSHIS_PER_BTC

        holdings = Holdings(
            details={
                "addressType": bitcoin_address_type(address),
                "txCount": int(chain_stats.get("tx_count") or 0) + int(mempool_stats.get("tx_count") or 0),
                "balanceSatoshis": sats,
            }
        )
        asset = native_asset(self.chain, "BTC", balance, quotes)
        if asset is not None:
            holdings.assets.append(asset)
        return holdings
