"""
Zcash adapter.

Transparent addresses (t1/t3) are looked up on zcha.in, then Blockchair.
Shielded (zs/zc) and unified (u1) balances are not visible to a public
indexer: the result is a zero balance with an explanatory note, never an
invented number.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from chainpulse.chains.base import AdapterContext, Chain, ChainAdapter, compile_patterns, native_asset
from chainpulse.core.exceptions import UpstreamError
from chainpulse.core.http import get_json
from chainpulse.logging import get_logger, mask_address
from chainpulse.portfolio.models import Asset, Holdings
from chainpulse.pricing.symbols import icon_for, token_name

logger = get_logger(__name__)

ZCHAIN_API = "https://api.zcha.in/v2/mainnet"
BLOCKCHAIR_ZCASH_API = "https://api.blockchair.com/zcash"
ZATOSHIS_PER_ZEC = 1e8
LOOKUP_TIMEOUT_SEC = 5.0

NOTE_NEEDS_VIEWING_KEY = "Shielded address requires viewing key to display balance"
NOTE_SHIELDED_UNSUPPORTED = (
    "Shielded balance lookup is not supported; use your Zcash wallet to view shielded funds."
)


def zcash_address_type(address: str) -> str:
    if address.startswith(("t1", "t3")):
        return "transparent"
    if address.startswith("u1"):
        return "unified"
    if address.startswith(("zs", "zc")):
        return "shielded"
    return "unknown"


class ZcashAdapter(ChainAdapter):
    chain = Chain.ZCASH
    address_patterns = compile_patterns(
        r"^t1[a-zA-Z0-9]{33}$",
        r"^t3[a-zA-Z0-9]{33}$",
        r"^zs1[a-z0-9]{75,}$",
        r"^u1[a-z0-9]{100,}$",
        r"^zc[a-zA-Z0-9]{93}$",
    )

    def __init__(self, zchain_url: str = ZCHAIN_API, blockchair_url: str = BLOCKCHAIR_ZCASH_API) -> None:
        self._zchain = zchain_url.rstrip("/")
        self._blockchair = blockchair_url.rstrip("/")

    async def _zchain_balance(self, ctx: AdapterContext, address: str) -> dict[str, Any]:
        data = await get_json(ctx.client, f"{self._zchain}/accounts/{address}", timeout=LOOKUP_TIMEOUT_SEC)
        if not isinstance(data, dict) or data.get("balance") is None:
            raise UpstreamError("zcha.in: no balance")
        return {
            "zatoshis": round(float(data["balance"]) * ZATOSHIS_PER_ZEC),
            "tx_count": int(data.get("sentCount") or 0) + int(data.get("recvCount") or 0),
            "source": "zcha.in",
        }

    async def _blockchair_balance(self, ctx: AdapterContext, address: str) -> dict[str, Any]:
        data = await get_json(
            ctx.client,
            f"{self._blockchair}/dashboards/address/{address}",
            timeout=LOOKUP_TIMEOUT_SEC,
        )
        info = ((data.get("data") or {}).get(address) or {}).get("address")
        if not isinstance(info, dict):
            raise UpstreamError("blockchair: address missing from payload")
        return {
            "zatoshis": int(info.get("balance") or 0),
            "tx_count": int(info.get("transaction_count") or 0),
            "source": "blockchair",
        }

    async def _transparent_balance(self, ctx: AdapterContext, address: str) -> dict[str, Any]:
        try:
            return await self._zchain_balance(ctx, address)
        except (httpx.HTTPError, UpstreamError, ValueError) as e:
            logger.info("zcash_primary_failed", address=mask_address(address), error=str(e))
        return await self._blockchair_balance(ctx, address)

    async def fetch_holdings(self, address, ctx: AdapterContext, *, viewing_key=None) -> Holdings | None:
        address_type = zcash_address_type(address)
        if address_type != "transparent":
            note = NOTE_SHIELDED_UNSUPPORTED if viewing_key else NOTE_NEEDS_VIEWING_KEY
            quotes = await ctx.prices.coingecko_prices(ctx.client, ["ZEC"])
            asset = Asset(
                symbol="ZEC",
                name=token_name("ZEC"),
                chain=self.chain.value,
                balance=0.0,
                icon=icon_for("ZEC"),
            )
            if "ZEC" in quotes:
                asset.attach_price(quotes["ZEC"].price, quotes["ZEC"].change24h)
            return Holdings(
                assets=[asset],
                details={"addressType": address_type, "isShielded": True, "note": note},
            )

        info, quotes = await asyncio.gather(
            self._transparent_balance(ctx, address),
            ctx.prices.coingecko_prices(ctx.client, ["ZEC"]),
        )
        holdings = Holdings(
            details={
                "addressType": address_type,
                "isShielded": False,
                "txCount": info["tx_count"],
                "source": info["source"],
            }
        )
        asset = native_asset(self.chain, "ZEC", info["zatoshis"] / ZATOSHIS_PER_ZEC, quotes)
        if asset is not None:
            holdings.assets.append(asset)
        return holdings
