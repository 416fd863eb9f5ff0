"""XRP Ledger adapter: account_info on the validated ledger (drops / 1e6)."""

from __future__ import annotations

import asyncio
from typing import Any

from chainpulse.chains.base import AdapterContext, Chain, ChainAdapter, compile_patterns, native_asset
from chainpulse.core.exceptions import UpstreamError
from chainpulse.core.http import post_json
from chainpulse.portfolio.models import Holdings

XRPL_RPC_URL = "https://xrplcluster.com"
DROPS_PER_XRP = 1e6
BASE_RESERVE_XRP = 10
OWNER_RESERVE_XRP = 2


def account_reserve(owner_count: int) -> int:
    return BASE_RESERVE_XRP + OWNER_RESERVE_XRP * owner_count


class XrpAdapter(ChainAdapter):
    chain = Chain.XRP
    address_patterns = compile_patterns(r"^r[1-9A-HJ-NP-Za-km-z]{24,34}$")

    def __init__(self, rpc_url: str = XRPL_RPC_URL) -> None:
        self._rpc_url = rpc_url

    async def _account_info(self, ctx: AdapterContext, address: str) -> dict[str, Any] | None:
        body = {
            "method": "account_info",
            "params": [{"account": address, "ledger_index": "validated"}],
        }
        data = await post_json(ctx.client, self._rpc_url, body)
        result = data.get("result") or {}
        if result.get("error") == "actNotFound":
            # Unfunded accounts do not exist on the ledger
            return None
        if result.get("status") != "success" or "account_data" not in result:
            raise UpstreamError(f"account_info: {result.get('error') or 'no account_data'}")
        return result["account_data"]

    async def fetch_holdings(self, address, ctx: AdapterContext, *, viewing_key=None) -> Holdings | None:
        account, quotes = await asyncio.gather(
            self._account_info(ctx, address),
            ctx.prices.coingecko_prices(ctx.client, ["XRP"]),
        )
        if account is None:
            return None
        owner_count = int(account.get("OwnerCount") or 0)
        holdings = Holdings(
            details={
                "reserve": account_reserve(owner_count),
                "ownerCount": owner_count,
                "sequence": int(account.get("Sequence") or 0),
            }
        )
        asset = native_asset(self.chain, "XRP", int(account.get("Balance") or 0) / DROPS_PER_XRP, quotes)
        if asset is not None:
            holdings.assets.append(asset)
        return holdings
