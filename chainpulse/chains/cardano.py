"""
Cardano adapter: Koios address_info, then account_info for stake delegation.

Delegating on Cardano does not lock funds, but a delegated address balance is
reported as staked with the pool id as its protocol so the dashboard can
separate it.
"""

from __future__ import annotations

import asyncio

import httpx

from chainpulse.chains.base import AdapterContext, Chain, ChainAdapter, compile_patterns, first_item, native_asset
from chainpulse.core.exceptions import UpstreamError
from chainpulse.core.http import post_json
from chainpulse.logging import get_logger, mask_address
from chainpulse.portfolio.models import Holdings

logger = get_logger(__name__)

KOIOS_API = "https://api.koios.rest/api/v1"
LOVELACE_PER_ADA = 1e6


class CardanoAdapter(ChainAdapter):
    chain = Chain.CARDANO
    address_patterns = compile_patterns(
        r"^addr1[a-z0-9]{50,}$",
        r"^stake1[a-z0-9]{50,}$",
        r"^Ae2[a-zA-Z0-9]{50,}$",
        r"^DdzFF[a-zA-Z0-9]{50,}$",
    )

    def __init__(self, api_url: str = KOIOS_API) -> None:
        self._api = api_url.rstrip("/")

    async def _delegated_pool(self, ctx: AdapterContext, stake_address: str) -> str | None:
        """Pool the stake key delegates to; None when undelegated or the lookup fails."""
        try:
            data = await post_json(ctx.client, f"{self._api}/account_info", {"_stake_addresses": [stake_address]})
        except (httpx.HTTPError, UpstreamError, ValueError) as e:
            logger.info("cardano_stake_lookup_failed", stake_address=mask_address(stake_address), error=str(e))
            return None
        account = first_item(data)
        return (account or {}).get("delegated_pool") or None

    async def fetch_holdings(self, address, ctx: AdapterContext, *, viewing_key=None) -> Holdings | None:
        data, quotes = await asyncio.gather(
            post_json(ctx.client, f"{self._api}/address_info", {"_addresses": [address]}),
            ctx.prices.coingecko_prices(ctx.client, ["ADA"]),
        )
        info = first_item(data)
        if info is None:
            # Koios returns [] for addresses it has never seen
            return Holdings(details={"stakeAddress": None, "delegatedPool": None})

        stake_address = info.get("stake_address") or None
        pool = await self._delegated_pool(ctx, stake_address) if stake_address else None
        balance = int(info.get("balance") or 0) / LOVELACE_PER_ADA

        holdings = Holdings(details={"stakeAddress": stake_address, "delegatedPool": pool})
        asset = native_asset(
            self.chain,
            "ADA",
            balance,
            quotes,
            is_staked=pool is not None,
            staking_protocol=pool,
        )
        if asset is not None:
            holdings.assets.append(asset)
        return holdings
