"""
Tron adapter: TronGrid account and TRC-20 listings.

Liquid TRX is the account balance; Stake 2.0 frozen TRX (frozenV2) is a
separate staked asset. Token prices come from DeFiLlama ("tron:<contract>"),
TRX from CoinGecko.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from chainpulse.chains.base import (
    AdapterContext,
    Chain,
    ChainAdapter,
    compile_patterns,
    first_item,
    is_dust,
    native_asset,
)
from chainpulse.core.exceptions import UpstreamError
from chainpulse.core.http import get_json
from chainpulse.logging import get_logger, mask_address
from chainpulse.portfolio.models import Asset, Holdings
from chainpulse.pricing.symbols import STABLECOIN_FALLBACK, icon_for

logger = get_logger(__name__)

TRONGRID_API = "https://api.trongrid.io"
SUN_PER_TRX = 1e6

# contract -> (symbol, name, decimals)
KNOWN_TRC20: dict[str, tuple[str, str, int]] = {
    "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t": ("USDT", "Tether USD", 6),
    "TEkxiTehnzSmSe2XqrBj4w32RUN966rdz8": ("USDC", "USD Coin", 6),
    "TPYmHEhy5n8TCEfYGqW2rPxsghSfzghPDn": ("USDD", "Decentralized USD", 18),
    "TUpMhErZL2fhh4sVNULAbNKLokS4GjC1F4": ("TUSD", "TrueUSD", 18),
    "TAFjULxiVgT4qWk6UZwjqwZXTSaGaqnVp4": ("BTT", "BitTorrent", 18),
    "TLa2f6VPqDgRE67v1736s7bJ8Ray5wYjU7": ("WIN", "WINkLink", 6),
    "TCFLL5dx5ZJdKnWuesXxi1VPwjLVmWZZy9": ("JST", "JUST", 18),
    "TSSMHYeV2uE9qYH95DqyoCuNCzEL1NvU3S": ("SUN", "Sun Token", 18),
    "TNUC9Qb1rRpS5CbWLmNMxXBjyFoydXjWFR": ("WTRX", "Wrapped TRX", 6),
}


def frozen_resources(account: dict[str, Any]) -> tuple[float, float]:
    """Return (bandwidth_trx, energy_trx) frozen under Stake 2.0."""
    bandwidth = 0
    energy = 0
    for entry in account.get("frozenV2") or []:
        amount = int(entry.get("amount") or 0)
        kind = entry.get("type") or "BANDWIDTH"
        if kind == "BANDWIDTH":
            bandwidth += amount
        elif kind == "ENERGY":
            energy += amount
    return bandwidth / SUN_PER_TRX, energy / SUN_PER_TRX


class TronAdapter(ChainAdapter):
    chain = Chain.TRON
    address_patterns = compile_patterns(r"^T[1-9A-HJ-NP-Za-km-z]{33}$")

    def __init__(self, api_url: str = TRONGRID_API) -> None:
        self._api = api_url.rstrip("/")

    def _headers(self, ctx: AdapterContext) -> dict[str, str] | None:
        key = ctx.settings.trongrid_api_key
        return {"TRON-PRO-API-KEY": key} if key else None

    async def _account(self, ctx: AdapterContext, address: str) -> dict[str, Any] | None:
        data = await get_json(ctx.client, f"{self._api}/v1/accounts/{address}", headers=self._headers(ctx))
        if not data.get("success", True):
            raise UpstreamError("trongrid: success=false")
        return first_item(data.get("data"))

    async def _trc20(self, ctx: AdapterContext, address: str) -> list[dict[str, Any]]:
        """TRC-20 balances; empty when the listing fails so TRX still shows."""
        try:
            data = await get_json(
                ctx.client,
                f"{self._api}/v1/accounts/{address}/tokens",
                params={"limit": 100},
                headers=self._headers(ctx),
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.info("tron_trc20_fetch_failed", address=mask_address(address), error=str(e))
            return []
        return [t for t in (data.get("data") or []) if t.get("tokenType") == "trc20"]

    async def fetch_holdings(self, address, ctx: AdapterContext, *, viewing_key=None) -> Holdings | None:
        account, tokens, quotes = await asyncio.gather(
            self._account(ctx, address),
            self._trc20(ctx, address),
            ctx.prices.coingecko_prices(ctx.client, ["TRX"]),
        )
        if account is None:
            # Never-activated accounts come back as an empty data list
            return Holdings(details={"activated": False})

        liquid = int(account.get("balance") or 0) / SUN_PER_TRX
        bandwidth, energy = frozen_resources(account)
        holdings = Holdings(
            details={
                "activated": True,
                "frozenForBandwidth": bandwidth,
                "frozenForEnergy": energy,
                "bandwidth": account.get("bandwidth"),
            }
        )

        trx = native_asset(self.chain, "TRX", liquid, quotes)
        if trx is not None:
            holdings.assets.append(trx)
        staked = native_asset(
            self.chain,
            "TRX",
            bandwidth + energy,
            quotes,
            name="Staked TRX",
            is_staked=True,
            staking_protocol="Tron Stake 2.0",
        )
        if staked is not None:
            holdings.assets.append(staked)

        holdings.assets.extend(await self._token_assets(ctx, tokens))
        return holdings

    async def _token_assets(self, ctx: AdapterContext, tokens: list[dict[str, Any]]) -> list[Asset]:
        parsed: list[tuple[str, Asset]] = []
        for token in tokens:
            contract = token.get("tokenId") or ""
            known = KNOWN_TRC20.get(contract)
            if known:
                symbol, name, decimals = known
            else:
                symbol = (token.get("tokenAbbr") or contract[:6]).upper()
                name = token.get("tokenName") or symbol
                decimals = int(token.get("tokenDecimal") or 0)
            balance = int(token.get("balance") or 0) / (10**decimals)
            if balance <= 0:
                continue
            asset = Asset(
                symbol=symbol,
                name=name,
                chain=self.chain.value,
                balance=balance,
                icon=token.get("tokenLogo") or icon_for(symbol),
                contract=contract,
            )
            parsed.append((f"tron:{contract}", asset))

        if not parsed:
            return []
        prices = await ctx.prices.defillama_prices(ctx.client, [key for key, _ in parsed])
        out: list[Asset] = []
        for key, asset in parsed:
            quote = prices.get(key)
            if quote is not None:
                asset.attach_price(quote.price)
            elif asset.symbol in STABLECOIN_FALLBACK:
                asset.attach_price(1.0)
            if not is_dust(asset.symbol, asset.balance, asset.price):
                out.append(asset)
        return out
