"""
Chain adapter contract and shared filters.

An adapter turns one address on one chain into Holdings. get_holdings() is the
only entry point: it validates the address against the chain's patterns before
any network call, then runs fetch_holdings(). Provider failures (transport,
non-2xx, RPC error objects, unexpected payload shapes) are logged and become
None, never an exception for the caller.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar

import httpx

from chainpulse.config import Settings
from chainpulse.core.exceptions import UpstreamError
from chainpulse.logging import get_logger, mask_address
from chainpulse.portfolio.models import Asset, Holdings
from chainpulse.pricing import PriceQuote, PriceResolver
from chainpulse.pricing.symbols import DUST_EXEMPT_STABLECOINS, icon_for, token_name

logger = get_logger(__name__)

# Native balances below this many units are dropped
MIN_NATIVE_BALANCE = 0.0001
# Priced tokens worth less than this (USD) are dust
MIN_USD_VALUE = 1.0
# Stablecoins are kept down to this value (USD)
MIN_STABLECOIN_VALUE = 0.01

SPAM_NAME_MARKERS = (
    "claim",
    "airdrop",
    "reward",
    "visit",
    "voucher",
    "promo",
    "free mint",
    "giveaway",
    "winner",
    "bonus",
    "eligible",
    "redeem",
    "limited offer",
    ".com",
    ".io",
    ".xyz",
    ".gg",
    "http",
)


class Chain(str, Enum):
    BITCOIN = "bitcoin"
    ETHEREUM = "ethereum"
    SOLANA = "solana"
    HYPERLIQUID = "hyperliquid"
    XRP = "xrp"
    DOGECOIN = "dogecoin"
    ZCASH = "zcash"
    CARDANO = "cardano"
    LITECOIN = "litecoin"
    TRON = "tron"


@dataclass
class AdapterContext:
    """What an adapter needs per request: the shared HTTP client, prices, and provider keys."""

    client: httpx.AsyncClient
    prices: PriceResolver
    settings: Settings


def is_dust(symbol: str, balance: float, price: float) -> bool:
    """
    Token dust rule: stablecoins are kept down to $0.01; other priced tokens
    need $1 of value; unpriced tokens need at least 0.0001 units.
    """
    value = balance * price
    if symbol.upper() in DUST_EXEMPT_STABLECOINS and price > 0:
        return value < MIN_STABLECOIN_VALUE
    if price > 0:
        return value < MIN_USD_VALUE
    return balance < MIN_NATIVE_BALANCE


def looks_like_spam_nft(name: str, has_image: bool) -> bool:
    """Airdropped scam NFTs: lure keywords or links in the name, or no image at all."""
    if not has_image:
        return True
    lowered = (name or "").lower()
    return any(marker in lowered for marker in SPAM_NAME_MARKERS)


class ChainAdapter:
    """
    Base adapter. Subclasses set chain and address_patterns and implement fetch_holdings().
    """

    chain: ClassVar[Chain]
    address_patterns: ClassVar[tuple[re.Pattern[str], ...]] = ()

    def is_valid_address(self, address: str) -> bool:
        address = (address or "").strip()
        return bool(address) and any(p.match(address) for p in self.address_patterns)

    async def get_holdings(
        self,
        address: str,
        ctx: AdapterContext,
        *,
        viewing_key: str | None = None,
    ) -> Holdings | None:
        """Validate, then fetch. Returns None on invalid address or provider failure."""
        address = (address or "").strip()
        if not self.is_valid_address(address):
            logger.warning("chain_invalid_address", chain=self.chain.value, address=mask_address(address))
            return None
        try:
            return await self.fetch_holdings(address, ctx, viewing_key=viewing_key)
        except (httpx.HTTPError, UpstreamError, KeyError, TypeError, ValueError) as e:
            logger.warning(
                "chain_fetch_failed",
                chain=self.chain.value,
                address=mask_address(address),
                error=str(e),
            )
            return None

    async def fetch_holdings(
        self,
        address: str,
        ctx: AdapterContext,
        *,
        viewing_key: str | None = None,
    ) -> Holdings | None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(chain={self.chain.value!r})"


def native_asset(
    chain: Chain,
    symbol: str,
    balance: float,
    quotes: dict[str, PriceQuote],
    *,
    name: str | None = None,
    is_staked: bool = False,
    staking_protocol: str | None = None,
) -> Asset | None:
    """Native coin holding with its CoinGecko quote attached; None below the native floor."""
    if balance < MIN_NATIVE_BALANCE:
        return None
    asset = Asset(
        symbol=symbol,
        name=name or token_name(symbol),
        chain=chain.value,
        balance=balance,
        icon=icon_for(symbol),
        is_staked=is_staked,
        staking_protocol=staking_protocol,
    )
    quote = quotes.get(symbol)
    if quote is not None:
        asset.attach_price(quote.price, quote.change24h)
    return asset


def compile_patterns(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p) for p in patterns)


def first_item(data: Any) -> dict[str, Any] | None:
    """First dict of a list payload (Koios and TronGrid wrap single accounts in lists)."""
    if isinstance(data, list) and data and isinstance(data[0], dict):
        return data[0]
    return None
