"""
Portfolio aggregator: one address on one chain -> priced, sorted portfolio.

Dispatches to the chain's adapter through the ADAPTERS table, then performs
one batched CoinGecko lookup across every asset symbol CoinGecko knows and
back-fills price/change24h, recomputing value = balance * price. Assets
CoinGecko does not know keep the adapter's (DeFiLlama) price, or 0.
"""

from __future__ import annotations

import time
from typing import Callable, Mapping

import httpx

from chainpulse.chains import ADAPTERS, AdapterContext, Chain, ChainAdapter, parse_chain
from chainpulse.config import Settings, get_settings
from chainpulse.core.exceptions import InvalidAddressError, UnsupportedChainError
from chainpulse.core.http import new_client
from chainpulse.logging import get_logger, mask_address
from chainpulse.portfolio.models import Asset, Holdings, WalletPortfolio
from chainpulse.pricing import PriceResolver
from chainpulse.pricing.symbols import COINGECKO_IDS

logger = get_logger(__name__)


def sort_by_value(assets: list[Asset]) -> list[Asset]:
    return sorted(assets, key=lambda a: a.value, reverse=True)


class PortfolioAggregator:
    """Single-wallet portfolio fetch. Multi-wallet fan-out lives in PortfolioTracker."""

    def __init__(
        self,
        prices: PriceResolver | None = None,
        settings: Settings | None = None,
        *,
        adapters: Mapping[Chain, ChainAdapter] | None = None,
        client_factory: Callable[[], httpx.AsyncClient] = new_client,
    ) -> None:
        self.prices = prices or PriceResolver()
        self._settings = settings
        self._adapters = adapters if adapters is not None else ADAPTERS
        self._client_factory = client_factory

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    def validate(self, address: str, chain: str | Chain) -> tuple[str, Chain, ChainAdapter]:
        """Raise UnsupportedChainError / InvalidAddressError before any network call."""
        chain_enum = chain if isinstance(chain, Chain) else parse_chain(chain)
        adapter = self._adapters.get(chain_enum)
        if adapter is None:
            raise UnsupportedChainError(chain_enum.value)
        address = (address or "").strip()
        if not adapter.is_valid_address(address):
            raise InvalidAddressError(chain_enum.value, address)
        return address, chain_enum, adapter

    async def fetch(self, address: str, chain: str | Chain, viewing_key: str | None = None) -> WalletPortfolio:
        address, chain_enum, adapter = self.validate(address, chain)
        started = time.monotonic()
        async with self._client_factory() as client:
            ctx = AdapterContext(client=client, prices=self.prices, settings=self.settings)
            holdings = await adapter.get_holdings(address, ctx, viewing_key=viewing_key)
            if holdings is None:
                holdings = Holdings()
            await self._backfill_prices(client, holdings.assets)

        portfolio = WalletPortfolio(
            address=address,
            chain=chain_enum.value,
            assets=sort_by_value(holdings.assets),
            nfts=holdings.nfts,
            domains=holdings.domains,
            details=holdings.details,
            timestamp=int(time.time() * 1000),
        )
        logger.info(
            "portfolio_fetched",
            chain=chain_enum.value,
            address=mask_address(address),
            asset_count=len(portfolio.assets),
            nft_count=len(portfolio.nfts),
            total_value=round(portfolio.total_value, 2),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return portfolio

    async def get_portfolio(self, address: str, chain: str | Chain, viewing_key: str | None = None) -> dict:
        """JSON body for GET /api/portfolio."""
        return (await self.fetch(address, chain, viewing_key)).to_dict()

    async def _backfill_prices(self, client: httpx.AsyncClient, assets: list[Asset]) -> None:
        symbols = {a.symbol.upper() for a in assets if a.symbol.upper() in COINGECKO_IDS}
        quotes = await self.prices.coingecko_prices(client, symbols) if symbols else {}
        for asset in assets:
            quote = quotes.get(asset.symbol.upper())
            if quote is not None:
                asset.attach_price(quote.price, quote.change24h)
            else:
                asset.attach_price(asset.price)
