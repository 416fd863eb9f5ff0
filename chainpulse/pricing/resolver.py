"""
Price resolver: USD price and 24h change for symbols (CoinGecko) or
chain-qualified contract keys (DeFiLlama, e.g. "ethereum:0xa0b8...", "solana:<mint>").

The resolver owns no global state: the TTL cache is passed in (or built from
the configured TTL), so each resolver instance, and each test, has its own.
Missing identifiers are batched into one upstream request per call. Upstream
failures are logged and yield whatever the cache already had; USDC/USDT fall
back to exactly 1.0.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import httpx

from chainpulse.config.env import PRICE_CACHE_MAX_ENTRIES, PRICE_CACHE_TTL_SEC
from chainpulse.core.http import get_json
from chainpulse.logging import get_logger
from chainpulse.pricing.cache import TTLCache
from chainpulse.pricing.symbols import COINGECKO_IDS, STABLECOIN_FALLBACK

logger = get_logger(__name__)

COINGECKO_SIMPLE_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price"
DEFILLAMA_CURRENT_PRICE_URL = "https://coins.llama.fi/prices/current"


@dataclass(frozen=True)
class PriceQuote:
    """USD price and signed 24h change in percent (0.0 when the source has none)."""

    price: float
    change24h: float = 0.0


STABLECOIN_QUOTE = PriceQuote(price=1.0, change24h=0.0)


class PriceResolver:
    """Batched, cached price lookups against CoinGecko and DeFiLlama."""

    def __init__(
        self,
        cache: TTLCache | None = None,
        *,
        coingecko_url: str = COINGECKO_SIMPLE_PRICE_URL,
        defillama_url: str = DEFILLAMA_CURRENT_PRICE_URL,
    ) -> None:
        self._cache = cache if cache is not None else TTLCache(PRICE_CACHE_TTL_SEC, PRICE_CACHE_MAX_ENTRIES)
        self._coingecko_url = coingecko_url
        self._defillama_url = defillama_url.rstrip("/")

    @property
    def cache(self) -> TTLCache:
        return self._cache

    async def coingecko_prices(
        self,
        client: httpx.AsyncClient,
        symbols: Iterable[str],
        *,
        guess_ids: bool = False,
    ) -> dict[str, PriceQuote]:
        """
        Return {SYMBOL: PriceQuote} for the given ticker symbols.

        Symbols without a known CoinGecko id are skipped unless guess_ids is set,
        in which case the lower-cased symbol is tried as the id.
        """
        wanted = sorted({s.strip().upper() for s in symbols if s and s.strip()})
        result: dict[str, PriceQuote] = {}
        missing: dict[str, str] = {}
        for symbol in wanted:
            cached = self._cache.get(f"cg:{symbol}")
            if cached is not None:
                result[symbol] = cached
                continue
            coin_id = COINGECKO_IDS.get(symbol) or (symbol.lower() if guess_ids else None)
            if coin_id:
                missing[coin_id] = symbol

        if missing:
            params = {
                "ids": ",".join(sorted(missing)),
                "vs_currencies": "usd",
                "include_24hr_change": "true",
            }
            try:
                data = await get_json(client, self._coingecko_url, params=params)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("coingecko_price_fetch_failed", ids=params["ids"], error=str(e))
                data = {}
            if isinstance(data, dict):
                for coin_id, symbol in missing.items():
                    entry = data.get(coin_id)
                    if not isinstance(entry, dict) or entry.get("usd") is None:
                        continue
                    quote = PriceQuote(
                        price=float(entry["usd"]),
                        change24h=float(entry.get("usd_24h_change") or 0.0),
                    )
                    self._cache.set(f"cg:{symbol}", quote)
                    result[symbol] = quote

        for symbol in wanted:
            if symbol not in result and symbol in STABLECOIN_FALLBACK:
                result[symbol] = STABLECOIN_QUOTE
        return result

    async def defillama_prices(
        self,
        client: httpx.AsyncClient,
        keys: Iterable[str],
    ) -> dict[str, PriceQuote]:
        """Return {key: PriceQuote} for DeFiLlama coin keys such as "coingecko:tron" or "tron:<contract>"."""
        wanted = sorted({k.strip() for k in keys if k and k.strip()})
        result: dict[str, PriceQuote] = {}
        missing: list[str] = []
        for key in wanted:
            cached = self._cache.get(f"llama:{key}")
            if cached is not None:
                result[key] = cached
            else:
                missing.append(key)

        if missing:
            url = f"{self._defillama_url}/{','.join(missing)}"
            try:
                data = await get_json(client, url)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("defillama_price_fetch_failed", key_count=len(missing), error=str(e))
                data = {}
            coins = data.get("coins") if isinstance(data, dict) else None
            if isinstance(coins, dict):
                # DeFiLlama echoes keys but may normalise EVM address case
                by_lower = {k.lower(): v for k, v in coins.items()}
                for key in missing:
                    entry = coins.get(key) or by_lower.get(key.lower())
                    if not isinstance(entry, dict) or entry.get("price") is None:
                        continue
                    quote = PriceQuote(price=float(entry["price"]))
                    self._cache.set(f"llama:{key}", quote)
                    result[key] = quote
        return result

    async def get_price(self, client: httpx.AsyncClient, symbol: str) -> float | None:
        """Single-symbol USD price for alert checks; None when no source knows the symbol."""
        quotes = await self.coingecko_prices(client, [symbol], guess_ids=True)
        quote = quotes.get(symbol.strip().upper())
        return quote.price if quote else None
