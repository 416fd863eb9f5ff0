"""
Ethereum adapter backed by Alchemy.

- Native ETH: eth_getBalance (wei / 1e18), priced via CoinGecko.
- ERC-20: alchemy_getTokenBalances; metadata from a static table, else
  alchemy_getTokenMetadata for at most MAX_METADATA_LOOKUPS unknown contracts.
  Prices from DeFiLlama ("ethereum:<contract>"). Liquid staking tokens are
  tagged with their protocol.
- NFTs: NFT API getNFTsForOwner, spam filtered.
- ENS: NFTs of the NameWrapper and base Registrar contracts, deduped by name.

Without ALCHEMY_API_KEY the adapter returns empty holdings with a note.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import httpx

from chainpulse.chains.base import (
    MIN_NATIVE_BALANCE,
    AdapterContext,
    Chain,
    ChainAdapter,
    compile_patterns,
    is_dust,
    looks_like_spam_nft,
    native_asset,
)
from chainpulse.core.exceptions import UpstreamError
from chainpulse.core.http import get_json, json_rpc
from chainpulse.logging import get_logger
from chainpulse.portfolio.models import NFT, Asset, Domain, Holdings
from chainpulse.pricing.symbols import STABLECOIN_FALLBACK, icon_for, token_name

logger = get_logger(__name__)

WEI_PER_ETH = 1e18
MAX_METADATA_LOOKUPS = 20
NFT_PAGE_SIZE = 50

ENS_NAME_WRAPPER = "0xD4416b13d2b3a9aBae7AcD5D6C2BbDBE25686401"
ENS_BASE_REGISTRAR = "0x57f1887a8BF19b14fC0dF6Fd9B2acc9Af147eA85"

# contract (lower-case) -> (protocol, symbol)
STAKING_TOKENS: dict[str, tuple[str, str]] = {
    "0xae7ab96520de3a18e5e111b5eaab095312d7fe84": ("Lido", "stETH"),
    "0x7f39c581f595b53c5cb19bd0b3f8da6c935e2ca0": ("Lido", "wstETH"),
    "0xae78736cd615f374d3085123a210448e74fc6393": ("Rocket Pool", "rETH"),
    "0xbe9895146f7af43049ca1c1ae358b0541ea49704": ("Coinbase", "cbETH"),
    "0x5e8422345238f34275888049021821e8e08caa1f": ("Frax", "frxETH"),
    "0xac3e018457b222d93114458476f3e3416abbe38f": ("Frax", "sfrxETH"),
    "0xf951e335afb289353dc249e82926178eac7ded78": ("Swell", "swETH"),
    "0xe95a203b1a91a908f9b9ce46459d101078c2c3cb": ("Ankr", "ankrETH"),
    "0xa2e3356610840701bdf5611a53974510ae27e2e1": ("Binance", "wBETH"),
    "0xd5f7838f5c461feff7fe49ea5ebaf7728bb0adfa": ("Mantle", "mETH"),
    "0x856c4efb76c1d1ae02e20ceb03a2a6a08b0b8dc3": ("Origin", "OETH"),
    "0xf1c9acdc66974dfb6decb12aa385b9cd01190e38": ("StakeWise", "osETH"),
}

# contract (lower-case) -> (symbol, decimals)
KNOWN_TOKENS: dict[str, tuple[str, int]] = {
    "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48": ("USDC", 6),
    "0xdac17f958d2ee523a2206206994597c13d831ec7": ("USDT", 6),
    "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2": ("WETH", 18),
    "0x2260fac5e5542a773aa44fbcfedf7c193bc2c599": ("WBTC", 8),
    "0x6b175474e89094c44da98b954eedeac495271d0f": ("DAI", 18),
    "0x1f9840a85d5af5bf1d1762f925bdaddc4201f984": ("UNI", 18),
    "0x514910771af9ca656af840dff83e8264ecf986ca": ("LINK", 18),
    "0x7fc66500c84a76ad7e9c93437bfc5ac33e2ddae9": ("AAVE", 18),
    "0x95ad61b0a150d79219dcf64e1e6cc01f0b64c4ce": ("SHIB", 18),
    "0xb50721bcf8d664c30412cfbc6cf7a15145234ad1": ("ARB", 18),
    "0x5a98fcbea516cf06857215779fd812ca3bef1b32": ("LDO", 18),
    "0x9f8f72aa9304c8b593d555f12ef6589cc3a579a2": ("MKR", 18),
    "0xd533a949740bb3306d119cc777fa900ba034cd52": ("CRV", 18),
    "0x4d224452801aced8b2f0aebe155379bb5d594381": ("APE", 18),
    "0x7d1afa7b718fb893db30a3abc0cfc608aacfebb0": ("MATIC", 18),
    "0x4200000000000000000000000000000000000042": ("OP", 18),
    "0xc18360217d8f7ab5e7c516566761ea12ce7f9d72": ("ENS", 18),
}
KNOWN_TOKENS.update({contract: (symbol, 18) for contract, (_, symbol) in STAKING_TOKENS.items()})

NOTE_NO_ALCHEMY_KEY = "ALCHEMY_API_KEY is not configured; Ethereum holdings are unavailable"


def hex_to_int(value: str | None) -> int:
    if not value or value in ("0x", "0x0"):
        return 0
    return int(value, 16)


def _nft_image(nft: dict[str, Any]) -> str | None:
    image = nft.get("image") or {}
    return image.get("cachedUrl") or image.get("thumbnailUrl") or image.get("originalUrl") or None


def _iso_from_seconds(value: Any) -> str | None:
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()


class EthereumAdapter(ChainAdapter):
    chain = Chain.ETHEREUM
    address_patterns = compile_patterns(r"^0x[a-fA-F0-9]{40}$")

    async def fetch_holdings(self, address, ctx: AdapterContext, *, viewing_key=None) -> Holdings | None:
        rpc_url = ctx.settings.alchemy_rpc_url
        nft_url = ctx.settings.alchemy_nft_url
        if not rpc_url or not nft_url:
            return Holdings(details={"note": NOTE_NO_ALCHEMY_KEY})

        wei, token_balances, quotes, nfts, domains = await asyncio.gather(
            json_rpc(ctx.client, rpc_url, "eth_getBalance", [address, "latest"]),
            json_rpc(ctx.client, rpc_url, "alchemy_getTokenBalances", [address]),
            ctx.prices.coingecko_prices(ctx.client, ["ETH"]),
            self._nfts(ctx, nft_url, address),
            self._ens_domains(ctx, nft_url, address),
        )

        holdings = Holdings(nfts=nfts, domains=domains)
        eth = native_asset(self.chain, "ETH", hex_to_int(wei) / WEI_PER_ETH, quotes)
        if eth is not None:
            holdings.assets.append(eth)
        tokens = await self._token_assets(ctx, rpc_url, (token_balances or {}).get("tokenBalances") or [])
        holdings.assets.extend(tokens)
        holdings.details = {"tokenCount": len(tokens), "nftCount": len(nfts)}
        return holdings

    async def _token_metadata(self, ctx: AdapterContext, rpc_url: str, contract: str) -> dict[str, Any] | None:
        try:
            return await json_rpc(ctx.client, rpc_url, "alchemy_getTokenMetadata", [contract])
        except (httpx.HTTPError, UpstreamError, ValueError) as e:
            logger.info("eth_token_metadata_failed", contract=contract, error=str(e))
            return None

    async def _token_assets(self, ctx: AdapterContext, rpc_url: str, balances: list[dict[str, Any]]) -> list[Asset]:
        raw: list[tuple[str, int]] = []
        for entry in balances:
            amount = hex_to_int(entry.get("tokenBalance"))
            if amount > 0:
                raw.append(((entry.get("contractAddress") or "").lower(), amount))

        unknown = [contract for contract, _ in raw if contract not in KNOWN_TOKENS][:MAX_METADATA_LOOKUPS]
        metadata = dict(
            zip(unknown, await asyncio.gather(*(self._token_metadata(ctx, rpc_url, c) for c in unknown)))
        )

        parsed: list[Asset] = []
        for contract, amount in raw:
            logo = None
            if contract in KNOWN_TOKENS:
                symbol, decimals = KNOWN_TOKENS[contract]
                name = token_name(symbol)
            else:
                meta = metadata.get(contract)
                if not meta or meta.get("decimals") is None:
                    continue
                symbol = meta.get("symbol") or contract[:8]
                name = meta.get("name") or symbol
                decimals = int(meta["decimals"])
                logo = meta.get("logo")
            balance = amount / (10**decimals)
            if balance <= MIN_NATIVE_BALANCE:
                continue
            staking = STAKING_TOKENS.get(contract)
            parsed.append(
                Asset(
                    symbol=symbol,
                    name=name,
                    chain=self.chain.value,
                    balance=balance,
                    icon=logo or icon_for(symbol),
                    is_staked=staking is not None,
                    staking_protocol=staking[0] if staking else None,
                    contract=contract,
                )
            )

        if not parsed:
            return []
        prices = await ctx.prices.defillama_prices(ctx.client, [f"ethereum:{a.contract}" for a in parsed])
        out: list[Asset] = []
        for asset in parsed:
            quote = prices.get(f"ethereum:{asset.contract}")
            if quote is not None:
                asset.attach_price(quote.price)
            elif asset.symbol in STABLECOIN_FALLBACK:
                asset.attach_price(1.0)
            if not is_dust(asset.symbol, asset.balance, asset.price):
                out.append(asset)
        return out

    async def _owned_nfts(self, ctx: AdapterContext, nft_url: str, params: list[tuple[str, Any]]) -> list[dict]:
        """NFT listings are optional extras: a failure yields an empty list, not a failed wallet."""
        try:
            data = await get_json(ctx.client, f"{nft_url}/getNFTsForOwner", params=params)
        except (httpx.HTTPError, ValueError) as e:
            logger.info("eth_nft_fetch_failed", error=str(e))
            return []
        return (data or {}).get("ownedNfts") or []

    async def _nfts(self, ctx: AdapterContext, nft_url: str, address: str) -> list[NFT]:
        owned = await self._owned_nfts(
            ctx,
            nft_url,
            [("owner", address), ("withMetadata", "true"), ("pageSize", NFT_PAGE_SIZE)],
        )
        out: list[NFT] = []
        for nft in owned:
            contract = nft.get("contract") or {}
            name = nft.get("name") or nft.get("title") or f"#{nft.get('tokenId')}"
            image = _nft_image(nft)
            if (nft.get("spamInfo") or {}).get("isSpam") or looks_like_spam_nft(name, bool(image)):
                continue
            floor = (contract.get("openSeaMetadata") or {}).get("floorPrice")
            out.append(
                NFT(
                    mint=f"{contract.get('address')}:{nft.get('tokenId')}",
                    name=name,
                    chain=self.chain.value,
                    collection=contract.get("name"),
                    image_url=image,
                    floor_price=float(floor) if floor is not None else None,
                )
            )
        return out

    async def _ens_domains(self, ctx: AdapterContext, nft_url: str, address: str) -> list[Domain]:
        owned = await self._owned_nfts(
            ctx,
            nft_url,
            [
                ("owner", address),
                ("withMetadata", "true"),
                ("contractAddresses[]", ENS_NAME_WRAPPER),
                ("contractAddresses[]", ENS_BASE_REGISTRAR),
            ],
        )
        seen: set[str] = set()
        out: list[Domain] = []
        for nft in owned:
            metadata = (nft.get("raw") or {}).get("metadata") or {}
            name = nft.get("name") or metadata.get("name") or ""
            if "." not in name or name in seen:
                continue
            seen.add(name)
            contract = (nft.get("contract") or {}).get("address")
            out.append(
                Domain(
                    name=name,
                    chain=self.chain.value,
                    mint=f"{contract}:{nft.get('tokenId')}",
                    expiry_date=_iso_from_seconds(metadata.get("expiry")),
                )
            )
        return out
