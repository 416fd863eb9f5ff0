"""
Solana adapter.

With HELIUS_API_KEY:
- fungible holdings and the native balance from one DAS searchAssets call,
  falling back to getBalance + getTokenAccountsByOwner if DAS fails;
- NFTs from DAS (spam filtered) with an acquisition guess for the first
  ACQUISITION_LOOKUP_LIMIT of them;
- .sol domains from Bonfida with registration cost from Helius history.
Without it, the configured RPC (public by default) serves native SOL and SPL
token accounts; NFTs are skipped.

Native stake accounts and liquid staking tokens are reported as staked SOL
positions in every mode.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import httpx
from solders.pubkey import Pubkey

from chainpulse.chains.base import (
    AdapterContext,
    Chain,
    ChainAdapter,
    compile_patterns,
    is_dust,
    looks_like_spam_nft,
    native_asset,
)
from chainpulse.core.exceptions import UpstreamError
from chainpulse.core.http import get_json, json_rpc, post_json
from chainpulse.logging import get_logger, mask_address
from chainpulse.portfolio.models import (
    ACQUISITION_MINTED,
    ACQUISITION_PURCHASED,
    ACQUISITION_RECEIVED,
    ACQUISITION_UNKNOWN,
    NFT,
    Asset,
    Domain,
    Holdings,
)
from chainpulse.pricing.symbols import STABLECOIN_FALLBACK, icon_for

logger = get_logger(__name__)

LAMPORTS_PER_SOL = 1e9
# A native transfer above this is treated as a payment, not fee dust
MIN_PAYMENT_LAMPORTS = 1_000_000
NFT_LIMIT = 50
ACQUISITION_LOOKUP_LIMIT = 10
ACQUISITION_TX_LIMIT = 10

WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
STAKE_PROGRAM_ID = "Stake11111111111111111111111111111111111111"
# Withdrawer authority offset inside a stake account
STAKE_AUTHORITY_OFFSET = 12

HELIUS_API = "https://api.helius.xyz/v0"
DEXSCREENER_API = "https://api.dexscreener.com/latest/dex"
BONFIDA_API = "https://sns-sdk-proxy.bonfida.workers.dev"

# mint -> liquid staking protocol
SOLANA_STAKING_TOKENS: dict[str, str] = {
    "J1toso1uCk3RLmjorhTtrVwY9HJ7X8V9yYac6Y7kGCPn": "Jito",
    "mSoLzYCxHdYgdzU16g5QSh3i5K3z3KZK7ytfqcJm7So": "Marinade",
    "bSo13r4TkiE4KumL71LsHTPpL2euBYLFx6h9HP3piy1": "BlazeStake",
    "7dHbWXmci3dT8UFYWYZweBLXgycu7Y3iL6trKn1Y7ARj": "Lido",
    "he1iusmfkpAdwvxLNGV8Y1iSbj4rUy6yMhEA3fotn9A": "Helius",
    "5oVNBeEEQvYi1cX3ir8Dx5n1P7pdxydbGF2X4TxVusJm": "Socean",
    "LAinEtNLgpmCP9Rvsf5Hn8W6EhNiKLZQti1xfWMLy6X": "Laine",
    "edge86g9cVz87xcpKpy3J77vbp4wYd9idEV562CCntt": "Edgevana",
    "jupSoLaHXQiZZTSfEWMTRRgpnyFm8f6sZdosWBjx93v": "Jupiter",
    "vSoLxydx6akxyMD9XEcPvGYNGq6Nn66oqVb3UkGkei7": "The Vault",
    "BonK1YhkXEGLZzwtcvRTip3gAL9nCeQD7ppZBLXhtTs": "Bonk",
    "Comp4ssDzXcLeu2MnLuGNNFC4cmLPMng8qWHPvzAMU1h": "Sanctum",
    "picobAEvs6w7QEknPce34wAE4gknZA9v5tTonnmHYdX": "Picasso",
    "Dso1bDeDjCQxTrWHqUUi63oBvV7Mdm6WaobLbQ7gnPQ": "Drift",
    "pathdXw4He1Xk3eX84pDdDZnGKEme3GivBamGCVPZ5a": "Pathfinders",
    "strng7mqqc1MBJJV6vMzYbEqnwVGvKKGKedeCvtktWA": "Stronghold",
    "LnTRntk2kTfWEY6cVB8K9649pgJbt6dJLS1Ns1GZCWg": "Lantern",
}

_MARKETPLACE_TYPES = ("SALE", "BUY", "MARKETPLACE")
_PAYMENT_TYPES = ("MINT", "SALE", "BUY", "NFT")


def _iso(timestamp: int | float) -> str:
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).isoformat()


def _payment(tx: dict[str, Any]) -> int:
    """First native transfer above the payment floor, 0 when there is none."""
    amounts = (int(t.get("amount") or 0) for t in tx.get("nativeTransfers") or [])
    return next((a for a in amounts if a > MIN_PAYMENT_LAMPORTS), 0)


def infer_acquisition(transactions: list[dict[str, Any]], owner: str) -> tuple[str, float | None, str | None]:
    """
    Guess how owner came to hold an NFT from its enriched history (oldest first).

    Returns (acquisition_type, price_sol, iso_date). Best effort:
    1. a MINT paid by the owner is "minted", a MINT paid by someone else "received";
    2. marketplace SALE/BUY types are "purchased", plain TRANSFER "received";
    3. the first mint/sale-like tx with a native payment fixes the price and date;
    4. otherwise the first dated tx fixes the date, defaulting to "received".
    """
    acquisition = ACQUISITION_UNKNOWN
    for tx in transactions:
        timestamp = tx.get("timestamp")
        if not timestamp:
            continue
        tx_type = (tx.get("type") or "").upper()
        if "MINT" in tx_type:
            acquisition = ACQUISITION_MINTED if tx.get("feePayer") == owner else ACQUISITION_RECEIVED
        elif any(kind in tx_type for kind in _MARKETPLACE_TYPES):
            acquisition = ACQUISITION_PURCHASED
        elif "TRANSFER" in tx_type:
            acquisition = ACQUISITION_RECEIVED
        else:
            acquisition = ACQUISITION_UNKNOWN

        if any(kind in tx_type for kind in _PAYMENT_TYPES):
            paid = _payment(tx)
            if paid > MIN_PAYMENT_LAMPORTS:
                if acquisition == ACQUISITION_UNKNOWN:
                    acquisition = ACQUISITION_MINTED if "MINT" in tx_type else ACQUISITION_PURCHASED
                return acquisition, paid / LAMPORTS_PER_SOL, _iso(timestamp)

    for tx in transactions:
        timestamp = tx.get("timestamp")
        if not timestamp:
            continue
        tx_type = (tx.get("type") or "").upper()
        if "MINT" in tx_type and tx.get("feePayer") == owner:
            return ACQUISITION_MINTED, 0.0, _iso(timestamp)
        return ACQUISITION_RECEIVED, 0.0, _iso(timestamp)

    return ACQUISITION_UNKNOWN, None, None


def _content_image(content: dict[str, Any]) -> str | None:
    image = (content.get("links") or {}).get("image")
    if image:
        return image
    for f in content.get("files") or []:
        uri = f.get("cdn_uri") or f.get("uri")
        if uri:
            return uri
    return None


def _collection_name(item: dict[str, Any]) -> str | None:
    for group in item.get("grouping") or []:
        if group.get("group_key") == "collection":
            return (group.get("collection_metadata") or {}).get("name") or None
    return None


class SolanaAdapter(ChainAdapter):
    chain = Chain.SOLANA
    address_patterns = compile_patterns(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")

    def is_valid_address(self, address: str) -> bool:
        """Base58 shape check, then a real 32-byte public key decode."""
        if not super().is_valid_address(address):
            return False
        try:
            Pubkey.from_string(address.strip())
        except (ValueError, TypeError):
            return False
        return True

    def __init__(
        self,
        helius_api_url: str = HELIUS_API,
        dexscreener_url: str = DEXSCREENER_API,
        bonfida_url: str = BONFIDA_API,
    ) -> None:
        self._helius_api = helius_api_url.rstrip("/")
        self._dexscreener = dexscreener_url.rstrip("/")
        self._bonfida = bonfida_url.rstrip("/")

    async def fetch_holdings(self, address, ctx: AdapterContext, *, viewing_key=None) -> Holdings | None:
        rpc_url = ctx.settings.solana_rpc_url
        has_helius = bool(ctx.settings.helius_api_key)

        (lamports, tokens), quotes, staked = await asyncio.gather(
            self._fungible(ctx, rpc_url, address, use_das=has_helius),
            ctx.prices.coingecko_prices(ctx.client, ["SOL"]),
            self._stake_accounts(ctx, rpc_url, address),
        )

        holdings = Holdings()
        sol = native_asset(self.chain, "SOL", lamports / LAMPORTS_PER_SOL, quotes)
        if sol is not None:
            holdings.assets.append(sol)
        if staked is not None:
            stake_lamports, validators = staked
            label = "validator" if validators == 1 else "validators"
            stake_asset = native_asset(
                self.chain,
                "SOL",
                stake_lamports / LAMPORTS_PER_SOL,
                quotes,
                name=f"Staked SOL ({validators} {label})",
                is_staked=True,
                staking_protocol="Native",
            )
            if stake_asset is not None:
                holdings.assets.append(stake_asset)
        holdings.assets.extend(await self._price_tokens(ctx, tokens))

        if has_helius:
            holdings.nfts, holdings.domains = await asyncio.gather(
                self._nfts(ctx, rpc_url, address),
                self._domains(ctx, address),
            )
        else:
            holdings.domains = await self._domains(ctx, address)

        holdings.details = {
            "tokenCount": len(tokens),
            "nftCount": len(holdings.nfts),
            "enhanced": has_helius,
        }
        return holdings

    # Fungible holdings

    async def _fungible(
        self, ctx: AdapterContext, rpc_url: str, address: str, *, use_das: bool
    ) -> tuple[int, list[Asset]]:
        """Return (native lamports, unpriced token assets)."""
        if use_das:
            try:
                return await self._das_fungible(ctx, rpc_url, address)
            except (httpx.HTTPError, UpstreamError, ValueError) as e:
                logger.info("solana_das_failed", address=mask_address(address), error=str(e))
        lamports, tokens = await asyncio.gather(
            json_rpc(ctx.client, rpc_url, "getBalance", [address]),
            self._token_accounts(ctx, rpc_url, address),
        )
        value = lamports.get("value") if isinstance(lamports, dict) else lamports
        return int(value or 0), tokens

    async def _das_fungible(self, ctx: AdapterContext, rpc_url: str, address: str) -> tuple[int, list[Asset]]:
        result = await json_rpc(
            ctx.client,
            rpc_url,
            "searchAssets",
            {
                "ownerAddress": address,
                "tokenType": "fungible",
                "displayOptions": {"showNativeBalance": True},
            },
        )
        lamports = int(((result or {}).get("nativeBalance") or {}).get("lamports") or 0)
        tokens: list[Asset] = []
        for item in (result or {}).get("items") or []:
            mint = item.get("id") or ""
            info = item.get("token_info") or {}
            if mint == WRAPPED_SOL_MINT or info.get("balance") is None:
                continue
            content = item.get("content") or {}
            metadata = content.get("metadata") or {}
            decimals = int(info.get("decimals") or 0)
            balance = int(info["balance"]) / (10**decimals)
            if balance <= 0:
                continue
            symbol = (info.get("symbol") or metadata.get("symbol") or mint[:6]).upper()
            tokens.append(
                Asset(
                    symbol=symbol,
                    name=metadata.get("name") or symbol,
                    chain=self.chain.value,
                    balance=balance,
                    icon=_content_image(content) or icon_for(symbol),
                    contract=mint,
                )
            )
        return lamports, tokens

    async def _token_accounts(self, ctx: AdapterContext, rpc_url: str, address: str) -> list[Asset]:
        result = await json_rpc(
            ctx.client,
            rpc_url,
            "getTokenAccountsByOwner",
            [address, {"programId": TOKEN_PROGRAM_ID}, {"encoding": "jsonParsed"}],
        )
        tokens: list[Asset] = []
        for entry in (result or {}).get("value") or []:
            info = ((((entry.get("account") or {}).get("data") or {}).get("parsed") or {}).get("info")) or {}
            mint = info.get("mint") or ""
            amount = float((info.get("tokenAmount") or {}).get("uiAmount") or 0)
            if not mint or amount <= 0:
                continue
            symbol = mint[:6]
            tokens.append(Asset(symbol=symbol, name=symbol, chain=self.chain.value, balance=amount, contract=mint))
        return tokens

    async def _dexscreener_icons(self, ctx: AdapterContext, mints: list[str]) -> dict[str, str]:
        if not mints:
            return {}
        try:
            data = await get_json(ctx.client, f"{self._dexscreener}/tokens/{','.join(mints)}")
        except (httpx.HTTPError, ValueError) as e:
            logger.info("dexscreener_fetch_failed", error=str(e))
            return {}
        icons: dict[str, str] = {}
        for pair in (data or {}).get("pairs") or []:
            mint = (pair.get("baseToken") or {}).get("address")
            image = (pair.get("info") or {}).get("imageUrl")
            if mint and image and mint not in icons:
                icons[mint] = image
        return icons

    async def _price_tokens(self, ctx: AdapterContext, tokens: list[Asset]) -> list[Asset]:
        if not tokens:
            return []
        prices, icons = await asyncio.gather(
            ctx.prices.defillama_prices(ctx.client, [f"solana:{t.contract}" for t in tokens]),
            self._dexscreener_icons(ctx, [t.contract for t in tokens if not t.icon]),
        )
        out: list[Asset] = []
        for token in tokens:
            quote = prices.get(f"solana:{token.contract}")
            if quote is not None:
                token.attach_price(quote.price)
            elif token.symbol in STABLECOIN_FALLBACK:
                token.attach_price(1.0)
            if not token.icon:
                token.icon = icons.get(token.contract)
            protocol = SOLANA_STAKING_TOKENS.get(token.contract or "")
            if protocol:
                token.is_staked = True
                token.staking_protocol = protocol
            if not is_dust(token.symbol, token.balance, token.price):
                out.append(token)
        return out

    async def _stake_accounts(self, ctx: AdapterContext, rpc_url: str, address: str) -> tuple[int, int] | None:
        """Return (delegated lamports, distinct validators) for native stake accounts, None when there are none."""
        try:
            accounts = await json_rpc(
                ctx.client,
                rpc_url,
                "getProgramAccounts",
                [
                    STAKE_PROGRAM_ID,
                    {
                        "encoding": "jsonParsed",
                        "filters": [{"memcmp": {"offset": STAKE_AUTHORITY_OFFSET, "bytes": address}}],
                    },
                ],
            )
        except (httpx.HTTPError, UpstreamError, ValueError) as e:
            logger.info("solana_stake_lookup_failed", address=mask_address(address), error=str(e))
            return None
        total = 0
        voters: set[str] = set()
        for entry in accounts or []:
            info = ((((entry.get("account") or {}).get("data") or {}).get("parsed") or {}).get("info")) or {}
            delegation = (info.get("stake") or {}).get("delegation") or {}
            stake = int(delegation.get("stake") or 0)
            if stake <= 0:
                continue
            total += stake
            voters.add(delegation.get("voter") or "")
        if total <= 0:
            return None
        return total, len(voters)

    # NFTs

    async def _nfts(self, ctx: AdapterContext, rpc_url: str, address: str) -> list[NFT]:
        try:
            result = await json_rpc(
                ctx.client,
                rpc_url,
                "searchAssets",
                {
                    "ownerAddress": address,
                    "tokenType": "nonFungible",
                    "limit": NFT_LIMIT,
                    "displayOptions": {"showCollectionMetadata": True},
                },
            )
        except (httpx.HTTPError, UpstreamError, ValueError) as e:
            logger.info("solana_nft_fetch_failed", address=mask_address(address), error=str(e))
            return []

        nfts: list[NFT] = []
        for item in (result or {}).get("items") or []:
            content = item.get("content") or {}
            name = (content.get("metadata") or {}).get("name") or ""
            image = _content_image(content)
            if looks_like_spam_nft(name, bool(image)):
                continue
            nfts.append(
                NFT(
                    mint=item.get("id") or "",
                    name=name,
                    chain=self.chain.value,
                    collection=_collection_name(item),
                    image_url=image,
                )
            )

        head = nfts[:ACQUISITION_LOOKUP_LIMIT]
        guesses = await asyncio.gather(*(self._acquisition(ctx, rpc_url, nft.mint, address) for nft in head))
        for nft, (kind, price, date) in zip(head, guesses):
            nft.acquisition_type = kind
            nft.purchase_price = price
            nft.purchase_date = date
        return nfts

    async def _acquisition(
        self, ctx: AdapterContext, rpc_url: str, mint: str, owner: str
    ) -> tuple[str, float | None, str | None]:
        try:
            result = await json_rpc(ctx.client, rpc_url, "getSignaturesForAsset", {"id": mint, "limit": 1000})
            items = (result or {}).get("items") or []
            signatures = [entry[0] for entry in items[-ACQUISITION_TX_LIMIT:]][::-1]
            if not signatures:
                return ACQUISITION_UNKNOWN, None, None
            transactions = await post_json(
                ctx.client,
                f"{self._helius_api}/transactions?api-key={ctx.settings.helius_api_key}",
                {"transactions": signatures},
            )
        except (httpx.HTTPError, UpstreamError, ValueError, IndexError, TypeError) as e:
            logger.info("solana_nft_history_failed", mint=mint, error=str(e))
            return ACQUISITION_UNKNOWN, None, None
        return infer_acquisition(transactions if isinstance(transactions, list) else [], owner)

    # Domains

    async def _domains(self, ctx: AdapterContext, address: str) -> list[Domain]:
        try:
            data = await get_json(ctx.client, f"{self._bonfida}/domains/{address}")
        except (httpx.HTTPError, ValueError) as e:
            logger.info("solana_domain_fetch_failed", address=mask_address(address), error=str(e))
            return []
        if not isinstance(data, dict) or data.get("s") != "ok":
            return []

        domains = [
            Domain(name=f"{entry['domain']}.sol", chain=self.chain.value, mint=entry.get("key"))
            for entry in data.get("result") or []
            if entry.get("domain")
        ]
        if ctx.settings.helius_api_key:
            await asyncio.gather(*(self._domain_purchase(ctx, d) for d in domains if d.mint))
        return domains

    async def _domain_purchase(self, ctx: AdapterContext, domain: Domain) -> None:
        """Registration cost and date from the oldest transaction touching the name account."""
        try:
            txs = await get_json(
                ctx.client,
                f"{self._helius_api}/addresses/{domain.mint}/transactions",
                params={"api-key": ctx.settings.helius_api_key, "limit": 100},
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.info("solana_domain_history_failed", domain=domain.name, error=str(e))
            return
        if not isinstance(txs, list) or not txs:
            return
        oldest = txs[-1]
        lamports = sum(int(t.get("amount") or 0) for t in oldest.get("nativeTransfers") or [])
        domain.purchase_price = lamports / LAMPORTS_PER_SOL
        if oldest.get("timestamp"):
            domain.purchase_date = _iso(oldest["timestamp"])
