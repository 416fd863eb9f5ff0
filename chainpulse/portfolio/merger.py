"""
Multi-wallet portfolio tracker.

Keeps the list of tracked wallets (database-backed for a signed-in user,
in-memory for an anonymous session) and the last fetched portfolio per wallet,
and merges them into one view.

Merge rules:
- each wallet's own asset list is first collapsed by (symbol, chain, is_staked),
  so a wallet can never double-count itself;
- per-wallet data is cached by (address, chain), so a duplicate fetch replaces
  that wallet's entry instead of adding to it;
- across wallets, balance and value are summed; price and change24h are taken
  from the last wallet with a non-zero price (last writer wins);
- NFTs and domains are concatenated; assets are sorted by value, descending.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Protocol

from chainpulse.chains import normalize_address
from chainpulse.config.env import AUTO_REFRESH_INTERVAL_SEC, WALLET_FETCH_TIMEOUT_SEC
from chainpulse.database import repositories
from chainpulse.logging import get_logger, mask_address, mask_user_id
from chainpulse.portfolio.aggregator import sort_by_value
from chainpulse.portfolio.models import NFT, Asset, Domain, WalletPortfolio

logger = get_logger(__name__)

WalletKey = tuple[str, str]
FetchFn = Callable[[str, str], Awaitable[WalletPortfolio]]


def wallet_key(address: str, chain: str) -> WalletKey:
    """Duplicate-wallet identity: lower-cased address plus chain."""
    return ((address or "").strip().lower(), (chain or "").strip().lower())


def collapse_assets(assets: Iterable[Asset]) -> list[Asset]:
    """Sum same-key entries within one wallet's list."""
    merged: dict[tuple[str, str, bool], Asset] = {}
    for asset in assets:
        key = asset.merge_key
        existing = merged.get(key)
        if existing is None:
            merged[key] = asset.copy()
            continue
        existing.balance += asset.balance
        existing.value += asset.value
        if asset.price > 0:
            existing.price = asset.price
            existing.change24h = asset.change24h
    return list(merged.values())


def merge_assets(per_wallet: Iterable[Iterable[Asset]]) -> list[Asset]:
    """
    Merge several wallets' asset lists into one, sorted by value descending.

    Two holdings with equal (symbol, chain, is_staked) become one entry whose
    balance and value are the sums; price/change24h come from the last wallet
    that reported a positive price.
    """
    collapsed = (asset for assets in per_wallet for asset in collapse_assets(assets))
    return sort_by_value(collapse_assets(collapsed))


@dataclass
class TrackedWallet:
    address: str
    chain: str
    label: str | None = None
    id: int | None = None  # set for database-backed wallets

    @property
    def key(self) -> WalletKey:
        return wallet_key(self.address, self.chain)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "address": self.address, "chain": self.chain, "label": self.label}


@dataclass
class MergedPortfolio:
    assets: list[Asset] = field(default_factory=list)
    nfts: list[NFT] = field(default_factory=list)
    domains: list[Domain] = field(default_factory=list)
    wallets: list[TrackedWallet] = field(default_factory=list)

    @property
    def total_value(self) -> float:
        return sum(a.value for a in self.assets)

    def to_dict(self) -> dict[str, Any]:
        return {
            "assets": [a.to_dict() for a in self.assets],
            "nfts": [n.to_dict() for n in self.nfts],
            "domains": [d.to_dict() for d in self.domains],
            "totalValue": self.total_value,
            "wallets": [w.to_dict() for w in self.wallets],
        }


class WalletStore(Protocol):
    async def load(self) -> list[TrackedWallet]: ...

    async def add(self, wallet: TrackedWallet) -> TrackedWallet: ...

    async def remove(self, wallet: TrackedWallet) -> None: ...


class LocalWalletStore:
    """Anonymous session wallet list; lives only as long as the object."""

    def __init__(self, wallets: Iterable[TrackedWallet] = ()) -> None:
        self._wallets = list(wallets)

    async def load(self) -> list[TrackedWallet]:
        return list(self._wallets)

    async def add(self, wallet: TrackedWallet) -> TrackedWallet:
        self._wallets.append(wallet)
        return wallet

    async def remove(self, wallet: TrackedWallet) -> None:
        self._wallets = [w for w in self._wallets if w.key != wallet.key]


class DatabaseWalletStore:
    """Signed-in user's wallet list in the wallets table."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id

    async def load(self) -> list[TrackedWallet]:
        rows = await asyncio.to_thread(repositories.list_wallets, self.user_id)
        return [TrackedWallet(address=r["address"], chain=r["chain"], label=r["label"], id=r["id"]) for r in rows]

    async def add(self, wallet: TrackedWallet) -> TrackedWallet:
        row = await asyncio.to_thread(
            repositories.add_wallet, self.user_id, wallet.address, wallet.chain, wallet.label
        )
        if row is not None:
            wallet.id = row["id"]
        return wallet

    async def remove(self, wallet: TrackedWallet) -> None:
        await asyncio.to_thread(repositories.remove_wallet, self.user_id, wallet.address, wallet.chain)


class PortfolioTracker:
    """
    Tracked wallets plus their last fetched portfolios.

    Per-wallet fetches run concurrently with a timeout each. A wallet whose
    fetch fails or times out keeps its previously cached data (empty if it
    never had any). refresh_all() is a no-op while another refresh is running.
    """

    def __init__(
        self,
        fetch: FetchFn,
        store: WalletStore | None = None,
        *,
        fetch_timeout: float = WALLET_FETCH_TIMEOUT_SEC,
        refresh_interval: float = AUTO_REFRESH_INTERVAL_SEC,
    ) -> None:
        self._fetch = fetch
        self._store: WalletStore = store or LocalWalletStore()
        self._fetch_timeout = fetch_timeout
        self._refresh_interval = refresh_interval
        self._wallets: list[TrackedWallet] = []
        self._data: dict[WalletKey, WalletPortfolio] = {}
        self._adding: set[WalletKey] = set()
        self._refreshing = False
        self._auto_task: asyncio.Task | None = None

    @property
    def wallets(self) -> list[TrackedWallet]:
        return list(self._wallets)

    @property
    def is_refreshing(self) -> bool:
        return self._refreshing

    def has_wallet(self, address: str, chain: str) -> bool:
        key = wallet_key(address, chain)
        return any(w.key == key for w in self._wallets)

    async def load(self) -> list[TrackedWallet]:
        """Load the wallet list from the store and fetch every wallet."""
        self._wallets = await self._store.load()
        self._data = {}
        await self.refresh_all()
        return self.wallets

    async def switch_store(self, store: WalletStore) -> list[TrackedWallet]:
        """Change identity (e.g. sign-in). In-memory data is discarded, not merged."""
        self._store = store
        return await self.load()

    async def _fetch_one(self, wallet: TrackedWallet) -> bool:
        try:
            portfolio = await asyncio.wait_for(self._fetch(wallet.address, wallet.chain), self._fetch_timeout)
        except asyncio.TimeoutError:
            logger.warning("wallet_fetch_timeout", address=mask_address(wallet.address), chain=wallet.chain)
            self._data.setdefault(wallet.key, WalletPortfolio(address=wallet.address, chain=wallet.chain))
            return False
        except Exception as e:
            logger.warning(
                "wallet_fetch_failed",
                address=mask_address(wallet.address),
                chain=wallet.chain,
                error=str(e),
            )
            self._data.setdefault(wallet.key, WalletPortfolio(address=wallet.address, chain=wallet.chain))
            return False
        self._data[wallet.key] = portfolio
        return True

    async def refresh_all(self) -> bool:
        """Re-fetch every tracked wallet. Returns False when skipped because a refresh is in flight."""
        if self._refreshing:
            logger.debug("portfolio_refresh_skipped", wallet_count=len(self._wallets))
            return False
        self._refreshing = True
        try:
            results = await asyncio.gather(*(self._fetch_one(w) for w in list(self._wallets)))
            logger.info("portfolio_refreshed", wallet_count=len(results), failed=results.count(False))
            return True
        finally:
            self._refreshing = False

    async def add_wallet(self, address: str, chain: str, label: str | None = None) -> TrackedWallet | None:
        """
        Track a wallet: fetch its data first, then persist it. A persistence
        failure is logged and the fetched data stays visible. Returns None if
        the wallet is already tracked or being added.
        """
        address = normalize_address(address, chain)
        chain = chain.strip().lower()
        key = wallet_key(address, chain)
        if self.has_wallet(address, chain) or key in self._adding:
            return None
        self._adding.add(key)
        try:
            wallet = TrackedWallet(address=address, chain=chain, label=(label or "").strip() or None)
            await self._fetch_one(wallet)
            self._wallets.append(wallet)
            try:
                await self._store.add(wallet)
            except Exception as e:
                logger.exception("wallet_persist_failed", address=mask_address(address), chain=chain, error=str(e))
            return wallet
        finally:
            self._adding.discard(key)

    async def remove_wallet(self, address: str, chain: str) -> bool:
        """Untrack a wallet: in-memory state is cleared before the store is updated."""
        key = wallet_key(address, chain)
        wallet = next((w for w in self._wallets if w.key == key), None)
        if wallet is None:
            return False
        self._wallets = [w for w in self._wallets if w.key != key]
        self._data.pop(key, None)
        await self._store.remove(wallet)
        return True

    def portfolio(self) -> MergedPortfolio:
        """Merged view of every tracked wallet's last fetched data."""
        portfolios = [self._data[w.key] for w in self._wallets if w.key in self._data]
        return MergedPortfolio(
            assets=merge_assets(p.assets for p in portfolios),
            nfts=[n for p in portfolios for n in p.nfts],
            domains=[d for p in portfolios for d in p.domains],
            wallets=self.wallets,
        )

    # Auto refresh

    async def _auto_refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self._refresh_interval)
            await self.refresh_all()

    def start_auto_refresh(self) -> None:
        if self._auto_task is None or self._auto_task.done():
            self._auto_task = asyncio.get_running_loop().create_task(self._auto_refresh_loop())

    async def stop_auto_refresh(self) -> None:
        task, self._auto_task = self._auto_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


async def load_user_portfolio(fetch: FetchFn, user_id: str) -> MergedPortfolio:
    """One-shot merged portfolio for a signed-in user (used by the API and snapshot job)."""
    tracker = PortfolioTracker(fetch, DatabaseWalletStore(user_id))
    wallets = await tracker.load()
    logger.info("user_portfolio_loaded", user=mask_user_id(user_id), wallet_count=len(wallets))
    return tracker.portfolio()
