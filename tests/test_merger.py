"""
Tests for the multi-wallet merge and PortfolioTracker.
"""

from __future__ import annotations

import asyncio

import pytest

from chainpulse.portfolio.merger import (
    DatabaseWalletStore,
    LocalWalletStore,
    PortfolioTracker,
    TrackedWallet,
    collapse_assets,
    load_user_portfolio,
    merge_assets,
    wallet_key,
)
from chainpulse.portfolio.models import Asset, WalletPortfolio
from tests.conftest import USER_ID

SOL_A = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
SOL_B = "vines1vzrYbzLMRdu58ou5XTby4qAqVRLmqo36NKPTg"
ETH_A = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"


def asset(symbol: str, balance: float, price: float, *, chain: str = "solana", staked: bool = False) -> Asset:
    a = Asset(symbol=symbol, name=symbol, chain=chain, balance=balance, is_staked=staked)
    a.attach_price(price, 1.0)
    return a


class FakeFetch:
    """Async fetch double: canned portfolios per (address, chain); raises or hangs on demand."""

    def __init__(self, portfolios: dict[tuple[str, str], list[Asset]] | None = None) -> None:
        self.portfolios = portfolios or {}
        self.calls: list[tuple[str, str]] = []
        self.fail: set[str] = set()
        self.hang: set[str] = set()

    async def __call__(self, address: str, chain: str) -> WalletPortfolio:
        self.calls.append((address, chain))
        if address in self.hang:
            await asyncio.sleep(10)
        if address in self.fail:
            raise RuntimeError("upstream down")
        assets = [a.copy() for a in self.portfolios.get((address, chain), [])]
        return WalletPortfolio(address=address, chain=chain, assets=assets)


# -----------------------------------------------------------------------------
# Pure merge
# -----------------------------------------------------------------------------


def test_merge_sums_same_token_across_wallets():
    merged = merge_assets([[asset("USDC", 100, 1.0)], [asset("USDC", 50, 1.0)]])
    [usdc] = merged
    assert usdc.balance == 150
    assert usdc.value == 150.0


def test_merge_keeps_staked_and_liquid_apart_and_sorts():
    merged = merge_assets(
        [
            [asset("SOL", 1, 100.0), asset("SOL", 4, 100.0, staked=True)],
            [asset("USDC", 50, 1.0), asset("SOL", 1, 100.0, chain="ethereum")],
        ]
    )
    assert [(a.symbol, a.chain, a.is_staked, a.value) for a in merged] == [
        ("SOL", "solana", True, 400.0),
        ("SOL", "solana", False, 100.0),
        ("SOL", "ethereum", False, 100.0),
        ("USDC", "solana", False, 50.0),
    ]


def test_collapse_within_one_wallet():
    [sol] = collapse_assets([asset("SOL", 1, 100.0), asset("SOL", 2, 100.0)])
    assert sol.balance == 3
    assert sol.value == 300.0


def test_merge_takes_last_positive_price():
    first = asset("JUP", 10, 1.0)
    second = asset("JUP", 10, 1.2)
    unpriced = Asset(symbol="JUP", name="JUP", chain="solana", balance=5)
    [jup] = merge_assets([[first], [second], [unpriced]])
    assert jup.balance == 25
    assert jup.price == 1.2
    assert jup.value == pytest.approx(22.0)


def test_merge_does_not_mutate_inputs():
    original = asset("USDC", 100, 1.0)
    merge_assets([[original], [asset("USDC", 50, 1.0)]])
    assert original.balance == 100


def test_wallet_key_is_case_insensitive():
    assert wallet_key(ETH_A, "Ethereum") == wallet_key(ETH_A.lower(), "ethereum")


# -----------------------------------------------------------------------------
# Tracker
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_two_wallets_merge_into_one_view():
    fetch = FakeFetch({(SOL_A, "solana"): [asset("USDC", 100, 1.0)], (SOL_B, "solana"): [asset("USDC", 50, 1.0)]})
    tracker = PortfolioTracker(fetch)
    await tracker.add_wallet(SOL_A, "solana", label="main")
    await tracker.add_wallet(SOL_B, "solana")

    view = tracker.portfolio()
    [usdc] = view.assets
    assert usdc.balance == 150
    assert view.total_value == 150.0
    assert [w.label for w in view.wallets] == ["main", None]


@pytest.mark.asyncio
async def test_duplicate_add_is_ignored():
    fetch = FakeFetch({(ETH_A.lower(), "ethereum"): [asset("ETH", 1, 3000.0, chain="ethereum")]})
    tracker = PortfolioTracker(fetch)
    assert await tracker.add_wallet(ETH_A, "ethereum") is not None
    assert await tracker.add_wallet(ETH_A.lower(), "Ethereum") is None
    assert len(tracker.wallets) == 1
    assert tracker.wallets[0].address == ETH_A.lower()
    assert len(fetch.calls) == 1


@pytest.mark.asyncio
async def test_concurrent_adds_of_same_wallet_track_it_once():
    fetch = FakeFetch({(SOL_A, "solana"): [asset("SOL", 1, 100.0)]})
    tracker = PortfolioTracker(fetch)
    results = await asyncio.gather(tracker.add_wallet(SOL_A, "solana"), tracker.add_wallet(SOL_A, "solana"))
    assert sum(r is not None for r in results) == 1
    assert len(tracker.wallets) == 1


@pytest.mark.asyncio
async def test_refresh_is_idempotent():
    fetch = FakeFetch({(SOL_A, "solana"): [asset("SOL", 2, 100.0)]})
    tracker = PortfolioTracker(fetch)
    await tracker.add_wallet(SOL_A, "solana")
    await tracker.refresh_all()
    await tracker.refresh_all()
    [sol] = tracker.portfolio().assets
    assert sol.balance == 2
    assert sol.value == 200.0


@pytest.mark.asyncio
async def test_timeout_keeps_previous_data():
    fetch = FakeFetch({(SOL_A, "solana"): [asset("SOL", 2, 100.0)]})
    tracker = PortfolioTracker(fetch, fetch_timeout=0.05)
    await tracker.add_wallet(SOL_A, "solana")

    fetch.hang.add(SOL_A)
    assert await tracker.refresh_all() is True
    [sol] = tracker.portfolio().assets
    assert sol.value == 200.0


@pytest.mark.asyncio
async def test_failing_new_wallet_is_tracked_with_empty_data():
    fetch = FakeFetch({(SOL_B, "solana"): [asset("USDC", 5, 1.0)]})
    fetch.fail.add(SOL_A)
    tracker = PortfolioTracker(fetch)
    await tracker.add_wallet(SOL_A, "solana")
    await tracker.add_wallet(SOL_B, "solana")
    assert len(tracker.wallets) == 2
    assert [a.symbol for a in tracker.portfolio().assets] == ["USDC"]


@pytest.mark.asyncio
async def test_refresh_in_flight_is_skipped():
    fetch = FakeFetch({(SOL_A, "solana"): [asset("SOL", 1, 100.0)]})
    tracker = PortfolioTracker(fetch, fetch_timeout=0.2)
    await tracker.add_wallet(SOL_A, "solana")
    fetch.hang.add(SOL_A)

    first = asyncio.ensure_future(tracker.refresh_all())
    await asyncio.sleep(0)
    assert tracker.is_refreshing
    assert await tracker.refresh_all() is False
    assert await first is True
    assert not tracker.is_refreshing


@pytest.mark.asyncio
async def test_persist_failure_keeps_fetched_data():
    class BrokenStore(LocalWalletStore):
        async def add(self, wallet):
            raise RuntimeError("db down")

    fetch = FakeFetch({(SOL_A, "solana"): [asset("SOL", 1, 100.0)]})
    tracker = PortfolioTracker(fetch, BrokenStore())
    wallet = await tracker.add_wallet(SOL_A, "solana")
    assert wallet is not None
    assert tracker.portfolio().total_value == 100.0


@pytest.mark.asyncio
async def test_remove_wallet_drops_its_data():
    fetch = FakeFetch({(SOL_A, "solana"): [asset("SOL", 1, 100.0)], (SOL_B, "solana"): [asset("SOL", 2, 100.0)]})
    store = LocalWalletStore()
    tracker = PortfolioTracker(fetch, store)
    await tracker.add_wallet(SOL_A, "solana")
    await tracker.add_wallet(SOL_B, "solana")

    assert await tracker.remove_wallet(SOL_A, "solana") is True
    assert await tracker.remove_wallet(SOL_A, "solana") is False
    [sol] = tracker.portfolio().assets
    assert sol.balance == 2
    assert [w.address for w in await store.load()] == [SOL_B]


@pytest.mark.asyncio
async def test_switch_store_discards_session_wallets():
    fetch = FakeFetch({(SOL_A, "solana"): [asset("SOL", 1, 100.0)], (SOL_B, "solana"): [asset("SOL", 2, 100.0)]})
    tracker = PortfolioTracker(fetch)
    await tracker.add_wallet(SOL_A, "solana")

    wallets = await tracker.switch_store(LocalWalletStore([TrackedWallet(SOL_B, "solana")]))
    assert [w.address for w in wallets] == [SOL_B]
    assert tracker.portfolio().total_value == 200.0


@pytest.mark.asyncio
async def test_auto_refresh_refetches_periodically():
    fetch = FakeFetch({(SOL_A, "solana"): [asset("SOL", 1, 100.0)]})
    tracker = PortfolioTracker(fetch, refresh_interval=0.01)
    await tracker.add_wallet(SOL_A, "solana")
    tracker.start_auto_refresh()
    await asyncio.sleep(0.05)
    await tracker.stop_auto_refresh()
    assert len(fetch.calls) >= 2


# -----------------------------------------------------------------------------
# Database-backed wallets
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_database_store_round_trip(db):
    store = DatabaseWalletStore(USER_ID)
    fetch = FakeFetch({(SOL_A, "solana"): [asset("SOL", 1, 100.0)]})
    tracker = PortfolioTracker(fetch, store)
    wallet = await tracker.add_wallet(SOL_A, "solana", label="cold")
    assert wallet.id is not None

    rows = db.list_wallets(USER_ID)
    assert [(r["address"], r["chain"], r["label"]) for r in rows] == [(SOL_A, "solana", "cold")]

    merged = await load_user_portfolio(fetch, USER_ID)
    assert merged.total_value == 100.0
    assert merged.wallets[0].id == wallet.id

    await tracker.remove_wallet(SOL_A, "solana")
    assert db.list_wallets(USER_ID) == []
