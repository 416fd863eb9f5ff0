"""
Tests for the FastAPI app: portfolio, wallets, alerts and the cron endpoint.
"""

from __future__ import annotations

from datetime import datetime

import httpx
import pytest

from chainpulse.alerts.email import EmailResult
from chainpulse.api_server import deps
from chainpulse.api_server.server import app
from chainpulse.config import Settings
from chainpulse.portfolio.aggregator import PortfolioAggregator
from tests.conftest import USER_HEADERS, USER_ID, Upstream

BTC_ADDRESS = "1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa"
ETH_ADDRESS = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"


def bitcoin_route(request: httpx.Request) -> httpx.Response:
    if request.url.host == "mempool.space":
        return httpx.Response(
            200,
            json={"chain_stats": {"funded_txo_sum": 200_000_000, "spent_txo_sum": 0, "tx_count": 2}, "mempool_stats": {}},
        )
    return httpx.Response(200, json={"bitcoin": {"usd": 50000.0, "usd_24h_change": 1.5}})


@pytest.fixture
def upstream():
    return Upstream(bitcoin_route)


@pytest.fixture
def aggregator(prices, upstream):
    agg = PortfolioAggregator(prices, Settings(), client_factory=upstream.client)
    app.dependency_overrides[deps.get_aggregator] = lambda: agg
    return agg


class StaticPrices:
    def __init__(self, prices: dict[str, float]) -> None:
        self.prices = prices

    async def get_price(self, client, symbol):
        return self.prices.get(symbol.upper())


class SilentNotifier:
    def __init__(self) -> None:
        self.sent = []

    async def send_price_alert(self, to, **kwargs):
        self.sent.append(to)
        return EmailResult(success=True, id="email_1")


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


# -----------------------------------------------------------------------------
# Portfolio
# -----------------------------------------------------------------------------


def test_portfolio_requires_address_and_chain(client, aggregator):
    r = client.get("/api/portfolio", params={"chain": "bitcoin"})
    assert r.status_code == 400
    assert r.json() == {"error": "Address and chain are required"}


def test_portfolio_invalid_address(client, aggregator, upstream):
    r = client.get("/api/portfolio", params={"address": "nope", "chain": "bitcoin"})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid bitcoin address"}
    assert upstream.requests == []


def test_portfolio_unsupported_chain(client, aggregator):
    r = client.get("/api/portfolio", params={"address": BTC_ADDRESS, "chain": "polkadot"})
    assert r.status_code == 400
    assert r.json() == {"error": "Unsupported chain: polkadot"}


def test_portfolio_bitcoin(client, aggregator):
    r = client.get("/api/portfolio", params={"address": BTC_ADDRESS, "chain": "bitcoin"})
    assert r.status_code == 200
    body = r.json()
    assert body["totalValue"] == 100000.0
    assert body["assets"][0]["symbol"] == "BTC"
    assert body["assets"][0]["change24h"] == 1.5


def test_portfolio_internal_error_is_500(client):
    class Broken:
        async def get_portfolio(self, *args):
            raise RuntimeError("boom")

    app.dependency_overrides[deps.get_aggregator] = lambda: Broken()
    r = client.get("/api/portfolio", params={"address": BTC_ADDRESS, "chain": "bitcoin"})
    assert r.status_code == 500
    assert r.json() == {"error": "Failed to fetch portfolio data"}


def test_history_requires_user(client):
    assert client.get("/api/portfolio/history").status_code == 401


def test_history_empty(client):
    r = client.get("/api/portfolio/history", params={"range": "1M"}, headers=USER_HEADERS)
    assert r.status_code == 200
    assert r.json()["range"] == "1M"
    assert r.json()["data"] == []


# -----------------------------------------------------------------------------
# Wallets
# -----------------------------------------------------------------------------


def test_wallets_require_user(client):
    r = client.get("/api/wallets")
    assert r.status_code == 401
    assert r.json() == {"error": "Unauthorized"}


def test_wallet_lifecycle(client, aggregator, db):
    r = client.post("/api/wallets", json={"address": ETH_ADDRESS, "chain": "Ethereum", "label": "hot"}, headers=USER_HEADERS)
    assert r.status_code == 201
    wallet = r.json()["wallet"]
    assert wallet["address"] == ETH_ADDRESS.lower()
    assert wallet["chain"] == "ethereum"
    assert wallet["label"] == "hot"

    dup = client.post("/api/wallets", json={"address": ETH_ADDRESS.lower(), "chain": "ethereum"}, headers=USER_HEADERS)
    assert dup.status_code == 409
    assert dup.json() == {"error": "Wallet already tracked"}

    listed = client.get("/api/wallets", headers=USER_HEADERS).json()["wallets"]
    assert [w["id"] for w in listed] == [wallet["id"]]

    r = client.delete("/api/wallets", params={"address": ETH_ADDRESS, "chain": "ethereum"}, headers=USER_HEADERS)
    assert r.json() == {"success": True}
    r = client.delete("/api/wallets", params={"address": ETH_ADDRESS, "chain": "ethereum"}, headers=USER_HEADERS)
    assert r.status_code == 404
    assert r.json() == {"error": "Wallet not found"}


def test_add_wallet_invalid_address(client, aggregator):
    r = client.post("/api/wallets", json={"address": "0x123", "chain": "ethereum"}, headers=USER_HEADERS)
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid ethereum address"}


def test_add_wallet_missing_field(client, aggregator):
    r = client.post("/api/wallets", json={"chain": "ethereum"}, headers=USER_HEADERS)
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid address"}


def test_merged_portfolio(client, aggregator, db):
    db.add_wallet(USER_ID, BTC_ADDRESS, "bitcoin", "savings")
    r = client.get("/api/wallets/portfolio", headers=USER_HEADERS)
    assert r.status_code == 200
    body = r.json()
    assert body["totalValue"] == 100000.0
    assert body["wallets"][0]["label"] == "savings"


def test_wallets_are_scoped_per_user(client, db):
    db.add_wallet("someone-else", BTC_ADDRESS, "bitcoin")
    assert client.get("/api/wallets", headers=USER_HEADERS).json() == {"wallets": []}


# -----------------------------------------------------------------------------
# Alerts
# -----------------------------------------------------------------------------


def _create(client, **overrides):
    body = {"type": "price", "asset": "btc", "asset_name": "Bitcoin", "condition": "above", "threshold": 50000}
    body.update(overrides)
    return client.post("/api/alerts", json=body, headers=USER_HEADERS)


def test_create_and_list_alerts(client):
    r = _create(client)
    assert r.status_code == 201
    alert = r.json()["alert"]
    assert alert["asset"] == "BTC"
    assert alert["threshold"] == 50000.0
    assert alert["enabled"] is True
    assert client.get("/api/alerts", headers=USER_HEADERS).json()["alerts"][0]["id"] == alert["id"]


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"asset": None}, "Missing required fields"),
        ({"threshold": None}, "Missing required fields"),
        ({"type": "volume"}, "Invalid alert type"),
        ({"condition": "sideways"}, "Invalid condition"),
        ({"threshold": "abc"}, "Invalid threshold"),
        ({"threshold": -5}, "Invalid threshold"),
    ],
)
def test_create_alert_validation(client, overrides, message):
    r = _create(client, **overrides)
    assert r.status_code == 400
    assert r.json() == {"error": message}


def test_update_alert(client):
    alert_id = _create(client).json()["alert"]["id"]

    r = client.patch("/api/alerts", params={"id": alert_id}, json={"threshold": "60000", "enabled": False}, headers=USER_HEADERS)
    assert r.status_code == 200
    assert r.json()["alert"]["threshold"] == 60000.0
    assert r.json()["alert"]["enabled"] is False

    assert client.patch("/api/alerts", json={"enabled": True}, headers=USER_HEADERS).json() == {"error": "Alert ID required"}
    r = client.patch("/api/alerts", params={"id": alert_id}, json={"user_id": "x"}, headers=USER_HEADERS)
    assert r.json() == {"error": "No valid fields to update"}
    r = client.patch("/api/alerts", params={"id": 9999}, json={"enabled": True}, headers=USER_HEADERS)
    assert r.status_code == 404
    assert r.json() == {"error": "Alert not found"}


def test_delete_alert(client):
    alert_id = _create(client).json()["alert"]["id"]
    assert client.delete("/api/alerts", params={"id": alert_id}, headers=USER_HEADERS).json() == {"success": True}
    assert client.get("/api/alerts", headers=USER_HEADERS).json() == {"alerts": []}
    assert client.delete("/api/alerts", headers=USER_HEADERS).status_code == 400


def test_check_alerts_endpoint(client):
    notifier = SilentNotifier()
    app.dependency_overrides[deps.get_alert_prices] = lambda: StaticPrices({"BTC": 51000.0})
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    alert_id = _create(client).json()["alert"]["id"]

    r = client.post("/api/alerts/check", headers=USER_HEADERS)
    assert r.status_code == 200
    assert r.json()["triggered"] == 1
    assert r.json()["triggeredIds"] == [alert_id]
    assert notifier.sent == ["alice@example.com"]

    again = client.get("/api/alerts/check", headers=USER_HEADERS).json()
    assert again["checked"] == 1
    assert again["triggered"] == 0


# -----------------------------------------------------------------------------
# Cron
# -----------------------------------------------------------------------------


def test_cron_rejects_wrong_secret(client, aggregator):
    assert client.post("/api/cron/snapshot").status_code == 401
    r = client.post("/api/cron/snapshot", headers={"x-cron-secret": "nope"})
    assert r.status_code == 401
    assert r.json() == {"error": "Unauthorized"}


def test_cron_fails_closed_without_configured_secret(client, aggregator):
    app.dependency_overrides[deps.get_settings] = lambda: Settings(cron_secret="")
    r = client.post("/api/cron/snapshot", headers={"x-cron-secret": "anything"})
    assert r.status_code == 503


def test_cron_snapshot(client, aggregator, db):
    assert client.get("/api/cron/snapshot", headers={"x-cron-secret": "s3cret"}).json() == {
        "message": "No users to snapshot",
        "count": 0,
    }
    db.add_wallet(USER_ID, BTC_ADDRESS, "bitcoin")
    r = client.post("/api/cron/snapshot", headers={"x-cron-secret": "s3cret"})
    assert r.status_code == 200
    assert r.json()["successful"] == 1
    [snap] = db.list_snapshots(USER_ID, datetime(2000, 1, 1))
    assert snap["total_value"] == 100000.0
