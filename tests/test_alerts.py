"""
Tests for the price alert evaluator and the Resend notifier.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from chainpulse.alerts.email import EmailResult, ResendNotifier, alert_subject, format_usd, render_alert_text
from chainpulse.alerts.engine import AlertConfig, check_user_alerts, condition_met, is_recently_triggered
from tests.conftest import USER_ID, Upstream, json_body

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def coingecko(prices: dict[str, float]):
    def route(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "api.coingecko.com"
        ids = request.url.params["ids"].split(",")
        return httpx.Response(200, json={i: {"usd": prices[i], "usd_24h_change": 0.0} for i in ids if i in prices})

    return route


class RecordingNotifier:
    """Stands in for ResendNotifier; records calls and returns a fixed outcome."""

    def __init__(self, success: bool = True) -> None:
        self.success = success
        self.sent: list[dict] = []

    async def send_price_alert(self, to, **kwargs):
        self.sent.append({"to": to, **kwargs})
        return EmailResult(success=self.success, error=None if self.success else "boom")


def btc_alert(db, **overrides):
    fields = {"type": "price", "asset": "BTC", "asset_name": "Bitcoin", "condition": "above", "threshold": 50000.0}
    fields.update(overrides)
    return db.create_alert(USER_ID, **fields)


# -----------------------------------------------------------------------------
# Evaluator
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_price_above_threshold_fires_once(db, prices):
    alert = btc_alert(db)
    notifier = RecordingNotifier()
    upstream = Upstream(coingecko({"bitcoin": 51000.0}))

    result = await check_user_alerts(
        USER_ID, prices=prices, client=upstream.client(), user_email="alice@example.com", notifier=notifier, now=NOW
    )
    assert result.to_dict() == {
        "checked": 1,
        "triggered": 1,
        "triggeredIds": [alert["id"]],
        "triggeredAlerts": [
            {
                "id": alert["id"],
                "asset": "BTC",
                "assetName": "Bitcoin",
                "condition": "above",
                "threshold": 50000.0,
                "type": "price",
            }
        ],
    }
    assert db.get_alert(USER_ID, alert["id"])["last_triggered"] == NOW.isoformat()
    [email] = notifier.sent
    assert email["to"] == "alice@example.com"
    assert email["current_price"] == 51000.0

    again = await check_user_alerts(
        USER_ID,
        prices=prices,
        client=upstream.client(),
        user_email="alice@example.com",
        notifier=notifier,
        now=NOW + timedelta(minutes=5),
    )
    assert again.checked == 1
    assert again.triggered == []
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_cooldown_window(db, prices):
    alert = btc_alert(db)
    upstream = Upstream(coingecko({"bitcoin": 51000.0}))

    db.mark_alert_triggered(alert["id"], NOW - timedelta(minutes=10))
    result = await check_user_alerts(USER_ID, prices=prices, client=upstream.client(), now=NOW)
    assert result.triggered == []
    assert upstream.requests == []  # skipped before any price lookup

    db.mark_alert_triggered(alert["id"], NOW - timedelta(minutes=90))
    result = await check_user_alerts(USER_ID, prices=prices, client=upstream.client(), now=NOW)
    assert [a["id"] for a in result.triggered] == [alert["id"]]


@pytest.mark.asyncio
async def test_custom_cooldown(db, prices):
    alert = btc_alert(db)
    db.mark_alert_triggered(alert["id"], NOW - timedelta(minutes=10))
    result = await check_user_alerts(
        USER_ID,
        prices=prices,
        client=Upstream(coingecko({"bitcoin": 51000.0})).client(),
        config=AlertConfig(cooldown_sec=300),
        now=NOW,
    )
    assert len(result.triggered) == 1


@pytest.mark.asyncio
async def test_email_failure_still_marks_triggered(db, prices):
    alert = btc_alert(db)
    notifier = RecordingNotifier(success=False)
    result = await check_user_alerts(
        USER_ID,
        prices=prices,
        client=Upstream(coingecko({"bitcoin": 51000.0})).client(),
        user_email="alice@example.com",
        notifier=notifier,
        now=NOW,
    )
    assert len(result.triggered) == 1
    assert db.get_alert(USER_ID, alert["id"])["last_triggered"] is not None


@pytest.mark.asyncio
async def test_percent_change_alerts_never_fire(db, prices):
    db.create_alert(USER_ID, type="percent_change", asset="ETH", condition="above", threshold=5.0)
    upstream = Upstream(coingecko({"ethereum": 4000.0}))
    result = await check_user_alerts(USER_ID, prices=prices, client=upstream.client(), now=NOW)
    assert result.checked == 1
    assert result.triggered == []
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_below_condition_and_disabled_alerts(db, prices):
    below = btc_alert(db, asset="SOL", asset_name="Solana", condition="below", threshold=100.0)
    btc_alert(db, asset="SOL", condition="below", threshold=200.0, enabled=False)
    btc_alert(db, asset="SOL", condition="above", threshold=100.0)

    result = await check_user_alerts(
        USER_ID, prices=prices, client=Upstream(coingecko({"solana": 95.0})).client(), now=NOW
    )
    assert result.checked == 2
    assert [a["id"] for a in result.triggered] == [below["id"]]


@pytest.mark.asyncio
async def test_unknown_asset_price_is_skipped(db, prices):
    btc_alert(db, asset="NOPE")
    result = await check_user_alerts(USER_ID, prices=prices, client=Upstream(coingecko({})).client(), now=NOW)
    assert result.checked == 1
    assert result.triggered == []


def test_condition_and_cooldown_helpers():
    assert condition_met("above", 51000, 50000)
    assert not condition_met("above", 50000, 50000)
    assert condition_met("below", 99, 100)
    assert not condition_met("sideways", 1, 2)
    assert not is_recently_triggered(None, NOW, 3600)
    assert is_recently_triggered((NOW - timedelta(minutes=59)).isoformat(), NOW, 3600)
    assert not is_recently_triggered(NOW - timedelta(minutes=61), NOW, 3600)


# -----------------------------------------------------------------------------
# Email
# -----------------------------------------------------------------------------


def test_subject_and_formatting():
    assert alert_subject("btc", "above", 50000.0) == "↑ BTC Alert: Price crossed above $50,000.00"
    assert alert_subject("SOL", "below", 100.0) == "↓ SOL Alert: Price dropped below $100.00"
    assert format_usd(0.00001234) == "$0.000012"
    text = render_alert_text("BTC", "Bitcoin", "above", 50000.0, 51000.0, "https://app.example")
    assert "Bitcoin (BTC) has crossed above your alert threshold of $50,000.00." in text
    assert "Current price: $51,000.00" in text
    assert "https://app.example" in text


@pytest.mark.asyncio
async def test_resend_notifier_success():
    upstream = Upstream(lambda r: httpx.Response(200, json={"id": "email_123"}))
    notifier = ResendNotifier("re_key", "Alerts <alerts@example.com>", "https://app.example", client_factory=upstream.client)
    sent = await notifier.send_price_alert(
        "alice@example.com",
        asset="BTC",
        asset_name="Bitcoin",
        condition="above",
        threshold=50000.0,
        current_price=51000.0,
    )
    assert sent.success is True
    assert sent.id == "email_123"
    [request] = upstream.requests
    assert request.url == "https://api.resend.com/emails"
    assert request.headers["Authorization"] == "Bearer re_key"
    body = json_body(request)
    assert body["to"] == ["alice@example.com"]
    assert body["subject"] == "↑ BTC Alert: Price crossed above $50,000.00"
    assert "$51,000.00" in body["html"]


@pytest.mark.asyncio
async def test_resend_notifier_failure_is_returned_not_raised():
    upstream = Upstream(lambda r: httpx.Response(422, json={"message": "invalid from"}))
    notifier = ResendNotifier("re_key", "bad", "https://app.example", client_factory=upstream.client)
    sent = await notifier.send_price_alert(
        "alice@example.com", asset="BTC", asset_name=None, condition="above", threshold=1.0, current_price=2.0
    )
    assert sent.success is False
    assert sent.error


@pytest.mark.asyncio
async def test_resend_notifier_without_key_makes_no_request():
    upstream = Upstream(lambda r: httpx.Response(200, json={}))
    notifier = ResendNotifier("", "a@example.com", "https://app.example", client_factory=upstream.client)
    sent = await notifier.send_price_alert(
        "alice@example.com", asset="BTC", asset_name=None, condition="above", threshold=1.0, current_price=2.0
    )
    assert sent.success is False
    assert "RESEND_API_KEY" in sent.error
    assert upstream.requests == []
