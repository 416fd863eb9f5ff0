"""
Alert emails through the Resend HTTP API.

Delivery is best-effort: every failure (no API key, transport error, non-2xx)
comes back as EmailResult(success=False, error=...) and is never raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Callable

import httpx

from chainpulse.config import Settings
from chainpulse.core.http import new_client
from chainpulse.logging import get_logger, mask_email

logger = get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass
class EmailResult:
    success: bool
    id: str | None = None
    error: str | None = None


def format_usd(value: float) -> str:
    if value >= 1:
        return f"${value:,.2f}"
    return f"${value:.6f}".rstrip("0").rstrip(".")


def format_threshold(threshold: float, alert_type: str) -> str:
    if alert_type == "price":
        return format_usd(threshold)
    return f"{threshold:g}%"


def alert_subject(asset: str, condition: str, threshold: float, alert_type: str = "price") -> str:
    arrow = "↑" if condition == "above" else "↓"
    verb = "crossed above" if condition == "above" else "dropped below"
    return f"{arrow} {asset.upper()} Alert: Price {verb} {format_threshold(threshold, alert_type)}"


def render_alert_text(
    asset: str,
    asset_name: str | None,
    condition: str,
    threshold: float,
    current_price: float,
    app_url: str,
    alert_type: str = "price",
) -> str:
    verb = "crossed above" if condition == "above" else "dropped below"
    name = asset_name or asset.upper()
    return (
        f"{name} ({asset.upper()}) has {verb} your alert threshold of "
        f"{format_threshold(threshold, alert_type)}.\n\n"
        f"Current price: {format_usd(current_price)}\n\n"
        f"View your portfolio: {app_url}\n"
    )


def render_alert_html(
    asset: str,
    asset_name: str | None,
    condition: str,
    threshold: float,
    current_price: float,
    app_url: str,
    alert_type: str = "price",
) -> str:
    verb = "crossed above" if condition == "above" else "dropped below"
    color = "#16a34a" if condition == "above" else "#dc2626"
    name = escape(asset_name or asset.upper())
    symbol = escape(asset.upper())
    return (
        '<div style="font-family:sans-serif;max-width:480px;margin:0 auto">'
        f'<h2 style="color:{color}">{symbol} price alert</h2>'
        f"<p>{name} ({symbol}) has {verb} your alert threshold of "
        f"<strong>{escape(format_threshold(threshold, alert_type))}</strong>.</p>"
        f"<p>Current price: <strong>{escape(format_usd(current_price))}</strong></p>"
        f'<p><a href="{escape(app_url)}">View your portfolio</a></p>'
        "</div>"
    )


class ResendNotifier:
    """Sends price-alert emails. Construct from Settings; a missing key only disables delivery."""

    def __init__(
        self,
        api_key: str,
        from_address: str,
        app_url: str,
        *,
        api_url: str = RESEND_API_URL,
        client_factory: Callable[[], httpx.AsyncClient] = new_client,
    ) -> None:
        self._api_key = api_key
        self._from = from_address
        self._app_url = app_url
        self._api_url = api_url
        self._client_factory = client_factory

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> ResendNotifier:
        return cls(settings.resend_api_key, settings.email_from, settings.app_url, **kwargs)

    async def send_price_alert(
        self,
        to: str,
        *,
        asset: str,
        asset_name: str | None,
        condition: str,
        threshold: float,
        current_price: float,
        alert_type: str = "price",
    ) -> EmailResult:
        if not self._api_key:
            return EmailResult(success=False, error="RESEND_API_KEY is not configured")
        payload = {
            "from": self._from,
            "to": [to],
            "subject": alert_subject(asset, condition, threshold, alert_type),
            "html": render_alert_html(asset, asset_name, condition, threshold, current_price, self._app_url, alert_type),
            "text": render_alert_text(asset, asset_name, condition, threshold, current_price, self._app_url, alert_type),
        }
        try:
            async with self._client_factory() as client:
                resp = await client.post(
                    self._api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("alert_email_failed", to=mask_email(to), asset=asset, error=str(e))
            return EmailResult(success=False, error=str(e))
        logger.info("alert_email_sent", to=mask_email(to), asset=asset)
        return EmailResult(success=True, id=(data or {}).get("id"))
