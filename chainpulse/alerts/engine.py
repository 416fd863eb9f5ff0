"""
Price alert evaluator.

For each enabled alert of one user: skip it if it fired within the cooldown
window, otherwise fetch the asset's current USD price and compare it with the
threshold. A satisfied alert has last_triggered persisted first; the email is
attempted afterwards and its failure never un-fires the alert.

Alerts are processed sequentially. percent_change alerts are accepted at
creation but never fire here.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import httpx

from chainpulse.alerts.email import ResendNotifier
from chainpulse.config.env import ALERT_PRICE_CACHE_TTL_SEC, PRICE_CACHE_MAX_ENTRIES
from chainpulse.database import repositories
from chainpulse.database.models import as_utc
from chainpulse.logging import get_logger, mask_email, mask_user_id
from chainpulse.pricing import PriceResolver, TTLCache

logger = get_logger(__name__)

# Don't re-fire the same alert within this many seconds
DEFAULT_ALERT_COOLDOWN_SEC = 3600


class AlertType(str, Enum):
    PRICE = "price"
    PERCENT_CHANGE = "percent_change"


class AlertCondition(str, Enum):
    ABOVE = "above"
    BELOW = "below"


@dataclass
class AlertConfig:
    """Evaluator tuning."""

    cooldown_sec: int = DEFAULT_ALERT_COOLDOWN_SEC
    """An alert triggered within this window is skipped without re-evaluation."""


@dataclass
class AlertCheckResult:
    checked: int = 0
    triggered: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked": self.checked,
            "triggered": len(self.triggered),
            "triggeredIds": [a["id"] for a in self.triggered],
            "triggeredAlerts": self.triggered,
        }


def new_alert_price_resolver() -> PriceResolver:
    """Resolver with the alert-path cache TTL."""
    return PriceResolver(TTLCache(ALERT_PRICE_CACHE_TTL_SEC, PRICE_CACHE_MAX_ENTRIES))


def is_recently_triggered(last_triggered: datetime | str | None, now: datetime, cooldown_sec: int) -> bool:
    if not last_triggered:
        return False
    if isinstance(last_triggered, str):
        last_triggered = datetime.fromisoformat(last_triggered)
    return now - as_utc(last_triggered) < timedelta(seconds=cooldown_sec)


def condition_met(condition: str, price: float, threshold: float) -> bool:
    if condition == AlertCondition.ABOVE.value:
        return price > threshold
    if condition == AlertCondition.BELOW.value:
        return price < threshold
    return False


async def check_user_alerts(
    user_id: str,
    *,
    prices: PriceResolver,
    client: httpx.AsyncClient,
    user_email: str | None = None,
    notifier: ResendNotifier | None = None,
    config: AlertConfig | None = None,
    now: datetime | None = None,
) -> AlertCheckResult:
    """Evaluate the user's enabled alerts once. Returns what was checked and what fired."""
    cfg = config or AlertConfig()
    now = now or datetime.now(timezone.utc)
    alerts = await asyncio.to_thread(repositories.list_alerts, user_id, enabled_only=True)
    result = AlertCheckResult(checked=len(alerts))

    for alert in alerts:
        if is_recently_triggered(alert.get("last_triggered"), now, cfg.cooldown_sec):
            continue
        if alert["type"] != AlertType.PRICE.value:
            continue
        price = await prices.get_price(client, alert["asset"])
        if price is None:
            logger.info("alert_price_unavailable", alert_id=alert["id"], asset=alert["asset"])
            continue
        if not condition_met(alert["condition"], price, float(alert["threshold"])):
            continue

        await asyncio.to_thread(repositories.mark_alert_triggered, alert["id"], now)
        result.triggered.append(
            {
                "id": alert["id"],
                "asset": alert["asset"],
                "assetName": alert.get("asset_name"),
                "condition": alert["condition"],
                "threshold": alert["threshold"],
                "type": alert["type"],
            }
        )
        logger.info(
            "alert_triggered",
            user=mask_user_id(user_id),
            alert_id=alert["id"],
            asset=alert["asset"],
            condition=alert["condition"],
            threshold=alert["threshold"],
            price=price,
        )

        if user_email and notifier is not None:
            sent = await notifier.send_price_alert(
                user_email,
                asset=alert["asset"],
                asset_name=alert.get("asset_name"),
                condition=alert["condition"],
                threshold=float(alert["threshold"]),
                current_price=price,
                alert_type=alert["type"],
            )
            if not sent.success:
                logger.warning(
                    "alert_notification_not_sent",
                    alert_id=alert["id"],
                    to=mask_email(user_email),
                    error=sent.error,
                )

    return result
