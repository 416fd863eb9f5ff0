"""
FastAPI dependencies: caller identity, settings, shared aggregator and alert services.

Authentication is done by the fronting auth layer, which forwards the caller's
identity as x-user-id / x-user-email headers. Tests replace any of these via
app.dependency_overrides.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass

from fastapi import Depends, Header

from chainpulse.alerts.email import ResendNotifier
from chainpulse.alerts.engine import new_alert_price_resolver
from chainpulse.config import Settings, get_settings as load_settings
from chainpulse.core.exceptions import AuthenticationError
from chainpulse.portfolio.aggregator import PortfolioAggregator
from chainpulse.pricing import PriceResolver


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str | None = None


def get_current_user(
    x_user_id: str | None = Header(None),
    x_user_email: str | None = Header(None),
) -> CurrentUser:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise AuthenticationError("Unauthorized")
    return CurrentUser(id=user_id, email=(x_user_email or "").strip() or None)


def get_settings() -> Settings:
    return load_settings()


@functools.lru_cache(maxsize=1)
def _shared_aggregator() -> PortfolioAggregator:
    return PortfolioAggregator(settings=load_settings())


def get_aggregator() -> PortfolioAggregator:
    """One aggregator (and price cache) per process."""
    return _shared_aggregator()


@functools.lru_cache(maxsize=1)
def _shared_alert_prices() -> PriceResolver:
    return new_alert_price_resolver()


def get_alert_prices() -> PriceResolver:
    return _shared_alert_prices()


def get_notifier(settings: Settings = Depends(get_settings)) -> ResendNotifier:
    return ResendNotifier.from_settings(settings)
