"""
ORM tables: tracked wallets, price alerts, portfolio snapshots and daily rollups.

Timestamps are stored as UTC. SQLite drops tzinfo on read, so consumers go
through as_utc() before comparing.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    UniqueConstraint,
)

from chainpulse.database.connection import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


class Wallet(Base):
    """One (address, chain) pair a signed-in user tracks."""

    __tablename__ = "wallets"
    __table_args__ = (UniqueConstraint("user_id", "address", "chain", name="uq_wallets_user_address_chain"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    address = Column(String(256), nullable=False)
    chain = Column(String(32), nullable=False)
    label = Column(String(256), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "address": self.address,
            "chain": self.chain,
            "label": self.label,
            "created_at": _iso(self.created_at),
        }


class Alert(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    type = Column(String(32), nullable=False)  # price | percent_change
    asset = Column(String(32), nullable=False)
    asset_name = Column(String(128), nullable=True)
    condition = Column(String(16), nullable=False)  # above | below
    threshold = Column(Float, nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    last_triggered = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "asset": self.asset,
            "asset_name": self.asset_name,
            "condition": self.condition,
            "threshold": self.threshold,
            "enabled": self.enabled,
            "last_triggered": _iso(self.last_triggered),
            "created_at": _iso(self.created_at),
        }


class PortfolioSnapshot(Base):
    """Hourly total value per user; append-only."""

    __tablename__ = "portfolio_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    total_value = Column(Float, nullable=False)
    value_by_chain = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "total_value": self.total_value,
            "value_by_chain": self.value_by_chain or {},
            "created_at": _iso(self.created_at),
        }


class PortfolioDaily(Base):
    """Daily open/close/high/low rollup; upserted on (user_id, date)."""

    __tablename__ = "portfolio_daily"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_portfolio_daily_user_date"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    date = Column(Date, nullable=False)
    open_value = Column(Float, nullable=False)
    close_value = Column(Float, nullable=False)
    high_value = Column(Float, nullable=False)
    low_value = Column(Float, nullable=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "date": self.date.isoformat(),
            "open_value": self.open_value,
            "close_value": self.close_value,
            "high_value": self.high_value,
            "low_value": self.low_value,
        }
