"""
Repository functions over the ORM tables. All reads and writes are scoped to a
user_id; callers never see another user's rows.

Functions are synchronous; async callers run them via asyncio.to_thread.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy.exc import IntegrityError

from chainpulse.database.connection import session_scope
from chainpulse.database.models import Alert, PortfolioDaily, PortfolioSnapshot, Wallet, utcnow
from chainpulse.logging import get_logger, mask_address, mask_user_id

logger = get_logger(__name__)

ALERT_UPDATABLE_FIELDS = frozenset({"type", "asset", "asset_name", "condition", "threshold", "enabled"})


# -----------------------------------------------------------------------------
# Wallets
# -----------------------------------------------------------------------------


def add_wallet(user_id: str, address: str, chain: str, label: str | None = None) -> dict[str, Any] | None:
    """Insert a tracked wallet. Returns the row, or None if the user already tracks it."""
    label = (label or "").strip() or None
    try:
        with session_scope() as session:
            row = Wallet(user_id=user_id, address=address, chain=chain, label=label)
            session.add(row)
            session.flush()
            result = row.to_dict()
        logger.info("wallet_added", user=mask_user_id(user_id), address=mask_address(address), chain=chain)
        return result
    except IntegrityError:
        logger.info("wallet_already_tracked", user=mask_user_id(user_id), address=mask_address(address), chain=chain)
        return None


def list_wallets(user_id: str) -> list[dict[str, Any]]:
    with session_scope() as session:
        rows = session.query(Wallet).filter(Wallet.user_id == user_id).order_by(Wallet.id).all()
        return [r.to_dict() for r in rows]


def remove_wallet(user_id: str, address: str, chain: str) -> bool:
    """Delete a tracked wallet. Returns True if a row was removed."""
    with session_scope() as session:
        deleted = (
            session.query(Wallet)
            .filter(Wallet.user_id == user_id, Wallet.address == address, Wallet.chain == chain)
            .delete(synchronize_session=False)
        )
    if deleted:
        logger.info("wallet_removed", user=mask_user_id(user_id), address=mask_address(address), chain=chain)
    return bool(deleted)


def list_user_ids_with_wallets() -> list[str]:
    """Distinct users that track at least one wallet."""
    with session_scope() as session:
        rows = session.query(Wallet.user_id).distinct().order_by(Wallet.user_id).all()
        return [r[0] for r in rows]


# -----------------------------------------------------------------------------
# Alerts
# -----------------------------------------------------------------------------


def create_alert(
    user_id: str,
    *,
    type: str,
    asset: str,
    condition: str,
    threshold: float,
    asset_name: str | None = None,
    enabled: bool = True,
) -> dict[str, Any]:
    with session_scope() as session:
        row = Alert(
            user_id=user_id,
            type=type,
            asset=asset,
            asset_name=asset_name,
            condition=condition,
            threshold=threshold,
            enabled=enabled,
        )
        session.add(row)
        session.flush()
        result = row.to_dict()
    logger.info("alert_created", user=mask_user_id(user_id), alert_id=result["id"], asset=asset)
    return result


def list_alerts(user_id: str, *, enabled_only: bool = False) -> list[dict[str, Any]]:
    """Return the user's alerts, newest first."""
    with session_scope() as session:
        q = session.query(Alert).filter(Alert.user_id == user_id)
        if enabled_only:
            q = q.filter(Alert.enabled.is_(True))
        rows = q.order_by(Alert.created_at.desc(), Alert.id.desc()).all()
        return [r.to_dict() for r in rows]


def get_alert(user_id: str, alert_id: int) -> dict[str, Any] | None:
    with session_scope() as session:
        row = session.query(Alert).filter(Alert.user_id == user_id, Alert.id == alert_id).first()
        return row.to_dict() if row else None


def update_alert(user_id: str, alert_id: int, fields: dict[str, Any]) -> dict[str, Any] | None:
    """Apply allowed fields to the user's alert. Returns the updated row, or None if not found."""
    updates = {k: v for k, v in fields.items() if k in ALERT_UPDATABLE_FIELDS}
    with session_scope() as session:
        row = session.query(Alert).filter(Alert.user_id == user_id, Alert.id == alert_id).first()
        if row is None:
            return None
        for key, value in updates.items():
            setattr(row, key, value)
        session.flush()
        return row.to_dict()


def delete_alert(user_id: str, alert_id: int) -> bool:
    with session_scope() as session:
        deleted = (
            session.query(Alert)
            .filter(Alert.user_id == user_id, Alert.id == alert_id)
            .delete(synchronize_session=False)
        )
    return bool(deleted)


def mark_alert_triggered(alert_id: int, when: datetime | None = None) -> None:
    with session_scope() as session:
        session.query(Alert).filter(Alert.id == alert_id).update(
            {"last_triggered": when or utcnow()}, synchronize_session=False
        )


# -----------------------------------------------------------------------------
# Snapshots
# -----------------------------------------------------------------------------


def insert_snapshot(
    user_id: str,
    total_value: float,
    value_by_chain: dict[str, float],
    created_at: datetime | None = None,
) -> dict[str, Any]:
    with session_scope() as session:
        row = PortfolioSnapshot(
            user_id=user_id,
            total_value=total_value,
            value_by_chain=value_by_chain,
            created_at=created_at or utcnow(),
        )
        session.add(row)
        session.flush()
        return row.to_dict()


def list_snapshots(user_id: str, since: datetime, until: datetime | None = None) -> list[dict[str, Any]]:
    """Snapshots created at or after since (and before until, when given), oldest first."""
    with session_scope() as session:
        q = session.query(PortfolioSnapshot).filter(
            PortfolioSnapshot.user_id == user_id,
            PortfolioSnapshot.created_at >= since,
        )
        if until is not None:
            q = q.filter(PortfolioSnapshot.created_at < until)
        rows = q.order_by(PortfolioSnapshot.created_at, PortfolioSnapshot.id).all()
        return [r.to_dict() for r in rows]


def upsert_daily(
    user_id: str,
    day: date,
    *,
    open_value: float,
    close_value: float,
    high_value: float,
    low_value: float,
) -> dict[str, Any]:
    values = {
        "open_value": open_value,
        "close_value": close_value,
        "high_value": high_value,
        "low_value": low_value,
    }
    with session_scope() as session:
        row = (
            session.query(PortfolioDaily)
            .filter(PortfolioDaily.user_id == user_id, PortfolioDaily.date == day)
            .first()
        )
        if row is None:
            row = PortfolioDaily(user_id=user_id, date=day, **values)
            session.add(row)
        else:
            for key, value in values.items():
                setattr(row, key, value)
        session.flush()
        return row.to_dict()


def list_daily(user_id: str, since: date) -> list[dict[str, Any]]:
    with session_scope() as session:
        rows = (
            session.query(PortfolioDaily)
            .filter(PortfolioDaily.user_id == user_id, PortfolioDaily.date >= since)
            .order_by(PortfolioDaily.date)
            .all()
        )
        return [r.to_dict() for r in rows]
