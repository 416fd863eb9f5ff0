"""
FastAPI router: price alert CRUD and the on-demand alert check for the caller.
"""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from chainpulse.alerts.email import ResendNotifier
from chainpulse.alerts.engine import AlertCondition, AlertType, check_user_alerts
from chainpulse.api_server.deps import CurrentUser, get_alert_prices, get_current_user, get_notifier
from chainpulse.core.http import new_client
from chainpulse.database import repositories
from chainpulse.logging import get_logger, mask_user_id
from chainpulse.pricing import PriceResolver

logger = get_logger(__name__)

router = APIRouter(prefix="/alerts", tags=["alerts"])

_ALERT_TYPES = {t.value for t in AlertType}
_CONDITIONS = {c.value for c in AlertCondition}


class CreateAlertRequest(BaseModel):
    """POST /alerts body. Fields are validated by hand so errors carry stable messages."""

    type: str | None = None
    asset: str | None = None
    asset_name: str | None = None
    condition: str | None = None
    threshold: float | str | None = None


class UpdateAlertRequest(BaseModel):
    type: str | None = None
    asset: str | None = None
    asset_name: str | None = None
    condition: str | None = None
    threshold: float | str | None = None
    enabled: bool | None = None


def _parse_threshold(value: Any) -> float:
    try:
        threshold = float(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid threshold") from None
    if threshold != threshold or threshold <= 0:
        raise HTTPException(status_code=400, detail="Invalid threshold")
    return threshold


def _validate_fields(fields: dict[str, Any]) -> dict[str, Any]:
    if "type" in fields and fields["type"] not in _ALERT_TYPES:
        raise HTTPException(status_code=400, detail="Invalid alert type")
    if "condition" in fields and fields["condition"] not in _CONDITIONS:
        raise HTTPException(status_code=400, detail="Invalid condition")
    if "threshold" in fields:
        fields["threshold"] = _parse_threshold(fields["threshold"])
    if "asset" in fields:
        fields["asset"] = str(fields["asset"]).strip().upper()
        if not fields["asset"]:
            raise HTTPException(status_code=400, detail="Missing required fields")
    return fields


@router.get("")
async def list_alerts(user: CurrentUser = Depends(get_current_user)) -> dict:
    try:
        alerts = await asyncio.to_thread(repositories.list_alerts, user.id)
    except Exception as e:
        logger.exception("alerts_fetch_failed", user=mask_user_id(user.id), error=str(e))
        raise HTTPException(status_code=500, detail="Failed to fetch alerts") from e
    return {"alerts": alerts}


@router.post("")
async def create_alert(body: CreateAlertRequest, user: CurrentUser = Depends(get_current_user)):
    if not body.type or not body.asset or not body.condition or body.threshold in (None, ""):
        raise HTTPException(status_code=400, detail="Missing required fields")
    fields = _validate_fields(body.model_dump(exclude_none=True))
    try:
        alert = await asyncio.to_thread(
            repositories.create_alert,
            user.id,
            type=fields["type"],
            asset=fields["asset"],
            asset_name=fields.get("asset_name"),
            condition=fields["condition"],
            threshold=fields["threshold"],
        )
    except Exception as e:
        logger.exception("alert_create_failed", user=mask_user_id(user.id), error=str(e))
        raise HTTPException(status_code=500, detail="Failed to create alert") from e
    return JSONResponse(status_code=201, content={"alert": alert})


@router.patch("")
async def update_alert(
    body: UpdateAlertRequest,
    alert_id: int | None = Query(None, alias="id"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    if alert_id is None:
        raise HTTPException(status_code=400, detail="Alert ID required")
    fields = {k: v for k, v in body.model_dump(exclude_unset=True).items() if k in repositories.ALERT_UPDATABLE_FIELDS}
    fields = {k: v for k, v in fields.items() if v is not None}
    if not fields:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    fields = _validate_fields(fields)
    try:
        alert = await asyncio.to_thread(repositories.update_alert, user.id, alert_id, fields)
    except Exception as e:
        logger.exception("alert_update_failed", user=mask_user_id(user.id), alert_id=alert_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to update alert") from e
    if alert is None:
        raise HTTPException(status_code=404, detail="Alert not found")
    return {"alert": alert}


@router.delete("")
async def delete_alert(
    alert_id: int | None = Query(None, alias="id"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    if alert_id is None:
        raise HTTPException(status_code=400, detail="Alert ID required")
    try:
        await asyncio.to_thread(repositories.delete_alert, user.id, alert_id)
    except Exception as e:
        logger.exception("alert_delete_failed", user=mask_user_id(user.id), alert_id=alert_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to delete alert") from e
    return {"success": True}


@router.api_route("/check", methods=["GET", "POST"])
async def check_alerts(
    user: CurrentUser = Depends(get_current_user),
    prices: PriceResolver = Depends(get_alert_prices),
    notifier: ResendNotifier = Depends(get_notifier),
) -> dict:
    """Evaluate the caller's enabled alerts now."""
    try:
        async with new_client() as client:
            result = await check_user_alerts(
                user.id,
                prices=prices,
                client=client,
                user_email=user.email,
                notifier=notifier,
            )
    except Exception as e:
        logger.exception("alert_check_failed", user=mask_user_id(user.id), error=str(e))
        raise HTTPException(status_code=500, detail="Failed to check alerts") from e
    return result.to_dict()
