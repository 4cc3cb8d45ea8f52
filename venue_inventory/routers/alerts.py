from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from venue_inventory.auth import MANAGE_ROLES, STOCK_ROLES, Principal, venue_principal
from venue_inventory.db import get_db
from venue_inventory.dependencies import audit_request
from venue_inventory.models import StockAlertStatus, StockAlertType
from venue_inventory.schemas import AlertOut, DismissAlertRequest
from venue_inventory.services.alert_service import (
    acknowledge_alert,
    count_active_alerts,
    dismiss_alert,
    list_alerts,
    resolve_alert,
)

router = APIRouter(prefix='/venues/{venue_id}/inventory/alerts', tags=['alerts'])
stock_access = venue_principal(*STOCK_ROLES)
manage_access = venue_principal(*MANAGE_ROLES)


@router.get('', response_model=list[AlertOut])
def read_alerts(
    venue_id: int,
    status: StockAlertStatus | None = None,
    alert_type: StockAlertType | None = None,
    raw_material_id: int | None = None,
    _: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    return list_alerts(
        db,
        venue_id=venue_id,
        status=status,
        alert_type=alert_type,
        raw_material_id=raw_material_id,
    )


@router.get('/count')
def read_alert_count(
    venue_id: int,
    _: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
) -> dict[str, int]:
    return count_active_alerts(db, venue_id=venue_id)


@router.post('/{alert_id}/acknowledge', response_model=AlertOut)
def acknowledge(
    venue_id: int,
    alert_id: int,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    alert = acknowledge_alert(db, venue_id=venue_id, alert_id=alert_id, actor_principal_id=principal.id)
    audit_request(db, request, principal, venue_id=venue_id, action='ALERT_ACKNOWLEDGED', metadata={'alert_id': alert_id})
    db.commit()
    return alert


@router.post('/{alert_id}/resolve', response_model=AlertOut)
def resolve(
    venue_id: int,
    alert_id: int,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    alert = resolve_alert(db, venue_id=venue_id, alert_id=alert_id, actor_principal_id=principal.id)
    audit_request(db, request, principal, venue_id=venue_id, action='ALERT_RESOLVED', metadata={'alert_id': alert_id})
    db.commit()
    return alert


@router.post('/{alert_id}/dismiss', response_model=AlertOut)
def dismiss(
    venue_id: int,
    alert_id: int,
    request: Request,
    payload: DismissAlertRequest | None = None,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    reason = payload.reason if payload is not None else None
    alert = dismiss_alert(db, venue_id=venue_id, alert_id=alert_id, actor_principal_id=principal.id, reason=reason)
    audit_request(
        db,
        request,
        principal,
        venue_id=venue_id,
        action='ALERT_DISMISSED',
        metadata={'alert_id': alert_id, 'reason': reason},
    )
    db.commit()
    return alert
