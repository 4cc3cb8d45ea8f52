from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from venue_inventory.models import RawMaterial, StockAlert, StockAlertStatus, StockAlertType
from venue_inventory.services.errors import InventoryValidationError, NotFoundError

logger = logging.getLogger('venue_inventory.alerts')

OPEN_ALERT_STATUSES = (StockAlertStatus.ACTIVE, StockAlertStatus.ACKNOWLEDGED)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def required_alerts(material: RawMaterial) -> dict[StockAlertType, Decimal]:
    stock = material.current_stock
    required: dict[StockAlertType, Decimal] = {}
    if stock <= 0:
        required[StockAlertType.OUT_OF_STOCK] = Decimal('0')
    elif stock <= material.reorder_point:
        required[StockAlertType.LOW_STOCK] = material.reorder_point
    if material.maximum_stock is not None and stock > material.maximum_stock:
        required[StockAlertType.OVER_STOCK] = material.maximum_stock
    return required


def evaluate_stock_alerts(db: Session, material: RawMaterial) -> list[StockAlert]:
    required = required_alerts(material)
    open_alerts = db.execute(
        select(StockAlert).where(
            StockAlert.raw_material_id == material.id,
            StockAlert.status.in_(OPEN_ALERT_STATUSES),
        )
    ).scalars().all()

    seen: set[StockAlertType] = set()
    for alert in open_alerts:
        if alert.alert_type not in required:
            alert.status = StockAlertStatus.RESOLVED
            alert.resolved_at = _now()
            alert.current_level = material.current_stock
            alert.updated_at = _now()
            continue
        seen.add(alert.alert_type)
        alert.current_level = material.current_stock
        alert.updated_at = _now()

    created: list[StockAlert] = []
    for alert_type, threshold in required.items():
        if alert_type in seen:
            continue
        alert = StockAlert(
            venue_id=material.venue_id,
            raw_material_id=material.id,
            alert_type=alert_type,
            status=StockAlertStatus.ACTIVE,
            threshold=threshold,
            current_level=material.current_stock,
        )
        db.add(alert)
        created.append(alert)
        logger.info('Raised %s alert for raw material %s at %s', alert_type.value, material.id, material.current_stock)
    db.flush()
    return created


def list_alerts(
    db: Session,
    *,
    venue_id: int,
    status: StockAlertStatus | None = None,
    alert_type: StockAlertType | None = None,
    raw_material_id: int | None = None,
) -> list[StockAlert]:
    query = select(StockAlert).where(StockAlert.venue_id == venue_id).order_by(StockAlert.created_at.desc(), StockAlert.id.desc())
    if status is not None:
        query = query.where(StockAlert.status == status)
    if alert_type is not None:
        query = query.where(StockAlert.alert_type == alert_type)
    if raw_material_id is not None:
        query = query.where(StockAlert.raw_material_id == raw_material_id)
    return db.execute(query).scalars().all()


def count_active_alerts(db: Session, *, venue_id: int) -> dict[str, int]:
    rows = db.execute(
        select(StockAlert.alert_type, func.count(StockAlert.id))
        .where(StockAlert.venue_id == venue_id, StockAlert.status == StockAlertStatus.ACTIVE)
        .group_by(StockAlert.alert_type)
    ).all()
    counts = {alert_type.value: 0 for alert_type in StockAlertType}
    for alert_type, count in rows:
        counts[alert_type.value] = int(count)
    counts['total'] = sum(counts.values())
    return counts


def _get_alert(db: Session, *, venue_id: int, alert_id: int) -> StockAlert:
    alert = db.execute(
        select(StockAlert).where(StockAlert.id == alert_id, StockAlert.venue_id == venue_id)
    ).scalar_one_or_none()
    if alert is None:
        raise NotFoundError('Alert not found')
    return alert


def acknowledge_alert(db: Session, *, venue_id: int, alert_id: int, actor_principal_id: int | None) -> StockAlert:
    alert = _get_alert(db, venue_id=venue_id, alert_id=alert_id)
    if alert.status != StockAlertStatus.ACTIVE:
        raise InventoryValidationError('Only active alerts can be acknowledged')
    alert.status = StockAlertStatus.ACKNOWLEDGED
    alert.acknowledged_by_principal_id = actor_principal_id
    alert.acknowledged_at = _now()
    alert.updated_at = _now()
    db.flush()
    return alert


def resolve_alert(db: Session, *, venue_id: int, alert_id: int, actor_principal_id: int | None) -> StockAlert:
    alert = _get_alert(db, venue_id=venue_id, alert_id=alert_id)
    if alert.status not in OPEN_ALERT_STATUSES:
        raise InventoryValidationError('Alert is already closed')
    alert.status = StockAlertStatus.RESOLVED
    alert.resolved_by_principal_id = actor_principal_id
    alert.resolved_at = _now()
    alert.updated_at = _now()
    db.flush()
    return alert


def dismiss_alert(
    db: Session,
    *,
    venue_id: int,
    alert_id: int,
    actor_principal_id: int | None,
    reason: str | None = None,
) -> StockAlert:
    alert = _get_alert(db, venue_id=venue_id, alert_id=alert_id)
    if alert.status not in OPEN_ALERT_STATUSES:
        raise InventoryValidationError('Alert is already closed')
    alert.status = StockAlertStatus.DISMISSED
    alert.notes = (reason or '').strip() or None
    alert.resolved_by_principal_id = actor_principal_id
    alert.resolved_at = _now()
    alert.updated_at = _now()
    db.flush()
    return alert
