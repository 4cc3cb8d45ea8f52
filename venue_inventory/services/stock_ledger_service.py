from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from venue_inventory.config import settings
from venue_inventory.models import MovementType, RawMaterial, RawMaterialMovement
from venue_inventory.services.alert_service import evaluate_stock_alerts
from venue_inventory.services.errors import InventoryValidationError, NotFoundError, StaleConfirmationError
from venue_inventory.services.stock_math_service import (
    AdjustmentRequest,
    ConfirmationRequired,
    confirmation_for,
    normalize_quantity,
    plan_adjustment,
    tokens_match,
    weighted_average_cost,
)

logger = logging.getLogger('venue_inventory.ledger')

RAW_MATERIAL_SCOPE = 'raw_material'


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _lock_material(db: Session, *, venue_id: int, raw_material_id: int) -> RawMaterial:
    material = db.execute(
        select(RawMaterial)
        .where(RawMaterial.id == raw_material_id, RawMaterial.venue_id == venue_id)
        .with_for_update()
    ).scalar_one_or_none()
    if material is None:
        raise NotFoundError('Raw material not found')
    return material


def _movement_for_token(db: Session, *, raw_material_id: int, token: str) -> RawMaterialMovement | None:
    return db.execute(
        select(RawMaterialMovement).where(
            RawMaterialMovement.raw_material_id == raw_material_id,
            RawMaterialMovement.confirmation_token == token,
        )
    ).scalar_one_or_none()


def _last_movement_id(db: Session, *, raw_material_id: int) -> int | None:
    return db.execute(
        select(func.max(RawMaterialMovement.id)).where(RawMaterialMovement.raw_material_id == raw_material_id)
    ).scalar_one()


def adjust_raw_material_stock(
    db: Session,
    *,
    venue_id: int,
    raw_material_id: int,
    type: MovementType,
    quantity: Decimal,
    reason: str | None = None,
    reference: str | None = None,
    unit_cost: Decimal | None = None,
    actor_principal_id: int | None = None,
    confirmation_token: str | None = None,
) -> RawMaterialMovement | ConfirmationRequired:
    """Apply a signed stock delta to one raw material.

    Large deltas (more than ``settings.large_adjustment_ratio`` of a positive
    stock) are answered with a ``ConfirmationRequired`` dry run and commit only
    when the returned token is sent back. A retried confirmation returns the
    movement it already produced.
    """
    material = _lock_material(db, venue_id=venue_id, raw_material_id=raw_material_id)

    clean_token = (confirmation_token or '').strip() or None
    if clean_token:
        replay = _movement_for_token(db, raw_material_id=material.id, token=clean_token)
        if replay is not None:
            logger.info('Replayed confirmed movement %s for raw material %s', replay.id, material.id)
            return replay

    request = AdjustmentRequest(
        scope=RAW_MATERIAL_SCOPE,
        target_id=material.id,
        venue_id=venue_id,
        type=type,
        quantity=quantity,
        reason=reason,
        reference=reference,
    )
    plan = plan_adjustment(
        request,
        material.current_stock,
        ratio=settings.large_adjustment_ratio,
        secret=settings.app_secret_key,
        last_movement_id=_last_movement_id(db, raw_material_id=material.id),
    )
    if clean_token and not tokens_match(plan.token, clean_token):
        raise StaleConfirmationError(current_stock=material.current_stock)
    if plan.is_large and not clean_token:
        logger.info(
            'Large adjustment of %s on raw material %s (stock %s) needs confirmation',
            plan.quantity,
            material.id,
            plan.previous_stock,
        )
        return confirmation_for(plan)

    if unit_cost is not None and unit_cost < 0:
        raise InventoryValidationError('Unit cost cannot be negative')

    movement = RawMaterialMovement(
        venue_id=venue_id,
        raw_material_id=material.id,
        type=type,
        quantity=plan.quantity,
        previous_stock=plan.previous_stock,
        new_stock=plan.new_stock,
        unit_cost=unit_cost if unit_cost is not None else material.cost_per_unit,
        reason=(reason or '').strip() or None,
        reference=(reference or '').strip() or None,
        confirmation_token=clean_token,
        created_by_principal_id=actor_principal_id,
    )
    db.add(movement)

    if type == MovementType.PURCHASE and plan.quantity > 0:
        if unit_cost is not None:
            material.avg_cost_per_unit = weighted_average_cost(
                plan.previous_stock,
                material.avg_cost_per_unit,
                plan.quantity,
                unit_cost,
            )
        material.last_restock_at = _now()
    if type == MovementType.COUNT:
        material.last_count_at = _now()
    material.current_stock = plan.new_stock
    material.updated_at = _now()
    db.flush()

    evaluate_stock_alerts(db, material)
    logger.info(
        'Raw material %s %s %s: %s -> %s',
        material.id,
        type.value,
        plan.quantity,
        plan.previous_stock,
        plan.new_stock,
    )
    return movement


def record_physical_count(
    db: Session,
    *,
    venue_id: int,
    raw_material_id: int,
    counted_quantity: Decimal,
    reason: str | None = None,
    actor_principal_id: int | None = None,
    confirmation_token: str | None = None,
) -> RawMaterialMovement | ConfirmationRequired:
    counted = normalize_quantity(counted_quantity)
    if counted < 0:
        raise InventoryValidationError('Counted quantity cannot be negative')
    # The delta is taken from the locked row so a concurrent movement cannot slip in between.
    material = _lock_material(db, venue_id=venue_id, raw_material_id=raw_material_id)
    clean_token = (confirmation_token or '').strip() or None
    if clean_token:
        replay = _movement_for_token(db, raw_material_id=material.id, token=clean_token)
        if replay is not None:
            return replay
    delta = counted - material.current_stock
    if delta == 0:
        raise InventoryValidationError('Counted quantity matches current stock')
    return adjust_raw_material_stock(
        db,
        venue_id=venue_id,
        raw_material_id=raw_material_id,
        type=MovementType.COUNT,
        quantity=delta,
        reason=reason or 'Physical count',
        actor_principal_id=actor_principal_id,
        confirmation_token=confirmation_token,
    )


def list_movements(
    db: Session,
    *,
    venue_id: int,
    raw_material_id: int,
    limit: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[RawMaterialMovement]:
    exists = db.execute(
        select(RawMaterial.id).where(RawMaterial.id == raw_material_id, RawMaterial.venue_id == venue_id)
    ).scalar_one_or_none()
    if exists is None:
        raise NotFoundError('Raw material not found')

    effective_limit = limit if limit is not None else settings.movement_history_limit
    if effective_limit < 1:
        raise InventoryValidationError('Limit must be at least 1')

    query = (
        select(RawMaterialMovement)
        .where(RawMaterialMovement.raw_material_id == raw_material_id)
        .order_by(RawMaterialMovement.created_at.desc(), RawMaterialMovement.id.desc())
        .limit(effective_limit)
    )
    if start is not None:
        query = query.where(RawMaterialMovement.created_at >= start)
    if end is not None:
        query = query.where(RawMaterialMovement.created_at <= end)
    return db.execute(query).scalars().all()
