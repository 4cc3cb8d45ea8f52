from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from decimal import Decimal

from venue_inventory.models import MovementType
from venue_inventory.services.errors import InventoryValidationError, NegativeStockError

QUANTITY_QUANTUM = Decimal('0.0001')


@dataclass(frozen=True)
class AdjustmentRequest:
    scope: str
    target_id: int
    venue_id: int
    type: MovementType
    quantity: Decimal
    reason: str | None = None
    reference: str | None = None


@dataclass(frozen=True)
class ConfirmationRequired:
    token: str
    previous_stock: Decimal
    quantity: Decimal
    projected_stock: Decimal
    ratio: Decimal


@dataclass(frozen=True)
class AdjustmentPlan:
    previous_stock: Decimal
    quantity: Decimal
    new_stock: Decimal
    is_large: bool
    token: str


def normalize_quantity(value: Decimal) -> Decimal:
    if not isinstance(value, Decimal):
        raise InventoryValidationError('Quantities must be decimal values')
    if not value.is_finite():
        raise InventoryValidationError('Quantity must be a finite number')
    return value.quantize(QUANTITY_QUANTUM)


def is_large_adjustment(previous_stock: Decimal, quantity: Decimal, ratio: Decimal) -> bool:
    if previous_stock <= 0:
        return False
    return abs(quantity) > previous_stock * ratio


def adjustment_ratio(previous_stock: Decimal, quantity: Decimal) -> Decimal:
    if previous_stock <= 0:
        return Decimal('0')
    return (abs(quantity) / previous_stock).quantize(QUANTITY_QUANTUM)


def proposal_token(
    request: AdjustmentRequest,
    previous_stock: Decimal,
    secret: str,
    last_movement_id: int | None = None,
) -> str:
    # Bound to the observed stock and the latest movement: any committed movement
    # in between invalidates it, even one that leaves the stock where it was.
    payload = '|'.join(
        [
            request.scope,
            str(request.venue_id),
            str(request.target_id),
            request.type.value,
            str(normalize_quantity(request.quantity)),
            str(normalize_quantity(previous_stock)),
            str(last_movement_id or 0),
            request.reason or '',
            request.reference or '',
        ]
    )
    return hmac.new(secret.encode('utf-8'), payload.encode('utf-8'), hashlib.sha256).hexdigest()


def plan_adjustment(
    request: AdjustmentRequest,
    previous_stock: Decimal,
    *,
    ratio: Decimal,
    secret: str,
    last_movement_id: int | None = None,
) -> AdjustmentPlan:
    quantity = normalize_quantity(request.quantity)
    if quantity == 0:
        raise InventoryValidationError('Adjustment quantity cannot be zero')
    new_stock = previous_stock + quantity
    if new_stock < 0:
        raise NegativeStockError(current_stock=previous_stock, quantity=quantity)

    large = is_large_adjustment(previous_stock, quantity, ratio)
    return AdjustmentPlan(
        previous_stock=previous_stock,
        quantity=quantity,
        new_stock=new_stock,
        is_large=large,
        token=proposal_token(request, previous_stock, secret, last_movement_id),
    )


def confirmation_for(plan: AdjustmentPlan) -> ConfirmationRequired:
    return ConfirmationRequired(
        token=plan.token,
        previous_stock=plan.previous_stock,
        quantity=plan.quantity,
        projected_stock=plan.new_stock,
        ratio=adjustment_ratio(plan.previous_stock, plan.quantity),
    )


def tokens_match(expected: str | None, supplied: str | None) -> bool:
    if not expected or not supplied:
        return False
    return hmac.compare_digest(expected, supplied)


def weighted_average_cost(
    on_hand: Decimal,
    current_avg: Decimal,
    received: Decimal,
    received_unit_cost: Decimal,
) -> Decimal:
    if received <= 0:
        return current_avg
    on_hand = max(on_hand, Decimal('0'))
    total_qty = on_hand + received
    if total_qty <= 0:
        return received_unit_cost
    return ((on_hand * current_avg + received * received_unit_cost) / total_qty).quantize(QUANTITY_QUANTUM)
