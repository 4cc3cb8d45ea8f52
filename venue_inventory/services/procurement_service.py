from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from venue_inventory.models import PurchaseOrder, PurchaseOrderLine, PurchaseOrderStatus, RawMaterial, Supplier
from venue_inventory.services.errors import NotFoundError, UnitMismatchError
from venue_inventory.services.stock_math_service import normalize_quantity
from venue_inventory.services.units import convert_quantity

logger = logging.getLogger('venue_inventory.procurement')

OPEN_STATUSES = (
    PurchaseOrderStatus.SENT,
    PurchaseOrderStatus.CONFIRMED,
    PurchaseOrderStatus.SHIPPED,
    PurchaseOrderStatus.PARTIAL,
)


def outstanding_quantity(quantity_ordered: Decimal, quantity_received: Decimal) -> Decimal:
    return max(Decimal('0'), quantity_ordered - quantity_received)


def _outstanding_expr():
    remaining = PurchaseOrderLine.quantity_ordered - PurchaseOrderLine.quantity_received
    return case((remaining > 0, remaining), else_=0)


def confirmed_stock_by_material(
    db: Session,
    *,
    venue_id: int,
    raw_material_ids: list[int] | None = None,
) -> dict[int, Decimal]:
    """Outstanding quantity on open purchase orders, in each material's stock unit."""
    query = (
        select(
            PurchaseOrderLine.raw_material_id,
            RawMaterial.unit,
            PurchaseOrderLine.unit,
            func.sum(_outstanding_expr()),
        )
        .join(PurchaseOrder, PurchaseOrder.id == PurchaseOrderLine.purchase_order_id)
        .join(RawMaterial, RawMaterial.id == PurchaseOrderLine.raw_material_id)
        .where(PurchaseOrder.venue_id == venue_id, PurchaseOrder.status.in_(OPEN_STATUSES))
        .group_by(PurchaseOrderLine.raw_material_id, RawMaterial.unit, PurchaseOrderLine.unit)
    )
    if raw_material_ids is not None:
        if not raw_material_ids:
            return {}
        query = query.where(PurchaseOrderLine.raw_material_id.in_(raw_material_ids))

    totals: dict[int, Decimal] = {}
    for raw_material_id, stock_unit, line_unit, subtotal in db.execute(query).all():
        try:
            quantity = convert_quantity(Decimal(str(subtotal or 0)), line_unit, stock_unit)
        except UnitMismatchError:
            logger.warning(
                'Skipping open order quantity in %s for raw material %s stocked in %s',
                line_unit.value,
                raw_material_id,
                stock_unit.value,
            )
            continue
        totals[raw_material_id] = totals.get(raw_material_id, Decimal('0')) + quantity
    return {raw_material_id: normalize_quantity(total) for raw_material_id, total in totals.items()}


def confirmed_stock(db: Session, *, venue_id: int, raw_material_id: int) -> Decimal:
    totals = confirmed_stock_by_material(db, venue_id=venue_id, raw_material_ids=[raw_material_id])
    return totals.get(raw_material_id, Decimal('0'))


def stock_position(db: Session, *, venue_id: int, raw_material_id: int) -> dict:
    material = db.execute(
        select(RawMaterial).where(RawMaterial.id == raw_material_id, RawMaterial.venue_id == venue_id)
    ).scalar_one_or_none()
    if material is None:
        raise NotFoundError('Raw material not found')
    # Reported alongside on-hand stock, never added to it.
    return {
        'raw_material_id': material.id,
        'unit': material.unit.value,
        'current_stock': material.current_stock,
        'confirmed_stock': confirmed_stock(db, venue_id=venue_id, raw_material_id=material.id),
    }


def list_purchase_orders(
    db: Session,
    *,
    venue_id: int,
    statuses: list[PurchaseOrderStatus] | None = None,
) -> list[dict]:
    query = (
        select(PurchaseOrder, Supplier.name)
        .join(Supplier, Supplier.id == PurchaseOrder.supplier_id)
        .where(PurchaseOrder.venue_id == venue_id)
        .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
    )
    if statuses:
        query = query.where(PurchaseOrder.status.in_(statuses))
    orders = db.execute(query).all()
    if not orders:
        return []

    order_ids = [order.id for order, _supplier_name in orders]
    lines_by_order: dict[int, list[dict]] = {order_id: [] for order_id in order_ids}
    line_rows = db.execute(
        select(PurchaseOrderLine, RawMaterial.name)
        .join(RawMaterial, RawMaterial.id == PurchaseOrderLine.raw_material_id)
        .where(PurchaseOrderLine.purchase_order_id.in_(order_ids))
        .order_by(PurchaseOrderLine.purchase_order_id.asc(), PurchaseOrderLine.id.asc())
    ).all()
    for line, material_name in line_rows:
        lines_by_order[line.purchase_order_id].append(
            {
                'id': line.id,
                'raw_material_id': line.raw_material_id,
                'raw_material_name': material_name,
                'quantity_ordered': line.quantity_ordered,
                'quantity_received': line.quantity_received,
                'outstanding_quantity': outstanding_quantity(line.quantity_ordered, line.quantity_received),
                'unit': line.unit.value,
                'unit_price': line.unit_price,
            }
        )

    return [
        {
            'id': order.id,
            'order_number': order.order_number,
            'status': order.status.value,
            'supplier_id': order.supplier_id,
            'supplier_name': supplier_name,
            'expected_delivery_date': order.expected_delivery_date,
            'created_at': order.created_at,
            'lines': lines_by_order[order.id],
        }
        for order, supplier_name in orders
    ]
