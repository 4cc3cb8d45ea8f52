from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from venue_inventory.auth import STOCK_ROLES, Principal, venue_principal
from venue_inventory.db import get_db
from venue_inventory.models import PurchaseOrderStatus
from venue_inventory.schemas import PurchaseOrderOut
from venue_inventory.services.procurement_service import list_purchase_orders

router = APIRouter(prefix='/venues/{venue_id}/inventory/purchase-orders', tags=['purchase-orders'])
stock_access = venue_principal(*STOCK_ROLES)


def _parse_statuses(raw: str | None) -> list[PurchaseOrderStatus] | None:
    if not raw:
        return None
    statuses = []
    for part in raw.split(','):
        value = part.strip().upper()
        if not value:
            continue
        try:
            statuses.append(PurchaseOrderStatus(value))
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=f'Unknown purchase order status: {value}') from exc
    return statuses or None


@router.get('', response_model=list[PurchaseOrderOut])
def list_orders(
    venue_id: int,
    status: str | None = None,
    _: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    return list_purchase_orders(db, venue_id=venue_id, statuses=_parse_statuses(status))
