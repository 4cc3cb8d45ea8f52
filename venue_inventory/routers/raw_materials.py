from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from venue_inventory.auth import MANAGE_ROLES, STOCK_ROLES, Principal, venue_principal
from venue_inventory.db import get_db
from venue_inventory.dependencies import audit_request
from venue_inventory.models import RawMaterialCategory
from venue_inventory.schemas import (
    AdjustStockRequest,
    ConfirmationRequiredOut,
    CostPreviewOut,
    GeneratedSkuOut,
    MovementOut,
    PhysicalCountRequest,
    RawMaterialCreate,
    RawMaterialOut,
    RawMaterialUpdate,
    RecipeUsageOut,
    StockPositionOut,
)
from venue_inventory.services.pricing_service import venue_currency
from venue_inventory.services.procurement_service import stock_position
from venue_inventory.services.raw_material_service import (
    RawMaterialInput,
    create_raw_material,
    delete_raw_material,
    generate_unique_sku,
    get_raw_material,
    list_raw_materials,
    list_recipes_using,
    preview_cost_change,
    update_raw_material,
)
from venue_inventory.services.stock_ledger_service import (
    adjust_raw_material_stock,
    list_movements,
    record_physical_count,
)
from venue_inventory.services.stock_math_service import ConfirmationRequired

router = APIRouter(prefix='/venues/{venue_id}/inventory/raw-materials', tags=['raw-materials'])
stock_access = venue_principal(*STOCK_ROLES)
manage_access = venue_principal(*MANAGE_ROLES)


def _material_out(db: Session, material, venue_id: int) -> RawMaterialOut:
    out = RawMaterialOut.model_validate(material)
    out.currency = venue_currency(db, venue_id=venue_id)
    return out


def _adjust_response(result, response: Response) -> MovementOut | ConfirmationRequiredOut:
    if isinstance(result, ConfirmationRequired):
        response.status_code = 202
        return ConfirmationRequiredOut.model_validate(result)
    response.status_code = 201
    return MovementOut.model_validate(result)


@router.get('', response_model=list[RawMaterialOut])
def list_materials(
    venue_id: int,
    category: RawMaterialCategory | None = None,
    active: bool | None = None,
    low_stock: bool = False,
    search: str | None = None,
    _: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    currency = venue_currency(db, venue_id=venue_id)
    rows = list_raw_materials(
        db,
        venue_id=venue_id,
        category=category,
        active=active,
        low_stock=low_stock,
        search=search,
    )
    return [RawMaterialOut.model_validate(row).model_copy(update={'currency': currency}) for row in rows]


@router.post('', response_model=RawMaterialOut, status_code=201)
def create_material(
    venue_id: int,
    payload: RawMaterialCreate,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    material = create_raw_material(
        db,
        venue_id=venue_id,
        data=RawMaterialInput(**payload.model_dump()),
        actor_principal_id=principal.id,
    )
    audit_request(
        db,
        request,
        principal,
        venue_id=venue_id,
        action='RAW_MATERIAL_CREATED',
        metadata={'raw_material_id': material.id, 'sku': material.sku},
    )
    db.commit()
    return _material_out(db, material, venue_id)


@router.post('/generate-sku', response_model=GeneratedSkuOut)
def generate_sku(
    venue_id: int,
    _: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    return GeneratedSkuOut(sku=generate_unique_sku(db, venue_id=venue_id))


@router.get('/{raw_material_id}', response_model=RawMaterialOut)
def get_material(
    venue_id: int,
    raw_material_id: int,
    _: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    material = get_raw_material(db, venue_id=venue_id, raw_material_id=raw_material_id)
    return _material_out(db, material, venue_id)


@router.patch('/{raw_material_id}', response_model=RawMaterialOut)
def update_material(
    venue_id: int,
    raw_material_id: int,
    payload: RawMaterialUpdate,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    material = update_raw_material(db, venue_id=venue_id, raw_material_id=raw_material_id, changes=changes)
    audit_request(
        db,
        request,
        principal,
        venue_id=venue_id,
        action='RAW_MATERIAL_UPDATED',
        metadata={'raw_material_id': material.id, 'fields': sorted(changes)},
    )
    db.commit()
    return _material_out(db, material, venue_id)


@router.delete('/{raw_material_id}', status_code=204)
def delete_material(
    venue_id: int,
    raw_material_id: int,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    delete_raw_material(db, venue_id=venue_id, raw_material_id=raw_material_id)
    audit_request(
        db,
        request,
        principal,
        venue_id=venue_id,
        action='RAW_MATERIAL_DELETED',
        metadata={'raw_material_id': raw_material_id},
    )
    db.commit()
    return Response(status_code=204)


@router.post('/{raw_material_id}/adjust', response_model=MovementOut | ConfirmationRequiredOut, status_code=201)
def adjust_stock(
    venue_id: int,
    raw_material_id: int,
    payload: AdjustStockRequest,
    request: Request,
    response: Response,
    principal: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    result = adjust_raw_material_stock(
        db,
        venue_id=venue_id,
        raw_material_id=raw_material_id,
        type=payload.type,
        quantity=payload.quantity,
        reason=payload.reason,
        reference=payload.reference,
        unit_cost=payload.unit_cost,
        actor_principal_id=principal.id,
        confirmation_token=payload.confirmation_token,
    )
    if not isinstance(result, ConfirmationRequired):
        audit_request(
            db,
            request,
            principal,
            venue_id=venue_id,
            action='RAW_MATERIAL_STOCK_ADJUSTED',
            metadata={'raw_material_id': raw_material_id, 'movement_id': result.id, 'type': result.type, 'quantity': result.quantity},
        )
    db.commit()
    return _adjust_response(result, response)


@router.post('/{raw_material_id}/count', response_model=MovementOut | ConfirmationRequiredOut, status_code=201)
def count_stock(
    venue_id: int,
    raw_material_id: int,
    payload: PhysicalCountRequest,
    request: Request,
    response: Response,
    principal: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    result = record_physical_count(
        db,
        venue_id=venue_id,
        raw_material_id=raw_material_id,
        counted_quantity=payload.counted_quantity,
        reason=payload.reason,
        actor_principal_id=principal.id,
        confirmation_token=payload.confirmation_token,
    )
    if not isinstance(result, ConfirmationRequired):
        audit_request(
            db,
            request,
            principal,
            venue_id=venue_id,
            action='RAW_MATERIAL_COUNTED',
            metadata={'raw_material_id': raw_material_id, 'movement_id': result.id, 'new_stock': result.new_stock},
        )
    db.commit()
    return _adjust_response(result, response)


@router.get('/{raw_material_id}/movements', response_model=list[MovementOut])
def material_movements(
    venue_id: int,
    raw_material_id: int,
    limit: int | None = Query(default=None, ge=1, le=1000),
    start: datetime | None = None,
    end: datetime | None = None,
    _: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    return list_movements(
        db,
        venue_id=venue_id,
        raw_material_id=raw_material_id,
        limit=limit,
        start=start,
        end=end,
    )


@router.get('/{raw_material_id}/stock-position', response_model=StockPositionOut)
def material_stock_position(
    venue_id: int,
    raw_material_id: int,
    _: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    return stock_position(db, venue_id=venue_id, raw_material_id=raw_material_id)


@router.get('/{raw_material_id}/recipes', response_model=list[RecipeUsageOut])
def material_recipes(
    venue_id: int,
    raw_material_id: int,
    _: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    return list_recipes_using(db, venue_id=venue_id, raw_material_id=raw_material_id)


@router.get('/{raw_material_id}/preview-cost-change', response_model=CostPreviewOut)
def material_cost_preview(
    venue_id: int,
    raw_material_id: int,
    proposed_cost: Decimal = Query(ge=0),
    _: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    preview = preview_cost_change(db, venue_id=venue_id, raw_material_id=raw_material_id, proposed_cost=proposed_cost)
    preview['currency'] = venue_currency(db, venue_id=venue_id)
    return preview
