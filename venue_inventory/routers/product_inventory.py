from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from venue_inventory.auth import MANAGE_ROLES, STOCK_ROLES, Principal, venue_principal
from venue_inventory.db import get_db
from venue_inventory.dependencies import audit_request
from venue_inventory.schemas import (
    ConfirmationRequiredOut,
    EnableTrackingRequest,
    InventoryStatusOut,
    ProductAdjustRequest,
    ProductInventoryOut,
    ProductMovementOut,
    RecipeCreate,
    RecipeOut,
    TrackingStateOut,
)
from venue_inventory.services.product_inventory_service import (
    adjust_product_stock,
    convert_to_recipe,
    disable_tracking,
    enable_quantity_tracking,
    inventory_status,
    list_product_movements,
)
from venue_inventory.services.recipe_service import RecipeLineInput
from venue_inventory.services.stock_math_service import ConfirmationRequired

router = APIRouter(prefix='/venues/{venue_id}/inventory/products/{product_id}', tags=['product-inventory'])
stock_access = venue_principal(*STOCK_ROLES)
manage_access = venue_principal(*MANAGE_ROLES)


@router.post('/inventory', response_model=ProductInventoryOut, status_code=201)
def enable_tracking(
    venue_id: int,
    product_id: int,
    payload: EnableTrackingRequest,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    inventory = enable_quantity_tracking(
        db,
        venue_id=venue_id,
        product_id=product_id,
        initial_stock=payload.initial_stock,
        minimum_stock=payload.minimum_stock,
        reorder_point=payload.reorder_point,
        cost_per_unit=payload.cost_per_unit,
        actor_principal_id=principal.id,
    )
    audit_request(
        db,
        request,
        principal,
        venue_id=venue_id,
        action='PRODUCT_QUANTITY_TRACKING_ENABLED',
        metadata={'product_id': product_id, 'initial_stock': payload.initial_stock},
    )
    db.commit()
    return inventory


@router.post('/inventory/adjust', response_model=ProductMovementOut | ConfirmationRequiredOut, status_code=201)
def adjust_stock(
    venue_id: int,
    product_id: int,
    payload: ProductAdjustRequest,
    request: Request,
    response: Response,
    principal: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    result = adjust_product_stock(
        db,
        venue_id=venue_id,
        product_id=product_id,
        type=payload.type,
        quantity=payload.quantity,
        reason=payload.reason,
        reference=payload.reference,
        actor_principal_id=principal.id,
        confirmation_token=payload.confirmation_token,
    )
    if isinstance(result, ConfirmationRequired):
        db.commit()
        response.status_code = 202
        return ConfirmationRequiredOut.model_validate(result)

    audit_request(
        db,
        request,
        principal,
        venue_id=venue_id,
        action='PRODUCT_STOCK_ADJUSTED',
        metadata={'product_id': product_id, 'movement_id': result.id, 'type': result.type, 'quantity': result.quantity},
    )
    db.commit()
    return ProductMovementOut.model_validate(result)


@router.get('/inventory/movements', response_model=list[ProductMovementOut])
def product_movements(
    venue_id: int,
    product_id: int,
    limit: int | None = Query(default=None, ge=1, le=1000),
    _: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    return list_product_movements(db, venue_id=venue_id, product_id=product_id, limit=limit)


@router.post('/inventory/convert-to-recipe', response_model=RecipeOut, status_code=201)
def convert_product_to_recipe(
    venue_id: int,
    product_id: int,
    payload: RecipeCreate,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    recipe = convert_to_recipe(
        db,
        venue_id=venue_id,
        product_id=product_id,
        portion_yield=payload.portion_yield,
        lines=[RecipeLineInput(**line.model_dump()) for line in payload.lines],
        prep_time=payload.prep_time,
        cook_time=payload.cook_time,
        notes=payload.notes,
    )
    audit_request(
        db,
        request,
        principal,
        venue_id=venue_id,
        action='PRODUCT_CONVERTED_TO_RECIPE',
        metadata={'product_id': product_id, 'recipe_id': recipe.id},
    )
    db.commit()
    return recipe


@router.delete('/inventory', response_model=TrackingStateOut)
def disable_product_tracking(
    venue_id: int,
    product_id: int,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    product = disable_tracking(db, venue_id=venue_id, product_id=product_id)
    audit_request(
        db,
        request,
        principal,
        venue_id=venue_id,
        action='PRODUCT_TRACKING_DISABLED',
        metadata={'product_id': product_id},
    )
    db.commit()
    return product


@router.get('/inventory/status', response_model=InventoryStatusOut)
def product_inventory_status(
    venue_id: int,
    product_id: int,
    _: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    return inventory_status(db, venue_id=venue_id, product_id=product_id)
