from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from venue_inventory.auth import MANAGE_ROLES, STOCK_ROLES, Principal, venue_principal
from venue_inventory.db import get_db
from venue_inventory.dependencies import audit_request
from venue_inventory.schemas import (
    CostBreakdownOut,
    RecalculatedOut,
    RecipeCreate,
    RecipeLineIn,
    RecipeOut,
    RecipeUpdate,
    StaleRecipeOut,
)
from venue_inventory.services.pricing_service import venue_currency
from venue_inventory.services.recipe_service import (
    RecipeLineInput,
    add_line,
    cost_breakdown,
    create_recipe,
    delete_recipe,
    get_recipe,
    list_stale_recipes,
    recalculate_all_recipes,
    remove_line,
    update_recipe,
)

router = APIRouter(prefix='/venues/{venue_id}/inventory', tags=['recipes'])
stock_access = venue_principal(*STOCK_ROLES)
manage_access = venue_principal(*MANAGE_ROLES)


def _line_inputs(lines: list[RecipeLineIn]) -> list[RecipeLineInput]:
    return [RecipeLineInput(**line.model_dump()) for line in lines]


def _recipe_out(db: Session, recipe, venue_id: int) -> RecipeOut:
    out = RecipeOut.model_validate(recipe)
    out.currency = venue_currency(db, venue_id=venue_id)
    return out


@router.get('/products/{product_id}/recipe', response_model=RecipeOut)
def read_recipe(
    venue_id: int,
    product_id: int,
    _: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    return _recipe_out(db, get_recipe(db, venue_id=venue_id, product_id=product_id), venue_id)


@router.post('/products/{product_id}/recipe', response_model=RecipeOut, status_code=201)
def create_product_recipe(
    venue_id: int,
    product_id: int,
    payload: RecipeCreate,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    recipe = create_recipe(
        db,
        venue_id=venue_id,
        product_id=product_id,
        portion_yield=payload.portion_yield,
        lines=_line_inputs(payload.lines),
        prep_time=payload.prep_time,
        cook_time=payload.cook_time,
        notes=payload.notes,
    )
    audit_request(
        db,
        request,
        principal,
        venue_id=venue_id,
        action='RECIPE_CREATED',
        metadata={'product_id': product_id, 'recipe_id': recipe.id, 'total_cost': recipe.total_cost},
    )
    db.commit()
    return _recipe_out(db, recipe, venue_id)


@router.patch('/products/{product_id}/recipe', response_model=RecipeOut)
def update_product_recipe(
    venue_id: int,
    product_id: int,
    payload: RecipeUpdate,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True, exclude={'lines'})
    lines = _line_inputs(payload.lines) if payload.lines is not None else None
    recipe = update_recipe(db, venue_id=venue_id, product_id=product_id, changes=changes, lines=lines)
    audit_request(
        db,
        request,
        principal,
        venue_id=venue_id,
        action='RECIPE_UPDATED',
        metadata={'product_id': product_id, 'fields': sorted(changes), 'lines_replaced': lines is not None},
    )
    db.commit()
    return _recipe_out(db, recipe, venue_id)


@router.delete('/products/{product_id}/recipe', status_code=204)
def delete_product_recipe(
    venue_id: int,
    product_id: int,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    delete_recipe(db, venue_id=venue_id, product_id=product_id)
    audit_request(db, request, principal, venue_id=venue_id, action='RECIPE_DELETED', metadata={'product_id': product_id})
    db.commit()
    return Response(status_code=204)


@router.post('/products/{product_id}/recipe/lines', response_model=RecipeOut)
def add_recipe_line(
    venue_id: int,
    product_id: int,
    payload: RecipeLineIn,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    recipe = add_line(db, venue_id=venue_id, product_id=product_id, line=RecipeLineInput(**payload.model_dump()))
    audit_request(
        db,
        request,
        principal,
        venue_id=venue_id,
        action='RECIPE_LINE_ADDED',
        metadata={'product_id': product_id, 'raw_material_id': payload.raw_material_id},
    )
    db.commit()
    return _recipe_out(db, recipe, venue_id)


@router.delete('/products/{product_id}/recipe/lines/{line_id}', response_model=RecipeOut)
def remove_recipe_line(
    venue_id: int,
    product_id: int,
    line_id: int,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    recipe = remove_line(db, venue_id=venue_id, product_id=product_id, line_id=line_id)
    audit_request(
        db,
        request,
        principal,
        venue_id=venue_id,
        action='RECIPE_LINE_REMOVED',
        metadata={'product_id': product_id, 'line_id': line_id},
    )
    db.commit()
    return _recipe_out(db, recipe, venue_id)


@router.get('/products/{product_id}/recipe/cost', response_model=CostBreakdownOut)
def recipe_cost(
    venue_id: int,
    product_id: int,
    _: Principal = Depends(stock_access),
    db: Session = Depends(get_db),
):
    breakdown = cost_breakdown(db, venue_id=venue_id, product_id=product_id)
    breakdown['currency'] = venue_currency(db, venue_id=venue_id)
    return breakdown


@router.post('/recipes/recalculate', response_model=RecalculatedOut)
def recalculate_recipes(
    venue_id: int,
    request: Request,
    principal: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    recipes = recalculate_all_recipes(db, venue_id=venue_id)
    audit_request(db, request, principal, venue_id=venue_id, action='RECIPES_RECALCULATED', metadata={'count': len(recipes)})
    db.commit()
    return RecalculatedOut(recalculated=len(recipes), recipe_ids=[recipe.id for recipe in recipes])


@router.get('/recipes/stale', response_model=list[StaleRecipeOut])
def stale_recipes(
    venue_id: int,
    _: Principal = Depends(manage_access),
    db: Session = Depends(get_db),
):
    return list_stale_recipes(db, venue_id=venue_id)
