from __future__ import annotations

import logging
import random
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from venue_inventory.config import settings
from venue_inventory.models import (
    MovementType,
    Product,
    RawMaterial,
    RawMaterialCategory,
    RawMaterialMovement,
    Recipe,
    RecipeLine,
    Unit,
)
from venue_inventory.services.errors import (
    DuplicateSkuError,
    InventoryValidationError,
    MaterialInUseError,
    NotFoundError,
    SkuGenerationExhausted,
)
from venue_inventory.services.pricing_service import ProfitabilityStatus, classify_profitability, food_cost_percentage
from venue_inventory.services.recipe_service import compute_line_cost, recalculate_recipes_for_material
from venue_inventory.services.stock_math_service import normalize_quantity

logger = logging.getLogger('venue_inventory.catalog')

TEXT_FIELDS = {'name', 'description', 'sku', 'gtin'}

UPDATABLE_FIELDS = {
    'name',
    'description',
    'sku',
    'gtin',
    'category',
    'unit',
    'minimum_stock',
    'reorder_point',
    'maximum_stock',
    'cost_per_unit',
    'perishable',
    'shelf_life_days',
    'active',
}


@dataclass(frozen=True)
class RawMaterialInput:
    name: str
    unit: Unit
    category: RawMaterialCategory = RawMaterialCategory.OTHER
    sku: str | None = None
    gtin: str | None = None
    description: str | None = None
    current_stock: Decimal = Decimal('0')
    minimum_stock: Decimal = Decimal('0')
    reorder_point: Decimal = Decimal('0')
    maximum_stock: Decimal | None = None
    cost_per_unit: Decimal = Decimal('0')
    avg_cost_per_unit: Decimal | None = None
    perishable: bool = False
    shelf_life_days: int | None = None


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _validate_levels(
    *,
    minimum_stock: Decimal,
    reorder_point: Decimal,
    maximum_stock: Decimal | None,
    cost_per_unit: Decimal,
    perishable: bool,
    shelf_life_days: int | None,
) -> None:
    if minimum_stock < 0 or reorder_point < 0:
        raise InventoryValidationError('Stock thresholds cannot be negative')
    if minimum_stock > reorder_point:
        raise InventoryValidationError('Minimum stock cannot exceed the reorder point')
    if maximum_stock is not None and maximum_stock < reorder_point:
        raise InventoryValidationError('Maximum stock cannot be below the reorder point')
    if cost_per_unit < 0:
        raise InventoryValidationError('Cost per unit cannot be negative')
    if perishable and not shelf_life_days:
        raise InventoryValidationError('Shelf life days is required for perishable materials')
    if shelf_life_days is not None and shelf_life_days < 1:
        raise InventoryValidationError('Shelf life days must be at least 1')


def _sku_taken(db: Session, *, venue_id: int, sku: str, exclude_id: int | None = None) -> bool:
    query = select(RawMaterial.id).where(RawMaterial.venue_id == venue_id, RawMaterial.sku == sku)
    if exclude_id is not None:
        query = query.where(RawMaterial.id != exclude_id)
    return db.execute(query.limit(1)).first() is not None


def _candidate_sku(rng: random.Random) -> str:
    return f'{rng.choice(string.ascii_uppercase)}{rng.randint(0, 999999):06d}'


def generate_unique_sku(db: Session, *, venue_id: int, rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    attempts = settings.sku_generation_attempts
    for attempt in range(1, attempts + 1):
        candidate = _candidate_sku(rng)
        if not _sku_taken(db, venue_id=venue_id, sku=candidate):
            return candidate
        logger.debug('SKU candidate %s collided (attempt %d/%d)', candidate, attempt, attempts)
    raise SkuGenerationExhausted(f'Could not generate a unique SKU after {attempts} attempts')


def get_raw_material(db: Session, *, venue_id: int, raw_material_id: int) -> RawMaterial:
    material = db.execute(
        select(RawMaterial).where(RawMaterial.id == raw_material_id, RawMaterial.venue_id == venue_id)
    ).scalar_one_or_none()
    if material is None:
        raise NotFoundError('Raw material not found')
    return material


def list_raw_materials(
    db: Session,
    *,
    venue_id: int,
    category: RawMaterialCategory | None = None,
    active: bool | None = None,
    low_stock: bool = False,
    search: str | None = None,
) -> list[RawMaterial]:
    query = select(RawMaterial).where(RawMaterial.venue_id == venue_id).order_by(RawMaterial.name.asc())
    if category is not None:
        query = query.where(RawMaterial.category == category)
    if active is not None:
        query = query.where(RawMaterial.active.is_(active))
    if low_stock:
        query = query.where(RawMaterial.current_stock <= RawMaterial.reorder_point)
    term = (search or '').strip()
    if term:
        pattern = f'%{term.lower()}%'
        query = query.where(or_(func.lower(RawMaterial.name).like(pattern), func.lower(RawMaterial.sku).like(pattern)))
    return db.execute(query).scalars().all()


def recipe_usage_count(db: Session, *, raw_material_id: int) -> int:
    return int(
        db.execute(
            select(func.count(func.distinct(RecipeLine.recipe_id))).where(RecipeLine.raw_material_id == raw_material_id)
        ).scalar_one()
    )


def create_raw_material(
    db: Session,
    *,
    venue_id: int,
    data: RawMaterialInput,
    actor_principal_id: int | None = None,
) -> RawMaterial:
    name = data.name.strip()
    if not name:
        raise InventoryValidationError('Name is required')
    current_stock = normalize_quantity(data.current_stock)
    if current_stock < 0:
        raise InventoryValidationError('Initial stock cannot be negative')
    _validate_levels(
        minimum_stock=data.minimum_stock,
        reorder_point=data.reorder_point,
        maximum_stock=data.maximum_stock,
        cost_per_unit=data.cost_per_unit,
        perishable=data.perishable,
        shelf_life_days=data.shelf_life_days,
    )

    sku = (data.sku or '').strip() or generate_unique_sku(db, venue_id=venue_id)
    if _sku_taken(db, venue_id=venue_id, sku=sku):
        raise DuplicateSkuError(f'SKU {sku} already exists', sku=sku)

    material = RawMaterial(
        venue_id=venue_id,
        sku=sku,
        gtin=(data.gtin or '').strip() or None,
        name=name,
        description=(data.description or '').strip() or None,
        category=data.category,
        unit=data.unit,
        current_stock=current_stock,
        minimum_stock=data.minimum_stock,
        reorder_point=data.reorder_point,
        maximum_stock=data.maximum_stock,
        cost_per_unit=data.cost_per_unit,
        avg_cost_per_unit=data.avg_cost_per_unit if data.avg_cost_per_unit is not None else data.cost_per_unit,
        perishable=data.perishable,
        shelf_life_days=data.shelf_life_days if data.perishable else None,
        active=True,
    )
    db.add(material)
    db.flush()

    if current_stock > 0:
        db.add(
            RawMaterialMovement(
                venue_id=venue_id,
                raw_material_id=material.id,
                type=MovementType.COUNT,
                quantity=current_stock,
                previous_stock=Decimal('0'),
                new_stock=current_stock,
                unit_cost=material.cost_per_unit,
                reason='Initial stock',
                created_by_principal_id=actor_principal_id,
            )
        )
        material.last_count_at = _now()
        db.flush()
    logger.info('Created raw material %s (%s) in venue %s', material.id, material.sku, venue_id)
    return material


def update_raw_material(
    db: Session,
    *,
    venue_id: int,
    raw_material_id: int,
    changes: dict,
) -> RawMaterial:
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise InventoryValidationError(f'Fields cannot be updated here: {", ".join(sorted(unknown))}')

    material = get_raw_material(db, venue_id=venue_id, raw_material_id=raw_material_id)
    merged = {field: changes.get(field, getattr(material, field)) for field in UPDATABLE_FIELDS}

    if 'name' in changes and not (merged['name'] or '').strip():
        raise InventoryValidationError('Name is required')
    if 'sku' in changes:
        sku = (merged['sku'] or '').strip()
        if not sku:
            raise InventoryValidationError('SKU is required')
        if _sku_taken(db, venue_id=venue_id, sku=sku, exclude_id=material.id):
            raise DuplicateSkuError(f'SKU {sku} already exists', sku=sku)
        merged['sku'] = sku
    if 'unit' in changes and merged['unit'] != material.unit and recipe_usage_count(db, raw_material_id=material.id):
        raise InventoryValidationError('Unit cannot change while recipes use this material')
    _validate_levels(
        minimum_stock=merged['minimum_stock'],
        reorder_point=merged['reorder_point'],
        maximum_stock=merged['maximum_stock'],
        cost_per_unit=merged['cost_per_unit'],
        perishable=merged['perishable'],
        shelf_life_days=merged['shelf_life_days'],
    )

    old_cost = material.cost_per_unit
    for field in changes:
        value = merged[field]
        if field in TEXT_FIELDS and value is not None:
            value = value.strip() or None
        setattr(material, field, value)
    if not material.perishable:
        material.shelf_life_days = None
    material.updated_at = _now()
    db.flush()

    if material.cost_per_unit != old_cost:
        updated = recalculate_recipes_for_material(db, raw_material_id=material.id)
        logger.info(
            'Cost of raw material %s changed %s -> %s; recalculated %d recipe(s)',
            material.id,
            old_cost,
            material.cost_per_unit,
            len(updated),
        )
    return material


def delete_raw_material(db: Session, *, venue_id: int, raw_material_id: int) -> None:
    material = get_raw_material(db, venue_id=venue_id, raw_material_id=raw_material_id)
    recipe_count = recipe_usage_count(db, raw_material_id=material.id)
    if recipe_count:
        raise MaterialInUseError(recipe_count=recipe_count)
    movement_count = db.execute(
        select(func.count(RawMaterialMovement.id)).where(RawMaterialMovement.raw_material_id == material.id)
    ).scalar_one()
    if movement_count:
        # Movements are the audit trail; materials with history are retired instead.
        material.active = False
        material.updated_at = _now()
        logger.info('Deactivated raw material %s with %d movement(s)', material.id, movement_count)
    else:
        db.delete(material)
        logger.info('Deleted raw material %s', material.id)
    db.flush()


def list_recipes_using(db: Session, *, venue_id: int, raw_material_id: int) -> list[dict]:
    get_raw_material(db, venue_id=venue_id, raw_material_id=raw_material_id)
    rows = db.execute(
        select(Product.id, Product.name, Recipe.id, Recipe.total_cost, RecipeLine.quantity, RecipeLine.unit)
        .join(Recipe, Recipe.product_id == Product.id)
        .join(RecipeLine, RecipeLine.recipe_id == Recipe.id)
        .where(RecipeLine.raw_material_id == raw_material_id, Product.venue_id == venue_id)
        .order_by(Product.name.asc())
    ).all()
    return [
        {
            'product_id': product_id,
            'product_name': product_name,
            'recipe_id': recipe_id,
            'recipe_total_cost': total_cost,
            'quantity': quantity,
            'unit': unit.value,
        }
        for product_id, product_name, recipe_id, total_cost, quantity, unit in rows
    ]


def _cost_recommendation(estimated_percentage: Decimal | None) -> str:
    if estimated_percentage is None:
        return 'REVIEW_PRICE'
    status = classify_profitability(estimated_percentage)
    if status == ProfitabilityStatus.POOR:
        return 'INCREASE_PRICE'
    if status == ProfitabilityStatus.ACCEPTABLE:
        return 'REVIEW_PRICE'
    return 'OK'


def preview_cost_change(
    db: Session,
    *,
    venue_id: int,
    raw_material_id: int,
    proposed_cost: Decimal,
) -> dict:
    if proposed_cost < 0:
        raise InventoryValidationError('Proposed cost cannot be negative')
    material = get_raw_material(db, venue_id=venue_id, raw_material_id=raw_material_id)

    lines = db.execute(
        select(RecipeLine, Recipe, Product)
        .join(Recipe, Recipe.id == RecipeLine.recipe_id)
        .join(Product, Product.id == Recipe.product_id)
        .where(RecipeLine.raw_material_id == material.id, Product.venue_id == venue_id)
        .order_by(Product.name.asc())
    ).all()

    affected: list[dict] = []
    summary = {'total_recipes': 0, 'need_price_increase': 0, 'need_price_review': 0, 'ok': 0}
    for line, recipe, product in lines:
        current_line_cost = compute_line_cost(line, material, cost_per_unit=material.cost_per_unit)
        new_line_cost = compute_line_cost(line, material, cost_per_unit=proposed_cost)
        estimated_cost = recipe.total_cost - current_line_cost + new_line_cost
        current_pct = food_cost_percentage(recipe.total_cost, product.price)
        estimated_pct = food_cost_percentage(estimated_cost, product.price)
        recommendation = _cost_recommendation(estimated_pct)
        affected.append(
            {
                'product_id': product.id,
                'product_name': product.name,
                'current_recipe_cost': recipe.total_cost,
                'estimated_new_recipe_cost': estimated_cost,
                'cost_impact': estimated_cost - recipe.total_cost,
                'current_price': product.price,
                'current_food_cost_percentage': current_pct,
                'estimated_new_food_cost_percentage': estimated_pct,
                'recommendation': recommendation,
            }
        )
        summary['total_recipes'] += 1
        if recommendation == 'INCREASE_PRICE':
            summary['need_price_increase'] += 1
        elif recommendation == 'REVIEW_PRICE':
            summary['need_price_review'] += 1
        else:
            summary['ok'] += 1

    change = proposed_cost - material.cost_per_unit
    percentage_change = (change / material.cost_per_unit * 100) if material.cost_per_unit else None
    return {
        'raw_material': {
            'id': material.id,
            'name': material.name,
            'current_cost': material.cost_per_unit,
            'proposed_new_cost': proposed_cost,
            'cost_change': change,
            'percentage_change': percentage_change,
        },
        'affected_recipes': affected,
        'summary': summary,
    }
