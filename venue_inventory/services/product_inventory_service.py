from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import ROUND_FLOOR, Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from venue_inventory.config import settings
from venue_inventory.models import (
    InventoryMethod,
    MovementType,
    Product,
    ProductInventory,
    ProductInventoryMovement,
    Recipe,
)
from venue_inventory.services.errors import (
    ConversionNotAllowedError,
    InventoryValidationError,
    NotFoundError,
    StaleConfirmationError,
)
from venue_inventory.services.recipe_service import (
    RecipeLineInput,
    create_recipe_record,
    find_recipe,
    get_product,
)
from venue_inventory.services.stock_math_service import (
    AdjustmentRequest,
    ConfirmationRequired,
    confirmation_for,
    normalize_quantity,
    plan_adjustment,
    tokens_match,
)
from venue_inventory.services.units import convert_quantity

logger = logging.getLogger('venue_inventory.products')

PRODUCT_SCOPE = 'product'


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _find_inventory(db: Session, *, product_id: int, lock: bool = False) -> ProductInventory | None:
    query = select(ProductInventory).where(ProductInventory.product_id == product_id)
    if lock:
        query = query.with_for_update()
    return db.execute(query).scalar_one_or_none()


def _active_inventory(db: Session, product: Product, *, lock: bool = False) -> ProductInventory:
    if product.inventory_method != InventoryMethod.QUANTITY:
        raise InventoryValidationError('Product does not track stock by quantity')
    inventory = _find_inventory(db, product_id=product.id, lock=lock)
    if inventory is None or inventory.superseded_at is not None:
        raise NotFoundError('Product inventory not found')
    return inventory


def _validate_levels(*, minimum_stock: Decimal, reorder_point: Decimal, cost_per_unit: Decimal) -> None:
    if minimum_stock < 0 or reorder_point < 0:
        raise InventoryValidationError('Stock thresholds cannot be negative')
    if minimum_stock > reorder_point:
        raise InventoryValidationError('Minimum stock cannot exceed the reorder point')
    if cost_per_unit < 0:
        raise InventoryValidationError('Cost per unit cannot be negative')


def enable_quantity_tracking(
    db: Session,
    *,
    venue_id: int,
    product_id: int,
    initial_stock: Decimal = Decimal('0'),
    minimum_stock: Decimal = Decimal('0'),
    reorder_point: Decimal = Decimal('0'),
    cost_per_unit: Decimal = Decimal('0'),
    actor_principal_id: int | None = None,
) -> ProductInventory:
    product = get_product(db, venue_id=venue_id, product_id=product_id, lock=True)
    if product.converted_to_recipe_at is not None:
        raise ConversionNotAllowedError('Product was converted to recipe tracking', product_id=product.id)
    if product.inventory_method is not None:
        raise InventoryValidationError(f'Product already tracks inventory by {product.inventory_method.value}')
    if find_recipe(db, product_id=product.id) is not None:
        raise InventoryValidationError('Product has a recipe; delete it before tracking quantity')

    stock = normalize_quantity(initial_stock)
    if stock < 0:
        raise InventoryValidationError('Initial stock cannot be negative')
    _validate_levels(minimum_stock=minimum_stock, reorder_point=reorder_point, cost_per_unit=cost_per_unit)

    inventory = _find_inventory(db, product_id=product.id, lock=True)
    previous = Decimal('0')
    if inventory is None:
        inventory = ProductInventory(venue_id=venue_id, product_id=product.id, current_stock=Decimal('0'))
        db.add(inventory)
    else:
        # Tracking was disabled earlier; the stock record and its history carry over.
        previous = inventory.current_stock
    inventory.minimum_stock = minimum_stock
    inventory.reorder_point = reorder_point
    inventory.cost_per_unit = cost_per_unit
    inventory.updated_at = _now()

    product.track_inventory = True
    product.inventory_method = InventoryMethod.QUANTITY
    product.updated_at = _now()
    db.flush()

    if stock != previous:
        db.add(
            ProductInventoryMovement(
                venue_id=venue_id,
                product_id=product.id,
                type=MovementType.COUNT,
                quantity=stock - previous,
                previous_stock=previous,
                new_stock=stock,
                reason='Initial stock',
                created_by_principal_id=actor_principal_id,
            )
        )
        inventory.current_stock = stock
        db.flush()
    logger.info('Enabled quantity tracking for product %s at %s', product.id, stock)
    return inventory


def get_product_inventory(db: Session, *, venue_id: int, product_id: int) -> ProductInventory:
    product = get_product(db, venue_id=venue_id, product_id=product_id)
    return _active_inventory(db, product)


def adjust_product_stock(
    db: Session,
    *,
    venue_id: int,
    product_id: int,
    type: MovementType,
    quantity: Decimal,
    reason: str | None = None,
    reference: str | None = None,
    actor_principal_id: int | None = None,
    confirmation_token: str | None = None,
) -> ProductInventoryMovement | ConfirmationRequired:
    product = get_product(db, venue_id=venue_id, product_id=product_id)
    inventory = _active_inventory(db, product, lock=True)

    clean_token = (confirmation_token or '').strip() or None
    if clean_token:
        replay = db.execute(
            select(ProductInventoryMovement).where(
                ProductInventoryMovement.product_id == product.id,
                ProductInventoryMovement.confirmation_token == clean_token,
            )
        ).scalar_one_or_none()
        if replay is not None:
            logger.info('Replayed confirmed movement %s for product %s', replay.id, product.id)
            return replay

    request = AdjustmentRequest(
        scope=PRODUCT_SCOPE,
        target_id=product.id,
        venue_id=venue_id,
        type=type,
        quantity=quantity,
        reason=reason,
        reference=reference,
    )
    plan = plan_adjustment(
        request,
        inventory.current_stock,
        ratio=settings.large_adjustment_ratio,
        secret=settings.app_secret_key,
        last_movement_id=db.execute(
            select(func.max(ProductInventoryMovement.id)).where(ProductInventoryMovement.product_id == product.id)
        ).scalar_one(),
    )
    if clean_token and not tokens_match(plan.token, clean_token):
        raise StaleConfirmationError(current_stock=inventory.current_stock)
    if plan.is_large and not clean_token:
        return confirmation_for(plan)

    movement = ProductInventoryMovement(
        venue_id=venue_id,
        product_id=product.id,
        type=type,
        quantity=plan.quantity,
        previous_stock=plan.previous_stock,
        new_stock=plan.new_stock,
        reason=(reason or '').strip() or None,
        reference=(reference or '').strip() or None,
        confirmation_token=clean_token,
        created_by_principal_id=actor_principal_id,
    )
    db.add(movement)
    inventory.current_stock = plan.new_stock
    inventory.updated_at = _now()
    db.flush()
    logger.info(
        'Product %s %s %s: %s -> %s',
        product.id,
        type.value,
        plan.quantity,
        plan.previous_stock,
        plan.new_stock,
    )
    return movement


def list_product_movements(
    db: Session,
    *,
    venue_id: int,
    product_id: int,
    limit: int | None = None,
) -> list[ProductInventoryMovement]:
    get_product(db, venue_id=venue_id, product_id=product_id)
    effective_limit = limit if limit is not None else settings.movement_history_limit
    if effective_limit < 1:
        raise InventoryValidationError('Limit must be at least 1')
    return db.execute(
        select(ProductInventoryMovement)
        .where(ProductInventoryMovement.product_id == product_id)
        .order_by(ProductInventoryMovement.created_at.desc(), ProductInventoryMovement.id.desc())
        .limit(effective_limit)
    ).scalars().all()


def convert_to_recipe(
    db: Session,
    *,
    venue_id: int,
    product_id: int,
    portion_yield: int,
    lines: list[RecipeLineInput],
    prep_time: int | None = None,
    cook_time: int | None = None,
    notes: str | None = None,
) -> Recipe:
    """Switch a quantity-tracked product to recipe tracking. Allowed once per product."""
    product = get_product(db, venue_id=venue_id, product_id=product_id, lock=True)
    if product.converted_to_recipe_at is not None:
        raise ConversionNotAllowedError('Product was already converted to recipe tracking', product_id=product.id)
    if product.inventory_method != InventoryMethod.QUANTITY:
        raise ConversionNotAllowedError('Only quantity-tracked products can be converted', product_id=product.id)

    recipe = create_recipe_record(
        db,
        product=product,
        portion_yield=portion_yield,
        lines=lines,
        prep_time=prep_time,
        cook_time=cook_time,
        notes=notes,
    )
    inventory = _find_inventory(db, product_id=product.id, lock=True)
    if inventory is not None:
        inventory.superseded_at = _now()
        inventory.updated_at = _now()
    product.inventory_method = InventoryMethod.RECIPE
    product.converted_to_recipe_at = _now()
    product.updated_at = _now()
    db.flush()
    logger.info('Converted product %s from QUANTITY to RECIPE (recipe %s)', product.id, recipe.id)
    return recipe


def disable_tracking(db: Session, *, venue_id: int, product_id: int) -> Product:
    product = get_product(db, venue_id=venue_id, product_id=product_id, lock=True)
    product.track_inventory = False
    product.inventory_method = None
    product.updated_at = _now()
    db.flush()
    return product


def _recipe_status(recipe: Recipe) -> dict:
    max_portions: Decimal | None = None
    insufficient = []
    for line in recipe.lines:
        if line.is_optional or line.is_variable:
            continue
        material = line.raw_material
        per_portion = convert_quantity(line.quantity, line.unit, material.unit) / recipe.portion_yield
        available = material.current_stock
        portions = (available / per_portion).to_integral_value(rounding=ROUND_FLOOR)
        if max_portions is None or portions < max_portions:
            max_portions = portions
        if available < per_portion:
            insufficient.append(
                {
                    'raw_material_id': material.id,
                    'name': material.name,
                    'required': per_portion,
                    'available': available,
                    'unit': material.unit.value,
                }
            )
    portions = int(max_portions) if max_portions is not None else 0
    return {
        'inventory_method': InventoryMethod.RECIPE.value,
        'available': portions > 0,
        'max_portions': portions,
        'insufficient_ingredients': insufficient,
        'recipe_cost': recipe.total_cost,
        'message': f'Enough stock for {portions} portion(s)' if portions else 'Not enough stock for one portion',
    }


def inventory_status(db: Session, *, venue_id: int, product_id: int) -> dict:
    product = get_product(db, venue_id=venue_id, product_id=product_id)
    if product.inventory_method == InventoryMethod.QUANTITY:
        inventory = _active_inventory(db, product)
        low_stock = inventory.current_stock <= inventory.reorder_point
        return {
            'inventory_method': InventoryMethod.QUANTITY.value,
            'available': inventory.current_stock > 0,
            'current_stock': inventory.current_stock,
            'reorder_point': inventory.reorder_point,
            'low_stock': low_stock,
            'message': 'Low stock' if low_stock else 'In stock',
        }
    if product.inventory_method == InventoryMethod.RECIPE:
        recipe = find_recipe(db, product_id=product.id)
        if recipe is None:
            raise NotFoundError('Recipe not found')
        return _recipe_status(recipe)
    return {
        'inventory_method': None,
        'available': True,
        'message': 'Inventory is not tracked for this product',
    }
