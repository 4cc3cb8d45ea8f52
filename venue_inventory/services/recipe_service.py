from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from venue_inventory.models import (
    InventoryMethod,
    Product,
    ProductInventory,
    RawMaterial,
    Recipe,
    RecipeLine,
    Unit,
)
from venue_inventory.services.errors import (
    ConversionNotAllowedError,
    DuplicateIngredientError,
    DuplicateRecipeError,
    EmptyRecipeError,
    InventoryValidationError,
    NotFoundError,
)
from venue_inventory.services.stock_math_service import QUANTITY_QUANTUM, normalize_quantity
from venue_inventory.services.units import convert_quantity

logger = logging.getLogger('venue_inventory.recipes')

RECIPE_UPDATABLE_FIELDS = {'portion_yield', 'prep_time', 'cook_time', 'notes'}


@dataclass(frozen=True)
class RecipeLineInput:
    raw_material_id: int
    quantity: Decimal
    unit: Unit | None = None
    display_order: int | None = None
    is_optional: bool = False
    substitute_notes: str | None = None
    is_variable: bool = False
    linked_modifier_group_id: str | None = None


@dataclass(frozen=True)
class CostLine:
    quantity: Decimal
    unit: Unit
    material_unit: Unit
    cost_per_unit: Decimal
    is_variable: bool = False


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def variable_line_cost(line: CostLine) -> Decimal:
    # Modifier-driven quantities are priced at sale time, not in the recipe.
    return Decimal('0')


def line_cost(line: CostLine) -> Decimal:
    if line.is_variable:
        return variable_line_cost(line)
    quantity = convert_quantity(line.quantity, line.unit, line.material_unit)
    return quantity * line.cost_per_unit


def compute_recipe_cost(lines: list[CostLine]) -> Decimal:
    total = sum((line_cost(line) for line in lines), Decimal('0'))
    return total.quantize(QUANTITY_QUANTUM)


def cost_per_serving(total_cost: Decimal, portion_yield: int) -> Decimal:
    if portion_yield < 1:
        raise InventoryValidationError('Portion yield must be at least 1')
    return (total_cost / portion_yield).quantize(QUANTITY_QUANTUM)


def cost_line_for(line: RecipeLine, material: RawMaterial, *, cost_per_unit: Decimal | None = None) -> CostLine:
    return CostLine(
        quantity=line.quantity,
        unit=line.unit,
        material_unit=material.unit,
        cost_per_unit=material.cost_per_unit if cost_per_unit is None else cost_per_unit,
        is_variable=line.is_variable,
    )


def compute_line_cost(line: RecipeLine, material: RawMaterial, *, cost_per_unit: Decimal | None = None) -> Decimal:
    return line_cost(cost_line_for(line, material, cost_per_unit=cost_per_unit))


def refresh_total_cost(db: Session, recipe: Recipe) -> Recipe:
    recipe.total_cost = compute_recipe_cost([cost_line_for(line, line.raw_material) for line in recipe.lines])
    recipe.cost_calculated_at = _now()
    recipe.updated_at = _now()
    db.flush()
    return recipe


def get_product(db: Session, *, venue_id: int, product_id: int, lock: bool = False) -> Product:
    query = select(Product).where(Product.id == product_id, Product.venue_id == venue_id)
    if lock:
        query = query.with_for_update()
    product = db.execute(query).scalar_one_or_none()
    if product is None:
        raise NotFoundError('Product not found')
    return product


def find_recipe(db: Session, *, product_id: int) -> Recipe | None:
    return db.execute(select(Recipe).where(Recipe.product_id == product_id)).scalar_one_or_none()


def get_recipe(db: Session, *, venue_id: int, product_id: int) -> Recipe:
    get_product(db, venue_id=venue_id, product_id=product_id)
    recipe = find_recipe(db, product_id=product_id)
    if recipe is None:
        raise NotFoundError('Recipe not found')
    return recipe


def _validate_portion_yield(portion_yield: int) -> None:
    if portion_yield is None or int(portion_yield) < 1:
        raise InventoryValidationError('Portion yield must be at least 1')


def _validate_minutes(value: int | None, label: str) -> None:
    if value is not None and value < 0:
        raise InventoryValidationError(f'{label} cannot be negative')


def _load_materials(db: Session, *, venue_id: int, raw_material_ids: list[int]) -> dict[int, RawMaterial]:
    materials = db.execute(
        select(RawMaterial).where(RawMaterial.venue_id == venue_id, RawMaterial.id.in_(raw_material_ids))
    ).scalars().all()
    by_id = {material.id: material for material in materials}
    missing = sorted(set(raw_material_ids) - set(by_id))
    if missing:
        raise InventoryValidationError(
            f'Raw material(s) not found in this venue: {", ".join(str(value) for value in missing)}',
            raw_material_ids=missing,
        )
    return by_id


def _build_line(item: RecipeLineInput, material: RawMaterial, *, default_order: int) -> RecipeLine:
    quantity = normalize_quantity(item.quantity)
    if quantity <= 0:
        raise InventoryValidationError('Ingredient quantity must be greater than zero')
    unit = item.unit or material.unit
    # Fails early on incompatible units.
    convert_quantity(quantity, unit, material.unit)
    return RecipeLine(
        raw_material_id=material.id,
        raw_material=material,
        quantity=quantity,
        unit=unit,
        display_order=item.display_order if item.display_order is not None else default_order,
        is_optional=item.is_optional,
        substitute_notes=(item.substitute_notes or '').strip() or None,
        is_variable=item.is_variable,
        linked_modifier_group_id=item.linked_modifier_group_id if item.is_variable else None,
    )


def build_lines(db: Session, *, venue_id: int, lines: list[RecipeLineInput]) -> list[RecipeLine]:
    if not lines:
        raise EmptyRecipeError('A recipe must have at least one ingredient')
    seen: set[int] = set()
    for item in lines:
        if item.raw_material_id in seen:
            raise InventoryValidationError(
                'Each raw material may appear only once per recipe',
                raw_material_id=item.raw_material_id,
            )
        seen.add(item.raw_material_id)
    materials = _load_materials(db, venue_id=venue_id, raw_material_ids=list(seen))
    return [
        _build_line(item, materials[item.raw_material_id], default_order=index)
        for index, item in enumerate(lines)
    ]


def create_recipe_record(
    db: Session,
    *,
    product: Product,
    portion_yield: int,
    lines: list[RecipeLineInput],
    prep_time: int | None = None,
    cook_time: int | None = None,
    notes: str | None = None,
) -> Recipe:
    _validate_portion_yield(portion_yield)
    _validate_minutes(prep_time, 'Prep time')
    _validate_minutes(cook_time, 'Cook time')
    if find_recipe(db, product_id=product.id) is not None:
        raise DuplicateRecipeError('Product already has a recipe', product_id=product.id)
    built = build_lines(db, venue_id=product.venue_id, lines=lines)

    recipe = Recipe(
        venue_id=product.venue_id,
        product_id=product.id,
        portion_yield=int(portion_yield),
        prep_time=prep_time,
        cook_time=cook_time,
        notes=(notes or '').strip() or None,
        lines=built,
    )
    db.add(recipe)
    db.flush()
    refresh_total_cost(db, recipe)
    logger.info('Created recipe %s for product %s with %d line(s), cost %s', recipe.id, product.id, len(built), recipe.total_cost)
    return recipe


def create_recipe(
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
    product = get_product(db, venue_id=venue_id, product_id=product_id, lock=True)
    if product.inventory_method == InventoryMethod.QUANTITY:
        raise InventoryValidationError('Product tracks quantity; convert it to a recipe instead')
    if product.inventory_method is None:
        # A disabled quantity record still holds stock history; only conversion may retire it.
        retained = db.execute(
            select(ProductInventory.id).where(
                ProductInventory.product_id == product.id,
                ProductInventory.superseded_at.is_(None),
            )
        ).scalar_one_or_none()
        if retained is not None:
            raise ConversionNotAllowedError(
                'Product has quantity stock history; re-enable tracking and convert it to a recipe',
                product_id=product.id,
            )

    recipe = create_recipe_record(
        db,
        product=product,
        portion_yield=portion_yield,
        lines=lines,
        prep_time=prep_time,
        cook_time=cook_time,
        notes=notes,
    )
    if product.inventory_method is None:
        product.track_inventory = True
        product.inventory_method = InventoryMethod.RECIPE
        product.updated_at = _now()
        db.flush()
    return recipe


def update_recipe(
    db: Session,
    *,
    venue_id: int,
    product_id: int,
    changes: dict,
    lines: list[RecipeLineInput] | None = None,
) -> Recipe:
    unknown = set(changes) - RECIPE_UPDATABLE_FIELDS
    if unknown:
        raise InventoryValidationError(f'Fields cannot be updated here: {", ".join(sorted(unknown))}')
    if 'portion_yield' in changes:
        _validate_portion_yield(changes['portion_yield'])
    _validate_minutes(changes.get('prep_time'), 'Prep time')
    _validate_minutes(changes.get('cook_time'), 'Cook time')

    recipe = get_recipe(db, venue_id=venue_id, product_id=product_id)
    built = build_lines(db, venue_id=venue_id, lines=lines) if lines is not None else None

    for field, value in changes.items():
        if field == 'notes':
            value = (value or '').strip() or None
        setattr(recipe, field, value)
    if built is not None:
        recipe.lines.clear()
        # Unique (recipe, material) rows must be gone before the replacements insert.
        db.flush()
        recipe.lines.extend(built)
    return refresh_total_cost(db, recipe)


def delete_recipe(db: Session, *, venue_id: int, product_id: int) -> None:
    recipe = get_recipe(db, venue_id=venue_id, product_id=product_id)
    product = get_product(db, venue_id=venue_id, product_id=product_id)
    db.delete(recipe)
    if product.inventory_method == InventoryMethod.RECIPE:
        product.track_inventory = False
        product.inventory_method = None
        product.updated_at = _now()
    db.flush()
    logger.info('Deleted recipe for product %s', product_id)


def _same_line(existing: RecipeLine, candidate: RecipeLine) -> bool:
    return (
        existing.quantity == candidate.quantity
        and existing.unit == candidate.unit
        and existing.is_optional == candidate.is_optional
        and existing.is_variable == candidate.is_variable
    )


def add_line(db: Session, *, venue_id: int, product_id: int, line: RecipeLineInput) -> Recipe:
    recipe = get_recipe(db, venue_id=venue_id, product_id=product_id)
    material = _load_materials(db, venue_id=venue_id, raw_material_ids=[line.raw_material_id])[line.raw_material_id]
    next_order = max((existing.display_order for existing in recipe.lines), default=-1) + 1
    candidate = _build_line(line, material, default_order=next_order)

    for existing in recipe.lines:
        if existing.raw_material_id != material.id:
            continue
        if _same_line(existing, candidate):
            return recipe
        raise DuplicateIngredientError(
            'Raw material is already on this recipe with different values',
            raw_material_id=material.id,
            line_id=existing.id,
        )

    recipe.lines.append(candidate)
    db.flush()
    return refresh_total_cost(db, recipe)


def remove_line(db: Session, *, venue_id: int, product_id: int, line_id: int) -> Recipe:
    recipe = get_recipe(db, venue_id=venue_id, product_id=product_id)
    target = next((line for line in recipe.lines if line.id == line_id), None)
    if target is None:
        return recipe
    if len(recipe.lines) == 1:
        raise EmptyRecipeError('A recipe must keep at least one ingredient')
    recipe.lines.remove(target)
    db.flush()
    return refresh_total_cost(db, recipe)


def cost_breakdown(db: Session, *, venue_id: int, product_id: int) -> dict:
    recipe = get_recipe(db, venue_id=venue_id, product_id=product_id)
    lines = []
    costs = [compute_line_cost(line, line.raw_material) for line in recipe.lines]
    total = compute_recipe_cost([cost_line_for(line, line.raw_material) for line in recipe.lines])
    for line, cost in zip(recipe.lines, costs):
        lines.append(
            {
                'line_id': line.id,
                'raw_material_id': line.raw_material_id,
                'raw_material_name': line.raw_material.name,
                'quantity': line.quantity,
                'unit': line.unit.value,
                'cost_per_unit': line.raw_material.cost_per_unit,
                'is_optional': line.is_optional,
                'is_variable': line.is_variable,
                'line_cost': cost.quantize(QUANTITY_QUANTUM),
                'cost_per_serving': (cost / recipe.portion_yield).quantize(QUANTITY_QUANTUM),
                'share_of_total': (cost / total * 100).quantize(Decimal('0.01')) if total else None,
            }
        )
    return {
        'recipe_id': recipe.id,
        'product_id': recipe.product_id,
        'portion_yield': recipe.portion_yield,
        'total_cost': total,
        'cost_per_serving': cost_per_serving(total, recipe.portion_yield),
        'lines': lines,
    }


def recalculate_recipes_for_material(db: Session, *, raw_material_id: int) -> list[Recipe]:
    recipes = db.execute(
        select(Recipe)
        .join(RecipeLine, RecipeLine.recipe_id == Recipe.id)
        .where(RecipeLine.raw_material_id == raw_material_id)
        .order_by(Recipe.id.asc())
    ).scalars().unique().all()
    for recipe in recipes:
        refresh_total_cost(db, recipe)
    return recipes


def recalculate_all_recipes(db: Session, *, venue_id: int) -> list[Recipe]:
    recipes = db.execute(select(Recipe).where(Recipe.venue_id == venue_id).order_by(Recipe.id.asc())).scalars().all()
    for recipe in recipes:
        refresh_total_cost(db, recipe)
    logger.info('Recalculated %d recipe(s) in venue %s', len(recipes), venue_id)
    return recipes


def list_stale_recipes(db: Session, *, venue_id: int) -> list[dict]:
    """Recipes whose stored cost no longer matches their ingredients' current costs."""
    recipes = db.execute(select(Recipe).where(Recipe.venue_id == venue_id).order_by(Recipe.id.asc())).scalars().all()
    stale = []
    for recipe in recipes:
        current = compute_recipe_cost([cost_line_for(line, line.raw_material) for line in recipe.lines])
        if recipe.cost_calculated_at is None or current != recipe.total_cost:
            stale.append(
                {
                    'recipe_id': recipe.id,
                    'product_id': recipe.product_id,
                    'stored_cost': recipe.total_cost,
                    'current_cost': current,
                    'cost_calculated_at': recipe.cost_calculated_at,
                }
            )
    return stale
