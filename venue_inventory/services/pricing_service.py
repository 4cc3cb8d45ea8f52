from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from venue_inventory.config import settings
from venue_inventory.models import (
    InventoryMethod,
    PricingPolicy,
    PricingStrategy,
    Product,
    ProductInventory,
    Recipe,
    Venue,
)
from venue_inventory.services.errors import (
    DuplicatePolicyError,
    InvalidTargetError,
    InventoryValidationError,
    NoPolicyError,
)
from venue_inventory.services.recipe_service import get_product

logger = logging.getLogger('venue_inventory.pricing')

CENT = Decimal('0.01')
PERCENT_QUANTUM = Decimal('0.0001')
HUNDRED = Decimal('100')

EXCELLENT_BELOW = Decimal('20')
GOOD_BELOW = Decimal('30')
ACCEPTABLE_BELOW = Decimal('40')


class ProfitabilityStatus(str, Enum):
    EXCELLENT = 'EXCELLENT'
    GOOD = 'GOOD'
    ACCEPTABLE = 'ACCEPTABLE'
    POOR = 'POOR'


@dataclass(frozen=True)
class PolicyInput:
    pricing_strategy: PricingStrategy
    target_food_cost_percentage: Decimal | None = None
    target_markup_percentage: Decimal | None = None
    minimum_price: Decimal | None = None


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def validate_policy(policy: PolicyInput) -> None:
    if policy.minimum_price is not None and policy.minimum_price < 0:
        raise InventoryValidationError('Minimum price cannot be negative')
    if policy.pricing_strategy == PricingStrategy.AUTO_MARKUP:
        if policy.target_markup_percentage is None:
            raise InventoryValidationError('Markup percentage is required for AUTO_MARKUP')
        if policy.target_markup_percentage < 0:
            raise InventoryValidationError('Markup percentage cannot be negative')
    if policy.pricing_strategy == PricingStrategy.AUTO_TARGET_MARGIN:
        target = policy.target_food_cost_percentage
        if target is None or target <= 0:
            raise InvalidTargetError('Target food cost percentage must be greater than zero')


def suggest_price(
    recipe_cost: Decimal,
    policy: PolicyInput,
    *,
    current_price: Decimal,
) -> Decimal:
    if policy.pricing_strategy == PricingStrategy.MANUAL:
        return current_price

    validate_policy(policy)
    if policy.pricing_strategy == PricingStrategy.AUTO_MARKUP:
        suggested = recipe_cost * (1 + policy.target_markup_percentage / HUNDRED)
    else:
        suggested = recipe_cost / (policy.target_food_cost_percentage / HUNDRED)

    suggested = _to_cents(suggested)
    if policy.minimum_price is not None and suggested < policy.minimum_price:
        suggested = _to_cents(policy.minimum_price)
    return suggested


def food_cost_percentage(recipe_cost: Decimal, price: Decimal) -> Decimal | None:
    """Ingredient cost as a share of ``price``; ``None`` when the price is zero."""
    if price is None or price == 0:
        return None
    return recipe_cost / price * HUNDRED


def classify_profitability(percentage: Decimal) -> ProfitabilityStatus:
    if percentage < EXCELLENT_BELOW:
        return ProfitabilityStatus.EXCELLENT
    if percentage < GOOD_BELOW:
        return ProfitabilityStatus.GOOD
    if percentage < ACCEPTABLE_BELOW:
        return ProfitabilityStatus.ACCEPTABLE
    return ProfitabilityStatus.POOR


def _rounded_percentage(percentage: Decimal | None) -> Decimal | None:
    if percentage is None:
        return None
    return percentage.quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP)


def _policy_input(policy: PricingPolicy) -> PolicyInput:
    return PolicyInput(
        pricing_strategy=policy.pricing_strategy,
        target_food_cost_percentage=policy.target_food_cost_percentage,
        target_markup_percentage=policy.target_markup_percentage,
        minimum_price=policy.minimum_price,
    )


def cost_basis(db: Session, product: Product) -> Decimal | None:
    """Recipe cost, or the unit cost of a quantity-tracked product."""
    recipe = db.execute(select(Recipe).where(Recipe.product_id == product.id)).scalar_one_or_none()
    if recipe is not None:
        return recipe.total_cost
    if product.inventory_method == InventoryMethod.QUANTITY:
        inventory = db.execute(
            select(ProductInventory).where(ProductInventory.product_id == product.id)
        ).scalar_one_or_none()
        if inventory is not None:
            return inventory.cost_per_unit
    return None


def venue_currency(db: Session, *, venue_id: int) -> str:
    currency = db.execute(select(Venue.currency).where(Venue.id == venue_id)).scalar_one_or_none()
    return currency or settings.default_currency


def get_policy(db: Session, *, venue_id: int, product_id: int) -> PricingPolicy:
    get_product(db, venue_id=venue_id, product_id=product_id)
    policy = db.execute(select(PricingPolicy).where(PricingPolicy.product_id == product_id)).scalar_one_or_none()
    if policy is None:
        raise NoPolicyError('Product has no pricing policy', product_id=product_id)
    return policy


def _require_cost_basis(db: Session, product: Product, strategy: PricingStrategy) -> Decimal | None:
    basis = cost_basis(db, product)
    if basis is None and strategy != PricingStrategy.MANUAL:
        raise InventoryValidationError('Product has no recipe or unit cost to price from')
    return basis


def _refresh_policy(db: Session, policy: PricingPolicy, product: Product) -> PricingPolicy:
    basis = _require_cost_basis(db, product, policy.pricing_strategy)
    cost = basis if basis is not None else Decimal('0')
    suggested = suggest_price(cost, _policy_input(policy), current_price=product.price)
    policy.calculated_cost = cost
    policy.suggested_price = suggested
    # Without a cost basis there is no meaningful food cost to report.
    policy.food_cost_percentage = (
        _rounded_percentage(food_cost_percentage(cost, suggested)) if basis is not None else None
    )
    policy.last_reviewed_at = _now()
    policy.updated_at = _now()
    db.flush()
    return policy


def create_policy(
    db: Session,
    *,
    venue_id: int,
    product_id: int,
    data: PolicyInput,
    actor_principal_id: int | None = None,
) -> PricingPolicy:
    product = get_product(db, venue_id=venue_id, product_id=product_id)
    validate_policy(data)
    _require_cost_basis(db, product, data.pricing_strategy)
    existing = db.execute(select(PricingPolicy).where(PricingPolicy.product_id == product.id)).scalar_one_or_none()
    if existing is not None:
        raise DuplicatePolicyError('Product already has a pricing policy', product_id=product.id)

    policy = PricingPolicy(
        venue_id=venue_id,
        product_id=product.id,
        pricing_strategy=data.pricing_strategy,
        target_food_cost_percentage=data.target_food_cost_percentage,
        target_markup_percentage=data.target_markup_percentage,
        minimum_price=data.minimum_price,
        last_updated_by_principal_id=actor_principal_id,
    )
    db.add(policy)
    db.flush()
    return _refresh_policy(db, policy, product)


def replace_policy(
    db: Session,
    *,
    venue_id: int,
    product_id: int,
    data: PolicyInput,
    actor_principal_id: int | None = None,
) -> PricingPolicy:
    validate_policy(data)
    policy = get_policy(db, venue_id=venue_id, product_id=product_id)
    product = get_product(db, venue_id=venue_id, product_id=product_id)
    _require_cost_basis(db, product, data.pricing_strategy)
    policy.pricing_strategy = data.pricing_strategy
    policy.target_food_cost_percentage = data.target_food_cost_percentage
    policy.target_markup_percentage = data.target_markup_percentage
    policy.minimum_price = data.minimum_price
    policy.last_updated_by_principal_id = actor_principal_id
    return _refresh_policy(db, policy, product)


def calculate_price(db: Session, *, venue_id: int, product_id: int) -> dict:
    policy = get_policy(db, venue_id=venue_id, product_id=product_id)
    product = get_product(db, venue_id=venue_id, product_id=product_id)
    _refresh_policy(db, policy, product)
    recipe_cost = policy.calculated_cost if cost_basis(db, product) is not None else None
    percentage = current_percentage = None
    if recipe_cost is not None:
        percentage = food_cost_percentage(recipe_cost, policy.suggested_price)
        current_percentage = food_cost_percentage(recipe_cost, product.price)
    return {
        'product_id': product.id,
        'pricing_strategy': policy.pricing_strategy.value,
        'recipe_cost': recipe_cost,
        'current_price': product.price,
        'suggested_price': policy.suggested_price,
        'food_cost_percentage': _rounded_percentage(percentage),
        'current_food_cost_percentage': _rounded_percentage(current_percentage),
        'profitability': classify_profitability(percentage).value if percentage is not None else None,
        'currency': venue_currency(db, venue_id=venue_id),
    }


def apply_suggested_price(
    db: Session,
    *,
    venue_id: int,
    product_id: int,
    actor_principal_id: int | None = None,
) -> Product:
    policy = get_policy(db, venue_id=venue_id, product_id=product_id)
    product = get_product(db, venue_id=venue_id, product_id=product_id, lock=True)
    _refresh_policy(db, policy, product)
    old_price = product.price
    product.price = policy.suggested_price
    product.updated_at = _now()
    policy.last_updated_by_principal_id = actor_principal_id
    db.flush()
    logger.info('Applied suggested price to product %s: %s -> %s', product.id, old_price, product.price)
    return product


def pricing_analysis(db: Session, *, venue_id: int) -> list[dict]:
    rows = db.execute(
        select(Product, Recipe, PricingPolicy)
        .join(Recipe, Recipe.product_id == Product.id)
        .outerjoin(PricingPolicy, PricingPolicy.product_id == Product.id)
        .where(Product.venue_id == venue_id, Product.active.is_(True))
        .order_by(Product.name.asc())
    ).all()
    currency = venue_currency(db, venue_id=venue_id)
    analysis = []
    for product, recipe, policy in rows:
        percentage = food_cost_percentage(recipe.total_cost, product.price)
        analysis.append(
            {
                'product_id': product.id,
                'product_name': product.name,
                'current_price': product.price,
                'recipe_cost': recipe.total_cost,
                'food_cost_percentage': _rounded_percentage(percentage),
                'contribution_margin': product.price - recipe.total_cost,
                'profitability': classify_profitability(percentage).value if percentage is not None else None,
                'pricing_strategy': policy.pricing_strategy.value if policy is not None else None,
                'suggested_price': policy.suggested_price if policy is not None else None,
                'currency': currency,
            }
        )
    return analysis
