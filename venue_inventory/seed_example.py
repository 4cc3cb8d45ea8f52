from decimal import Decimal

from sqlalchemy import select

from venue_inventory.db import SessionLocal
from venue_inventory.models import (
    PricingStrategy,
    Principal,
    PrincipalRole,
    Product,
    RawMaterial,
    RawMaterialCategory,
    Unit,
    Venue,
)
from venue_inventory.security.passwords import hash_password
from venue_inventory.services.pricing_service import PolicyInput, create_policy
from venue_inventory.services.raw_material_service import RawMaterialInput, create_raw_material
from venue_inventory.services.recipe_service import RecipeLineInput, create_recipe, find_recipe

DEMO_MATERIALS = [
    RawMaterialInput(
        name='Flour',
        sku='FLOUR-001',
        unit=Unit.KILOGRAM,
        category=RawMaterialCategory.GRAINS,
        current_stock=Decimal('25'),
        minimum_stock=Decimal('5'),
        reorder_point=Decimal('10'),
        cost_per_unit=Decimal('5.00'),
    ),
    RawMaterialInput(
        name='Mozzarella',
        sku='CHEESE-001',
        unit=Unit.KILOGRAM,
        category=RawMaterialCategory.CHEESE,
        current_stock=Decimal('8'),
        minimum_stock=Decimal('2'),
        reorder_point=Decimal('4'),
        cost_per_unit=Decimal('20.00'),
        perishable=True,
        shelf_life_days=14,
    ),
]


def seed() -> None:
    with SessionLocal() as db:
        venue = db.execute(select(Venue).where(Venue.name == 'Demo Pizzeria')).scalar_one_or_none()
        if not venue:
            venue = Venue(name='Demo Pizzeria', currency='USD', active=True)
            db.add(venue)
            db.flush()

        manager = db.execute(select(Principal).where(Principal.username == 'manager')).scalar_one_or_none()
        if not manager:
            db.add(
                Principal(
                    username='manager',
                    password_hash=hash_password('managerpass'),
                    role=PrincipalRole.MANAGER,
                    venue_id=venue.id,
                    active=True,
                )
            )

        staff = db.execute(select(Principal).where(Principal.username == 'staff1')).scalar_one_or_none()
        if not staff:
            db.add(
                Principal(
                    username='staff1',
                    password_hash=hash_password('staffpass'),
                    role=PrincipalRole.STAFF,
                    venue_id=venue.id,
                    active=True,
                )
            )

        materials = {}
        for data in DEMO_MATERIALS:
            material = db.execute(
                select(RawMaterial).where(RawMaterial.venue_id == venue.id, RawMaterial.sku == data.sku)
            ).scalar_one_or_none()
            if not material:
                material = create_raw_material(db, venue_id=venue.id, data=data)
            materials[data.sku] = material

        pizza = db.execute(select(Product).where(Product.venue_id == venue.id, Product.sku == 'PIZZA-MARG')).scalar_one_or_none()
        if not pizza:
            pizza = Product(venue_id=venue.id, name='Margherita Pizza', sku='PIZZA-MARG', price=Decimal('12.00'), unit=Unit.UNIT)
            db.add(pizza)
            db.flush()

        if find_recipe(db, product_id=pizza.id) is None:
            create_recipe(
                db,
                venue_id=venue.id,
                product_id=pizza.id,
                portion_yield=2,
                lines=[
                    RecipeLineInput(raw_material_id=materials['FLOUR-001'].id, quantity=Decimal('0.2')),
                    RecipeLineInput(raw_material_id=materials['CHEESE-001'].id, quantity=Decimal('100'), unit=Unit.GRAM),
                ],
            )
            create_policy(
                db,
                venue_id=venue.id,
                product_id=pizza.id,
                data=PolicyInput(
                    pricing_strategy=PricingStrategy.AUTO_MARKUP,
                    target_markup_percentage=Decimal('200'),
                    minimum_price=Decimal('10.00'),
                ),
            )

        db.commit()


if __name__ == '__main__':
    seed()
