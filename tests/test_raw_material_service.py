from __future__ import annotations

import random
import unittest
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy import select

from db_fixtures import add_material, add_product, add_venue, make_session_factory
from venue_inventory.models import MovementType, RawMaterial, RawMaterialCategory, RawMaterialMovement, Unit
from venue_inventory.services.errors import (
    DuplicateSkuError,
    InventoryValidationError,
    MaterialInUseError,
    SkuGenerationExhausted,
)
from venue_inventory.services.raw_material_service import (
    RawMaterialInput,
    create_raw_material,
    delete_raw_material,
    generate_unique_sku,
    list_raw_materials,
    list_recipes_using,
    preview_cost_change,
    update_raw_material,
)
from venue_inventory.services.recipe_service import RecipeLineInput, create_recipe


class RawMaterialServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.venue = add_venue(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def test_create_with_initial_stock_writes_count_movement(self) -> None:
        material = create_raw_material(
            self.db,
            venue_id=self.venue.id,
            data=RawMaterialInput(name=' Flour ', sku='F-1', unit=Unit.KILOGRAM, current_stock=Decimal('12')),
        )

        movement = self.db.execute(
            select(RawMaterialMovement).where(RawMaterialMovement.raw_material_id == material.id)
        ).scalar_one()
        self.assertEqual(material.name, 'Flour')
        self.assertEqual(movement.type, MovementType.COUNT)
        self.assertEqual(movement.previous_stock, Decimal('0'))
        self.assertEqual(movement.new_stock, Decimal('12'))

    def test_create_without_sku_generates_one(self) -> None:
        material = create_raw_material(
            self.db,
            venue_id=self.venue.id,
            data=RawMaterialInput(name='Salt', unit=Unit.GRAM),
        )

        self.assertRegex(material.sku, r'^[A-Z]\d{6}$')

    def test_duplicate_sku_in_venue_is_rejected(self) -> None:
        add_material(self.db, self.venue, sku='DUP-1')

        with self.assertRaises(DuplicateSkuError):
            create_raw_material(
                self.db,
                venue_id=self.venue.id,
                data=RawMaterialInput(name='Other', sku='DUP-1', unit=Unit.GRAM),
            )

    def test_same_sku_in_another_venue_is_allowed(self) -> None:
        add_material(self.db, self.venue, sku='SHARED')
        other = add_venue(self.db, name='Other')

        material = create_raw_material(
            self.db,
            venue_id=other.id,
            data=RawMaterialInput(name='Flour', sku='SHARED', unit=Unit.KILOGRAM),
        )

        self.assertEqual(material.venue_id, other.id)

    def test_minimum_above_reorder_point_is_rejected(self) -> None:
        with self.assertRaises(InventoryValidationError):
            create_raw_material(
                self.db,
                venue_id=self.venue.id,
                data=RawMaterialInput(
                    name='Milk',
                    unit=Unit.LITER,
                    minimum_stock=Decimal('5'),
                    reorder_point=Decimal('2'),
                ),
            )

    def test_perishable_requires_shelf_life(self) -> None:
        with self.assertRaises(InventoryValidationError):
            create_raw_material(
                self.db,
                venue_id=self.venue.id,
                data=RawMaterialInput(name='Milk', unit=Unit.LITER, perishable=True),
            )

    def test_generate_sku_format(self) -> None:
        sku = generate_unique_sku(self.db, venue_id=self.venue.id, rng=random.Random(42))

        self.assertRegex(sku, r'^[A-Z]\d{6}$')

    @patch('venue_inventory.services.raw_material_service._candidate_sku')
    def test_generate_sku_gives_up_after_collisions(self, candidate_mock) -> None:
        add_material(self.db, self.venue, sku='A000001')
        candidate_mock.return_value = 'A000001'

        with self.assertRaises(SkuGenerationExhausted):
            generate_unique_sku(self.db, venue_id=self.venue.id)

        self.assertEqual(candidate_mock.call_count, 5)

    @patch('venue_inventory.services.raw_material_service._candidate_sku')
    def test_generate_sku_retries_past_collision(self, candidate_mock) -> None:
        add_material(self.db, self.venue, sku='A000001')
        candidate_mock.side_effect = ['A000001', 'B000002']

        self.assertEqual(generate_unique_sku(self.db, venue_id=self.venue.id), 'B000002')

    def test_list_filters(self) -> None:
        add_material(self.db, self.venue, name='Flour', sku='F-1', current_stock='2', reorder_point='5')
        add_material(self.db, self.venue, name='Sugar', sku='S-1', current_stock='9', reorder_point='5')

        low = list_raw_materials(self.db, venue_id=self.venue.id, low_stock=True)
        searched = list_raw_materials(self.db, venue_id=self.venue.id, search='sug')
        by_category = list_raw_materials(self.db, venue_id=self.venue.id, category=RawMaterialCategory.DAIRY)

        self.assertEqual([material.sku for material in low], ['F-1'])
        self.assertEqual([material.sku for material in searched], ['S-1'])
        self.assertEqual(by_category, [])

    def test_update_cannot_touch_current_stock(self) -> None:
        material = add_material(self.db, self.venue, current_stock='3')

        with self.assertRaises(InventoryValidationError):
            update_raw_material(
                self.db,
                venue_id=self.venue.id,
                raw_material_id=material.id,
                changes={'current_stock': Decimal('100')},
            )

    def test_delete_is_blocked_by_recipe_usage(self) -> None:
        material = add_material(self.db, self.venue, cost_per_unit='1')
        product = add_product(self.db, self.venue)
        create_recipe(
            self.db,
            venue_id=self.venue.id,
            product_id=product.id,
            portion_yield=1,
            lines=[RecipeLineInput(raw_material_id=material.id, quantity=Decimal('1'))],
        )

        with self.assertRaises(MaterialInUseError) as ctx:
            delete_raw_material(self.db, venue_id=self.venue.id, raw_material_id=material.id)

        self.assertEqual(ctx.exception.recipe_count, 1)
        self.assertIsNotNone(self.db.get(RawMaterial, material.id))

    def test_delete_unused_material_without_history(self) -> None:
        material = add_material(self.db, self.venue)

        delete_raw_material(self.db, venue_id=self.venue.id, raw_material_id=material.id)

        self.assertIsNone(self.db.get(RawMaterial, material.id))

    def test_cost_change_recalculates_recipes(self) -> None:
        material = add_material(self.db, self.venue, cost_per_unit='5')
        product = add_product(self.db, self.venue, price='10')
        recipe = create_recipe(
            self.db,
            venue_id=self.venue.id,
            product_id=product.id,
            portion_yield=1,
            lines=[RecipeLineInput(raw_material_id=material.id, quantity=Decimal('0.5'))],
        )
        self.assertEqual(recipe.total_cost, Decimal('2.5'))

        update_raw_material(
            self.db,
            venue_id=self.venue.id,
            raw_material_id=material.id,
            changes={'cost_per_unit': Decimal('6')},
        )

        self.assertEqual(recipe.total_cost, Decimal('3'))
        usage = list_recipes_using(self.db, venue_id=self.venue.id, raw_material_id=material.id)
        self.assertEqual([row['product_id'] for row in usage], [product.id])

    def test_preview_cost_change_recommendations(self) -> None:
        material = add_material(self.db, self.venue, cost_per_unit='5')
        product = add_product(self.db, self.venue, price='10')
        create_recipe(
            self.db,
            venue_id=self.venue.id,
            product_id=product.id,
            portion_yield=1,
            lines=[RecipeLineInput(raw_material_id=material.id, quantity=Decimal('0.4'))],
        )

        preview = preview_cost_change(
            self.db,
            venue_id=self.venue.id,
            raw_material_id=material.id,
            proposed_cost=Decimal('10'),
        )

        row = preview['affected_recipes'][0]
        self.assertEqual(row['current_recipe_cost'], Decimal('2'))
        self.assertEqual(row['estimated_new_recipe_cost'], Decimal('4'))
        self.assertEqual(row['estimated_new_food_cost_percentage'], Decimal('40'))
        self.assertEqual(row['recommendation'], 'INCREASE_PRICE')
        self.assertEqual(preview['summary']['need_price_increase'], 1)
        self.assertEqual(material.cost_per_unit, Decimal('5'))


if __name__ == '__main__':
    unittest.main()
