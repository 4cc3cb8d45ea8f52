from __future__ import annotations

import unittest
from decimal import Decimal

from sqlalchemy import func, select

from db_fixtures import add_material, add_product, add_venue, make_session_factory
from venue_inventory.models import InventoryMethod, Recipe, RecipeLine, Unit
from venue_inventory.services.errors import (
    DuplicateIngredientError,
    DuplicateRecipeError,
    EmptyRecipeError,
    InventoryValidationError,
    UnitMismatchError,
)
from venue_inventory.services.recipe_service import (
    CostLine,
    RecipeLineInput,
    add_line,
    compute_recipe_cost,
    cost_breakdown,
    cost_per_serving,
    create_recipe,
    delete_recipe,
    list_stale_recipes,
    recalculate_all_recipes,
    remove_line,
    update_recipe,
)


class RecipeCostMathTests(unittest.TestCase):
    def test_cost_sums_lines_and_skips_variable_ones(self) -> None:
        lines = [
            CostLine(quantity=Decimal('0.2'), unit=Unit.KILOGRAM, material_unit=Unit.KILOGRAM, cost_per_unit=Decimal('5')),
            CostLine(quantity=Decimal('100'), unit=Unit.GRAM, material_unit=Unit.KILOGRAM, cost_per_unit=Decimal('20')),
            CostLine(
                quantity=Decimal('3'),
                unit=Unit.KILOGRAM,
                material_unit=Unit.KILOGRAM,
                cost_per_unit=Decimal('9'),
                is_variable=True,
            ),
        ]

        self.assertEqual(compute_recipe_cost(lines), Decimal('3.0000'))

    def test_empty_line_list_costs_nothing(self) -> None:
        self.assertEqual(compute_recipe_cost([]), Decimal('0'))

    def test_cost_per_serving(self) -> None:
        self.assertEqual(cost_per_serving(Decimal('3.00'), 2), Decimal('1.5000'))
        with self.assertRaises(InventoryValidationError):
            cost_per_serving(Decimal('3.00'), 0)


class RecipeServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.venue = add_venue(self.db)
        self.flour = add_material(self.db, self.venue, name='Flour', sku='F-1', cost_per_unit='5', current_stock='10')
        self.cheese = add_material(self.db, self.venue, name='Cheese', sku='C-1', cost_per_unit='20', current_stock='2')
        self.basil = add_material(self.db, self.venue, name='Basil', sku='B-1', unit=Unit.GRAM, cost_per_unit='0.05')
        self.product = add_product(self.db, self.venue, price='12')

    def tearDown(self) -> None:
        self.db.close()

    def _create(self, lines: list[RecipeLineInput] | None = None, portion_yield: int = 2) -> Recipe:
        return create_recipe(
            self.db,
            venue_id=self.venue.id,
            product_id=self.product.id,
            portion_yield=portion_yield,
            lines=lines
            if lines is not None
            else [
                RecipeLineInput(raw_material_id=self.flour.id, quantity=Decimal('0.2')),
                RecipeLineInput(raw_material_id=self.cheese.id, quantity=Decimal('0.1')),
            ],
        )

    def test_flour_and_cheese_scenario(self) -> None:
        recipe = self._create()

        self.assertEqual(recipe.total_cost, Decimal('3.00'))
        self.assertEqual(cost_per_serving(recipe.total_cost, recipe.portion_yield), Decimal('1.50'))
        self.assertEqual(self.product.inventory_method, InventoryMethod.RECIPE)
        self.assertTrue(self.product.track_inventory)

    def test_second_recipe_for_product_is_rejected(self) -> None:
        self._create()

        with self.assertRaises(DuplicateRecipeError):
            self._create()

    def test_empty_recipe_is_rejected(self) -> None:
        with self.assertRaises(EmptyRecipeError):
            self._create(lines=[])

        self.assertEqual(self.db.execute(select(func.count(Recipe.id))).scalar_one(), 0)

    def test_portion_yield_below_one_is_rejected(self) -> None:
        with self.assertRaises(InventoryValidationError):
            self._create(portion_yield=0)

    def test_repeated_material_is_rejected(self) -> None:
        with self.assertRaises(InventoryValidationError):
            self._create(
                lines=[
                    RecipeLineInput(raw_material_id=self.flour.id, quantity=Decimal('0.2')),
                    RecipeLineInput(raw_material_id=self.flour.id, quantity=Decimal('0.3')),
                ]
            )

    def test_material_from_another_venue_is_rejected(self) -> None:
        other = add_venue(self.db, name='Other')
        foreign = add_material(self.db, other, sku='X-1', cost_per_unit='1')

        with self.assertRaises(InventoryValidationError):
            self._create(lines=[RecipeLineInput(raw_material_id=foreign.id, quantity=Decimal('1'))])

    def test_incompatible_line_unit_is_rejected(self) -> None:
        with self.assertRaises(UnitMismatchError):
            self._create(lines=[RecipeLineInput(raw_material_id=self.flour.id, quantity=Decimal('1'), unit=Unit.LITER)])

    def test_add_then_remove_restores_total(self) -> None:
        recipe = self._create()
        before = recipe.total_cost

        add_line(
            self.db,
            venue_id=self.venue.id,
            product_id=self.product.id,
            line=RecipeLineInput(raw_material_id=self.basil.id, quantity=Decimal('10')),
        )
        self.assertEqual(recipe.total_cost, Decimal('3.50'))

        basil_line = next(line for line in recipe.lines if line.raw_material_id == self.basil.id)
        remove_line(self.db, venue_id=self.venue.id, product_id=self.product.id, line_id=basil_line.id)

        self.assertEqual(recipe.total_cost, before)

    def test_add_line_is_idempotent_for_identical_line(self) -> None:
        recipe = self._create()
        line = RecipeLineInput(raw_material_id=self.basil.id, quantity=Decimal('10'))

        add_line(self.db, venue_id=self.venue.id, product_id=self.product.id, line=line)
        add_line(self.db, venue_id=self.venue.id, product_id=self.product.id, line=line)

        self.assertEqual(len(recipe.lines), 3)

    def test_conflicting_line_for_same_material_is_rejected(self) -> None:
        self._create()

        with self.assertRaises(DuplicateIngredientError):
            add_line(
                self.db,
                venue_id=self.venue.id,
                product_id=self.product.id,
                line=RecipeLineInput(raw_material_id=self.flour.id, quantity=Decimal('0.9')),
            )

    def test_removing_unknown_line_is_a_no_op(self) -> None:
        recipe = self._create()

        remove_line(self.db, venue_id=self.venue.id, product_id=self.product.id, line_id=999999)

        self.assertEqual(len(recipe.lines), 2)
        self.assertEqual(recipe.total_cost, Decimal('3.00'))

    def test_removing_last_line_is_rejected(self) -> None:
        recipe = self._create(lines=[RecipeLineInput(raw_material_id=self.flour.id, quantity=Decimal('1'))])

        with self.assertRaises(EmptyRecipeError):
            remove_line(self.db, venue_id=self.venue.id, product_id=self.product.id, line_id=recipe.lines[0].id)

    def test_update_replaces_lines_and_yield(self) -> None:
        recipe = self._create()

        update_recipe(
            self.db,
            venue_id=self.venue.id,
            product_id=self.product.id,
            changes={'portion_yield': 4, 'notes': ' thin crust '},
            lines=[RecipeLineInput(raw_material_id=self.cheese.id, quantity=Decimal('0.2'))],
        )

        self.assertEqual(recipe.portion_yield, 4)
        self.assertEqual(recipe.notes, 'thin crust')
        self.assertEqual([line.raw_material_id for line in recipe.lines], [self.cheese.id])
        self.assertEqual(recipe.total_cost, Decimal('4.00'))

    def test_delete_removes_recipe_and_lines(self) -> None:
        self._create()

        delete_recipe(self.db, venue_id=self.venue.id, product_id=self.product.id)

        self.assertEqual(self.db.execute(select(func.count(Recipe.id))).scalar_one(), 0)
        self.assertEqual(self.db.execute(select(func.count(RecipeLine.id))).scalar_one(), 0)
        self.assertIsNone(self.product.inventory_method)
        self.assertFalse(self.product.track_inventory)

    def test_cost_breakdown_shares(self) -> None:
        self._create()

        breakdown = cost_breakdown(self.db, venue_id=self.venue.id, product_id=self.product.id)

        shares = {row['raw_material_id']: row['share_of_total'] for row in breakdown['lines']}
        self.assertEqual(breakdown['cost_per_serving'], Decimal('1.5000'))
        self.assertEqual(shares[self.flour.id], Decimal('33.33'))
        self.assertEqual(shares[self.cheese.id], Decimal('66.67'))

    def test_stale_recipes_and_recalculation(self) -> None:
        recipe = self._create()
        self.flour.cost_per_unit = Decimal('10')
        self.db.flush()

        stale = list_stale_recipes(self.db, venue_id=self.venue.id)
        self.assertEqual([row['recipe_id'] for row in stale], [recipe.id])
        self.assertEqual(stale[0]['current_cost'], Decimal('4.0000'))

        recalculate_all_recipes(self.db, venue_id=self.venue.id)

        self.assertEqual(recipe.total_cost, Decimal('4.0000'))
        self.assertEqual(list_stale_recipes(self.db, venue_id=self.venue.id), [])


if __name__ == '__main__':
    unittest.main()
