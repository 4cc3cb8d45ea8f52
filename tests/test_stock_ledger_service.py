from __future__ import annotations

import unittest
from decimal import Decimal

from sqlalchemy import func, select

from db_fixtures import add_material, add_venue, make_session_factory
from venue_inventory.models import MovementType, RawMaterialMovement
from venue_inventory.services.errors import (
    InventoryValidationError,
    NegativeStockError,
    NotFoundError,
    StaleConfirmationError,
)
from venue_inventory.services.stock_ledger_service import (
    adjust_raw_material_stock,
    list_movements,
    record_physical_count,
)
from venue_inventory.services.stock_math_service import ConfirmationRequired


class StockLedgerServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.venue = add_venue(self.db)
        self.material = add_material(self.db, self.venue, current_stock='10', cost_per_unit='2')

    def tearDown(self) -> None:
        self.db.close()

    def _movement_count(self) -> int:
        return self.db.execute(
            select(func.count(RawMaterialMovement.id)).where(RawMaterialMovement.raw_material_id == self.material.id)
        ).scalar_one()

    def _adjust(self, quantity: str, **kwargs):
        return adjust_raw_material_stock(
            self.db,
            venue_id=self.venue.id,
            raw_material_id=self.material.id,
            type=kwargs.pop('type', MovementType.ADJUSTMENT),
            quantity=Decimal(quantity),
            **kwargs,
        )

    def test_usage_then_overdraw(self) -> None:
        movement = self._adjust('-3', type=MovementType.USAGE)

        self.assertEqual(movement.previous_stock, Decimal('10'))
        self.assertEqual(movement.new_stock, Decimal('7'))
        self.assertEqual(self.material.current_stock, Decimal('7'))

        with self.assertRaises(NegativeStockError) as ctx:
            self._adjust('-8', type=MovementType.USAGE)

        self.assertEqual(ctx.exception.context['current_stock'], Decimal('7'))
        self.assertEqual(self.material.current_stock, Decimal('7'))
        self.assertEqual(self._movement_count(), 1)

    def test_movement_chain_matches_current_stock(self) -> None:
        for quantity in ('2', '-1', '3', '-4'):
            self._adjust(quantity)

        movements = list(reversed(list_movements(self.db, venue_id=self.venue.id, raw_material_id=self.material.id)))
        self.assertEqual(movements[0].previous_stock, Decimal('10'))
        for earlier, later in zip(movements, movements[1:]):
            self.assertEqual(earlier.new_stock, later.previous_stock)
        for movement in movements:
            self.assertEqual(movement.new_stock, movement.previous_stock + movement.quantity)
        self.assertEqual(movements[-1].new_stock, self.material.current_stock)
        self.assertEqual(self.material.current_stock, Decimal('10'))

    def test_zero_quantity_is_rejected(self) -> None:
        with self.assertRaises(InventoryValidationError):
            self._adjust('0')
        self.assertEqual(self._movement_count(), 0)

    def test_large_adjustment_is_a_dry_run_until_confirmed(self) -> None:
        first = self._adjust('-6', reason='spill')
        second = self._adjust('-6', reason='spill')

        self.assertIsInstance(first, ConfirmationRequired)
        self.assertIsInstance(second, ConfirmationRequired)
        self.assertEqual(first.token, second.token)
        self.assertEqual(first.projected_stock, Decimal('4'))
        self.assertEqual(self._movement_count(), 0)
        self.assertEqual(self.material.current_stock, Decimal('10'))

        committed = self._adjust('-6', reason='spill', confirmation_token=first.token)

        self.assertIsInstance(committed, RawMaterialMovement)
        self.assertEqual(self.material.current_stock, Decimal('4'))
        self.assertEqual(self._movement_count(), 1)

    def test_retried_confirmation_replays_the_committed_movement(self) -> None:
        proposal = self._adjust('-6')
        committed = self._adjust('-6', confirmation_token=proposal.token)
        retried = self._adjust('-6', confirmation_token=proposal.token)

        self.assertEqual(retried.id, committed.id)
        self.assertEqual(self._movement_count(), 1)
        self.assertEqual(self.material.current_stock, Decimal('4'))

    def test_stale_token_is_rejected_after_stock_moves(self) -> None:
        proposal = self._adjust('-6')
        self._adjust('1')

        with self.assertRaises(StaleConfirmationError) as ctx:
            self._adjust('-6', confirmation_token=proposal.token)

        self.assertEqual(ctx.exception.context['current_stock'], Decimal('11'))
        self.assertEqual(self._movement_count(), 1)

    def test_token_does_not_survive_movements_that_restore_stock(self) -> None:
        first = self._adjust('-6', type=MovementType.SPOILAGE)
        self._adjust('-6', type=MovementType.SPOILAGE, confirmation_token=first.token)
        restock = self._adjust('6', type=MovementType.PURCHASE)
        self._adjust('6', type=MovementType.PURCHASE, confirmation_token=restock.token)
        self.assertEqual(self.material.current_stock, Decimal('10'))

        second = self._adjust('-6', type=MovementType.SPOILAGE)

        self.assertIsInstance(second, ConfirmationRequired)
        self.assertNotEqual(second.token, first.token)
        replayed = self._adjust('-6', type=MovementType.SPOILAGE, confirmation_token=first.token)
        self.assertEqual(replayed.new_stock, Decimal('4'))
        self.assertEqual(self.material.current_stock, Decimal('10'))

        self._adjust('-6', type=MovementType.SPOILAGE, confirmation_token=second.token)
        self.assertEqual(self.material.current_stock, Decimal('4'))
        self.assertEqual(self._movement_count(), 3)

    def test_physical_count_uses_stock_after_earlier_movements(self) -> None:
        self._adjust('-3', type=MovementType.USAGE)

        movement = record_physical_count(
            self.db,
            venue_id=self.venue.id,
            raw_material_id=self.material.id,
            counted_quantity=Decimal('5'),
        )

        self.assertEqual(movement.previous_stock, Decimal('7'))
        self.assertEqual(movement.quantity, Decimal('-2'))
        self.assertEqual(self.material.current_stock, Decimal('5'))

    def test_token_for_different_quantity_is_rejected(self) -> None:
        proposal = self._adjust('-6')

        with self.assertRaises(StaleConfirmationError):
            self._adjust('-7', confirmation_token=proposal.token)

    def test_purchase_updates_average_cost_and_restock_time(self) -> None:
        self._adjust('5', type=MovementType.PURCHASE, unit_cost=Decimal('5'))

        self.assertEqual(self.material.avg_cost_per_unit, Decimal('3.0000'))
        self.assertIsNotNone(self.material.last_restock_at)

    def test_physical_count_writes_count_delta(self) -> None:
        movement = record_physical_count(
            self.db,
            venue_id=self.venue.id,
            raw_material_id=self.material.id,
            counted_quantity=Decimal('8'),
        )

        self.assertEqual(movement.type, MovementType.COUNT)
        self.assertEqual(movement.quantity, Decimal('-2'))
        self.assertEqual(movement.reason, 'Physical count')
        self.assertEqual(self.material.current_stock, Decimal('8'))
        self.assertIsNotNone(self.material.last_count_at)

    def test_confirmed_physical_count_replays(self) -> None:
        proposal = record_physical_count(
            self.db,
            venue_id=self.venue.id,
            raw_material_id=self.material.id,
            counted_quantity=Decimal('2'),
        )
        self.assertIsInstance(proposal, ConfirmationRequired)

        first = record_physical_count(
            self.db,
            venue_id=self.venue.id,
            raw_material_id=self.material.id,
            counted_quantity=Decimal('2'),
            confirmation_token=proposal.token,
        )
        again = record_physical_count(
            self.db,
            venue_id=self.venue.id,
            raw_material_id=self.material.id,
            counted_quantity=Decimal('2'),
            confirmation_token=proposal.token,
        )

        self.assertEqual(first.id, again.id)
        self.assertEqual(self.material.current_stock, Decimal('2'))
        self.assertEqual(self._movement_count(), 1)

    def test_physical_count_matching_stock_is_rejected(self) -> None:
        with self.assertRaises(InventoryValidationError):
            record_physical_count(
                self.db,
                venue_id=self.venue.id,
                raw_material_id=self.material.id,
                counted_quantity=Decimal('10'),
            )

    def test_other_venue_material_is_not_found(self) -> None:
        other = add_venue(self.db, name='Other')

        with self.assertRaises(NotFoundError):
            adjust_raw_material_stock(
                self.db,
                venue_id=other.id,
                raw_material_id=self.material.id,
                type=MovementType.USAGE,
                quantity=Decimal('-1'),
            )

    def test_history_is_newest_first_and_limited(self) -> None:
        for quantity in ('1', '1', '1'):
            self._adjust(quantity)

        history = list_movements(self.db, venue_id=self.venue.id, raw_material_id=self.material.id, limit=2)

        self.assertEqual(len(history), 2)
        self.assertGreater(history[0].id, history[1].id)
        self.assertEqual(history[0].new_stock, Decimal('13'))


if __name__ == '__main__':
    unittest.main()
