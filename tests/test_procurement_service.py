from __future__ import annotations

import unittest
from decimal import Decimal

from db_fixtures import add_material, add_venue, make_session_factory
from venue_inventory.models import PurchaseOrder, PurchaseOrderLine, PurchaseOrderStatus, Supplier, Unit
from venue_inventory.services.errors import NotFoundError
from venue_inventory.services.procurement_service import (
    confirmed_stock,
    confirmed_stock_by_material,
    list_purchase_orders,
    outstanding_quantity,
    stock_position,
)


class OutstandingQuantityTests(unittest.TestCase):
    def test_outstanding_is_never_negative(self) -> None:
        self.assertEqual(outstanding_quantity(Decimal('10'), Decimal('4')), Decimal('6'))
        self.assertEqual(outstanding_quantity(Decimal('10'), Decimal('10')), Decimal('0'))
        self.assertEqual(outstanding_quantity(Decimal('10'), Decimal('12')), Decimal('0'))


class ProcurementServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.venue = add_venue(self.db)
        self.flour = add_material(self.db, self.venue, name='Flour', sku='F-1', current_stock='5')
        self.cheese = add_material(self.db, self.venue, name='Cheese', sku='C-1', current_stock='1')
        self.supplier = Supplier(venue_id=self.venue.id, name='Mill Co')
        self.db.add(self.supplier)
        self.db.flush()

    def tearDown(self) -> None:
        self.db.close()

    def _order(self, number: str, status: PurchaseOrderStatus, *lines: tuple) -> PurchaseOrder:
        order = PurchaseOrder(
            venue_id=self.venue.id,
            supplier_id=self.supplier.id,
            order_number=number,
            status=status,
        )
        self.db.add(order)
        self.db.flush()
        for material, ordered, received, *unit in lines:
            self.db.add(
                PurchaseOrderLine(
                    purchase_order_id=order.id,
                    raw_material_id=material.id,
                    quantity_ordered=Decimal(ordered),
                    quantity_received=Decimal(received),
                    unit=unit[0] if unit else Unit.KILOGRAM,
                )
            )
        self.db.flush()
        return order

    def test_only_open_orders_count_as_confirmed(self) -> None:
        self._order('PO-1', PurchaseOrderStatus.SENT, (self.flour, '10', '0'))
        self._order('PO-2', PurchaseOrderStatus.PARTIAL, (self.flour, '8', '5'))
        self._order('PO-3', PurchaseOrderStatus.CANCELLED, (self.flour, '100', '0'))
        self._order('PO-4', PurchaseOrderStatus.COMPLETED, (self.flour, '50', '50'))
        self._order('PO-5', PurchaseOrderStatus.DRAFT, (self.flour, '30', '0'))

        self.assertEqual(confirmed_stock(self.db, venue_id=self.venue.id, raw_material_id=self.flour.id), Decimal('13'))

    def test_over_received_lines_add_nothing(self) -> None:
        self._order('PO-1', PurchaseOrderStatus.PARTIAL, (self.flour, '5', '7'), (self.cheese, '4', '1'))

        totals = confirmed_stock_by_material(self.db, venue_id=self.venue.id)

        self.assertEqual(totals[self.flour.id], Decimal('0'))
        self.assertEqual(totals[self.cheese.id], Decimal('3'))
        self.assertEqual(confirmed_stock_by_material(self.db, venue_id=self.venue.id, raw_material_ids=[]), {})

    def test_order_lines_are_converted_to_the_stock_unit(self) -> None:
        self._order('PO-1', PurchaseOrderStatus.SENT, (self.flour, '500', '0', Unit.GRAM))

        self.assertEqual(confirmed_stock(self.db, venue_id=self.venue.id, raw_material_id=self.flour.id), Decimal('0.5'))

        self._order('PO-2', PurchaseOrderStatus.CONFIRMED, (self.flour, '2', '0'), (self.flour, '250', '0', Unit.GRAM))

        self.assertEqual(confirmed_stock(self.db, venue_id=self.venue.id, raw_material_id=self.flour.id), Decimal('2.75'))

    def test_order_lines_in_another_unit_family_are_skipped(self) -> None:
        self._order('PO-1', PurchaseOrderStatus.SENT, (self.flour, '3', '0'), (self.flour, '4', '0', Unit.LITER))

        with self.assertLogs('venue_inventory.procurement', level='WARNING'):
            total = confirmed_stock(self.db, venue_id=self.venue.id, raw_material_id=self.flour.id)

        self.assertEqual(total, Decimal('3'))

    def test_stock_position_keeps_confirmed_separate(self) -> None:
        self._order('PO-1', PurchaseOrderStatus.CONFIRMED, (self.flour, '20', '0'))

        position = stock_position(self.db, venue_id=self.venue.id, raw_material_id=self.flour.id)

        self.assertEqual(position['current_stock'], Decimal('5'))
        self.assertEqual(position['confirmed_stock'], Decimal('20'))
        self.assertEqual(position['unit'], 'KILOGRAM')
        self.assertEqual(self.flour.current_stock, Decimal('5'))

    def test_stock_position_for_unknown_material(self) -> None:
        other = add_venue(self.db, name='Other')

        with self.assertRaises(NotFoundError):
            stock_position(self.db, venue_id=other.id, raw_material_id=self.flour.id)

    def test_list_purchase_orders_filters_status(self) -> None:
        self._order('PO-1', PurchaseOrderStatus.SENT, (self.flour, '10', '2'))
        self._order('PO-2', PurchaseOrderStatus.CANCELLED, (self.cheese, '1', '0'))

        orders = list_purchase_orders(self.db, venue_id=self.venue.id, statuses=[PurchaseOrderStatus.SENT])

        self.assertEqual([order['order_number'] for order in orders], ['PO-1'])
        self.assertEqual(orders[0]['supplier_name'], 'Mill Co')
        self.assertEqual(orders[0]['lines'][0]['raw_material_name'], 'Flour')
        self.assertEqual(orders[0]['lines'][0]['outstanding_quantity'], Decimal('8'))
        self.assertEqual(len(list_purchase_orders(self.db, venue_id=self.venue.id)), 2)


if __name__ == '__main__':
    unittest.main()
