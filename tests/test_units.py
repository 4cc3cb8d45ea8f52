from __future__ import annotations

import unittest
from decimal import Decimal

from venue_inventory.models import Unit
from venue_inventory.services.errors import UnitMismatchError
from venue_inventory.services.units import convert_quantity


class UnitConversionTests(unittest.TestCase):
    def test_weight_conversion(self) -> None:
        self.assertEqual(convert_quantity(Decimal('250'), Unit.GRAM, Unit.KILOGRAM), Decimal('0.25'))
        self.assertEqual(convert_quantity(Decimal('2'), Unit.KILOGRAM, Unit.GRAM), Decimal('2000'))

    def test_volume_conversion(self) -> None:
        self.assertEqual(convert_quantity(Decimal('1.5'), Unit.LITER, Unit.MILLILITER), Decimal('1500'))

    def test_count_conversion(self) -> None:
        self.assertEqual(convert_quantity(Decimal('2'), Unit.DOZEN, Unit.UNIT), Decimal('24'))

    def test_same_unit_is_identity(self) -> None:
        self.assertEqual(convert_quantity(Decimal('3'), Unit.BOTTLE, Unit.BOTTLE), Decimal('3'))

    def test_cross_family_conversion_fails(self) -> None:
        with self.assertRaises(UnitMismatchError):
            convert_quantity(Decimal('1'), Unit.LITER, Unit.KILOGRAM)
        with self.assertRaises(UnitMismatchError):
            convert_quantity(Decimal('1'), Unit.CASE, Unit.UNIT)


if __name__ == '__main__':
    unittest.main()
