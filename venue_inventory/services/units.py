from __future__ import annotations

from decimal import Decimal

from venue_inventory.models import Unit
from venue_inventory.services.errors import UnitMismatchError

# Factors to the family base unit: grams, milliliters, single units.
WEIGHT_FACTORS = {
    Unit.MILLIGRAM: Decimal('0.001'),
    Unit.GRAM: Decimal('1'),
    Unit.KILOGRAM: Decimal('1000'),
    Unit.TON: Decimal('1000000'),
    Unit.OUNCE: Decimal('28.349523125'),
    Unit.POUND: Decimal('453.59237'),
}

VOLUME_FACTORS = {
    Unit.MILLILITER: Decimal('1'),
    Unit.LITER: Decimal('1000'),
    Unit.TEASPOON: Decimal('4.92892159375'),
    Unit.TABLESPOON: Decimal('14.78676478125'),
    Unit.FLUID_OUNCE: Decimal('29.5735295625'),
    Unit.CUP: Decimal('236.5882365'),
    Unit.PINT: Decimal('473.176473'),
    Unit.QUART: Decimal('946.352946'),
    Unit.GALLON: Decimal('3785.411784'),
}

COUNT_FACTORS = {
    Unit.UNIT: Decimal('1'),
    Unit.PIECE: Decimal('1'),
    Unit.DOZEN: Decimal('12'),
}

UNIT_FAMILIES = (WEIGHT_FACTORS, VOLUME_FACTORS, COUNT_FACTORS)


def _family_for(unit: Unit) -> dict[Unit, Decimal] | None:
    for family in UNIT_FAMILIES:
        if unit in family:
            return family
    return None


def convert_quantity(quantity: Decimal, from_unit: Unit, to_unit: Unit) -> Decimal:
    if from_unit == to_unit:
        return quantity
    family = _family_for(from_unit)
    if family is None or to_unit not in family:
        raise UnitMismatchError(f'Cannot convert {from_unit.value} to {to_unit.value}')
    return quantity * family[from_unit] / family[to_unit]
