from __future__ import annotations

from decimal import Decimal


class InventoryError(ValueError):
    """Base class for failures scoped to a single inventory request.

    Every subclass maps to one HTTP status and a stable machine-readable code;
    ``context`` carries the authoritative post-state the caller needs to resync.
    """

    status_code = 400
    code = 'INVENTORY_ERROR'

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class InventoryValidationError(InventoryError):
    status_code = 422
    code = 'VALIDATION_ERROR'


class NotFoundError(InventoryError):
    status_code = 404
    code = 'NOT_FOUND'


class NegativeStockError(InventoryError):
    status_code = 409
    code = 'NEGATIVE_STOCK'

    def __init__(self, *, current_stock: Decimal, quantity: Decimal) -> None:
        super().__init__(
            f'Adjustment of {quantity} would leave stock at {current_stock + quantity}',
            current_stock=current_stock,
            quantity=quantity,
        )


class StaleConfirmationError(InventoryError):
    status_code = 409
    code = 'STALE_CONFIRMATION'

    def __init__(self, *, current_stock: Decimal) -> None:
        super().__init__(
            'Confirmation token does not match this adjustment; stock changed since it was proposed',
            current_stock=current_stock,
        )


class DuplicateSkuError(InventoryError):
    status_code = 409
    code = 'DUPLICATE_SKU'


class SkuGenerationExhausted(InventoryError):
    status_code = 503
    code = 'SKU_GENERATION_EXHAUSTED'


class MaterialInUseError(InventoryError):
    status_code = 409
    code = 'MATERIAL_IN_USE'

    def __init__(self, *, recipe_count: int) -> None:
        super().__init__(
            f'Raw material is used by {recipe_count} recipe(s)',
            recipe_count=recipe_count,
        )
        self.recipe_count = recipe_count


class DuplicateRecipeError(InventoryError):
    status_code = 409
    code = 'DUPLICATE_RECIPE'


class EmptyRecipeError(InventoryValidationError):
    code = 'EMPTY_RECIPE'


class DuplicateIngredientError(InventoryError):
    status_code = 409
    code = 'DUPLICATE_INGREDIENT'


class UnitMismatchError(InventoryValidationError):
    code = 'UNIT_MISMATCH'


class InvalidTargetError(InventoryValidationError):
    code = 'INVALID_TARGET'


class NoPolicyError(NotFoundError):
    code = 'NO_PRICING_POLICY'


class ConversionNotAllowedError(InventoryError):
    status_code = 409
    code = 'CONVERSION_NOT_ALLOWED'


class DuplicatePolicyError(InventoryError):
    status_code = 409
    code = 'DUPLICATE_PRICING_POLICY'
