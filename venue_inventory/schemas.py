from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator

from venue_inventory.models import (
    InventoryMethod,
    MovementType,
    PricingStrategy,
    PurchaseOrderStatus,
    RawMaterialCategory,
    StockAlertStatus,
    StockAlertType,
    Unit,
)


def _reject_float(value):
    # Binary floats cannot carry exact quantities or money.
    if isinstance(value, float):
        raise ValueError("send decimal values as strings or integers")
    return value


DecimalValue = Annotated[Decimal, BeforeValidator(_reject_float)]


def _strip_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class OrmModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- auth ---


class LoginRequest(BaseModel):
    username: str
    password: str

    @field_validator("username")
    @classmethod
    def _strip_username(cls, v: str) -> str:
        return (v or "").strip()


class LoginResponse(BaseModel):
    token: str
    principal_id: int
    role: str
    venue_id: Optional[int] = None


# --- raw materials ---


class RawMaterialCreate(BaseModel):
    name: str
    unit: Unit
    category: RawMaterialCategory = RawMaterialCategory.OTHER
    sku: Optional[str] = None
    gtin: Optional[str] = None
    description: Optional[str] = None
    current_stock: DecimalValue = Decimal("0")
    minimum_stock: DecimalValue = Decimal("0")
    reorder_point: DecimalValue = Decimal("0")
    maximum_stock: Optional[DecimalValue] = None
    cost_per_unit: DecimalValue = Decimal("0")
    avg_cost_per_unit: Optional[DecimalValue] = None
    perishable: bool = False
    shelf_life_days: Optional[int] = None

    @field_validator("name")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v

    @field_validator("sku", "gtin", "description")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)


class RawMaterialUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    sku: Optional[str] = None
    gtin: Optional[str] = None
    category: Optional[RawMaterialCategory] = None
    unit: Optional[Unit] = None
    minimum_stock: Optional[DecimalValue] = None
    reorder_point: Optional[DecimalValue] = None
    maximum_stock: Optional[DecimalValue] = None
    cost_per_unit: Optional[DecimalValue] = None
    perishable: Optional[bool] = None
    shelf_life_days: Optional[int] = None
    active: Optional[bool] = None

    @field_validator("name", "sku")
    @classmethod
    def _not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty")
        return v


class RawMaterialOut(OrmModel):
    id: int
    venue_id: int
    sku: str
    gtin: Optional[str] = None
    name: str
    description: Optional[str] = None
    category: RawMaterialCategory
    unit: Unit
    current_stock: Decimal
    minimum_stock: Decimal
    reorder_point: Decimal
    maximum_stock: Optional[Decimal] = None
    cost_per_unit: Decimal
    avg_cost_per_unit: Decimal
    perishable: bool
    shelf_life_days: Optional[int] = None
    active: bool
    last_count_at: Optional[datetime] = None
    last_restock_at: Optional[datetime] = None
    currency: Optional[str] = None


class GeneratedSkuOut(BaseModel):
    sku: str


class AdjustStockRequest(BaseModel):
    type: MovementType
    quantity: DecimalValue
    reason: Optional[str] = None
    reference: Optional[str] = None
    unit_cost: Optional[DecimalValue] = None
    confirmation_token: Optional[str] = None

    @field_validator("reason", "reference", "confirmation_token")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)


class PhysicalCountRequest(BaseModel):
    counted_quantity: DecimalValue
    reason: Optional[str] = None
    confirmation_token: Optional[str] = None

    @field_validator("reason", "confirmation_token")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)


class MovementOut(OrmModel):
    id: int
    type: MovementType
    quantity: Decimal
    previous_stock: Decimal
    new_stock: Decimal
    unit_cost: Optional[Decimal] = None
    reason: Optional[str] = None
    reference: Optional[str] = None
    created_by_principal_id: Optional[int] = None
    created_at: datetime


class ProductMovementOut(OrmModel):
    id: int
    product_id: int
    type: MovementType
    quantity: Decimal
    previous_stock: Decimal
    new_stock: Decimal
    reason: Optional[str] = None
    reference: Optional[str] = None
    created_by_principal_id: Optional[int] = None
    created_at: datetime


class ConfirmationRequiredOut(OrmModel):
    confirmation_required: bool = True
    token: str
    previous_stock: Decimal
    quantity: Decimal
    projected_stock: Decimal
    ratio: Decimal


class StockPositionOut(BaseModel):
    raw_material_id: int
    unit: Unit
    current_stock: Decimal
    confirmed_stock: Decimal


class RecipeUsageOut(BaseModel):
    product_id: int
    product_name: str
    recipe_id: int
    recipe_total_cost: Decimal
    quantity: Decimal
    unit: Unit


class CostPreviewMaterial(BaseModel):
    id: int
    name: str
    current_cost: Decimal
    proposed_new_cost: Decimal
    cost_change: Decimal
    percentage_change: Optional[Decimal] = None


class CostPreviewRecipe(BaseModel):
    product_id: int
    product_name: str
    current_recipe_cost: Decimal
    estimated_new_recipe_cost: Decimal
    cost_impact: Decimal
    current_price: Decimal
    current_food_cost_percentage: Optional[Decimal] = None
    estimated_new_food_cost_percentage: Optional[Decimal] = None
    recommendation: str


class CostPreviewSummary(BaseModel):
    total_recipes: int
    need_price_increase: int
    need_price_review: int
    ok: int


class CostPreviewOut(BaseModel):
    raw_material: CostPreviewMaterial
    affected_recipes: list[CostPreviewRecipe]
    summary: CostPreviewSummary
    currency: Optional[str] = None


# --- recipes ---


class RecipeLineIn(BaseModel):
    raw_material_id: int
    quantity: DecimalValue = Field(gt=0)
    unit: Optional[Unit] = None
    display_order: Optional[int] = None
    is_optional: bool = False
    substitute_notes: Optional[str] = None
    is_variable: bool = False
    linked_modifier_group_id: Optional[str] = None


class RecipeCreate(BaseModel):
    portion_yield: int = Field(default=1, ge=1)
    prep_time: Optional[int] = Field(default=None, ge=0)
    cook_time: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None
    lines: list[RecipeLineIn]


class RecipeUpdate(BaseModel):
    portion_yield: Optional[int] = Field(default=None, ge=1)
    prep_time: Optional[int] = Field(default=None, ge=0)
    cook_time: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None
    lines: Optional[list[RecipeLineIn]] = None


class RecipeLineOut(OrmModel):
    id: int
    raw_material_id: int
    quantity: Decimal
    unit: Unit
    display_order: int
    is_optional: bool
    substitute_notes: Optional[str] = None
    is_variable: bool
    linked_modifier_group_id: Optional[str] = None


class RecipeOut(OrmModel):
    id: int
    product_id: int
    portion_yield: int
    prep_time: Optional[int] = None
    cook_time: Optional[int] = None
    notes: Optional[str] = None
    total_cost: Decimal
    cost_per_serving: Optional[Decimal] = None
    cost_calculated_at: Optional[datetime] = None
    lines: list[RecipeLineOut]
    currency: Optional[str] = None

    @model_validator(mode="after")
    def _per_serving(self):
        if self.cost_per_serving is None and self.portion_yield:
            self.cost_per_serving = (self.total_cost / self.portion_yield).quantize(Decimal("0.0001"))
        return self


class CostBreakdownLine(BaseModel):
    line_id: int
    raw_material_id: int
    raw_material_name: str
    quantity: Decimal
    unit: Unit
    cost_per_unit: Decimal
    is_optional: bool
    is_variable: bool
    line_cost: Decimal
    cost_per_serving: Decimal
    share_of_total: Optional[Decimal] = None


class CostBreakdownOut(BaseModel):
    recipe_id: int
    product_id: int
    portion_yield: int
    total_cost: Decimal
    cost_per_serving: Decimal
    lines: list[CostBreakdownLine]
    currency: Optional[str] = None


class RecalculatedOut(BaseModel):
    recalculated: int
    recipe_ids: list[int]


class StaleRecipeOut(BaseModel):
    recipe_id: int
    product_id: int
    stored_cost: Decimal
    current_cost: Decimal
    cost_calculated_at: Optional[datetime] = None


# --- pricing ---


class PricingPolicyIn(BaseModel):
    pricing_strategy: PricingStrategy
    target_food_cost_percentage: Optional[DecimalValue] = None
    target_markup_percentage: Optional[DecimalValue] = None
    minimum_price: Optional[DecimalValue] = None


class PricingPolicyOut(OrmModel):
    id: int
    product_id: int
    pricing_strategy: PricingStrategy
    target_food_cost_percentage: Optional[Decimal] = None
    target_markup_percentage: Optional[Decimal] = None
    minimum_price: Optional[Decimal] = None
    calculated_cost: Decimal
    suggested_price: Optional[Decimal] = None
    food_cost_percentage: Optional[Decimal] = None
    last_reviewed_at: Optional[datetime] = None
    last_updated_by_principal_id: Optional[int] = None
    currency: Optional[str] = None


class PriceCalculationOut(BaseModel):
    product_id: int
    pricing_strategy: PricingStrategy
    recipe_cost: Optional[Decimal] = None
    current_price: Decimal
    suggested_price: Optional[Decimal] = None
    food_cost_percentage: Optional[Decimal] = None
    current_food_cost_percentage: Optional[Decimal] = None
    profitability: Optional[str] = None
    currency: str


class ProductPriceOut(OrmModel):
    id: int
    name: str
    sku: str
    price: Decimal
    currency: Optional[str] = None


class PricingAnalysisRow(BaseModel):
    product_id: int
    product_name: str
    current_price: Decimal
    recipe_cost: Decimal
    food_cost_percentage: Optional[Decimal] = None
    contribution_margin: Decimal
    profitability: Optional[str] = None
    pricing_strategy: Optional[PricingStrategy] = None
    suggested_price: Optional[Decimal] = None
    currency: str


# --- procurement ---


class PurchaseOrderLineOut(BaseModel):
    id: int
    raw_material_id: int
    raw_material_name: str
    quantity_ordered: Decimal
    quantity_received: Decimal
    outstanding_quantity: Decimal
    unit: Unit
    unit_price: Optional[Decimal] = None


class PurchaseOrderOut(BaseModel):
    id: int
    order_number: str
    status: PurchaseOrderStatus
    supplier_id: int
    supplier_name: str
    expected_delivery_date: Optional[datetime] = None
    created_at: datetime
    lines: list[PurchaseOrderLineOut]


# --- product inventory ---


class EnableTrackingRequest(BaseModel):
    initial_stock: DecimalValue = Decimal("0")
    minimum_stock: DecimalValue = Decimal("0")
    reorder_point: DecimalValue = Decimal("0")
    cost_per_unit: DecimalValue = Decimal("0")


class ProductInventoryOut(OrmModel):
    id: int
    product_id: int
    current_stock: Decimal
    minimum_stock: Decimal
    reorder_point: Decimal
    cost_per_unit: Decimal
    superseded_at: Optional[datetime] = None


class ProductAdjustRequest(BaseModel):
    type: MovementType
    quantity: DecimalValue
    reason: Optional[str] = None
    reference: Optional[str] = None
    confirmation_token: Optional[str] = None

    @field_validator("reason", "reference", "confirmation_token")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)


class TrackingStateOut(OrmModel):
    id: int
    track_inventory: bool
    inventory_method: Optional[InventoryMethod] = None
    converted_to_recipe_at: Optional[datetime] = None


class InsufficientIngredientOut(BaseModel):
    raw_material_id: int
    name: str
    required: Decimal
    available: Decimal
    unit: Unit


class InventoryStatusOut(BaseModel):
    inventory_method: Optional[InventoryMethod] = None
    available: bool
    message: str
    current_stock: Optional[Decimal] = None
    reorder_point: Optional[Decimal] = None
    low_stock: Optional[bool] = None
    max_portions: Optional[int] = None
    insufficient_ingredients: Optional[list[InsufficientIngredientOut]] = None
    recipe_cost: Optional[Decimal] = None


# --- alerts ---


class AlertOut(OrmModel):
    id: int
    raw_material_id: int
    alert_type: StockAlertType
    status: StockAlertStatus
    threshold: Decimal
    current_level: Decimal
    notes: Optional[str] = None
    acknowledged_by_principal_id: Optional[int] = None
    acknowledged_at: Optional[datetime] = None
    resolved_by_principal_id: Optional[int] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime


class DismissAlertRequest(BaseModel):
    reason: Optional[str] = None
