from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only autoincrements INTEGER primary keys.
BigIntId = BigInteger().with_variant(Integer(), 'sqlite')
Quantity = Numeric(14, 4)
UnitCost = Numeric(14, 4)
Money = Numeric(12, 2)


class Base(DeclarativeBase):
    pass


class PrincipalRole(str, Enum):
    ADMIN = 'ADMIN'
    MANAGER = 'MANAGER'
    STAFF = 'STAFF'


class RawMaterialCategory(str, Enum):
    MEAT = 'MEAT'
    POULTRY = 'POULTRY'
    SEAFOOD = 'SEAFOOD'
    DAIRY = 'DAIRY'
    CHEESE = 'CHEESE'
    EGGS = 'EGGS'
    VEGETABLES = 'VEGETABLES'
    FRUITS = 'FRUITS'
    GRAINS = 'GRAINS'
    BREAD = 'BREAD'
    PASTA = 'PASTA'
    RICE = 'RICE'
    BEANS = 'BEANS'
    SPICES = 'SPICES'
    HERBS = 'HERBS'
    OILS = 'OILS'
    SAUCES = 'SAUCES'
    CONDIMENTS = 'CONDIMENTS'
    BEVERAGES = 'BEVERAGES'
    ALCOHOL = 'ALCOHOL'
    CLEANING = 'CLEANING'
    PACKAGING = 'PACKAGING'
    OTHER = 'OTHER'


class Unit(str, Enum):
    KILOGRAM = 'KILOGRAM'
    GRAM = 'GRAM'
    MILLIGRAM = 'MILLIGRAM'
    POUND = 'POUND'
    OUNCE = 'OUNCE'
    TON = 'TON'
    LITER = 'LITER'
    MILLILITER = 'MILLILITER'
    GALLON = 'GALLON'
    QUART = 'QUART'
    PINT = 'PINT'
    CUP = 'CUP'
    FLUID_OUNCE = 'FLUID_OUNCE'
    TABLESPOON = 'TABLESPOON'
    TEASPOON = 'TEASPOON'
    UNIT = 'UNIT'
    PIECE = 'PIECE'
    DOZEN = 'DOZEN'
    CASE = 'CASE'
    BOX = 'BOX'
    BAG = 'BAG'
    BOTTLE = 'BOTTLE'
    CAN = 'CAN'
    JAR = 'JAR'


class MovementType(str, Enum):
    PURCHASE = 'PURCHASE'
    USAGE = 'USAGE'
    ADJUSTMENT = 'ADJUSTMENT'
    SPOILAGE = 'SPOILAGE'
    TRANSFER = 'TRANSFER'
    RETURN = 'RETURN'
    COUNT = 'COUNT'


class InventoryMethod(str, Enum):
    QUANTITY = 'QUANTITY'
    RECIPE = 'RECIPE'


class PricingStrategy(str, Enum):
    MANUAL = 'MANUAL'
    AUTO_MARKUP = 'AUTO_MARKUP'
    AUTO_TARGET_MARGIN = 'AUTO_TARGET_MARGIN'


class PurchaseOrderStatus(str, Enum):
    DRAFT = 'DRAFT'
    SENT = 'SENT'
    CONFIRMED = 'CONFIRMED'
    SHIPPED = 'SHIPPED'
    RECEIVED = 'RECEIVED'
    PARTIAL = 'PARTIAL'
    CANCELLED = 'CANCELLED'
    COMPLETED = 'COMPLETED'


class StockAlertType(str, Enum):
    LOW_STOCK = 'LOW_STOCK'
    OUT_OF_STOCK = 'OUT_OF_STOCK'
    OVER_STOCK = 'OVER_STOCK'


class StockAlertStatus(str, Enum):
    ACTIVE = 'ACTIVE'
    ACKNOWLEDGED = 'ACKNOWLEDGED'
    RESOLVED = 'RESOLVED'
    DISMISSED = 'DISMISSED'


class Venue(Base):
    __tablename__ = 'venues'

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default='USD', server_default='USD')
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Principal(Base):
    __tablename__ = 'principals'

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[PrincipalRole] = mapped_column(SQLEnum(PrincipalRole, name='principal_role'), nullable=False)
    venue_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('venues.id'))
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    session_token: Mapped[str] = mapped_column(Text, nullable=False)
    principal_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('principals.id'), nullable=False)
    ip: Mapped[str | None] = mapped_column(Text)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    attempted_username: Mapped[str] = mapped_column(Text, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    principal_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('principals.id'))
    ip: Mapped[str | None] = mapped_column(Text)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    venue_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('venues.id'))
    actor_principal_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('principals.id'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    ip: Mapped[str | None] = mapped_column(Text)
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class RawMaterial(Base):
    __tablename__ = 'raw_materials'
    __table_args__ = (
        UniqueConstraint('venue_id', 'sku', name='raw_materials_venue_sku_uniq'),
        CheckConstraint('current_stock >= 0', name='raw_materials_stock_non_negative_ck'),
        CheckConstraint('minimum_stock <= reorder_point', name='raw_materials_minimum_le_reorder_ck'),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    venue_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('venues.id'), nullable=False, index=True)
    sku: Mapped[str] = mapped_column(Text, nullable=False)
    gtin: Mapped[str | None] = mapped_column(Text)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[RawMaterialCategory] = mapped_column(
        SQLEnum(RawMaterialCategory, name='raw_material_category'),
        nullable=False,
        default=RawMaterialCategory.OTHER,
    )
    unit: Mapped[Unit] = mapped_column(SQLEnum(Unit, name='unit_of_measure'), nullable=False)
    current_stock: Mapped[Decimal] = mapped_column(Quantity, nullable=False, default=Decimal('0'))
    minimum_stock: Mapped[Decimal] = mapped_column(Quantity, nullable=False, default=Decimal('0'))
    reorder_point: Mapped[Decimal] = mapped_column(Quantity, nullable=False, default=Decimal('0'))
    maximum_stock: Mapped[Decimal | None] = mapped_column(Quantity)
    cost_per_unit: Mapped[Decimal] = mapped_column(UnitCost, nullable=False, default=Decimal('0'))
    avg_cost_per_unit: Mapped[Decimal] = mapped_column(UnitCost, nullable=False, default=Decimal('0'))
    perishable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    shelf_life_days: Mapped[int | None] = mapped_column(Integer)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_count_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_restock_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class RawMaterialMovement(Base):
    __tablename__ = 'raw_material_movements'
    __table_args__ = (
        UniqueConstraint('confirmation_token', name='raw_material_movements_confirmation_token_key'),
        CheckConstraint('new_stock >= 0', name='raw_material_movements_new_stock_non_negative_ck'),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    venue_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('venues.id'), nullable=False)
    raw_material_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('raw_materials.id'), nullable=False, index=True)
    type: Mapped[MovementType] = mapped_column(SQLEnum(MovementType, name='movement_type'), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    previous_stock: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    new_stock: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit_cost: Mapped[Decimal | None] = mapped_column(UnitCost)
    reason: Mapped[str | None] = mapped_column(Text)
    reference: Mapped[str | None] = mapped_column(Text)
    confirmation_token: Mapped[str | None] = mapped_column(Text)
    created_by_principal_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('principals.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Product(Base):
    __tablename__ = 'products'
    __table_args__ = (
        UniqueConstraint('venue_id', 'sku', name='products_venue_sku_uniq'),
        CheckConstraint(
            '(track_inventory AND inventory_method IS NOT NULL) OR (NOT track_inventory AND inventory_method IS NULL)',
            name='products_inventory_mode_ck',
        ),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    venue_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('venues.id'), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    sku: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    unit: Mapped[Unit] = mapped_column(SQLEnum(Unit, name='unit_of_measure'), nullable=False, default=Unit.UNIT)
    track_inventory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    inventory_method: Mapped[InventoryMethod | None] = mapped_column(SQLEnum(InventoryMethod, name='inventory_method'))
    converted_to_recipe_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ProductInventory(Base):
    __tablename__ = 'product_inventories'
    __table_args__ = (
        UniqueConstraint('product_id', name='product_inventories_product_key'),
        CheckConstraint('current_stock >= 0', name='product_inventories_stock_non_negative_ck'),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    venue_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('venues.id'), nullable=False)
    product_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    current_stock: Mapped[Decimal] = mapped_column(Quantity, nullable=False, default=Decimal('0'))
    minimum_stock: Mapped[Decimal] = mapped_column(Quantity, nullable=False, default=Decimal('0'))
    reorder_point: Mapped[Decimal] = mapped_column(Quantity, nullable=False, default=Decimal('0'))
    cost_per_unit: Mapped[Decimal] = mapped_column(UnitCost, nullable=False, default=Decimal('0'))
    superseded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ProductInventoryMovement(Base):
    __tablename__ = 'product_inventory_movements'
    __table_args__ = (
        UniqueConstraint('confirmation_token', name='product_inventory_movements_confirmation_token_key'),
        CheckConstraint('new_stock >= 0', name='product_inventory_movements_new_stock_non_negative_ck'),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    venue_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('venues.id'), nullable=False)
    product_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True)
    type: Mapped[MovementType] = mapped_column(SQLEnum(MovementType, name='movement_type'), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    previous_stock: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    new_stock: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    reference: Mapped[str | None] = mapped_column(Text)
    confirmation_token: Mapped[str | None] = mapped_column(Text)
    created_by_principal_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('principals.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Recipe(Base):
    __tablename__ = 'recipes'
    __table_args__ = (
        UniqueConstraint('product_id', name='recipes_product_key'),
        CheckConstraint('portion_yield >= 1', name='recipes_portion_yield_ck'),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    venue_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('venues.id'), nullable=False)
    product_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    portion_yield: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    prep_time: Mapped[int | None] = mapped_column(Integer)
    cook_time: Mapped[int | None] = mapped_column(Integer)
    notes: Mapped[str | None] = mapped_column(Text)
    total_cost: Mapped[Decimal] = mapped_column(UnitCost, nullable=False, default=Decimal('0'))
    cost_calculated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    lines: Mapped[list[RecipeLine]] = relationship(
        back_populates='recipe',
        cascade='all, delete-orphan',
        order_by='RecipeLine.display_order, RecipeLine.id',
    )


class RecipeLine(Base):
    __tablename__ = 'recipe_lines'
    __table_args__ = (
        UniqueConstraint('recipe_id', 'raw_material_id', name='recipe_lines_recipe_material_uniq'),
        CheckConstraint('quantity > 0', name='recipe_lines_quantity_positive_ck'),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    recipe_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('recipes.id', ondelete='CASCADE'), nullable=False)
    raw_material_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('raw_materials.id'), nullable=False, index=True)
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit: Mapped[Unit] = mapped_column(SQLEnum(Unit, name='unit_of_measure'), nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_optional: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    substitute_notes: Mapped[str | None] = mapped_column(Text)
    is_variable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    linked_modifier_group_id: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    recipe: Mapped[Recipe] = relationship(back_populates='lines')
    raw_material: Mapped[RawMaterial] = relationship(lazy='joined')


class PricingPolicy(Base):
    __tablename__ = 'pricing_policies'
    __table_args__ = (
        UniqueConstraint('product_id', name='pricing_policies_product_key'),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    venue_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('venues.id'), nullable=False)
    product_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    pricing_strategy: Mapped[PricingStrategy] = mapped_column(
        SQLEnum(PricingStrategy, name='pricing_strategy'),
        nullable=False,
        default=PricingStrategy.MANUAL,
    )
    target_food_cost_percentage: Mapped[Decimal | None] = mapped_column(Numeric(7, 4))
    target_markup_percentage: Mapped[Decimal | None] = mapped_column(Numeric(9, 4))
    minimum_price: Mapped[Decimal | None] = mapped_column(Money)
    calculated_cost: Mapped[Decimal] = mapped_column(UnitCost, nullable=False, default=Decimal('0'))
    suggested_price: Mapped[Decimal | None] = mapped_column(Money)
    food_cost_percentage: Mapped[Decimal | None] = mapped_column(Numeric(9, 4))
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_updated_by_principal_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('principals.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Supplier(Base):
    __tablename__ = 'suppliers'

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    venue_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('venues.id'), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    lead_time_days: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PurchaseOrder(Base):
    __tablename__ = 'purchase_orders'
    __table_args__ = (
        UniqueConstraint('venue_id', 'order_number', name='purchase_orders_venue_number_uniq'),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    venue_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('venues.id'), nullable=False, index=True)
    supplier_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('suppliers.id'), nullable=False)
    order_number: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[PurchaseOrderStatus] = mapped_column(
        SQLEnum(PurchaseOrderStatus, name='purchase_order_status'),
        nullable=False,
        default=PurchaseOrderStatus.DRAFT,
    )
    expected_delivery_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PurchaseOrderLine(Base):
    __tablename__ = 'purchase_order_lines'

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('purchase_orders.id', ondelete='CASCADE'), nullable=False)
    raw_material_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('raw_materials.id'), nullable=False, index=True)
    quantity_ordered: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    quantity_received: Mapped[Decimal] = mapped_column(Quantity, nullable=False, default=Decimal('0'))
    unit: Mapped[Unit] = mapped_column(SQLEnum(Unit, name='unit_of_measure'), nullable=False)
    unit_price: Mapped[Decimal | None] = mapped_column(UnitCost)


class StockAlert(Base):
    __tablename__ = 'stock_alerts'

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    venue_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('venues.id'), nullable=False, index=True)
    raw_material_id: Mapped[int] = mapped_column(BigIntId, ForeignKey('raw_materials.id', ondelete='CASCADE'), nullable=False)
    alert_type: Mapped[StockAlertType] = mapped_column(SQLEnum(StockAlertType, name='stock_alert_type'), nullable=False)
    status: Mapped[StockAlertStatus] = mapped_column(
        SQLEnum(StockAlertStatus, name='stock_alert_status'),
        nullable=False,
        default=StockAlertStatus.ACTIVE,
    )
    threshold: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    current_level: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    acknowledged_by_principal_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('principals.id'))
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    resolved_by_principal_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey('principals.id'))
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
