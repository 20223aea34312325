"""
Inventory Module Models

Raw materials and supplies (flour, sugar, boxes...) kept apart from the
finished-product stock that lives on Product:
- Stock categories
- Stock items with a minimum threshold for alerts
- Movement log (entries and exits)
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Numeric
from sqlmodel import Field, Relationship, SQLModel

from .models import TenantMixin, utcnow


# ============ ENUMS ============

class MovementType(str, Enum):
    """Direction of a stock movement"""
    entry = "entry"   # Goods received
    exit = "exit"     # Used in production, waste, ...


class StockLevel(str, Enum):
    normal = "normal"
    warning = "warning"  # Within 1.5x of the minimum
    low = "low"          # At or below the minimum


# Tracked finished products at or below this quantity are reported as low
PRODUCT_LOW_STOCK_THRESHOLD = 5


# ============ CORE MODELS ============

class StockCategory(TenantMixin, table=True):
    __tablename__ = "stock_category"

    id: int | None = Field(default=None, primary_key=True)
    name: str
    description: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class StockItem(TenantMixin, table=True):
    """
    Raw materials, ingredients, and supplies.
    Core entity for inventory tracking.
    """
    __tablename__ = "stock_item"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    description: str | None = None
    unit: str = Field(default="un")  # kg, g, l, ml, un, ...

    quantity: Decimal = Field(default=Decimal("0"), sa_type=Numeric(12, 3))
    minimum_stock: Decimal = Field(
        default=Decimal("0"),
        sa_type=Numeric(12, 3),
        description="Alert when stock falls to this level"
    )
    cost_per_unit_cents: int = Field(default=0)
    supplier: str | None = None
    category_id: int | None = Field(default=None, foreign_key="stock_category.id", index=True)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    movements: list["StockMovement"] = Relationship(
        back_populates="stock_item",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class StockMovement(TenantMixin, table=True):
    """
    Audit log of every entry/exit.
    `balance_after` is the clamped quantity written to the item.
    """
    __tablename__ = "stock_movement"

    id: int | None = Field(default=None, primary_key=True)
    stock_item_id: int = Field(foreign_key="stock_item.id", index=True)
    type: MovementType
    quantity: Decimal = Field(sa_type=Numeric(12, 3))
    balance_after: Decimal = Field(sa_type=Numeric(12, 3))
    reason: str | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=utcnow, index=True)

    stock_item: StockItem = Relationship(back_populates="movements")


# ============ REQUEST/RESPONSE MODELS ============

class StockCategoryCreate(SQLModel):
    name: str
    description: str | None = None


class StockCategoryUpdate(SQLModel):
    name: str | None = None
    description: str | None = None


class StockItemCreate(SQLModel):
    name: str
    description: str | None = None
    unit: str = "un"
    quantity: Decimal = Field(default=Decimal("0"), ge=0)
    minimum_stock: Decimal = Field(default=Decimal("0"), ge=0)
    cost_per_unit_cents: int = Field(default=0, ge=0)
    supplier: str | None = None
    category_id: int | None = None


class StockItemUpdate(SQLModel):
    name: str | None = None
    description: str | None = None
    unit: str | None = None
    minimum_stock: Decimal | None = Field(default=None, ge=0)
    cost_per_unit_cents: int | None = Field(default=None, ge=0)
    supplier: str | None = None
    category_id: int | None = None


class StockMovementCreate(SQLModel):
    type: MovementType
    quantity: Decimal = Field(gt=0)
    reason: str | None = None
    notes: str | None = None


class ProductStockUpdate(SQLModel):
    track_stock: bool | None = None
    stock_quantity: int | None = Field(default=None, ge=0)


class StockItemResponse(SQLModel):
    id: int
    name: str
    description: str | None
    unit: str
    quantity: float
    minimum_stock: float
    cost_per_unit_cents: int
    supplier: str | None
    category_id: int | None
    category_name: str | None
    level: StockLevel
    created_at: datetime
    updated_at: datetime


class StockMovementResponse(SQLModel):
    id: int
    stock_item_id: int
    stock_item_name: str
    type: MovementType
    quantity: float
    balance_after: float
    reason: str | None
    notes: str | None
    created_at: datetime


class TrackedProductResponse(SQLModel):
    id: int
    name: str
    stock_quantity: int
    category_name: str | None
    is_low_stock: bool
