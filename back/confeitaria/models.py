from datetime import date, datetime, timezone
from enum import Enum

from sqlalchemy import JSON, Column
from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    quote = "quote"
    confirmed = "confirmed"
    in_production = "in_production"
    ready = "ready"
    delivered = "delivered"
    cancelled = "cancelled"


# Statuses where the order counts as sold: stock is deducted and revenue is booked
STOCK_DEDUCTING_STATUSES = frozenset({
    OrderStatus.confirmed,
    OrderStatus.in_production,
    OrderStatus.ready,
    OrderStatus.delivered,
})
REVENUE_STATUSES = STOCK_DEDUCTING_STATUSES


class OrderSource(str, Enum):
    admin = "admin"
    catalog = "catalog"


class UserRole(str, Enum):
    user = "user"
    super_admin = "super_admin"


class SubscriptionPlan(str, Enum):
    trial = "trial"
    monthly = "monthly"
    annual = "annual"


class User(SQLModel, table=True):
    """A bakery account. Every business row points back here through `user_id`."""
    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    hashed_password: str
    full_name: str | None = None
    phone: str | None = None
    role: UserRole = Field(default=UserRole.user)
    created_via: str = Field(default="register")  # register, cakto_webhook, admin_panel
    token_version: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Subscription metadata (source of truth for access)
    plan: SubscriptionPlan | None = None
    payment_date: datetime | None = None
    expires_at: datetime | None = None
    payment_id: str | None = None


class TenantMixin(SQLModel):
    user_id: int = Field(foreign_key="user.id", index=True)


class Profile(SQLModel, table=True):
    id: int = Field(foreign_key="user.id", primary_key=True)
    full_name: str | None = None
    email: str | None = None
    phone: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class BakerySettings(SQLModel, table=True):
    """Storefront metadata, keyed 1:1 by the owner's user id."""
    __tablename__ = "bakery_settings"

    id: int = Field(foreign_key="user.id", primary_key=True)
    bakery_name: str | None = None
    cpf_cnpj: str | None = None
    pix_key: str | None = None
    presentation_message: str | None = None  # Shown on top of the public catalog
    email: str | None = None
    phone: str | None = None
    address_street: str | None = None
    address_number: str | None = None
    address_neighborhood: str | None = None
    address_city: str | None = None
    address_state: str | None = None
    address_zip: str | None = None
    logo_filename: str | None = None  # Stored in uploads/{user_id}/logo/
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Subscription(SQLModel, table=True):
    """Ledger mirror of the subscription metadata kept on User."""
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", unique=True, index=True)
    email: str
    name: str | None = None
    plan: SubscriptionPlan
    payment_date: datetime
    expires_at: datetime
    product: str | None = None
    offer: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Client(TenantMixin, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    cpf: str | None = None
    email: str | None = None
    phone: str | None = Field(default=None, index=True)
    address: str | None = None
    city: str | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Category(TenantMixin, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str
    banner_filename: str | None = None  # Stored in uploads/{user_id}/banners/
    sort_order: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)


class Subcategory(TenantMixin, table=True):
    id: int | None = Field(default=None, primary_key=True)
    category_id: int = Field(foreign_key="category.id", index=True)
    name: str
    banner_filename: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class Product(TenantMixin, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    description: str | None = None
    price_cents: int
    image_filename: str | None = None  # Stored in uploads/{user_id}/products/
    category_id: int | None = Field(default=None, foreign_key="category.id", index=True)
    subcategory_id: int | None = Field(default=None, foreign_key="subcategory.id", index=True)
    show_in_catalog: bool = Field(default=True, index=True)

    # Customization, stored as JSON lists of plain dicts:
    # sizes:      [{"name": "P", "price_cents": 5000}]
    # variations: [{"name": "Massa", "options": [{"name": "Chocolate", "price_cents": 500}]}]
    # addons:     [{"name": "Topo de bolo", "price_cents": 1500}]
    sizes: list[dict] | None = Field(default=None, sa_column=Column(JSON))
    variations: list[dict] | None = Field(default=None, sa_column=Column(JSON))
    addons: list[dict] | None = Field(default=None, sa_column=Column(JSON))

    # Finished-product stock
    track_stock: bool = Field(default=False, index=True)
    stock_quantity: int = Field(default=0)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Order(TenantMixin, table=True):
    id: int | None = Field(default=None, primary_key=True)
    client_id: int | None = Field(default=None, foreign_key="client.id", index=True)
    client_name: str = Field(index=True)
    status: OrderStatus = Field(default=OrderStatus.quote, index=True)
    discount_percentage: float = Field(default=0)
    delivery_fee_cents: int = Field(default=0)
    payment_method: str | None = None  # 'pix', 'cash', 'card', ...
    delivery_date: date | None = Field(default=None, index=True)
    notes: str | None = None
    source: OrderSource = Field(default=OrderSource.admin)
    total_cents: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)

    items: list["OrderItem"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class OrderItem(SQLModel, table=True):
    __tablename__ = "order_item"

    id: int | None = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="order.id", index=True)
    product_id: int | None = Field(default=None, foreign_key="product.id")
    product_name: str  # Snapshot of product name at order time
    quantity: int
    unit_price_cents: int  # Effective unit price: size/base + variations + add-ons
    total_cents: int
    size: dict | None = Field(default=None, sa_column=Column(JSON))
    variations: list[dict] | None = Field(default=None, sa_column=Column(JSON))
    addons: list[dict] | None = Field(default=None, sa_column=Column(JSON))

    order: Order = Relationship(back_populates="items")


class CatalogView(TenantMixin, table=True):
    __tablename__ = "catalog_view"

    id: int | None = Field(default=None, primary_key=True)
    viewed_at: datetime = Field(default_factory=utcnow, index=True)


# Request/Response Models
class UserRegister(SQLModel):
    email: str
    password: str = Field(min_length=6)
    full_name: str
    phone: str | None = None


class UserUpdate(SQLModel):
    full_name: str | None = None
    phone: str | None = None


class PasswordChange(SQLModel):
    current_password: str
    new_password: str = Field(min_length=6)


class SizeOption(SQLModel):
    name: str
    price_cents: int = Field(ge=0)


class AddonOption(SQLModel):
    name: str
    price_cents: int = Field(ge=0)


class VariationOption(SQLModel):
    name: str
    price_cents: int | None = Field(default=None, ge=0)


class VariationGroup(SQLModel):
    name: str
    options: list[VariationOption] = []


class VariationSelection(SQLModel):
    group: str
    name: str
    price_cents: int = Field(default=0, ge=0)


class ClientCreate(SQLModel):
    name: str
    cpf: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    notes: str | None = None


class ClientUpdate(SQLModel):
    name: str | None = None
    cpf: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    notes: str | None = None


class CategoryCreate(SQLModel):
    name: str
    sort_order: int | None = None


class CategoryUpdate(SQLModel):
    name: str | None = None
    sort_order: int | None = None


class SubcategoryCreate(SQLModel):
    category_id: int
    name: str


class SubcategoryUpdate(SQLModel):
    category_id: int | None = None
    name: str | None = None


class ProductCreate(SQLModel):
    name: str
    description: str | None = None
    price_cents: int = Field(ge=0)
    category_id: int | None = None
    subcategory_id: int | None = None
    show_in_catalog: bool = True
    sizes: list[SizeOption] = []
    variations: list[VariationGroup] = []
    addons: list[AddonOption] = []
    track_stock: bool = False
    stock_quantity: int = Field(default=0, ge=0)


class ProductUpdate(SQLModel):
    name: str | None = None
    description: str | None = None
    price_cents: int | None = Field(default=None, ge=0)
    category_id: int | None = None
    subcategory_id: int | None = None
    show_in_catalog: bool | None = None
    sizes: list[SizeOption] | None = None
    variations: list[VariationGroup] | None = None
    addons: list[AddonOption] | None = None
    track_stock: bool | None = None
    stock_quantity: int | None = Field(default=None, ge=0)


class ProductCatalogToggle(SQLModel):
    show_in_catalog: bool


class OrderItemCreate(SQLModel):
    """
    A line as typed by the bakery staff.

    Prices are snapshots chosen in the order form; when `unit_price_cents` is
    omitted the linked product's base price is used.
    """
    product_id: int | None = None
    product_name: str | None = None
    quantity: int = Field(default=1, ge=1)
    unit_price_cents: int | None = Field(default=None, ge=0)
    size: SizeOption | None = None
    variations: list[VariationSelection] = []
    addons: list[AddonOption] = []


class OrderCreate(SQLModel):
    client_id: int | None = None
    client_name: str | None = None
    status: OrderStatus = OrderStatus.quote
    discount_percentage: float = Field(default=0, ge=0, le=100)
    delivery_fee_cents: int = Field(default=0, ge=0)
    payment_method: str | None = None
    delivery_date: date | None = None
    notes: str | None = None
    items: list[OrderItemCreate]


class OrderUpdate(SQLModel):
    client_id: int | None = None
    client_name: str | None = None
    status: OrderStatus | None = None
    discount_percentage: float | None = Field(default=None, ge=0, le=100)
    delivery_fee_cents: int | None = Field(default=None, ge=0)
    payment_method: str | None = None
    delivery_date: date | None = None
    notes: str | None = None
    items: list[OrderItemCreate] | None = None  # Replaces all lines when given


class OrderStatusUpdate(SQLModel):
    status: OrderStatus


class BakerySettingsUpdate(SQLModel):
    bakery_name: str | None = None
    cpf_cnpj: str | None = None
    pix_key: str | None = None
    presentation_message: str | None = None
    email: str | None = None
    phone: str | None = None
    address_street: str | None = None
    address_number: str | None = None
    address_neighborhood: str | None = None
    address_city: str | None = None
    address_state: str | None = None
    address_zip: str | None = None


class CartItem(SQLModel):
    """A public-catalog cart line. Prices are resolved from the product, never trusted."""
    product_id: int
    quantity: int = Field(default=1, ge=1)
    size: str | None = None
    variations: list[VariationSelection] = []
    addons: list[str] = []


class CheckoutCustomer(SQLModel):
    name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    address: str = Field(min_length=1)
    delivery_date: date
    pickup_time: str = Field(min_length=1)


class CheckoutRequest(SQLModel):
    customer: CheckoutCustomer
    items: list[CartItem]


class AdminUserCreate(SQLModel):
    email: str
    full_name: str
    password: str | None = None  # Generated when omitted
    phone: str | None = None
    plan: SubscriptionPlan = SubscriptionPlan.monthly
    payment_date: datetime | None = None
    expires_at: datetime | None = None


class AdminUserUpdate(SQLModel):
    email: str | None = None
    full_name: str | None = None
    phone: str | None = None
    password: str | None = None
    plan: SubscriptionPlan | None = None
    payment_date: datetime | None = None
    expires_at: datetime | None = None
