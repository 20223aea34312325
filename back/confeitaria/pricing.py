"""
Order pricing.

All amounts are integer cents. A line costs
    (size price if a size with a positive price is chosen, else base price)
    + variation deltas + add-on prices
per unit, times the quantity. The order total is the sum of the lines with the
discount percentage applied, plus the delivery fee.
"""

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from . import models


class PricingError(ValueError):
    """Raised when a cart selection does not exist on the product."""


def _price_of(option: dict | None) -> int:
    if not option:
        return 0
    return int(option.get("price_cents") or 0)


def effective_unit_price(
    base_price_cents: int,
    size: dict | None = None,
    variations: Iterable[dict] = (),
    addons: Iterable[dict] = (),
) -> int:
    size_price = _price_of(size)
    unit = size_price if size_price > 0 else base_price_cents
    unit += sum(_price_of(v) for v in variations)
    unit += sum(_price_of(a) for a in addons)
    return unit


def line_total(unit_price_cents: int, quantity: int) -> int:
    return unit_price_cents * quantity


def discounted_subtotal(subtotal_cents: int, discount_percentage: float) -> int:
    """Apply a percentage discount, rounding half-up to whole cents."""
    discount = Decimal(str(discount_percentage or 0))
    value = Decimal(subtotal_cents) * (Decimal(100) - discount) / Decimal(100)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def order_breakdown(
    line_totals: Iterable[int],
    discount_percentage: float = 0,
    delivery_fee_cents: int = 0,
) -> dict:
    subtotal = sum(line_totals)
    after_discount = discounted_subtotal(subtotal, discount_percentage)
    return {
        "subtotal_cents": subtotal,
        "discount_cents": subtotal - after_discount,
        "delivery_fee_cents": delivery_fee_cents,
        "total_cents": after_discount + delivery_fee_cents,
    }


def order_total(
    line_totals: Iterable[int],
    discount_percentage: float = 0,
    delivery_fee_cents: int = 0,
) -> int:
    return order_breakdown(line_totals, discount_percentage, delivery_fee_cents)["total_cents"]


def recalculate_order_total(order: models.Order) -> int:
    """Recompute and store `order.total_cents` from its persisted lines."""
    order.total_cents = order_total(
        (item.total_cents for item in order.items),
        order.discount_percentage,
        order.delivery_fee_cents,
    )
    return order.total_cents


def build_order_item(
    item: models.OrderItemCreate,
    product: models.Product | None,
) -> models.OrderItem:
    """Price a staff-entered line and snapshot it as an OrderItem (order_id set by caller)."""
    name = item.product_name or (product.name if product else None)
    if not name:
        raise PricingError("Order item needs a product or a product name")

    if item.unit_price_cents is not None:
        base = item.unit_price_cents
    elif product is not None:
        base = product.price_cents
    else:
        raise PricingError(f"Order item '{name}' has no price")

    size = item.size.model_dump() if item.size else None
    variations = [v.model_dump() for v in item.variations]
    addons = [a.model_dump() for a in item.addons]

    unit = effective_unit_price(base, size, variations, addons)
    return models.OrderItem(
        product_id=product.id if product else None,
        product_name=name,
        quantity=item.quantity,
        unit_price_cents=unit,
        total_cents=line_total(unit, item.quantity),
        size=size,
        variations=variations or None,
        addons=addons or None,
    )


def _find_by_name(options: Iterable[dict] | None, name: str) -> dict | None:
    wanted = name.strip().casefold()
    for option in options or []:
        if str(option.get("name", "")).strip().casefold() == wanted:
            return option
    return None


def resolve_cart_item(product: models.Product, cart_item: models.CartItem) -> models.OrderItem:
    """
    Price a public-catalog cart line from the product definition.

    Only the names of the chosen size, variation options and add-ons are taken
    from the cart; every price comes from the product.
    """
    size = None
    if cart_item.size:
        option = _find_by_name(product.sizes, cart_item.size)
        if option is None:
            raise PricingError(f"Size '{cart_item.size}' not available for {product.name}")
        size = {"name": option["name"], "price_cents": _price_of(option)}

    variations = []
    seen_groups = set()
    for selection in cart_item.variations:
        group = _find_by_name(product.variations, selection.group)
        if group is None:
            raise PricingError(f"Variation '{selection.group}' not available for {product.name}")
        if group["name"] in seen_groups:
            raise PricingError(f"Variation '{group['name']}' selected more than once")
        seen_groups.add(group["name"])
        option = _find_by_name(group.get("options"), selection.name)
        if option is None:
            raise PricingError(f"Option '{selection.name}' not available in {group['name']}")
        variations.append({
            "group": group["name"],
            "name": option["name"],
            "price_cents": _price_of(option),
        })

    addons = []
    for addon_name in cart_item.addons:
        option = _find_by_name(product.addons, addon_name)
        if option is None:
            raise PricingError(f"Add-on '{addon_name}' not available for {product.name}")
        addons.append({"name": option["name"], "price_cents": _price_of(option)})

    unit = effective_unit_price(product.price_cents, size, variations, addons)
    return models.OrderItem(
        product_id=product.id,
        product_name=product.name,
        quantity=cart_item.quantity,
        unit_price_cents=unit,
        total_cents=line_total(unit, cart_item.quantity),
        size=size,
        variations=variations or None,
        addons=addons or None,
    )


def format_price(cents: int, symbol: str = "R$") -> str:
    """Format cents the Brazilian way: R$ 1.234,56"""
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{symbol} {whole:,}".replace(",", ".") + f",{frac:02d}"
