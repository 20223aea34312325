"""
Order pricing: effective unit price, discount rounding and server-side
resolution of catalog cart selections.
"""

import pytest

from confeitaria import models
from confeitaria.pricing import (
    PricingError,
    build_order_item,
    discounted_subtotal,
    effective_unit_price,
    format_price,
    order_breakdown,
    order_total,
    resolve_cart_item,
)


def make_product(**fields) -> models.Product:
    defaults = dict(
        id=1,
        user_id=1,
        name="Bolo de Cenoura",
        price_cents=4000,
        sizes=[{"name": "P", "price_cents": 3000}, {"name": "G", "price_cents": 7000}, {"name": "Padrão", "price_cents": 0}],
        variations=[
            {"name": "Massa", "options": [{"name": "Chocolate", "price_cents": 500}, {"name": "Baunilha", "price_cents": None}]},
            {"name": "Recheio", "options": [{"name": "Brigadeiro", "price_cents": 800}]},
        ],
        addons=[{"name": "Topo de bolo", "price_cents": 1500}, {"name": "Vela", "price_cents": 200}],
    )
    defaults.update(fields)
    return models.Product(**defaults)


def test_size_price_replaces_base_price():
    assert effective_unit_price(4000, {"name": "G", "price_cents": 7000}) == 7000


def test_size_without_price_keeps_base_price():
    assert effective_unit_price(4000, {"name": "Padrão", "price_cents": 0}) == 4000
    assert effective_unit_price(4000, None) == 4000


def test_variations_and_addons_are_added_per_unit():
    unit = effective_unit_price(
        4000,
        {"name": "G", "price_cents": 7000},
        variations=[{"group": "Massa", "name": "Chocolate", "price_cents": 500}],
        addons=[{"name": "Topo de bolo", "price_cents": 1500}, {"name": "Vela", "price_cents": 200}],
    )
    assert unit == 7000 + 500 + 1500 + 200


def test_discount_rounds_half_up():
    assert discounted_subtotal(999, 5) == 949   # 949.05
    assert discounted_subtotal(5, 10) == 5      # 4.5
    assert discounted_subtotal(1000, 0) == 1000
    assert discounted_subtotal(1000, 100) == 0


def test_order_breakdown():
    breakdown = order_breakdown([18000, 2000], discount_percentage=10, delivery_fee_cents=1500)
    assert breakdown == {
        "subtotal_cents": 20000,
        "discount_cents": 2000,
        "delivery_fee_cents": 1500,
        "total_cents": 19500,
    }
    assert order_total([18000, 2000], 10, 1500) == 19500


def test_delivery_fee_is_not_discounted():
    assert order_total([10000], 50, 1000) == 6000


def test_build_order_item_uses_product_price_when_none_given():
    item = build_order_item(models.OrderItemCreate(product_id=1, quantity=3), make_product())
    assert item.product_name == "Bolo de Cenoura"
    assert item.unit_price_cents == 4000
    assert item.total_cents == 12000


def test_build_order_item_with_typed_price_and_options():
    item = build_order_item(
        models.OrderItemCreate(
            product_name="Torta especial",
            quantity=2,
            unit_price_cents=2500,
            addons=[{"name": "Embalagem", "price_cents": 300}],
        ),
        None,
    )
    assert item.product_id is None
    assert item.unit_price_cents == 2800
    assert item.total_cents == 5600
    assert item.addons == [{"name": "Embalagem", "price_cents": 300}]


def test_build_order_item_without_name_or_price_is_rejected():
    with pytest.raises(PricingError):
        build_order_item(models.OrderItemCreate(quantity=1, unit_price_cents=100), None)
    with pytest.raises(PricingError):
        build_order_item(models.OrderItemCreate(product_name="Avulso", quantity=1), None)


def test_resolve_cart_item_prices_from_product():
    cart_item = models.CartItem(
        product_id=1,
        quantity=2,
        size="g",
        variations=[{"group": "massa", "name": "CHOCOLATE", "price_cents": 0}],
        addons=["Topo de bolo"],
    )
    item = resolve_cart_item(make_product(), cart_item)

    assert item.size == {"name": "G", "price_cents": 7000}
    assert item.variations == [{"group": "Massa", "name": "Chocolate", "price_cents": 500}]
    assert item.addons == [{"name": "Topo de bolo", "price_cents": 1500}]
    assert item.unit_price_cents == 9000
    assert item.total_cents == 18000


def test_resolve_cart_item_option_without_delta():
    cart_item = models.CartItem(product_id=1, variations=[{"group": "Massa", "name": "Baunilha"}])
    item = resolve_cart_item(make_product(), cart_item)
    assert item.unit_price_cents == 4000


@pytest.mark.parametrize("cart_fields", [
    {"size": "GG"},
    {"variations": [{"group": "Cobertura", "name": "Ganache"}]},
    {"variations": [{"group": "Massa", "name": "Morango"}]},
    {"addons": ["Glitter"]},
    {"variations": [{"group": "Massa", "name": "Chocolate"}, {"group": "Massa", "name": "Baunilha"}]},
])
def test_resolve_cart_item_rejects_unknown_selections(cart_fields):
    with pytest.raises(PricingError):
        resolve_cart_item(make_product(), models.CartItem(product_id=1, **cart_fields))


def test_format_price():
    assert format_price(123456) == "R$ 1.234,56"
    assert format_price(5) == "R$ 0,05"
    assert format_price(-1050) == "-R$ 10,50"
