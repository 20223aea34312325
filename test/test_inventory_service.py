from decimal import Decimal

import pytest
from sqlmodel import select

from confeitaria import models
from confeitaria.inventory_models import MovementType, StockItem, StockLevel, StockMovement, StockMovementCreate
from confeitaria.inventory_service import (
    adjust_product_stock,
    get_low_stock_items,
    get_low_stock_products,
    record_movement,
    stock_direction,
    stock_level,
)

S = models.OrderStatus


@pytest.mark.parametrize("old, new, expected", [
    (S.quote, S.confirmed, -1),
    (S.quote, S.delivered, -1),
    (S.cancelled, S.in_production, -1),
    (S.confirmed, S.cancelled, 1),
    (S.ready, S.quote, 1),
    (S.confirmed, S.in_production, 0),
    (S.in_production, S.delivered, 0),
    (S.quote, S.cancelled, 0),
    (S.cancelled, S.quote, 0),
    (None, S.confirmed, -1),
    (None, S.quote, 0),
    (S.delivered, None, 1),
    (S.cancelled, None, 0),
])
def test_stock_direction(old, new, expected):
    assert stock_direction(old, new) == expected


@pytest.mark.parametrize("quantity, minimum, expected", [
    ("2", "5", StockLevel.low),
    ("5", "5", StockLevel.low),
    ("7.5", "5", StockLevel.warning),
    ("7.6", "5", StockLevel.normal),
    ("0", "0", StockLevel.normal),
])
def test_stock_level(quantity, minimum, expected):
    assert stock_level(Decimal(quantity), Decimal(minimum)) == expected


def _user(session) -> models.User:
    user = models.User(email="stock@example.com", hashed_password="x")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def test_adjust_product_stock_clamps_and_skips_untracked(session):
    user = _user(session)
    tracked = models.Product(user_id=user.id, name="Brigadeiro", price_cents=300, track_stock=True, stock_quantity=4)
    untracked = models.Product(user_id=user.id, name="Bolo", price_cents=5000, stock_quantity=10)
    session.add(tracked)
    session.add(untracked)
    session.commit()

    lines = [
        models.OrderItem(product_id=tracked.id, product_name="Brigadeiro", quantity=6, unit_price_cents=300, total_cents=1800),
        models.OrderItem(product_id=untracked.id, product_name="Bolo", quantity=1, unit_price_cents=5000, total_cents=5000),
        models.OrderItem(product_id=None, product_name="Avulso", quantity=1, unit_price_cents=100, total_cents=100),
    ]
    adjustments = adjust_product_stock(session, user.id, lines, -1)
    session.commit()

    assert adjustments == [{"product_id": tracked.id, "product_name": "Brigadeiro", "before": 4, "after": 0}]
    session.refresh(tracked)
    session.refresh(untracked)
    assert tracked.stock_quantity == 0
    assert untracked.stock_quantity == 10

    adjust_product_stock(session, user.id, lines[:1], 1)
    session.commit()
    session.refresh(tracked)
    assert tracked.stock_quantity == 6


def test_record_movement_entry_and_clamped_exit(session):
    user = _user(session)
    item = StockItem(user_id=user.id, name="Farinha", unit="kg", quantity=Decimal("3"), minimum_stock=Decimal("2"))
    session.add(item)
    session.commit()

    record_movement(session, item, StockMovementCreate(type=MovementType.entry, quantity=Decimal("2.5")))
    session.commit()
    assert item.quantity == Decimal("5.5")

    movement = record_movement(
        session, item, StockMovementCreate(type=MovementType.exit, quantity=Decimal("10"), reason="Produção")
    )
    session.commit()
    assert item.quantity == 0
    assert movement.balance_after == 0

    movements = session.exec(select(StockMovement).where(StockMovement.stock_item_id == item.id)).all()
    assert len(movements) == 2
    assert get_low_stock_items(session, user.id)[0].id == item.id


def test_low_stock_products_threshold(session):
    user = _user(session)
    session.add(models.Product(user_id=user.id, name="A", price_cents=100, track_stock=True, stock_quantity=5))
    session.add(models.Product(user_id=user.id, name="B", price_cents=100, track_stock=True, stock_quantity=6))
    session.add(models.Product(user_id=user.id, name="C", price_cents=100, track_stock=False, stock_quantity=0))
    session.commit()

    assert [p.name for p in get_low_stock_products(session, user.id)] == ["A"]
