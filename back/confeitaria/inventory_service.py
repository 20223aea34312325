"""
Inventory Service

Business logic for stock operations:
- Finished-product stock adjustment when an order changes status
- Raw-material entries/exits (clamped at zero)
- Stock level classification and low-stock alerts
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import Decimal

from sqlmodel import Session, select

from . import models
from .inventory_models import (
    PRODUCT_LOW_STOCK_THRESHOLD,
    MovementType,
    StockItem,
    StockLevel,
    StockMovement,
    StockMovementCreate,
)

logger = logging.getLogger(__name__)


def is_stock_deducting(status: models.OrderStatus | None) -> bool:
    return status in models.STOCK_DEDUCTING_STATUSES


def stock_direction(
    old_status: models.OrderStatus | None,
    new_status: models.OrderStatus | None,
) -> int:
    """
    -1 when the order starts holding stock, +1 when it gives it back, 0 otherwise.
    `None` stands for "order does not exist" (before creation, after deletion).
    """
    was_deducting = is_stock_deducting(old_status)
    now_deducting = is_stock_deducting(new_status)
    if now_deducting and not was_deducting:
        return -1
    if was_deducting and not now_deducting:
        return 1
    return 0


def adjust_product_stock(
    session: Session,
    user_id: int,
    items: Iterable[models.OrderItem],
    direction: int,
) -> list[dict]:
    """
    Move tracked-product stock by `direction * quantity` for each line, clamped at zero.
    Lines without a product, or whose product does not track stock, are skipped.
    Changes are added to the session; the caller commits.
    """
    adjustments = []
    if direction == 0:
        return adjustments

    for item in items:
        if item.product_id is None:
            continue
        product = session.exec(
            select(models.Product).where(
                models.Product.id == item.product_id,
                models.Product.user_id == user_id,
            )
        ).first()
        if not product or not product.track_stock:
            continue

        before = product.stock_quantity
        product.stock_quantity = max(0, before + direction * item.quantity)
        product.updated_at = datetime.now(timezone.utc)
        session.add(product)
        adjustments.append({
            "product_id": product.id,
            "product_name": product.name,
            "before": before,
            "after": product.stock_quantity,
        })
        logger.info(
            f"Stock for product #{product.id} ({product.name}): {before} -> {product.stock_quantity}"
        )

    return adjustments


def apply_status_transition(
    session: Session,
    order: models.Order,
    old_status: models.OrderStatus | None,
    new_status: models.OrderStatus | None,
) -> list[dict]:
    """Adjust stock for all lines of `order` when moving between the two status sets."""
    direction = stock_direction(old_status, new_status)
    if direction == 0:
        return []
    logger.info(
        f"Order #{order.id}: {getattr(old_status, 'value', old_status)} -> "
        f"{getattr(new_status, 'value', new_status)}, "
        f"{'restoring' if direction > 0 else 'deducting'} stock"
    )
    return adjust_product_stock(session, order.user_id, order.items, direction)


def record_movement(
    session: Session,
    item: StockItem,
    movement: StockMovementCreate,
) -> StockMovement:
    """Register an entry/exit and update the item quantity (never below zero)."""
    if movement.type == MovementType.entry:
        new_quantity = item.quantity + movement.quantity
    else:
        new_quantity = item.quantity - movement.quantity
    new_quantity = max(Decimal("0"), new_quantity)

    record = StockMovement(
        user_id=item.user_id,
        stock_item_id=item.id,
        type=movement.type,
        quantity=movement.quantity,
        balance_after=new_quantity,
        reason=movement.reason or None,
        notes=movement.notes or None,
    )
    item.quantity = new_quantity
    item.updated_at = datetime.now(timezone.utc)
    session.add(record)
    session.add(item)
    return record


def stock_level(quantity: Decimal, minimum_stock: Decimal) -> StockLevel:
    if minimum_stock > 0 and quantity <= minimum_stock:
        return StockLevel.low
    if minimum_stock > 0 and quantity <= minimum_stock * Decimal("1.5"):
        return StockLevel.warning
    return StockLevel.normal


def get_low_stock_items(session: Session, user_id: int) -> list[StockItem]:
    statement = (
        select(StockItem)
        .where(StockItem.user_id == user_id)
        .where(StockItem.minimum_stock > 0)
        .where(StockItem.quantity <= StockItem.minimum_stock)
        .order_by(StockItem.name)
    )
    return list(session.exec(statement).all())


def get_low_stock_products(session: Session, user_id: int) -> list[models.Product]:
    statement = (
        select(models.Product)
        .where(models.Product.user_id == user_id)
        .where(models.Product.track_stock == True)
        .where(models.Product.stock_quantity <= PRODUCT_LOW_STOCK_THRESHOLD)
        .order_by(models.Product.name)
    )
    return list(session.exec(statement).all())
