"""
Orders API Routes

Order intake and workflow:
- Orders CRUD with priced lines
- Status transitions, which move tracked-product stock
- Adding/removing single lines
- WhatsApp share text
"""

import logging
from datetime import date, datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from . import models
from .db import get_session
from .inventory_service import adjust_product_stock, apply_status_transition, is_stock_deducting
from .messages import order_summary_message, whatsapp_link
from .pricing import PricingError, build_order_item, order_breakdown, recalculate_order_total
from .security import get_current_subscriber

logger = logging.getLogger(__name__)

router = APIRouter()


def order_to_dict(order: models.Order) -> dict:
    data = order.model_dump()
    data["items"] = [item.model_dump() for item in order.items]
    breakdown = order_breakdown(
        (item.total_cents for item in order.items),
        order.discount_percentage,
        order.delivery_fee_cents,
    )
    data["subtotal_cents"] = breakdown["subtotal_cents"]
    data["discount_cents"] = breakdown["discount_cents"]
    return data


def _get_order(session: Session, order_id: int, user_id: int) -> models.Order:
    order = session.get(models.Order, order_id)
    if not order or order.user_id != user_id:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def _resolve_client(
    session: Session,
    user_id: int,
    client_id: int | None,
    client_name: str | None,
) -> tuple[int | None, str]:
    if client_id is not None:
        client = session.get(models.Client, client_id)
        if not client or client.user_id != user_id:
            raise HTTPException(status_code=400, detail="Invalid client")
        return client.id, client.name
    if not client_name or not client_name.strip():
        raise HTTPException(status_code=400, detail="Client name is required")
    return None, client_name.strip()


def _build_items(
    session: Session,
    user_id: int,
    items: list[models.OrderItemCreate],
) -> list[models.OrderItem]:
    built = []
    for item in items:
        product = None
        if item.product_id is not None:
            product = session.get(models.Product, item.product_id)
            if not product or product.user_id != user_id:
                raise HTTPException(status_code=400, detail=f"Product {item.product_id} not found")
        try:
            built.append(build_order_item(item, product))
        except PricingError as e:
            raise HTTPException(status_code=400, detail=str(e))
    return built


@router.get("")
def list_orders(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
    status: models.OrderStatus | None = None,
    search: str | None = None,
    client_id: int | None = None,
    delivery_from: date | None = None,
    delivery_to: date | None = None,
):
    """List orders, newest first"""
    statement = select(models.Order).where(models.Order.user_id == current_user.id)

    if status:
        statement = statement.where(models.Order.status == status)
    if search:
        statement = statement.where(models.Order.client_name.ilike(f"%{search}%"))
    if client_id is not None:
        statement = statement.where(models.Order.client_id == client_id)
    if delivery_from:
        statement = statement.where(models.Order.delivery_date >= delivery_from)
    if delivery_to:
        statement = statement.where(models.Order.delivery_date <= delivery_to)

    orders = session.exec(statement.order_by(models.Order.created_at.desc(), models.Order.id.desc())).all()
    return [order_to_dict(o) for o in orders]


@router.post("")
def create_order(
    order_create: models.OrderCreate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Create an order. An order created already confirmed takes its stock right away."""
    if not order_create.items:
        raise HTTPException(status_code=400, detail="Order must have at least one item")

    client_id, client_name = _resolve_client(
        session, current_user.id, order_create.client_id, order_create.client_name
    )
    items = _build_items(session, current_user.id, order_create.items)

    order = models.Order(
        user_id=current_user.id,
        client_id=client_id,
        client_name=client_name,
        status=order_create.status,
        discount_percentage=order_create.discount_percentage,
        delivery_fee_cents=order_create.delivery_fee_cents,
        payment_method=order_create.payment_method,
        delivery_date=order_create.delivery_date,
        notes=order_create.notes,
        source=models.OrderSource.admin,
    )
    order.items = items
    recalculate_order_total(order)
    session.add(order)
    session.flush()

    apply_status_transition(session, order, None, order.status)
    session.commit()
    session.refresh(order)
    logger.info(f"Order #{order.id} created ({order.status.value}, total {order.total_cents})")
    return order_to_dict(order)


@router.get("/{order_id}")
def get_order(
    order_id: int,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    return order_to_dict(_get_order(session, order_id, current_user.id))


@router.put("/{order_id}")
def update_order(
    order_id: int,
    order_update: models.OrderUpdate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """
    Update an order. When `items` is given it replaces every line; stock held
    by the old lines is released and the new lines take theirs.
    """
    order = _get_order(session, order_id, current_user.id)
    update_data = order_update.model_dump(exclude_unset=True)

    if "client_id" in update_data or "client_name" in update_data:
        order.client_id, order.client_name = _resolve_client(
            session,
            current_user.id,
            update_data.get("client_id", order.client_id),
            update_data.get("client_name", order.client_name),
        )

    for key in ("discount_percentage", "delivery_fee_cents"):
        if update_data.get(key) is not None:
            setattr(order, key, update_data[key])
    for key in ("payment_method", "delivery_date", "notes"):
        if key in update_data:
            setattr(order, key, update_data[key])

    old_status = order.status
    new_status = order_update.status or old_status

    if order_update.items is not None:
        if not order_update.items:
            raise HTTPException(status_code=400, detail="Order must have at least one item")
        new_items = _build_items(session, current_user.id, order_update.items)
        if is_stock_deducting(old_status):
            adjust_product_stock(session, current_user.id, order.items, 1)
        order.items = new_items
        session.flush()
        if is_stock_deducting(new_status):
            adjust_product_stock(session, current_user.id, order.items, -1)
    else:
        apply_status_transition(session, order, old_status, new_status)

    order.status = new_status
    recalculate_order_total(order)
    order.updated_at = datetime.now(timezone.utc)
    session.add(order)
    session.commit()
    session.refresh(order)
    return order_to_dict(order)


@router.put("/{order_id}/status")
def update_order_status(
    order_id: int,
    status_update: models.OrderStatusUpdate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Change the order status, moving tracked-product stock in the same transaction."""
    order = _get_order(session, order_id, current_user.id)
    old_status = order.status

    adjustments = apply_status_transition(session, order, old_status, status_update.status)
    order.status = status_update.status
    order.updated_at = datetime.now(timezone.utc)
    session.add(order)
    session.commit()
    session.refresh(order)

    result = order_to_dict(order)
    result["stock_adjustments"] = adjustments
    return result


@router.delete("/{order_id}")
def delete_order(
    order_id: int,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Delete an order and its lines. Stock held by a confirmed order is released."""
    order = _get_order(session, order_id, current_user.id)

    apply_status_transition(session, order, order.status, None)
    session.delete(order)
    session.commit()
    return {"status": "deleted", "id": order_id}


@router.post("/{order_id}/items")
def add_order_item(
    order_id: int,
    item_create: models.OrderItemCreate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    order = _get_order(session, order_id, current_user.id)

    item = _build_items(session, current_user.id, [item_create])[0]
    order.items.append(item)
    session.flush()
    if is_stock_deducting(order.status):
        adjust_product_stock(session, current_user.id, [item], -1)

    recalculate_order_total(order)
    order.updated_at = datetime.now(timezone.utc)
    session.add(order)
    session.commit()
    session.refresh(order)
    return order_to_dict(order)


@router.delete("/{order_id}/items/{item_id}")
def remove_order_item(
    order_id: int,
    item_id: int,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    order = _get_order(session, order_id, current_user.id)

    item = next((i for i in order.items if i.id == item_id), None)
    if item is None:
        raise HTTPException(status_code=404, detail="Order item not found")
    if len(order.items) == 1:
        raise HTTPException(status_code=400, detail="Order must have at least one item")

    if is_stock_deducting(order.status):
        adjust_product_stock(session, current_user.id, [item], 1)
    order.items.remove(item)

    recalculate_order_total(order)
    order.updated_at = datetime.now(timezone.utc)
    session.add(order)
    session.commit()
    session.refresh(order)
    return order_to_dict(order)


@router.get("/{order_id}/whatsapp")
def get_order_whatsapp(
    order_id: int,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Order summary text for WhatsApp, with a wa.me link to the client when a phone is known."""
    order = _get_order(session, order_id, current_user.id)
    bakery = session.get(models.BakerySettings, current_user.id)
    client = session.get(models.Client, order.client_id) if order.client_id else None

    text = order_summary_message(order, bakery)
    return {"text": text, "url": whatsapp_link(text, client.phone if client else None)}
