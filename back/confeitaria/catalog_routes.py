"""
Public catalog (storefront) and its checkout.

`/catalog/{user_id}` endpoints need no authentication: they expose only
products flagged `show_in_catalog` and accept orders as `quote`, priced from
the product definitions. The bakery reads its visit counters at /catalog-stats.
"""

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlmodel import Session, select

from . import images, models
from .db import get_session
from .messages import checkout_message, whatsapp_link
from .pricing import PricingError, recalculate_order_total, resolve_cart_item
from .security import get_current_subscriber
from .subscription import subscription_status

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_storefront_owner(session: Session, user_id: int) -> models.User:
    owner = session.get(models.User, user_id)
    if not owner or not subscription_status(owner)["is_active"]:
        raise HTTPException(status_code=404, detail="Catalog not found")
    return owner


def _public_product(product: models.Product) -> dict:
    return {
        "id": product.id,
        "name": product.name,
        "description": product.description,
        "price_cents": product.price_cents,
        "image_url": images.image_url(product.user_id, images.PRODUCTS, product.image_filename),
        "category_id": product.category_id,
        "subcategory_id": product.subcategory_id,
        "sizes": product.sizes or [],
        "variations": product.variations or [],
        "addons": product.addons or [],
    }


def _public_bakery(owner: models.User, bakery: models.BakerySettings | None) -> dict:
    if bakery is None:
        return {"bakery_name": "Confeitaria", "logo_url": None}
    address = ", ".join(
        part for part in (
            bakery.address_street,
            bakery.address_number,
            bakery.address_neighborhood,
            bakery.address_city,
            bakery.address_state,
        ) if part
    )
    return {
        "bakery_name": bakery.bakery_name or "Confeitaria",
        "presentation_message": bakery.presentation_message,
        "phone": bakery.phone,
        "email": bakery.email,
        "address": address or None,
        "logo_url": images.image_url(owner.id, images.LOGO, bakery.logo_filename),
    }


@router.get("/catalog/{user_id}")
def get_public_catalog(user_id: int, session: Session = Depends(get_session)):
    """Storefront: bakery details and visible products grouped by category. Counts a visit."""
    owner = _get_storefront_owner(session, user_id)
    bakery = session.get(models.BakerySettings, owner.id)

    products = session.exec(
        select(models.Product)
        .where(models.Product.user_id == owner.id)
        .where(models.Product.show_in_catalog == True)
        .order_by(models.Product.name)
    ).all()
    categories = session.exec(
        select(models.Category)
        .where(models.Category.user_id == owner.id)
        .order_by(models.Category.sort_order, models.Category.name)
    ).all()
    subcategories = session.exec(
        select(models.Subcategory)
        .where(models.Subcategory.user_id == owner.id)
        .order_by(models.Subcategory.name)
    ).all()

    grouped = []
    category_ids = set()
    for category in categories:
        category_ids.add(category.id)
        category_products = [_public_product(p) for p in products if p.category_id == category.id]
        if not category_products:
            continue
        grouped.append({
            "id": category.id,
            "name": category.name,
            "banner_url": images.image_url(owner.id, images.BANNERS, category.banner_filename),
            "subcategories": [
                {
                    "id": s.id,
                    "name": s.name,
                    "banner_url": images.image_url(owner.id, images.BANNERS, s.banner_filename),
                }
                for s in subcategories if s.category_id == category.id
            ],
            "products": category_products,
        })

    session.add(models.CatalogView(user_id=owner.id))
    session.commit()

    return {
        "bakery": _public_bakery(owner, bakery),
        "categories": grouped,
        "uncategorized": [_public_product(p) for p in products if p.category_id not in category_ids],
    }


@router.post("/catalog/{user_id}/checkout")
def catalog_checkout(
    user_id: int,
    checkout: models.CheckoutRequest,
    session: Session = Depends(get_session),
):
    """
    Turn a storefront cart into a quote order.

    The client is matched by exact name and phone, or created. Returns the
    order and the WhatsApp message the customer sends to the bakery.
    """
    owner = _get_storefront_owner(session, user_id)
    bakery = session.get(models.BakerySettings, owner.id)
    customer = checkout.customer

    if not checkout.items:
        raise HTTPException(status_code=400, detail="Cart is empty")

    items = []
    for cart_item in checkout.items:
        product = session.get(models.Product, cart_item.product_id)
        if not product or product.user_id != owner.id or not product.show_in_catalog:
            raise HTTPException(status_code=400, detail=f"Product {cart_item.product_id} not available")
        try:
            items.append(resolve_cart_item(product, cart_item))
        except PricingError as e:
            raise HTTPException(status_code=400, detail=str(e))

    client_name = customer.name.strip()
    client_phone = customer.phone.strip()
    client = session.exec(
        select(models.Client)
        .where(models.Client.user_id == owner.id)
        .where(models.Client.name == client_name)
        .where(models.Client.phone == client_phone)
    ).first()
    if client is None:
        client = models.Client(
            user_id=owner.id,
            name=client_name,
            phone=client_phone,
            address=customer.address.strip(),
            city=bakery.address_city if bakery else None,
        )
        session.add(client)
        session.flush()

    order = models.Order(
        user_id=owner.id,
        client_id=client.id,
        client_name=client_name,
        status=models.OrderStatus.quote,
        delivery_date=customer.delivery_date,
        notes=f"Endereço: {customer.address.strip()} | Retirada: {customer.pickup_time.strip()}",
        source=models.OrderSource.catalog,
    )
    order.items = items
    recalculate_order_total(order)
    session.add(order)
    session.commit()
    session.refresh(order)
    logger.info(f"Catalog order #{order.id} for bakery #{owner.id} (total {order.total_cents})")

    message = checkout_message(order, bakery, customer)
    return {
        "order_id": order.id,
        "client_id": client.id,
        "status": order.status,
        "total_cents": order.total_cents,
        "items": [item.model_dump() for item in order.items],
        "whatsapp_message": message,
        "whatsapp_url": whatsapp_link(message, bakery.phone if bakery else None),
    }


@router.get("/catalog-stats")
def get_catalog_stats(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Catalog visits today, in the last 7 and 30 days, and overall."""
    now = datetime.now(timezone.utc)
    start_of_today = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)

    def visits_since(start: datetime | None) -> int:
        statement = (
            select(func.count())
            .select_from(models.CatalogView)
            .where(models.CatalogView.user_id == current_user.id)
        )
        if start is not None:
            statement = statement.where(models.CatalogView.viewed_at >= start)
        return session.exec(statement).one()

    return {
        "today": visits_since(start_of_today),
        "last_7_days": visits_since(now - timedelta(days=7)),
        "last_30_days": visits_since(now - timedelta(days=30)),
        "total": visits_since(None),
        "catalog_path": f"/catalog/{current_user.id}",
    }
