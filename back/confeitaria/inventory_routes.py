"""
Stock API Routes

REST API for the bakery's stock:
- Stock categories CRUD
- Raw-material items CRUD with level classification
- Entries/exits movement log
- Low-stock alerts
- Finished-product stock tracking
"""

from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlmodel import Session, select

from . import models
from .db import get_session
from .inventory_models import (
    PRODUCT_LOW_STOCK_THRESHOLD,
    MovementType,
    ProductStockUpdate,
    StockCategory,
    StockCategoryCreate,
    StockCategoryUpdate,
    StockItem,
    StockItemCreate,
    StockItemResponse,
    StockItemUpdate,
    StockLevel,
    StockMovement,
    StockMovementCreate,
    StockMovementResponse,
    TrackedProductResponse,
)
from .inventory_service import (
    get_low_stock_items,
    get_low_stock_products,
    record_movement,
    stock_level,
)
from .security import get_current_subscriber

router = APIRouter()


def _item_response(item: StockItem, category_name: str | None) -> StockItemResponse:
    return StockItemResponse(
        id=item.id,
        name=item.name,
        description=item.description,
        unit=item.unit,
        quantity=float(item.quantity),
        minimum_stock=float(item.minimum_stock),
        cost_per_unit_cents=item.cost_per_unit_cents,
        supplier=item.supplier,
        category_id=item.category_id,
        category_name=category_name,
        level=stock_level(item.quantity, item.minimum_stock),
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


def _category_names(session: Session, user_id: int) -> dict[int, str]:
    categories = session.exec(select(StockCategory).where(StockCategory.user_id == user_id)).all()
    return {c.id: c.name for c in categories}


def _get_stock_item(session: Session, item_id: int, user_id: int) -> StockItem:
    item = session.get(StockItem, item_id)
    if not item or item.user_id != user_id:
        raise HTTPException(status_code=404, detail="Stock item not found")
    return item


def _get_stock_category(session: Session, category_id: int, user_id: int) -> StockCategory:
    category = session.get(StockCategory, category_id)
    if not category or category.user_id != user_id:
        raise HTTPException(status_code=404, detail="Stock category not found")
    return category


def _check_category(session: Session, category_id: int | None, user_id: int) -> None:
    if category_id is None:
        return
    category = session.get(StockCategory, category_id)
    if not category or category.user_id != user_id:
        raise HTTPException(status_code=400, detail="Invalid stock category")


# ============ STOCK CATEGORIES ============

@router.get("/categories", response_model=list[StockCategory])
def list_stock_categories(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    return session.exec(
        select(StockCategory)
        .where(StockCategory.user_id == current_user.id)
        .order_by(StockCategory.name)
    ).all()


@router.post("/categories", response_model=StockCategory)
def create_stock_category(
    category_create: StockCategoryCreate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    if not category_create.name.strip():
        raise HTTPException(status_code=400, detail="Category name is required")

    category = StockCategory(user_id=current_user.id, **category_create.model_dump())
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


@router.put("/categories/{category_id}", response_model=StockCategory)
def update_stock_category(
    category_id: int,
    category_update: StockCategoryUpdate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    category = _get_stock_category(session, category_id, current_user.id)

    update_data = category_update.model_dump(exclude_unset=True)
    if "name" in update_data and not (update_data["name"] or "").strip():
        raise HTTPException(status_code=400, detail="Category name is required")
    for key, value in update_data.items():
        setattr(category, key, value)

    session.add(category)
    session.commit()
    session.refresh(category)
    return category


@router.delete("/categories/{category_id}")
def delete_stock_category(
    category_id: int,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Delete a category; its items stay, uncategorized."""
    category = _get_stock_category(session, category_id, current_user.id)

    items = session.exec(select(StockItem).where(StockItem.category_id == category.id)).all()
    for item in items:
        item.category_id = None
        session.add(item)
    session.flush()

    session.delete(category)
    session.commit()
    return {"status": "deleted", "id": category_id}


# ============ STOCK ITEMS ============

@router.get("/items", response_model=list[StockItemResponse])
def list_stock_items(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
    category_id: int | None = None,
    level: StockLevel | None = None,
    search: str | None = None,
):
    """List stock items with their level"""
    statement = select(StockItem).where(StockItem.user_id == current_user.id)

    if category_id is not None:
        statement = statement.where(StockItem.category_id == category_id)

    if search:
        search_pattern = f"%{search}%"
        statement = statement.where(
            or_(
                StockItem.name.ilike(search_pattern),
                StockItem.supplier.ilike(search_pattern),
            )
        )

    items = session.exec(statement.order_by(StockItem.name)).all()
    names = _category_names(session, current_user.id)

    result = [_item_response(item, names.get(item.category_id)) for item in items]
    if level:
        result = [r for r in result if r.level == level]
    return result


@router.post("/items", response_model=StockItemResponse)
def create_stock_item(
    item_create: StockItemCreate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Create a stock item. A starting quantity is logged as an entry."""
    if not item_create.name.strip():
        raise HTTPException(status_code=400, detail="Item name is required")
    _check_category(session, item_create.category_id, current_user.id)

    data = item_create.model_dump()
    initial_quantity = data.pop("quantity")
    item = StockItem(user_id=current_user.id, **data)
    session.add(item)
    session.flush()

    if initial_quantity > 0:
        record_movement(
            session,
            item,
            StockMovementCreate(type=MovementType.entry, quantity=initial_quantity, reason="Initial stock"),
        )

    session.commit()
    session.refresh(item)
    return _item_response(item, _category_names(session, current_user.id).get(item.category_id))


@router.get("/items/{item_id}", response_model=StockItemResponse)
def get_stock_item(
    item_id: int,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    item = _get_stock_item(session, item_id, current_user.id)
    return _item_response(item, _category_names(session, current_user.id).get(item.category_id))


@router.put("/items/{item_id}", response_model=StockItemResponse)
def update_stock_item(
    item_id: int,
    item_update: StockItemUpdate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Update item details. Quantity only changes through movements."""
    item = _get_stock_item(session, item_id, current_user.id)

    update_data = item_update.model_dump(exclude_unset=True)
    if "name" in update_data and not (update_data["name"] or "").strip():
        raise HTTPException(status_code=400, detail="Item name is required")
    if "category_id" in update_data:
        _check_category(session, update_data["category_id"], current_user.id)
    for key, value in update_data.items():
        if value is None and key in ("unit", "minimum_stock", "cost_per_unit_cents"):
            continue
        setattr(item, key, value)

    item.updated_at = datetime.now(timezone.utc)
    session.add(item)
    session.commit()
    session.refresh(item)
    return _item_response(item, _category_names(session, current_user.id).get(item.category_id))


@router.delete("/items/{item_id}")
def delete_stock_item(
    item_id: int,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Delete an item together with its movement history"""
    item = _get_stock_item(session, item_id, current_user.id)
    session.delete(item)
    session.commit()
    return {"status": "deleted", "id": item_id}


# ============ MOVEMENTS ============

@router.post("/items/{item_id}/movements", response_model=StockMovementResponse)
def create_stock_movement(
    item_id: int,
    movement: StockMovementCreate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Register an entry or exit. Exits never take the quantity below zero."""
    item = _get_stock_item(session, item_id, current_user.id)

    record = record_movement(session, item, movement)
    session.commit()
    session.refresh(record)

    return StockMovementResponse(
        id=record.id,
        stock_item_id=item.id,
        stock_item_name=item.name,
        type=record.type,
        quantity=float(record.quantity),
        balance_after=float(record.balance_after),
        reason=record.reason,
        notes=record.notes,
        created_at=record.created_at,
    )


@router.get("/movements", response_model=list[StockMovementResponse])
def list_stock_movements(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
    item_id: int | None = None,
    limit: int = Query(default=50, le=200),
    offset: int = 0,
):
    """Movement history, newest first"""
    statement = select(StockMovement).where(StockMovement.user_id == current_user.id)
    if item_id is not None:
        statement = statement.where(StockMovement.stock_item_id == item_id)

    statement = statement.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    movements = session.exec(statement.offset(offset).limit(limit)).all()

    item_names = {
        item.id: item.name
        for item in session.exec(select(StockItem).where(StockItem.user_id == current_user.id)).all()
    }

    return [
        StockMovementResponse(
            id=m.id,
            stock_item_id=m.stock_item_id,
            stock_item_name=item_names.get(m.stock_item_id, ""),
            type=m.type,
            quantity=float(m.quantity),
            balance_after=float(m.balance_after),
            reason=m.reason,
            notes=m.notes,
            created_at=m.created_at,
        )
        for m in movements
    ]


# ============ ALERTS ============

@router.get("/alerts")
def get_stock_alerts(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Raw materials at or below their minimum and tracked products running out"""
    items = get_low_stock_items(session, current_user.id)
    products = get_low_stock_products(session, current_user.id)

    return {
        "items": [
            {
                "id": item.id,
                "name": item.name,
                "unit": item.unit,
                "quantity": float(item.quantity),
                "minimum_stock": float(item.minimum_stock),
                "suggested_purchase": float(max(0, item.minimum_stock * 2 - item.quantity)),
                "supplier": item.supplier,
            }
            for item in items
        ],
        "products": [
            {"id": p.id, "name": p.name, "stock_quantity": p.stock_quantity}
            for p in products
        ],
        "total": len(items) + len(products),
    }


# ============ FINISHED PRODUCTS ============

@router.get("/products", response_model=list[TrackedProductResponse])
def list_tracked_products(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Products with stock tracking enabled"""
    products = session.exec(
        select(models.Product)
        .where(models.Product.user_id == current_user.id)
        .where(models.Product.track_stock == True)
        .order_by(models.Product.name)
    ).all()
    categories = {
        c.id: c.name
        for c in session.exec(
            select(models.Category).where(models.Category.user_id == current_user.id)
        ).all()
    }

    return [
        TrackedProductResponse(
            id=p.id,
            name=p.name,
            stock_quantity=p.stock_quantity,
            category_name=categories.get(p.category_id),
            is_low_stock=p.stock_quantity <= PRODUCT_LOW_STOCK_THRESHOLD,
        )
        for p in products
    ]


@router.put("/products/{product_id}", response_model=TrackedProductResponse)
def update_product_stock(
    product_id: int,
    stock_update: ProductStockUpdate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Turn stock tracking on/off or set the counted quantity of a product"""
    product = session.get(models.Product, product_id)
    if not product or product.user_id != current_user.id:
        raise HTTPException(status_code=404, detail="Product not found")

    if stock_update.track_stock is not None:
        product.track_stock = stock_update.track_stock
    if stock_update.stock_quantity is not None:
        product.stock_quantity = stock_update.stock_quantity

    product.updated_at = datetime.now(timezone.utc)
    session.add(product)
    session.commit()
    session.refresh(product)

    category = session.get(models.Category, product.category_id) if product.category_id else None
    return TrackedProductResponse(
        id=product.id,
        name=product.name,
        stock_quantity=product.stock_quantity,
        category_name=category.name if category else None,
        is_low_stock=product.stock_quantity <= PRODUCT_LOW_STOCK_THRESHOLD,
    )
