"""
Products API Routes

- Products CRUD, image upload and catalog visibility
- Categories and subcategories CRUD with banner images
"""

import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy import or_
from sqlmodel import Session, select

from . import images, models
from .db import get_session
from .security import get_current_subscriber

logger = logging.getLogger(__name__)

router = APIRouter()


def product_to_dict(product: models.Product) -> dict:
    data = product.model_dump()
    data["image_url"] = images.image_url(product.user_id, images.PRODUCTS, product.image_filename)
    return data


def category_to_dict(category: models.Category | models.Subcategory) -> dict:
    data = category.model_dump()
    data["banner_url"] = images.image_url(category.user_id, images.BANNERS, category.banner_filename)
    return data


def _get_product(session: Session, product_id: int, user_id: int) -> models.Product:
    product = session.get(models.Product, product_id)
    if not product or product.user_id != user_id:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


def _get_category(session: Session, category_id: int, user_id: int) -> models.Category:
    category = session.get(models.Category, category_id)
    if not category or category.user_id != user_id:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


def _get_subcategory(session: Session, subcategory_id: int, user_id: int) -> models.Subcategory:
    subcategory = session.get(models.Subcategory, subcategory_id)
    if not subcategory or subcategory.user_id != user_id:
        raise HTTPException(status_code=404, detail="Subcategory not found")
    return subcategory


def _check_classification(
    session: Session,
    user_id: int,
    category_id: int | None,
    subcategory_id: int | None,
) -> None:
    """Category and subcategory must belong to the user, and to each other."""
    if category_id is not None:
        category = session.get(models.Category, category_id)
        if not category or category.user_id != user_id:
            raise HTTPException(status_code=400, detail="Invalid category")
    if subcategory_id is not None:
        subcategory = session.get(models.Subcategory, subcategory_id)
        if not subcategory or subcategory.user_id != user_id:
            raise HTTPException(status_code=400, detail="Invalid subcategory")
        if category_id is not None and subcategory.category_id != category_id:
            raise HTTPException(status_code=400, detail="Subcategory does not belong to the category")


# ============ PRODUCTS ============

@router.get("/products")
def list_products(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
    search: str | None = None,
    category_id: int | None = None,
    show_in_catalog: bool | None = None,
):
    """List all products for the bakery"""
    statement = select(models.Product).where(models.Product.user_id == current_user.id)

    if search:
        search_pattern = f"%{search}%"
        statement = statement.where(
            or_(
                models.Product.name.ilike(search_pattern),
                models.Product.description.ilike(search_pattern),
            )
        )
    if category_id is not None:
        statement = statement.where(models.Product.category_id == category_id)
    if show_in_catalog is not None:
        statement = statement.where(models.Product.show_in_catalog == show_in_catalog)

    products = session.exec(statement.order_by(models.Product.name)).all()
    return [product_to_dict(p) for p in products]


@router.post("/products")
def create_product(
    product_create: models.ProductCreate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    if not product_create.name.strip():
        raise HTTPException(status_code=400, detail="Product name is required")
    _check_classification(
        session, current_user.id, product_create.category_id, product_create.subcategory_id
    )

    product = models.Product(user_id=current_user.id, **product_create.model_dump())
    session.add(product)
    session.commit()
    session.refresh(product)
    logger.info(f"Product #{product.id} created for user #{current_user.id}")
    return product_to_dict(product)


@router.get("/products/{product_id}")
def get_product(
    product_id: int,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    return product_to_dict(_get_product(session, product_id, current_user.id))


@router.put("/products/{product_id}")
def update_product(
    product_id: int,
    product_update: models.ProductUpdate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    product = _get_product(session, product_id, current_user.id)

    update_data = product_update.model_dump(exclude_unset=True)
    if "name" in update_data and not (update_data["name"] or "").strip():
        raise HTTPException(status_code=400, detail="Product name is required")
    if "price_cents" in update_data and update_data["price_cents"] is None:
        raise HTTPException(status_code=400, detail="Product price is required")
    _check_classification(
        session,
        current_user.id,
        update_data.get("category_id", product.category_id),
        update_data.get("subcategory_id", product.subcategory_id),
    )

    for key, value in update_data.items():
        setattr(product, key, value)

    product.updated_at = datetime.now(timezone.utc)
    session.add(product)
    session.commit()
    session.refresh(product)
    return product_to_dict(product)


@router.delete("/products/{product_id}")
def delete_product(
    product_id: int,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Delete a product. Order lines keep their name and price snapshot."""
    product = _get_product(session, product_id, current_user.id)

    order_items = session.exec(
        select(models.OrderItem).where(models.OrderItem.product_id == product.id)
    ).all()
    for item in order_items:
        item.product_id = None
        session.add(item)

    images.delete_image(current_user.id, images.PRODUCTS, product.image_filename)
    session.delete(product)
    session.commit()
    return {"status": "deleted", "id": product_id}


@router.post("/products/{product_id}/image")
async def upload_product_image(
    product_id: int,
    file: Annotated[UploadFile, File()],
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Upload a product photo, replacing the previous one."""
    product = _get_product(session, product_id, current_user.id)

    product.image_filename = await images.store_image(
        current_user.id, images.PRODUCTS, file, previous_filename=product.image_filename
    )
    product.updated_at = datetime.now(timezone.utc)
    session.add(product)
    session.commit()
    session.refresh(product)
    return product_to_dict(product)


@router.delete("/products/{product_id}/image")
def delete_product_image(
    product_id: int,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    product = _get_product(session, product_id, current_user.id)

    images.delete_image(current_user.id, images.PRODUCTS, product.image_filename)
    product.image_filename = None
    product.updated_at = datetime.now(timezone.utc)
    session.add(product)
    session.commit()
    session.refresh(product)
    return product_to_dict(product)


@router.put("/products/{product_id}/catalog")
def toggle_product_catalog(
    product_id: int,
    toggle: models.ProductCatalogToggle,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Show or hide a product in the public catalog."""
    product = _get_product(session, product_id, current_user.id)

    product.show_in_catalog = toggle.show_in_catalog
    product.updated_at = datetime.now(timezone.utc)
    session.add(product)
    session.commit()
    session.refresh(product)
    return product_to_dict(product)


# ============ CATEGORIES ============

@router.get("/categories")
def list_categories(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Categories with their subcategories nested."""
    categories = session.exec(
        select(models.Category)
        .where(models.Category.user_id == current_user.id)
        .order_by(models.Category.sort_order, models.Category.name)
    ).all()
    subcategories = session.exec(
        select(models.Subcategory)
        .where(models.Subcategory.user_id == current_user.id)
        .order_by(models.Subcategory.name)
    ).all()

    result = []
    for category in categories:
        data = category_to_dict(category)
        data["subcategories"] = [
            category_to_dict(s) for s in subcategories if s.category_id == category.id
        ]
        result.append(data)
    return result


@router.post("/categories")
def create_category(
    category_create: models.CategoryCreate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    if not category_create.name.strip():
        raise HTTPException(status_code=400, detail="Category name is required")

    category = models.Category(
        user_id=current_user.id,
        name=category_create.name.strip(),
        sort_order=category_create.sort_order or 0,
    )
    session.add(category)
    session.commit()
    session.refresh(category)
    return category_to_dict(category)


@router.put("/categories/{category_id}")
def update_category(
    category_id: int,
    category_update: models.CategoryUpdate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    category = _get_category(session, category_id, current_user.id)

    if category_update.name is not None:
        if not category_update.name.strip():
            raise HTTPException(status_code=400, detail="Category name is required")
        category.name = category_update.name.strip()
    if category_update.sort_order is not None:
        category.sort_order = category_update.sort_order

    session.add(category)
    session.commit()
    session.refresh(category)
    return category_to_dict(category)


@router.delete("/categories/{category_id}")
def delete_category(
    category_id: int,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Delete a category and its subcategories. Products become uncategorized."""
    category = _get_category(session, category_id, current_user.id)

    subcategories = session.exec(
        select(models.Subcategory).where(models.Subcategory.category_id == category.id)
    ).all()
    subcategory_ids = [s.id for s in subcategories]

    products = session.exec(
        select(models.Product)
        .where(models.Product.user_id == current_user.id)
        .where(
            or_(
                models.Product.category_id == category.id,
                models.Product.subcategory_id.in_(subcategory_ids),
            )
        )
    ).all()
    for product in products:
        product.category_id = None
        product.subcategory_id = None
        session.add(product)
    session.flush()

    for subcategory in subcategories:
        images.delete_image(current_user.id, images.BANNERS, subcategory.banner_filename)
        session.delete(subcategory)
    session.flush()

    images.delete_image(current_user.id, images.BANNERS, category.banner_filename)
    session.delete(category)
    session.commit()
    return {"status": "deleted", "id": category_id}


@router.post("/categories/{category_id}/banner")
async def upload_category_banner(
    category_id: int,
    file: Annotated[UploadFile, File()],
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    category = _get_category(session, category_id, current_user.id)

    category.banner_filename = await images.store_image(
        current_user.id, images.BANNERS, file, previous_filename=category.banner_filename
    )
    session.add(category)
    session.commit()
    session.refresh(category)
    return category_to_dict(category)


@router.delete("/categories/{category_id}/banner")
def delete_category_banner(
    category_id: int,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    category = _get_category(session, category_id, current_user.id)

    images.delete_image(current_user.id, images.BANNERS, category.banner_filename)
    category.banner_filename = None
    session.add(category)
    session.commit()
    session.refresh(category)
    return category_to_dict(category)


# ============ SUBCATEGORIES ============

@router.get("/subcategories")
def list_subcategories(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
    category_id: int | None = None,
):
    statement = select(models.Subcategory).where(models.Subcategory.user_id == current_user.id)
    if category_id is not None:
        statement = statement.where(models.Subcategory.category_id == category_id)
    subcategories = session.exec(statement.order_by(models.Subcategory.name)).all()
    return [category_to_dict(s) for s in subcategories]


@router.post("/subcategories")
def create_subcategory(
    subcategory_create: models.SubcategoryCreate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    if not subcategory_create.name.strip():
        raise HTTPException(status_code=400, detail="Subcategory name is required")
    _get_category(session, subcategory_create.category_id, current_user.id)

    subcategory = models.Subcategory(
        user_id=current_user.id,
        category_id=subcategory_create.category_id,
        name=subcategory_create.name.strip(),
    )
    session.add(subcategory)
    session.commit()
    session.refresh(subcategory)
    return category_to_dict(subcategory)


@router.put("/subcategories/{subcategory_id}")
def update_subcategory(
    subcategory_id: int,
    subcategory_update: models.SubcategoryUpdate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    subcategory = _get_subcategory(session, subcategory_id, current_user.id)

    if subcategory_update.name is not None:
        if not subcategory_update.name.strip():
            raise HTTPException(status_code=400, detail="Subcategory name is required")
        subcategory.name = subcategory_update.name.strip()
    if subcategory_update.category_id is not None and subcategory_update.category_id != subcategory.category_id:
        _get_category(session, subcategory_update.category_id, current_user.id)
        subcategory.category_id = subcategory_update.category_id
        # Products follow their subcategory
        products = session.exec(
            select(models.Product)
            .where(models.Product.user_id == current_user.id)
            .where(models.Product.subcategory_id == subcategory.id)
        ).all()
        for product in products:
            product.category_id = subcategory.category_id
            session.add(product)

    session.add(subcategory)
    session.commit()
    session.refresh(subcategory)
    return category_to_dict(subcategory)


@router.delete("/subcategories/{subcategory_id}")
def delete_subcategory(
    subcategory_id: int,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    subcategory = _get_subcategory(session, subcategory_id, current_user.id)

    products = session.exec(
        select(models.Product)
        .where(models.Product.user_id == current_user.id)
        .where(models.Product.subcategory_id == subcategory.id)
    ).all()
    for product in products:
        product.subcategory_id = None
        session.add(product)
    session.flush()

    images.delete_image(current_user.id, images.BANNERS, subcategory.banner_filename)
    session.delete(subcategory)
    session.commit()
    return {"status": "deleted", "id": subcategory_id}


@router.post("/subcategories/{subcategory_id}/banner")
async def upload_subcategory_banner(
    subcategory_id: int,
    file: Annotated[UploadFile, File()],
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    subcategory = _get_subcategory(session, subcategory_id, current_user.id)

    subcategory.banner_filename = await images.store_image(
        current_user.id, images.BANNERS, file, previous_filename=subcategory.banner_filename
    )
    session.add(subcategory)
    session.commit()
    session.refresh(subcategory)
    return category_to_dict(subcategory)


@router.delete("/subcategories/{subcategory_id}/banner")
def delete_subcategory_banner(
    subcategory_id: int,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    subcategory = _get_subcategory(session, subcategory_id, current_user.id)

    images.delete_image(current_user.id, images.BANNERS, subcategory.banner_filename)
    subcategory.banner_filename = None
    session.add(subcategory)
    session.commit()
    session.refresh(subcategory)
    return category_to_dict(subcategory)
