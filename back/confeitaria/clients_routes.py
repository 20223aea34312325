from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, or_
from sqlmodel import Session, select

from . import models
from .db import get_session
from .security import get_current_subscriber

router = APIRouter()


def _get_client(session: Session, client_id: int, user_id: int) -> models.Client:
    client = session.get(models.Client, client_id)
    if not client or client.user_id != user_id:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.get("", response_model=list[models.Client])
def list_clients(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
    search: str | None = None,
):
    """List the bakery's clients, optionally filtered by name, phone or email."""
    statement = select(models.Client).where(models.Client.user_id == current_user.id)

    if search:
        search_pattern = f"%{search}%"
        statement = statement.where(
            or_(
                models.Client.name.ilike(search_pattern),
                models.Client.phone.ilike(search_pattern),
                models.Client.email.ilike(search_pattern),
            )
        )

    return session.exec(statement.order_by(models.Client.name)).all()


@router.post("", response_model=models.Client)
def create_client(
    client_create: models.ClientCreate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    if not client_create.name.strip():
        raise HTTPException(status_code=400, detail="Client name is required")

    client = models.Client(user_id=current_user.id, **client_create.model_dump())
    session.add(client)
    session.commit()
    session.refresh(client)
    return client


@router.get("/{client_id}")
def get_client(
    client_id: int,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Client details with a summary of their orders."""
    client = _get_client(session, client_id, current_user.id)

    order_count, total_spent = session.exec(
        select(func.count(models.Order.id), func.coalesce(func.sum(models.Order.total_cents), 0))
        .where(models.Order.user_id == current_user.id)
        .where(models.Order.client_id == client.id)
        .where(models.Order.status.in_(list(models.REVENUE_STATUSES)))
    ).one()

    result = client.model_dump()
    result["order_count"] = order_count
    result["total_spent_cents"] = int(total_spent)
    return result


@router.put("/{client_id}", response_model=models.Client)
def update_client(
    client_id: int,
    client_update: models.ClientUpdate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    client = _get_client(session, client_id, current_user.id)

    update_data = client_update.model_dump(exclude_unset=True)
    if "name" in update_data and not (update_data["name"] or "").strip():
        raise HTTPException(status_code=400, detail="Client name is required")
    for key, value in update_data.items():
        setattr(client, key, value)

    client.updated_at = datetime.now(timezone.utc)
    session.add(client)
    session.commit()
    session.refresh(client)
    return client


@router.delete("/{client_id}")
def delete_client(
    client_id: int,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Delete a client. Their orders are kept, keeping the client name snapshot."""
    client = _get_client(session, client_id, current_user.id)

    orders = session.exec(
        select(models.Order)
        .where(models.Order.user_id == current_user.id)
        .where(models.Order.client_id == client.id)
    ).all()
    for order in orders:
        order.client_id = None
        session.add(order)

    session.delete(client)
    session.commit()
    return {"status": "deleted", "id": client_id}
