from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from . import models, security
from .db import get_session
from .provisioning import (
    ProvisioningError,
    create_account,
    delete_account,
    find_user_by_email,
    upsert_subscription,
)
from .settings import settings
from .subscription import compute_expiry, subscription_status

router = APIRouter()


def _user_to_dict(user: models.User) -> dict:
    data = user.model_dump(exclude={"hashed_password", "token_version"})
    data["subscription"] = subscription_status(user)
    return data


def _get_user(session: Session, user_id: int) -> models.User:
    user = session.get(models.User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _product_label(plan: models.SubscriptionPlan | None) -> str:
    return f"{settings.app_name} - {plan.value if plan else 'monthly'} plan"


@router.get("/users")
def list_users(
    current_user: Annotated[models.User, Depends(security.get_current_admin)],
    session: Session = Depends(get_session),
    search: str | None = None,
):
    """All accounts with their subscription status, newest first."""
    statement = select(models.User)
    if search:
        search_pattern = f"%{search}%"
        statement = statement.where(
            models.User.email.ilike(search_pattern) | models.User.full_name.ilike(search_pattern)
        )
    users = session.exec(statement.order_by(models.User.created_at.desc(), models.User.id.desc())).all()
    return [_user_to_dict(u) for u in users]


@router.post("/users")
def create_user(
    user_create: models.AdminUserCreate,
    current_user: Annotated[models.User, Depends(security.get_current_admin)],
    session: Session = Depends(get_session),
):
    """Create an account by hand. A password is generated when none is given and returned once."""
    if not user_create.email.strip() or not user_create.full_name.strip():
        raise HTTPException(status_code=400, detail="Email and name are required")
    if user_create.password is not None and len(user_create.password) < 6:
        raise HTTPException(status_code=400, detail="Password must have at least 6 characters")

    payment_date = user_create.payment_date or datetime.now(timezone.utc)
    expires_at = user_create.expires_at or compute_expiry(payment_date, user_create.plan)

    try:
        user, password = create_account(
            session,
            email=user_create.email,
            full_name=user_create.full_name.strip(),
            phone=user_create.phone,
            plan=user_create.plan,
            payment_date=payment_date,
            expires_at=expires_at,
            created_via="admin_panel",
            password=user_create.password,
            product_name=_product_label(user_create.plan),
            offer_name="Created via admin",
        )
    except ProvisioningError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = _user_to_dict(user)
    result["password"] = password
    return result


@router.put("/users/{user_id}")
def update_user(
    user_id: int,
    user_update: models.AdminUserUpdate,
    current_user: Annotated[models.User, Depends(security.get_current_admin)],
    session: Session = Depends(get_session),
):
    """Update account details and subscription dates. A new password revokes open sessions."""
    user = _get_user(session, user_id)
    update_data = user_update.model_dump(exclude_unset=True)

    if update_data.get("email"):
        email = update_data["email"].strip().lower()
        existing = find_user_by_email(session, email)
        if existing and existing.id != user.id:
            raise HTTPException(status_code=400, detail="Email already registered")
        user.email = email

    if update_data.get("full_name"):
        user.full_name = update_data["full_name"].strip()
    if "phone" in update_data:
        user.phone = update_data["phone"]

    if update_data.get("password"):
        if len(update_data["password"]) < 6:
            raise HTTPException(status_code=400, detail="Password must have at least 6 characters")
        user.hashed_password = security.get_password_hash(update_data["password"])
        user.token_version += 1

    for key in ("plan", "payment_date", "expires_at"):
        if update_data.get(key) is not None:
            setattr(user, key, update_data[key])

    user.updated_at = datetime.now(timezone.utc)
    session.add(user)

    profile = session.get(models.Profile, user.id)
    if profile is not None:
        profile.full_name = user.full_name
        profile.email = user.email
        profile.phone = user.phone
        profile.updated_at = user.updated_at
        session.add(profile)

    if user.plan and user.payment_date and user.expires_at:
        upsert_subscription(session, user, user.full_name, _product_label(user.plan), "Updated via admin")

    session.commit()
    session.refresh(user)
    return _user_to_dict(user)


@router.delete("/users/{user_id}")
def delete_user(
    user_id: int,
    current_user: Annotated[models.User, Depends(security.get_current_admin)],
    session: Session = Depends(get_session),
):
    """Delete an account and all of its data."""
    user = _get_user(session, user_id)
    if user.id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    delete_account(session, user)
    return {"status": "deleted", "id": user_id}
