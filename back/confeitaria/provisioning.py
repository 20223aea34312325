"""
Account provisioning.

A bakery account is a User plus its Profile, default BakerySettings and a
Subscription ledger row. Accounts come from three places: the Cakto payment
webhook, the super-admin panel and the trial signup. All of them go through
`create_account`, which writes the four rows in one transaction.
"""

import logging
import shutil
from datetime import datetime, timezone

from fastapi.concurrency import run_in_threadpool
from sqlmodel import Session, SQLModel, select

from . import images, inventory_models, models
from .email_service import send_welcome_email
from .security import generate_password, get_password_hash
from .settings import settings
from .subscription import compute_expiry, determine_plan

logger = logging.getLogger(__name__)

PAYMENT_CONFIRMED_EVENT = "payment.confirmed"


class ProvisioningError(Exception):
    """Raised when an account cannot be created or updated."""


# ============ CAKTO PAYLOAD ============

class CaktoCustomer(SQLModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class CaktoPayment(SQLModel):
    id: str | int | None = None


class CaktoOffer(SQLModel):
    name: str | None = None


class CaktoProduct(SQLModel):
    name: str | None = None


class CaktoData(SQLModel):
    customer: CaktoCustomer | None = None
    payment: CaktoPayment | None = None
    offer: CaktoOffer | None = None
    product: CaktoProduct | None = None


class CaktoWebhookPayload(SQLModel):
    event: str | None = None
    data: CaktoData | None = None


# ============ ACCOUNTS ============

def default_bakery_name(full_name: str) -> str:
    parts = full_name.split()
    return f"Confeitaria de {parts[0]}" if parts else "Minha Confeitaria"


def find_user_by_email(session: Session, email: str) -> models.User | None:
    return session.exec(
        select(models.User).where(models.User.email == email.strip().lower())
    ).first()


def upsert_subscription(
    session: Session,
    user: models.User,
    name: str | None,
    product_name: str | None = None,
    offer_name: str | None = None,
) -> models.Subscription:
    """Mirror the user's subscription metadata into the ledger (one row per user)."""
    subscription = session.exec(
        select(models.Subscription).where(models.Subscription.user_id == user.id)
    ).first()
    if subscription is None:
        subscription = models.Subscription(
            user_id=user.id,
            email=user.email,
            plan=user.plan,
            payment_date=user.payment_date,
            expires_at=user.expires_at,
        )
    subscription.email = user.email
    subscription.name = name
    subscription.plan = user.plan
    subscription.payment_date = user.payment_date
    subscription.expires_at = user.expires_at
    subscription.product = product_name
    subscription.offer = offer_name
    subscription.updated_at = datetime.now(timezone.utc)
    session.add(subscription)
    return subscription


def create_account(
    session: Session,
    email: str,
    full_name: str,
    plan: models.SubscriptionPlan,
    payment_date: datetime,
    expires_at: datetime,
    created_via: str,
    password: str | None = None,
    phone: str | None = None,
    payment_id: str | None = None,
    product_name: str | None = None,
    offer_name: str | None = None,
) -> tuple[models.User, str]:
    """Create user, profile, bakery settings and subscription. Returns the user and its password."""
    email = email.strip().lower()
    if find_user_by_email(session, email):
        raise ProvisioningError("Email already registered")

    password = password or generate_password()
    user = models.User(
        email=email,
        hashed_password=get_password_hash(password),
        full_name=full_name,
        phone=phone,
        created_via=created_via,
        plan=plan,
        payment_date=payment_date,
        expires_at=expires_at,
        payment_id=payment_id,
    )
    session.add(user)
    session.flush()  # assigns user.id

    session.add(models.Profile(id=user.id, full_name=full_name, email=email, phone=phone))
    session.add(models.BakerySettings(
        id=user.id,
        bakery_name=default_bakery_name(full_name),
        email=email,
        phone=phone,
    ))
    upsert_subscription(session, user, full_name, product_name, offer_name)

    session.commit()
    session.refresh(user)
    logger.info(f"Account #{user.id} created for {email} via {created_via} (plan {plan.value})")
    return user, password


def delete_account(session: Session, user: models.User) -> None:
    """Remove the user and every row it owns, then its uploaded files."""
    user_id = user.id

    orders = session.exec(select(models.Order).where(models.Order.user_id == user_id)).all()
    for order in orders:
        session.delete(order)  # cascades to its lines
    session.flush()

    owned_tables = (
        models.Product,
        models.Subcategory,
        models.Category,
        models.Client,
        models.CatalogView,
        inventory_models.StockMovement,
        inventory_models.StockItem,
        inventory_models.StockCategory,
        models.Subscription,
    )
    for table in owned_tables:
        for row in session.exec(select(table).where(table.user_id == user_id)).all():
            session.delete(row)
        session.flush()

    for table in (models.BakerySettings, models.Profile):
        row = session.get(table, user_id)
        if row is not None:
            session.delete(row)
    session.flush()

    session.delete(user)
    session.commit()

    shutil.rmtree(images.uploads_root() / str(user_id), ignore_errors=True)
    logger.info(f"Account #{user_id} deleted")


# ============ WEBHOOK ============

def apply_payment(
    session: Session,
    customer: CaktoCustomer,
    plan: models.SubscriptionPlan,
    payment_date: datetime,
    payment_id: str | None,
    product_name: str | None,
    offer_name: str | None,
) -> tuple[models.User, str | None]:
    """
    Renew the account registered under the customer's email, or create it.
    The password is None when an existing account was renewed.
    """
    expires_at = compute_expiry(payment_date, plan)

    existing_user = find_user_by_email(session, customer.email)
    if existing_user:
        logger.info(f"User already exists, renewing subscription: {customer.email}")
        existing_user.plan = plan
        existing_user.payment_date = payment_date
        existing_user.expires_at = expires_at
        existing_user.payment_id = payment_id
        existing_user.updated_at = payment_date
        session.add(existing_user)
        upsert_subscription(session, existing_user, customer.name, product_name, offer_name)
        session.commit()
        session.refresh(existing_user)
        return existing_user, None

    return create_account(
        session,
        email=customer.email,
        full_name=customer.name,
        phone=customer.phone,
        plan=plan,
        payment_date=payment_date,
        expires_at=expires_at,
        created_via="cakto_webhook",
        payment_id=payment_id,
        product_name=product_name,
        offer_name=offer_name,
    )


async def process_payment_confirmed(session: Session, payload: CaktoWebhookPayload) -> dict:
    """
    Provision or renew the account of a paying customer.
    The caller has already checked the event name and the customer fields.
    """
    data = payload.data or CaktoData()
    customer = data.customer
    payment_id = str(data.payment.id) if data.payment and data.payment.id is not None else None
    offer_name = data.offer.name if data.offer else None
    product_name = data.product.name if data.product else None

    payment_date = datetime.now(timezone.utc)
    plan = determine_plan(offer_name)
    expires_at = compute_expiry(payment_date, plan)
    logger.info(f"Plan {plan.value} for {customer.email}, valid until {expires_at.isoformat()}")

    # bcrypt and the database calls block
    user, password = await run_in_threadpool(
        apply_payment, session, customer, plan, payment_date, payment_id, product_name, offer_name
    )

    if password is None:
        return {
            "message": "Subscription updated for existing user",
            "user_id": user.id,
            "plan": plan.value,
            "expires_at": expires_at.isoformat(),
        }

    # The account exists at this point; a failed email is only logged
    email_sent = False
    if settings.email_configured:
        email_sent = await send_welcome_email(
            to_email=user.email,
            full_name=customer.name,
            password=password,
            plan=plan.value,
            payment_date=payment_date,
            expires_at=expires_at,
            offer_name=offer_name,
        )
    else:
        logger.warning("Email delivery not configured, welcome email skipped")

    return {
        "success": True,
        "message": "User created successfully",
        "user": {"id": user.id, "email": user.email, "name": customer.name},
        "subscription": {
            "plan": plan.value,
            "payment_date": payment_date.isoformat(),
            "expires_at": expires_at.isoformat(),
        },
        "credentials": {
            "email": user.email,
            "password": password,
            "login_url": settings.login_url,
        },
        "email_sent": email_sent,
    }
