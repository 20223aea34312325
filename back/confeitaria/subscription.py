import math
import re
from datetime import datetime, timedelta, timezone

from . import models
from .settings import settings

PLAN_DURATIONS = {
    models.SubscriptionPlan.trial: timedelta(days=settings.trial_days),
    models.SubscriptionPlan.monthly: timedelta(days=30),
    models.SubscriptionPlan.annual: timedelta(days=365),
}

_ANNUAL_PATTERN = re.compile(r"\b(anual|anuais|anos?|annual|yearly|years?)\b")


def as_utc(value: datetime) -> datetime:
    # sqlite hands datetimes back without tzinfo
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def determine_plan(offer_name: str | None) -> models.SubscriptionPlan:
    """Annual when the offer name mentions a year, monthly otherwise."""
    if not offer_name:
        return models.SubscriptionPlan.monthly
    if _ANNUAL_PATTERN.search(offer_name.lower()):
        return models.SubscriptionPlan.annual
    return models.SubscriptionPlan.monthly


def compute_expiry(payment_date: datetime, plan: models.SubscriptionPlan) -> datetime:
    return payment_date + PLAN_DURATIONS[plan]


def subscription_status(user: models.User, now: datetime | None = None) -> dict:
    now = now or datetime.now(timezone.utc)

    if user.role == models.UserRole.super_admin:
        return {
            "is_active": True,
            "is_expired": False,
            "is_expiring_soon": False,
            "days_until_expiration": 999,
            "plan": "super_admin",
            "payment_date": None,
            "expires_at": None,
        }

    if user.expires_at is None:
        return {
            "is_active": False,
            "is_expired": True,
            "is_expiring_soon": False,
            "days_until_expiration": 0,
            "plan": None,
            "payment_date": None,
            "expires_at": None,
        }

    expires_at = as_utc(user.expires_at)
    days = math.ceil((expires_at - now).total_seconds() / 86400)
    grace = settings.subscription_grace_days
    return {
        "is_active": days >= -grace,
        "is_expired": days < -grace,
        "is_expiring_soon": 0 <= days <= grace,
        "days_until_expiration": days,
        "plan": user.plan.value if user.plan else None,
        "payment_date": as_utc(user.payment_date).isoformat() if user.payment_date else None,
        "expires_at": expires_at.isoformat(),
    }
