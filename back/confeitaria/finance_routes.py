"""
Finance and dashboard reports.

Revenue only counts orders in a sold status (confirmed, in production, ready,
delivered). Quotes are reported as pending revenue; cancelled orders are
ignored. Periods filter on the order creation date, in UTC.
"""

from datetime import datetime, time, timedelta, timezone
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlmodel import Session, select

from . import models
from .db import get_session
from .security import get_current_subscriber
from .subscription import as_utc

router = APIRouter()

MONTH_NAMES = ["Jan", "Fev", "Mar", "Abr", "Mai", "Jun", "Jul", "Ago", "Set", "Out", "Nov", "Dez"]

UPCOMING_STATUSES = [
    models.OrderStatus.confirmed,
    models.OrderStatus.in_production,
    models.OrderStatus.ready,
]


def period_bounds(year: int | None, month: int | None) -> tuple[datetime | None, datetime | None]:
    """[start, end) of the selected year or month; (None, None) means all time."""
    if year is None:
        if month is not None:
            raise HTTPException(status_code=400, detail="Month filter requires a year")
        return None, None
    if month is None:
        start = datetime(year, 1, 1, tzinfo=timezone.utc)
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        start = datetime(year, month, 1, tzinfo=timezone.utc)
        if month == 12:
            end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
        else:
            end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


def _orders_in_period(user_id: int, year: int | None, month: int | None):
    statement = select(models.Order).where(models.Order.user_id == user_id)
    start, end = period_bounds(year, month)
    if start is not None:
        statement = statement.where(models.Order.created_at >= start).where(models.Order.created_at < end)
    return statement


YearQuery = Annotated[int | None, Query(ge=2000, le=2100)]
MonthQuery = Annotated[int | None, Query(ge=1, le=12)]


@router.get("/finance/overview")
def finance_overview(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
    year: YearQuery = None,
    month: MonthQuery = None,
):
    """Revenue, average ticket and pending (quoted) revenue for the period."""
    orders = session.exec(_orders_in_period(current_user.id, year, month)).all()

    paid = [o for o in orders if o.status in models.REVENUE_STATUSES]
    pending = [o for o in orders if o.status == models.OrderStatus.quote]
    total_revenue = sum(o.total_cents for o in paid)

    return {
        "total_revenue_cents": total_revenue,
        "average_order_value_cents": round(total_revenue / len(paid)) if paid else 0,
        "total_orders": len(orders),
        "paid_orders": len(paid),
        "pending_orders": len(pending),
        "pending_revenue_cents": sum(o.total_cents for o in pending),
    }


@router.get("/finance/orders")
def finance_orders(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
    status: Literal["paid", "pending"] = "paid",
    year: YearQuery = None,
    month: MonthQuery = None,
    limit: int = Query(default=50, le=200),
):
    """Latest paid (sold) or pending (quoted) orders of the period."""
    statement = _orders_in_period(current_user.id, year, month)
    if status == "paid":
        statement = statement.where(models.Order.status.in_(list(models.REVENUE_STATUSES)))
    else:
        statement = statement.where(models.Order.status == models.OrderStatus.quote)

    orders = session.exec(
        statement.order_by(models.Order.created_at.desc(), models.Order.id.desc()).limit(limit)
    ).all()
    return [
        {
            "id": o.id,
            "client_name": o.client_name,
            "total_cents": o.total_cents,
            "status": o.status,
            "payment_method": o.payment_method,
            "created_at": o.created_at,
            "delivery_date": o.delivery_date,
        }
        for o in orders
    ]


@router.get("/finance/monthly")
def finance_monthly(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
    year: YearQuery = None,
):
    """Revenue and sold-order count for each month of the year (all 12 months listed)."""
    year = year or datetime.now(timezone.utc).year
    orders = session.exec(
        _orders_in_period(current_user.id, year, None)
        .where(models.Order.status.in_(list(models.REVENUE_STATUSES)))
    ).all()

    months = {
        m: {"month": f"{year}-{m:02d}", "month_name": MONTH_NAMES[m - 1], "revenue_cents": 0, "orders": 0}
        for m in range(1, 13)
    }
    for order in orders:
        entry = months[as_utc(order.created_at).month]
        entry["revenue_cents"] += order.total_cents
        entry["orders"] += 1
    return list(months.values())


@router.get("/finance/product-sales")
def finance_product_sales(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
    year: YearQuery = None,
    month: MonthQuery = None,
):
    """Top 10 products by quantity sold, grouped by the name on the order line."""
    statement = (
        select(
            models.OrderItem.product_name,
            func.sum(models.OrderItem.quantity),
            func.sum(models.OrderItem.total_cents),
        )
        .join(models.Order, models.Order.id == models.OrderItem.order_id)
        .where(models.Order.user_id == current_user.id)
        .where(models.Order.status.in_(list(models.REVENUE_STATUSES)))
    )
    start, end = period_bounds(year, month)
    if start is not None:
        statement = statement.where(models.Order.created_at >= start).where(models.Order.created_at < end)

    rows = session.exec(statement.group_by(models.OrderItem.product_name)).all()
    result = [
        {"product_name": name, "quantity": int(quantity or 0), "revenue_cents": int(revenue or 0)}
        for name, quantity, revenue in rows
    ]
    result.sort(key=lambda r: (-r["quantity"], r["product_name"]))
    return result[:10]


@router.get("/finance/top-clients")
def finance_top_clients(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
    year: YearQuery = None,
    month: MonthQuery = None,
):
    """Top 10 clients by amount spent, grouped by the client name on the order."""
    orders = session.exec(
        _orders_in_period(current_user.id, year, month)
        .where(models.Order.status.in_(list(models.REVENUE_STATUSES)))
    ).all()

    clients: dict[str, dict] = {}
    for order in orders:
        entry = clients.setdefault(
            order.client_name,
            {"client_name": order.client_name, "total_orders": 0, "total_spent_cents": 0, "last_order": order.created_at},
        )
        entry["total_orders"] += 1
        entry["total_spent_cents"] += order.total_cents
        if as_utc(order.created_at) > as_utc(entry["last_order"]):
            entry["last_order"] = order.created_at

    result = sorted(clients.values(), key=lambda c: (-c["total_spent_cents"], c["client_name"]))
    return result[:10]


@router.get("/dashboard")
def dashboard(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Headline counters, the 5 latest orders and deliveries due in the next 7 days."""
    user_id = current_user.id
    now = datetime.now(timezone.utc)
    today = now.date()
    start_of_today = datetime.combine(today, time.min, tzinfo=timezone.utc)
    start_of_month = start_of_today.replace(day=1)

    def count(model) -> int:
        return session.exec(select(func.count()).select_from(model).where(model.user_id == user_id)).one()

    def revenue_since(start: datetime | None) -> int:
        statement = (
            select(func.coalesce(func.sum(models.Order.total_cents), 0))
            .where(models.Order.user_id == user_id)
            .where(models.Order.status.in_(list(models.REVENUE_STATUSES)))
        )
        if start is not None:
            statement = statement.where(models.Order.created_at >= start)
        return int(session.exec(statement).one())

    today_orders = session.exec(
        select(func.count())
        .select_from(models.Order)
        .where(models.Order.user_id == user_id)
        .where(models.Order.created_at >= start_of_today)
    ).one()

    recent_orders = session.exec(
        select(models.Order)
        .where(models.Order.user_id == user_id)
        .order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .limit(5)
    ).all()

    upcoming = session.exec(
        select(models.Order)
        .where(models.Order.user_id == user_id)
        .where(models.Order.delivery_date >= today)
        .where(models.Order.delivery_date <= today + timedelta(days=7))
        .where(models.Order.status.in_(UPCOMING_STATUSES))
        .order_by(models.Order.delivery_date, models.Order.id)
        .limit(5)
    ).all()

    def summary(order: models.Order) -> dict:
        return {
            "id": order.id,
            "client_name": order.client_name,
            "total_cents": order.total_cents,
            "status": order.status,
            "created_at": order.created_at,
            "delivery_date": order.delivery_date,
        }

    return {
        "total_clients": count(models.Client),
        "total_products": count(models.Product),
        "total_orders": count(models.Order),
        "total_revenue_cents": revenue_since(None),
        "month_revenue_cents": revenue_since(start_of_month),
        "today_orders": today_orders,
        "recent_orders": [summary(o) for o in recent_orders],
        "upcoming_deliveries": [summary(o) for o in upcoming],
    }
