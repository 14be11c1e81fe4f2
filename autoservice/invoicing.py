from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from autoservice.config import settings
from autoservice.errors import InvoiceAlreadyIssued, OrderNotFound
from autoservice.models import Discount, Invoice, Order, OrderDetail, Vehicle

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
NO_DISCOUNT = Decimal("0")


def window_start(now: datetime, years: int) -> datetime:
    try:
        return now.replace(year=now.year - years)
    except ValueError:
        # Feb 29 without a leap year on the other end.
        return now.replace(year=now.year - years, day=28)


def annual_service_usage(
    session: Session, client_id: int, dealership_id: int, now: datetime
) -> int:
    since = window_start(now, settings.usage_window_years)
    paid_services = (
        select(OrderDetail.order_id, OrderDetail.service_id)
        .join(Order, Order.id == OrderDetail.order_id)
        .join(Invoice, Invoice.order_id == Order.id)
        .join(Vehicle, Vehicle.id == Order.vehicle_id)
        .where(
            Vehicle.owner_id == client_id,
            Order.dealership_id == dealership_id,
            Order.checkin_timestamp >= since,
        )
        .distinct()
        .subquery()
    )
    return session.scalar(select(func.count()).select_from(paid_services)) or 0


def select_discount(session: Session, dealership_id: int, usage: int) -> Decimal:
    percentage = session.scalar(
        select(Discount.discount_percentage)
        .where(
            Discount.dealership_id == dealership_id,
            Discount.required_annual_service_usage_count <= usage,
        )
        .order_by(Discount.discount_percentage.desc(), Discount.id.asc())
        .limit(1)
    )
    return Decimal(percentage) if percentage is not None else NO_DISCOUNT


def labor_total(session: Session, order_id: int) -> Decimal:
    lines = session.execute(
        select(OrderDetail.price_per_hour, OrderDetail.worked_hours).where(
            OrderDetail.order_id == order_id
        )
    ).all()
    return sum(
        (Decimal(price) * Decimal(hours) for price, hours in lines),
        Decimal("0"),
    )


def generate_invoice(
    session: Session,
    order_id: int,
    issue_date: Optional[date] = None,
    now: Optional[datetime] = None,
) -> Invoice:
    """Issue the invoice for an order; discount and amount due are always computed here."""
    order = session.get(Order, order_id)
    if order is None:
        raise OrderNotFound(order_id)
    if session.scalar(select(Invoice.id).where(Invoice.order_id == order_id)) is not None:
        raise InvoiceAlreadyIssued(order_id)

    now = now or datetime.now()
    client_id = session.scalar(select(Vehicle.owner_id).where(Vehicle.id == order.vehicle_id))
    usage = annual_service_usage(session, client_id, order.dealership_id, now)
    discount = select_discount(session, order.dealership_id, usage)
    amount_due = (labor_total(session, order_id) * (1 - discount)).quantize(
        CENTS, rounding=ROUND_HALF_UP
    )

    invoice = Invoice(
        order_id=order_id,
        discount=discount,
        amount_due=amount_due,
        issue_date=issue_date or now.date(),
    )
    session.add(invoice)
    session.flush()
    logger.info(
        "invoice %s for order %s: usage %s, discount %s, amount due %s",
        invoice.id,
        order_id,
        usage,
        discount,
        amount_due,
    )
    return invoice
