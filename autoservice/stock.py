from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from autoservice.errors import (
    ActivityLineNotFound,
    InsufficientStock,
    InvalidQuantity,
    OrderNotFound,
    ProductApplicationNotFound,
)
from autoservice.models import Order, OrderDetail, ProductApplication, Stock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApplicationKey:
    order_id: int
    activity_number: int
    service_id: int
    product_id: int
    employee_id: int

    @property
    def identity(self) -> tuple:
        return (
            self.order_id,
            self.service_id,
            self.activity_number,
            self.product_id,
            self.employee_id,
        )


def available_stock(session: Session, product_id: int, dealership_id: int) -> int:
    count = session.scalar(
        select(Stock.product_count).where(
            Stock.product_id == product_id,
            Stock.dealership_id == dealership_id,
        )
    )
    return count or 0


def take_stock(session: Session, product_id: int, dealership_id: int, count: int) -> Stock:
    """Atomically decrement a stock row by ``count`` or raise ``InsufficientStock``."""
    result = session.execute(
        update(Stock)
        .where(
            Stock.product_id == product_id,
            Stock.dealership_id == dealership_id,
            Stock.product_count >= count,
        )
        .values(product_count=Stock.product_count - count)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        available = available_stock(session, product_id, dealership_id)
        logger.warning(
            "insufficient stock of product %s at dealership %s: requested %s, available %s",
            product_id,
            dealership_id,
            count,
            available,
        )
        raise InsufficientStock(count, available, dealership_id)
    return session.get(Stock, (product_id, dealership_id), populate_existing=True)


def return_stock(session: Session, product_id: int, dealership_id: int, count: int) -> None:
    session.execute(
        update(Stock)
        .where(Stock.product_id == product_id, Stock.dealership_id == dealership_id)
        .values(product_count=Stock.product_count + count)
        .execution_options(synchronize_session=False)
    )


def _order_dealership(session: Session, order_id: int) -> int:
    order = session.get(Order, order_id)
    if order is None:
        raise OrderNotFound(order_id)
    return order.dealership_id


def _ensure_count(count: int) -> None:
    if count <= 0:
        raise InvalidQuantity("application_count", count)


def apply_product(
    session: Session,
    order_id: int,
    activity_number: int,
    service_id: int,
    product_id: int,
    employee_id: int,
    count: int,
) -> ProductApplication:
    """Record parts used on an order activity and take them out of stock.

    Not idempotent: applying the same parts twice takes them twice.
    """
    _ensure_count(count)
    dealership_id = _order_dealership(session, order_id)
    if session.get(OrderDetail, (order_id, service_id, activity_number)) is None:
        raise ActivityLineNotFound((order_id, service_id, activity_number))

    stock = take_stock(session, product_id, dealership_id, count)
    application = ProductApplication(
        order_id=order_id,
        service_id=service_id,
        activity_number=activity_number,
        product_id=product_id,
        employee_id=employee_id,
        application_count=count,
        product_cost=stock.product_cost * count,
    )
    session.add(application)
    session.flush()
    logger.info(
        "applied %s of product %s to order %s, %s left at dealership %s",
        count,
        product_id,
        order_id,
        stock.product_count,
        dealership_id,
    )
    return application


def _swap_application_count(
    session: Session, key: ApplicationKey, new_count: int
) -> tuple[ProductApplication, int]:
    # compare-and-set on the count; a concurrent writer makes rowcount 0 and we re-read
    while True:
        application = session.get(
            ProductApplication,
            key.identity,
            with_for_update=True,
            populate_existing=True,
        )
        if application is None:
            raise ProductApplicationNotFound(key.identity)
        old_count = application.application_count
        result = session.execute(
            update(ProductApplication)
            .where(
                ProductApplication.order_id == key.order_id,
                ProductApplication.service_id == key.service_id,
                ProductApplication.activity_number == key.activity_number,
                ProductApplication.product_id == key.product_id,
                ProductApplication.employee_id == key.employee_id,
                ProductApplication.application_count == old_count,
            )
            .values(application_count=new_count)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return application, old_count
        logger.info("product application %s changed underneath, re-reading", key.identity)


def update_product_application(
    session: Session, key: ApplicationKey, new_count: int
) -> ProductApplication:
    """Change the quantity of a recorded application, moving only the difference."""
    _ensure_count(new_count)
    application, old_count = _swap_application_count(session, key, new_count)
    dealership_id = _order_dealership(session, key.order_id)

    delta = new_count - old_count
    if delta > 0:
        stock = take_stock(session, key.product_id, dealership_id, delta)
    else:
        if delta < 0:
            return_stock(session, key.product_id, dealership_id, -delta)
        stock = session.get(Stock, (key.product_id, dealership_id), populate_existing=True)

    application.application_count = new_count
    if stock is not None:
        application.product_cost = stock.product_cost * new_count
    session.flush()
    logger.info("product application %s now uses %s units", key.identity, new_count)
    return application
