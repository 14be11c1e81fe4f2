from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from autoservice.errors import InvalidQuantity, StaffUnassigned, UnknownStaff
from autoservice.models import Order, Staff
from autoservice.validators import ensure_order_timeline

logger = logging.getLogger(__name__)


def resolve_order_dealership(session: Session, analyst_id: int) -> int:
    """Dealership an analyst books orders for: the one they help, else their employer."""
    staff = session.get(Staff, analyst_id)
    if staff is None:
        raise UnknownStaff(analyst_id)
    if staff.helped_dealership_id is not None:
        return staff.helped_dealership_id
    dealership_id = staff.employer_dealership_id
    if dealership_id is None:
        raise StaffUnassigned(analyst_id)
    return dealership_id


def create_order(
    session: Session,
    vehicle_id: int,
    analyst_id: int,
    reservation_timestamp: datetime,
    vehicle_kilometrage: Decimal,
    checkin_timestamp: Optional[datetime] = None,
    estimated_checkout_timestamp: Optional[datetime] = None,
    checkout_timestamp: Optional[datetime] = None,
) -> Order:
    ensure_order_timeline(
        reservation_timestamp,
        checkin_timestamp,
        estimated_checkout_timestamp,
        checkout_timestamp,
    )
    if vehicle_kilometrage <= 0:
        raise InvalidQuantity("vehicle_kilometrage", vehicle_kilometrage)
    dealership_id = resolve_order_dealership(session, analyst_id)
    order = Order(
        vehicle_id=vehicle_id,
        analyst_id=analyst_id,
        dealership_id=dealership_id,
        reservation_timestamp=reservation_timestamp,
        checkin_timestamp=checkin_timestamp,
        estimated_checkout_timestamp=estimated_checkout_timestamp,
        checkout_timestamp=checkout_timestamp,
        vehicle_kilometrage=vehicle_kilometrage,
    )
    session.add(order)
    session.flush()
    logger.info("order %s booked by analyst %s for dealership %s", order.id, analyst_id, dealership_id)
    return order
