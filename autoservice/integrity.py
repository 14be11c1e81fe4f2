"""Dealership deletion cascade and manager update guard."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from autoservice.errors import (
    DealershipNotFound,
    DeletionRestricted,
    ManagerRequired,
    UnknownStaff,
)
from autoservice.models import Dealership, Discount, Manager, Operative, Order, Staff, Stock

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"rif", "name", "manager_id"}


@dataclass(frozen=True)
class DealershipState:
    id: int
    rif: str
    name: str
    manager_id: Optional[int]

    @classmethod
    def of(cls, dealership: Dealership) -> "DealershipState":
        return cls(
            id=dealership.id,
            rif=dealership.rif,
            name=dealership.name,
            manager_id=dealership.manager_id,
        )


def _get_dealership(session: Session, dealership_id: int) -> Dealership:
    dealership = session.get(Dealership, dealership_id)
    if dealership is None:
        raise DealershipNotFound(dealership_id)
    return dealership


def _count(session: Session, model, *criteria) -> int:
    return session.scalar(select(func.count()).select_from(model).where(*criteria)) or 0


def restricting_dependents(session: Session, dealership_id: int) -> dict[str, int]:
    counts = {
        "staff": _count(
            session,
            Staff,
            or_(
                Staff.employer_dealership_id == dealership_id,
                Staff.helped_dealership_id == dealership_id,
            ),
        ),
        "operatives": _count(session, Operative, Operative.dealership_id == dealership_id),
        "stock": _count(session, Stock, Stock.dealership_id == dealership_id),
        "orders": _count(session, Order, Order.dealership_id == dealership_id),
        "discounts": _count(session, Discount, Discount.dealership_id == dealership_id),
    }
    return {name: count for name, count in counts.items() if count}


def on_dealership_deleted(session: Session, dealership_id: int) -> None:
    """Demote the dealership's manager before the dealership row goes away.

    The manager loses their employer reference and their manager registration.
    Anything else still pointing at the dealership blocks the deletion. Nothing is
    committed here, so a rejected deletion takes the demotion down with it.
    """
    dealership = _get_dealership(session, dealership_id)
    if dealership.manager_id is not None:
        manager = session.get(Staff, dealership.manager_id)
        if manager is not None:
            manager.employer_dealership_id = None
            logger.info(
                "cleared employer dealership of manager %s (dealership %s deleted)",
                manager.id,
                dealership_id,
            )
    session.execute(delete(Manager).where(Manager.dealership_id == dealership_id))
    session.flush()

    dependents = restricting_dependents(session, dealership_id)
    if dependents:
        logger.warning("deletion of dealership %s restricted by %s", dealership_id, dependents)
        raise DeletionRestricted(dealership_id, dependents)


def delete_dealership(session: Session, dealership_id: int) -> None:
    on_dealership_deleted(session, dealership_id)
    session.delete(_get_dealership(session, dealership_id))
    session.flush()


def on_dealership_update(old: DealershipState, new: DealershipState) -> None:
    # Deletion may leave a manager without a dealership; an update may never leave
    # a dealership without a manager.
    if new.manager_id is None:
        logger.warning("refusing null manager for dealership %s", old.id)
        raise ManagerRequired(old.id)


def update_dealership(session: Session, dealership_id: int, changes: dict[str, Any]) -> Dealership:
    dealership = _get_dealership(session, dealership_id)
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise TypeError(f"cannot update dealership fields: {sorted(unknown)}")
    old = DealershipState.of(dealership)
    new = replace(old, **changes)
    on_dealership_update(old, new)
    if new.manager_id != old.manager_id and session.get(Staff, new.manager_id) is None:
        raise UnknownStaff(new.manager_id)

    dealership.rif = new.rif
    dealership.name = new.name
    dealership.manager_id = new.manager_id
    session.flush()
    return dealership
