"""Manager / operative classification of staff members."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from autoservice.config import settings
from autoservice.errors import DealershipNotFound, RoleMismatch, UnknownStaff
from autoservice.models import Dealership, Manager, Operative, Role, Staff

logger = logging.getLogger(__name__)

MANAGER = "manager"
OPERATIVE = "operative"


def manager_role_id(session: Session) -> Optional[int]:
    return session.scalar(select(Role.id).where(Role.name == settings.manager_role_name))


def validate_role(session: Session, staff_id: int, as_manager: bool) -> Staff:
    """Check that a staff member's role matches the classification being registered.

    A manager must hold the manager role; an operative must hold any other role.
    Returns the staff row so callers do not have to load it again.
    """
    staff = session.get(Staff, staff_id)
    if staff is None:
        raise UnknownStaff(staff_id)
    is_manager_role = staff.role_id == manager_role_id(session)
    if as_manager != is_manager_role:
        expected = MANAGER if as_manager else OPERATIVE
        logger.warning(
            "staff %s has role %s, refusing registration as %s",
            staff_id,
            staff.role_id,
            expected,
        )
        raise RoleMismatch(staff_id, expected)
    return staff


def _ensure_dealership(session: Session, dealership_id: int) -> None:
    if session.get(Dealership, dealership_id) is None:
        raise DealershipNotFound(dealership_id)


def register_manager(session: Session, staff_id: int, dealership_id: int) -> Manager:
    validate_role(session, staff_id, as_manager=True)
    if session.get(Operative, staff_id) is not None:
        raise RoleMismatch(staff_id, MANAGER)
    _ensure_dealership(session, dealership_id)
    manager = Manager(staff_id=staff_id, dealership_id=dealership_id)
    session.add(manager)
    session.flush()
    logger.info("staff %s registered as manager of dealership %s", staff_id, dealership_id)
    return manager


def register_operative(session: Session, staff_id: int, dealership_id: int) -> Operative:
    validate_role(session, staff_id, as_manager=False)
    if session.get(Manager, staff_id) is not None:
        raise RoleMismatch(staff_id, OPERATIVE)
    _ensure_dealership(session, dealership_id)
    operative = Operative(staff_id=staff_id, dealership_id=dealership_id)
    session.add(operative)
    session.flush()
    logger.info("staff %s registered as operative at dealership %s", staff_id, dealership_id)
    return operative
