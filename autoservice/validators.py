"""Format and range checks for identifiers and order timestamps."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from autoservice.errors import InvalidFormat, InvalidTimeline

NATIONAL_ID_RE = re.compile(r"[VE]-[0-9]+")
RIF_RE = re.compile(r"[VEJ]-[0-9]+")
EMAIL_RE = re.compile(
    r"[a-zA-Z0-9.!#$%&’*+/=?^_`{|}~-]+@[a-zA-Z0-9-]+(?:\.[a-zA-Z0-9-]+)*"
)
PHONE_RE = re.compile(
    r"\+?\d{1,4}?[-.\s]?\(?\d{1,3}?\)?[-.\s]?\d{1,4}[-.\s]?\d{1,4}[-.\s]?\d{1,9}"
)


def _matches(pattern: re.Pattern, value: Optional[str]) -> bool:
    return isinstance(value, str) and pattern.fullmatch(value) is not None


def is_valid_national_id(value: Optional[str]) -> bool:
    return _matches(NATIONAL_ID_RE, value)


def is_valid_rif(value: Optional[str]) -> bool:
    return _matches(RIF_RE, value)


def is_valid_email(value: Optional[str]) -> bool:
    return _matches(EMAIL_RE, value)


def is_valid_phone_no(value: Optional[str]) -> bool:
    return _matches(PHONE_RE, value)


def ensure_national_id(value: Optional[str]) -> str:
    if not is_valid_national_id(value):
        raise InvalidFormat("national_id", value)
    return value


def ensure_rif(value: Optional[str]) -> str:
    if not is_valid_rif(value):
        raise InvalidFormat("rif", value)
    return value


def ensure_email(value: Optional[str]) -> str:
    if not is_valid_email(value):
        raise InvalidFormat("email", value)
    return value


def ensure_phone_no(value: Optional[str]) -> str:
    if not is_valid_phone_no(value):
        raise InvalidFormat("phone_no", value)
    return value


def ensure_order_timeline(
    reservation: Optional[datetime],
    checkin: Optional[datetime] = None,
    estimated_checkout: Optional[datetime] = None,
    checkout: Optional[datetime] = None,
) -> None:
    """Reject an order whose known timestamps run backwards.

    Missing timestamps are skipped, so a reservation is still compared with the
    checkout when no checkin has been recorded yet.
    """
    known = [
        (name, value)
        for name, value in (
            ("reservation_timestamp", reservation),
            ("checkin_timestamp", checkin),
            ("estimated_checkout_timestamp", estimated_checkout),
            ("checkout_timestamp", checkout),
        )
        if value is not None
    ]
    for (earlier_name, earlier), (later_name, later) in zip(known, known[1:]):
        if earlier > later:
            raise InvalidTimeline(earlier_name, later_name)
