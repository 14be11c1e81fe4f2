from __future__ import annotations

from typing import Any, Optional


class RuleViolation(Exception):
    status_code = 400

    @property
    def kind(self) -> str:
        return type(self).__name__


class RoleMismatch(RuleViolation):
    def __init__(self, staff_id: int, expected_role: str) -> None:
        self.staff_id = staff_id
        self.expected_role = expected_role
        super().__init__(f"staff {staff_id} cannot be registered as {expected_role}")


class ManagerRequired(RuleViolation):
    def __init__(self, dealership_id: int) -> None:
        self.dealership_id = dealership_id
        super().__init__(f"manager of dealership {dealership_id} cannot be updated to null")


class MissingReference(RuleViolation):
    status_code = 404
    entity = "record"

    def __init__(self, key: Any) -> None:
        self.key = key
        super().__init__(f"{self.entity} {key} not found")


class UnknownStaff(MissingReference):
    entity = "staff"


class OrderNotFound(MissingReference):
    entity = "order"


class DealershipNotFound(MissingReference):
    entity = "dealership"


class ActivityLineNotFound(MissingReference):
    entity = "order activity line"


class ProductApplicationNotFound(MissingReference):
    entity = "product application"


class StaffUnassigned(RuleViolation):
    def __init__(self, staff_id: int) -> None:
        self.staff_id = staff_id
        super().__init__(f"staff {staff_id} is not assigned to any dealership")


class InsufficientStock(RuleViolation):
    def __init__(self, requested: int, available: int, dealership_id: int) -> None:
        self.requested = requested
        self.available = available
        self.dealership_id = dealership_id
        super().__init__(
            f"not enough products to apply: requested {requested}, "
            f"{available} in stock at dealership {dealership_id}"
        )


class InvoiceAlreadyIssued(RuleViolation):
    status_code = 409

    def __init__(self, order_id: int) -> None:
        self.order_id = order_id
        super().__init__(f"order {order_id} already has an invoice")


class DeletionRestricted(RuleViolation):
    status_code = 409

    def __init__(self, dealership_id: int, dependents: dict[str, int]) -> None:
        self.dealership_id = dealership_id
        self.dependents = dependents
        listed = ", ".join(f"{name}={count}" for name, count in sorted(dependents.items()))
        super().__init__(f"dealership {dealership_id} is still referenced by {listed}")


class InvalidFormat(RuleViolation):
    def __init__(self, field: str, value: Optional[str]) -> None:
        self.field = field
        self.value = value
        super().__init__(f"invalid {field}: {value!r}")


class InvalidTimeline(RuleViolation):
    def __init__(self, earlier: str, later: str) -> None:
        self.earlier = earlier
        self.later = later
        super().__init__(f"{earlier} must not be after {later}")


class InvalidQuantity(RuleViolation):
    def __init__(self, field: str, value: Any) -> None:
        self.field = field
        self.value = value
        super().__init__(f"{field} must be greater than zero, got {value}")
