from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for every rejection the ledger can hand back to a caller."""

    code = "ledger_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class AlreadyAssigned(LedgerError):
    code = "already_assigned"
    status_code = 409

    def __init__(self, project_id: str, employee_id: str) -> None:
        super().__init__(f"Employee {employee_id} is already assigned to project {project_id}")
        self.project_id = project_id
        self.employee_id = employee_id

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "project_id": self.project_id, "employee_id": self.employee_id}


class _ShortfallError(LedgerError):
    status_code = 422
    label = "capacity"

    def __init__(self, employee_id: str, requested: int, available: int) -> None:
        shortfall = requested - available
        super().__init__(
            f"Requested {requested}% exceeds available {self.label} of {available}% "
            f"for employee {employee_id} (short by {shortfall}%)"
        )
        self.employee_id = employee_id
        self.requested = requested
        self.available = available

    @property
    def shortfall(self) -> int:
        return self.requested - self.available

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "employee_id": self.employee_id,
            "requested": self.requested,
            "available": self.available,
        }


class CapacityExceeded(_ShortfallError):
    code = "capacity_exceeded"
    label = "capacity"


class OverBeyondCapExceeded(_ShortfallError):
    code = "over_beyond_cap_exceeded"
    label = "Over & Beyond capacity"


class NotFound(LedgerError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity.capitalize()} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "entity": self.entity, "entity_id": self.entity_id}


class Busy(LedgerError):
    code = "busy"
    status_code = 503
    retryable = True

    def __init__(self, employee_ids: list[str], timeout: float) -> None:
        super().__init__(
            f"Another change for employee(s) {', '.join(employee_ids)} is in progress; "
            f"gave up after {timeout:g}s, retry shortly"
        )
        self.employee_ids = list(employee_ids)
        self.timeout = timeout


class InvalidPercentage(LedgerError, ValueError):
    code = "invalid_percentage"
    status_code = 400

    def __init__(self, field_name: str, value: Any, low: int, high: int | None = None) -> None:
        if high is None:
            message = f"{field_name} must be at least {low}, got {value}"
        else:
            message = f"{field_name} must be between {low} and {high}, got {value}"
        super().__init__(message)
        self.field_name = field_name
        self.value = value
