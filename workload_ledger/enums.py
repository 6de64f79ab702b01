from __future__ import annotations

from enum import Enum


def _canonical(value: str) -> str:
    return "-".join(value.strip().lower().replace("_", " ").replace("-", " ").split())


class _ParsableEnum(str, Enum):
    """String enum that accepts any external spelling of its members.

    ``"ACTIVE"``, ``" Active "`` and ``"active"`` all parse to the same
    member; ``"ON_HOLD"``, ``"on hold"`` and ``"on-hold"`` too.
    """

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"{value!r} is not a valid {cls.__name__}")
        key = _canonical(value)
        for member in cls:
            if _canonical(member.value) == key:
                return member
        raise ValueError(f"{value!r} is not a valid {cls.__name__}")

    def __str__(self) -> str:
        return self.value


class ProjectStatus(_ParsableEnum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    ON_HOLD = "on-hold"
    CANCELLED = "cancelled"


class Priority(_ParsableEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class InitiativeStatus(_ParsableEnum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class UserRole(_ParsableEnum):
    ADMIN = "admin"
    PROGRAM_MANAGER = "program_manager"
    RD_MANAGER = "rd_manager"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class HealthTier(_ParsableEnum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class WorkloadLevel(_ParsableEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    OVERLOAD = "overload"


# Roles whose capacity is counted in team-wide summaries.
CAPACITY_ROLES = (UserRole.EMPLOYEE, UserRole.MANAGER, UserRole.RD_MANAGER)
