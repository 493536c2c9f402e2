"""
Payroll Readiness Engine - Employee Model

Employee profile as exposed by the employee-profile subsystem.
The engine only reads it (existence, status, salary, department, role).
"""

import uuid
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Numeric, String, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class EmployeeStatus(str, Enum):
    """Employment status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


class SystemRole(str, Enum):
    """Role used to route payroll notifications."""
    EMPLOYEE = "employee"
    PAYROLL_SPECIALIST = "payroll_specialist"
    PAYROLL_MANAGER = "payroll_manager"
    FINANCE_STAFF = "finance_staff"
    HR_MANAGER = "hr_manager"


class Employee(BaseModel):
    """Employee record owned by the employee-profile subsystem."""

    __tablename__ = "employees"

    employee_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True, index=True,
    )
    base_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    status: Mapped[EmployeeStatus] = mapped_column(
        SQLEnum(EmployeeStatus),
        default=EmployeeStatus.ACTIVE,
        nullable=False,
    )
    system_role: Mapped[SystemRole] = mapped_column(
        SQLEnum(SystemRole),
        default=SystemRole.EMPLOYEE,
        nullable=False,
        index=True,
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Employee(id={self.id}, number={self.employee_number}, status={self.status})>"
