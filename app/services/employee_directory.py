"""
Payroll Readiness Engine - Employee Directory

Read-only lookup into the employee-profile subsystem.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.employee import Employee, EmployeeStatus
from app.utils.error_handling import NotFoundException, ValidationException


@dataclass(frozen=True)
class EmployeeSnapshot:
    """What the engine needs to know about an employee."""
    employee_id: uuid.UUID
    exists: bool
    base_salary: Decimal = Decimal("0.00")
    department_id: Optional[uuid.UUID] = None
    status: Optional[EmployeeStatus] = None
    full_name: str = ""

    @property
    def is_active(self) -> bool:
        return self.exists and self.status == EmployeeStatus.ACTIVE


class EmployeeDirectory:
    """Employee lookup by id."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_employee(self, employee_id: uuid.UUID) -> EmployeeSnapshot:
        result = await self.db.execute(select(Employee).where(Employee.id == employee_id))
        employee = result.scalar_one_or_none()
        if employee is None:
            return EmployeeSnapshot(employee_id=employee_id, exists=False)
        return EmployeeSnapshot(
            employee_id=employee.id,
            exists=True,
            base_salary=employee.base_salary,
            department_id=employee.department_id,
            status=employee.status,
            full_name=employee.full_name,
        )

    async def require_employee(self, employee_id: uuid.UUID, check_active: bool = True) -> EmployeeSnapshot:
        """Raise NotFoundException for unknown ids and ValidationException for inactive employees."""
        snapshot = await self.get_employee(employee_id)
        if not snapshot.exists:
            raise NotFoundException("Employee", employee_id)
        if check_active and not snapshot.is_active:
            raise ValidationException(
                f"Employee {employee_id} is not active (status: {snapshot.status.value})",
                field="employee_id",
                details={"status": snapshot.status.value},
            )
        return snapshot
