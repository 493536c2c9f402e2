"""
Payroll Readiness Engine - Test Data Helpers

Builders for employees, attendance records and time exceptions.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.employee import Employee, EmployeeStatus, SystemRole
from app.models.time_management import (
    AttendanceRecord,
    TimeException,
    TimeExceptionStatus,
    TimeExceptionType,
)

DEPARTMENT_ID = uuid4()


async def make_employee(
    db: AsyncSession,
    number: str,
    first_name: str = "Test",
    last_name: str = "Employee",
    role: SystemRole = SystemRole.EMPLOYEE,
    status: EmployeeStatus = EmployeeStatus.ACTIVE,
    department_id=DEPARTMENT_ID,
) -> Employee:
    employee = Employee(
        id=uuid4(),
        employee_number=number,
        first_name=first_name,
        last_name=last_name,
        department_id=department_id,
        base_salary=Decimal("250000.00"),
        status=status,
        system_role=role,
    )
    db.add(employee)
    await db.commit()
    await db.refresh(employee)
    return employee


async def add_attendance(
    db: AsyncSession,
    employee_id,
    record_date: date,
    minutes: int = 480,
    punches=None,
    missed_punch: bool = False,
    finalised: bool = False,
) -> AttendanceRecord:
    if punches is None:
        clock_in = datetime.combine(record_date, datetime.min.time()) + timedelta(hours=9)
        punches = [clock_in.isoformat(), (clock_in + timedelta(minutes=minutes)).isoformat()]
    record = AttendanceRecord(
        id=uuid4(),
        employee_id=employee_id,
        record_date=record_date,
        punches=punches,
        total_work_minutes=minutes,
        has_missed_punch=missed_punch,
        finalised_for_payroll=finalised,
    )
    db.add(record)
    await db.commit()
    return record


async def add_exception(
    db: AsyncSession,
    employee_id,
    exception_type: TimeExceptionType,
    status: TimeExceptionStatus = TimeExceptionStatus.OPEN,
    record: AttendanceRecord = None,
    assigned_to=None,
    reason: str = None,
    created_at: datetime = None,
) -> TimeException:
    exc = TimeException(
        id=uuid4(),
        employee_id=employee_id,
        exception_type=exception_type,
        status=status,
        attendance_record_id=record.id if record else None,
        assigned_to=assigned_to,
        reason=reason,
    )
    if created_at is not None:
        exc.created_at = created_at
        exc.updated_at = created_at
    db.add(exc)
    await db.commit()
    return exc
