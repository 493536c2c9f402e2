"""
Payroll Readiness Engine - Downstream Data Service

Read-only attendance feeds for the payroll, leave and benefits modules.
The builders are pure functions of their input rows; the service only loads
those rows and records that a package was generated.
"""

import uuid
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.employee import Employee
from app.models.time_management import AttendanceRecord, TimeException, TimeExceptionType
from app.services.audit_service import ActorId, AuditTrailService
from app.services.payroll_readiness_service import period_bounds
from app.utils.error_handling import ValidationException, validate_date_range

logger = logging.getLogger(__name__)


class DownstreamModule(str, Enum):
    PAYROLL = "payroll"
    LEAVES = "leaves"
    BENEFITS = "benefits"


@dataclass(frozen=True)
class AttendanceDay:
    """One attendance record flattened with its employee and exception flags."""
    record_id: str
    employee_id: str
    employee_name: str
    employee_number: str
    record_date: date
    total_work_minutes: int = 0
    has_missed_punch: bool = False
    is_late: bool = False
    left_early: bool = False

    @property
    def is_perfect(self) -> bool:
        return not (self.is_late or self.left_early or self.has_missed_punch)


def _hours(minutes: int) -> float:
    return round(minutes / 60, 2)


def _by_employee(days: Iterable[AttendanceDay]) -> "OrderedDict[str, List[AttendanceDay]]":
    """Group rows per employee; employees by id, each employee's rows by date."""
    grouped: Dict[str, List[AttendanceDay]] = {}
    for day in days:
        grouped.setdefault(day.employee_id, []).append(day)
    return OrderedDict(
        (emp_id, sorted(grouped[emp_id], key=lambda d: (d.record_date, d.record_id)))
        for emp_id in sorted(grouped)
    )


def build_payroll_package(days: Sequence[AttendanceDay], standard_minutes: Optional[int] = None) -> Dict[str, Any]:
    """Regular/overtime split per employee; a day's regular minutes cap at `standard_minutes`."""
    cap = standard_minutes if standard_minutes is not None else settings.standard_work_minutes_per_day
    employees = []
    for emp_id, rows in _by_employee(days).items():
        total = sum(d.total_work_minutes for d in rows)
        regular = sum(min(d.total_work_minutes, cap) for d in rows)
        overtime = sum(max(0, d.total_work_minutes - cap) for d in rows)
        employees.append({
            "employee_id": emp_id,
            "employee_number": rows[0].employee_number,
            "employee_name": rows[0].employee_name,
            "total_work_minutes": total,
            "regular_minutes": regular,
            "overtime_minutes": overtime,
            "total_work_hours": _hours(total),
            "regular_hours": _hours(regular),
            "overtime_hours": _hours(overtime),
            "days_worked": len(rows),
            "late_days": sum(1 for d in rows if d.is_late),
            "missed_punches": sum(1 for d in rows if d.has_missed_punch),
        })

    return {
        "description": "Payroll-ready attendance and overtime data",
        "employees": employees,
        "totals": {
            "total_employees": len(employees),
            "total_work_hours": _hours(sum(e["total_work_minutes"] for e in employees)),
            "total_overtime_hours": _hours(sum(e["overtime_minutes"] for e in employees)),
        },
    }


def build_leave_package(days: Sequence[AttendanceDay]) -> Dict[str, Any]:
    """Sorted unique present dates per employee."""
    employees = []
    for emp_id, rows in _by_employee(days).items():
        present = sorted({d.record_date for d in rows})
        employees.append({
            "employee_id": emp_id,
            "employee_name": rows[0].employee_name,
            "present_dates": [d.isoformat() for d in present],
            "days_present": len(present),
        })

    return {
        "description": "Attendance data for leave validation",
        "employees": employees,
        "usage": "Cross-reference present_dates against leave requests to validate absences",
    }


def build_benefits_package(days: Sequence[AttendanceDay], standard_minutes: Optional[int] = None) -> Dict[str, Any]:
    """Hours and perfect-attendance counters with bonus eligibility cohorts."""
    cap = standard_minutes if standard_minutes is not None else settings.standard_work_minutes_per_day
    employees = []
    for emp_id, rows in _by_employee(days).items():
        employees.append({
            "employee_id": emp_id,
            "employee_name": rows[0].employee_name,
            "total_work_hours": _hours(sum(d.total_work_minutes for d in rows)),
            "overtime_hours": _hours(sum(max(0, d.total_work_minutes - cap) for d in rows)),
            "days_worked": len(rows),
            "perfect_attendance_days": sum(1 for d in rows if d.is_perfect),
        })

    return {
        "description": "Attendance and overtime data for benefits calculations",
        "employees": employees,
        "eligibility_criteria": {
            "overtime_bonus_eligible": [e for e in employees if e["overtime_hours"] > 0],
            "perfect_attendance_bonus": [
                e for e in employees
                if e["days_worked"] > 0 and e["perfect_attendance_days"] == e["days_worked"]
            ],
        },
    }


PACKAGE_BUILDERS = {
    DownstreamModule.PAYROLL: build_payroll_package,
    DownstreamModule.LEAVES: build_leave_package,
    DownstreamModule.BENEFITS: build_benefits_package,
}


def flatten_attendance(
    records: Sequence[AttendanceRecord],
    employees: Dict[uuid.UUID, Employee],
    exceptions: Sequence[TimeException],
) -> List[AttendanceDay]:
    """Join records with employee details and LATE / EARLY_LEAVE exception flags."""
    late_ids = {e.attendance_record_id for e in exceptions
                if e.exception_type == TimeExceptionType.LATE and e.attendance_record_id}
    early_ids = {e.attendance_record_id for e in exceptions
                 if e.exception_type == TimeExceptionType.EARLY_LEAVE and e.attendance_record_id}

    days = []
    for record in records:
        employee = employees.get(record.employee_id)
        days.append(AttendanceDay(
            record_id=str(record.id),
            employee_id=str(record.employee_id),
            employee_name=employee.full_name if employee else "Unknown",
            employee_number=employee.employee_number if employee else "N/A",
            record_date=record.record_date,
            total_work_minutes=record.total_work_minutes or 0,
            has_missed_punch=record.has_missed_punch,
            is_late=record.id in late_ids,
            left_early=record.id in early_ids,
        ))
    return days


class DownstreamDataService:
    """Loads attendance for a period and hands it to the package builders."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditTrailService(db)

    async def get_data_for_downstream_modules(
        self,
        start_date: date,
        end_date: date,
        modules: Sequence[str],
        department_id: Optional[uuid.UUID] = None,
        actor_id: ActorId = None,
    ) -> Dict[str, Any]:
        validate_date_range(start_date, end_date)
        try:
            requested = [DownstreamModule(m) for m in dict.fromkeys(modules)]
        except ValueError:
            raise ValidationException(
                f"Unknown module in {list(modules)}",
                field="modules",
                details={"allowed": [m.value for m in DownstreamModule]},
            )
        if not requested:
            raise ValidationException("At least one module is required", field="modules")

        record_query = (
            select(AttendanceRecord, Employee)
            .join(Employee, Employee.id == AttendanceRecord.employee_id)
            .where(AttendanceRecord.record_date >= start_date)
            .where(AttendanceRecord.record_date <= end_date)
        )
        if department_id:
            record_query = record_query.where(Employee.department_id == department_id)
        rows = (await self.db.execute(record_query)).all()
        records = [r for r, _ in rows]
        employees = {e.id: e for _, e in rows}

        start, end = period_bounds(start_date, end_date)
        exception_query = (
            select(TimeException)
            .join(Employee, Employee.id == TimeException.employee_id)
            .where(TimeException.created_at >= start)
            .where(TimeException.created_at < end)
        )
        if department_id:
            exception_query = exception_query.where(Employee.department_id == department_id)
        exceptions = list((await self.db.execute(exception_query)).scalars().all())

        days = flatten_attendance(records, employees, exceptions)
        packages = {module.value: PACKAGE_BUILDERS[module](days) for module in requested}

        await self.audit.record(
            "downstream.data_package_generated",
            {"start_date": start_date, "end_date": end_date, "department_id": department_id,
             "modules": [m.value for m in requested], "attendance_count": len(records),
             "exception_count": len(exceptions)},
            actor_id=actor_id,
        )
        await self.db.commit()
        logger.info(
            f"Downstream packages {[m.value for m in requested]} built from "
            f"{len(records)} attendance record(s) for {start_date}..{end_date}"
        )

        return {
            "period": {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            "department_filter": str(department_id) if department_id else "ALL",
            "modules_included": [m.value for m in requested],
            "base_data_summary": {
                "attendance_records": len(records),
                "exceptions": len(exceptions),
                "unique_employees": len({d.employee_id for d in days}),
            },
            "data_packages": packages,
            "generated_at": datetime.utcnow().isoformat(),
        }


def get_downstream_data_service(db: AsyncSession) -> DownstreamDataService:
    """Factory function for DownstreamDataService"""
    return DownstreamDataService(db)
