"""
Payroll Readiness Engine - Payroll Readiness Service

Decides whether attendance/exception data for a period may feed a payroll
run, and audits cross-module consistency of that data.

Findings are data, not exceptions: every check returns a report whose
ERROR-severity entries block and whose WARNING entries only inform.
Apart from the audit entry, the checks never write.
"""

import uuid
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.employee import Employee
from app.models.time_management import (
    AttendanceRecord,
    AttendanceCorrectionRequest,
    TimeException,
    TimeExceptionStatus,
    TimeExceptionType,
    UNRESOLVED_CORRECTION_STATUSES,
    UNRESOLVED_EXCEPTION_STATUSES,
)
from app.services.audit_service import ActorId, AuditTrailService
from app.utils.error_handling import validate_date_range

logger = logging.getLogger(__name__)

VALIDATION_EVENT = "payroll_sync.validation"
CONSISTENCY_EVENT = "cross_module.consistency_check"
FINALIZE_EVENT = "payroll.records_finalized"
SYNC_STATUS_EVENT = "cross_module.sync_status_checked"

# Audit events that make up the payroll sync history
SYNC_HISTORY_EVENTS = (VALIDATION_EVENT, FINALIZE_EVENT)

# Exceptions in these states count as processed for sync health
PROCESSED_EXCEPTION_STATUSES = (
    TimeExceptionStatus.APPROVED,
    TimeExceptionStatus.REJECTED,
    TimeExceptionStatus.RESOLVED,
)


class Severity(str, Enum):
    WARNING = "WARNING"
    ERROR = "ERROR"


def period_bounds(start_date: date, end_date: date):
    """[start 00:00, day after end 00:00) as naive datetimes."""
    return datetime.combine(start_date, time.min), datetime.combine(end_date + timedelta(days=1), time.min)


def percent(part: int, whole: int) -> int:
    """Whole-number percentage; an empty population counts as 100%."""
    if whole == 0:
        return 100
    return round(part * 100 / whole)


def sync_health(attendance_rate: int, exception_rate: int) -> str:
    worst = min(attendance_rate, exception_rate)
    if worst < 50:
        return "CRITICAL"
    if worst < 80:
        return "WARNING"
    return "GOOD"


# ===========================================
# READINESS ISSUES
# ===========================================

@dataclass(frozen=True)
class ReadinessIssue:
    """One category of problem found by the readiness gate."""
    issue_type: ClassVar[str]
    severity: ClassVar[Severity]
    remediation: ClassVar[str]

    count: int
    message: str
    affected_ids: List[str] = field(default_factory=list)

    @property
    def is_blocking(self) -> bool:
        return self.severity == Severity.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.issue_type,
            "severity": self.severity.value,
            "count": self.count,
            "message": self.message,
            "affected_ids": self.affected_ids,
            "remediation": self.remediation,
        }


@dataclass(frozen=True)
class MissedPunchesIssue(ReadinessIssue):
    issue_type: ClassVar[str] = "MISSED_PUNCHES"
    severity: ClassVar[Severity] = Severity.WARNING
    remediation: ClassVar[str] = "Review records with missed punches and submit corrections where needed"


@dataclass(frozen=True)
class ZeroWorkMinutesIssue(ReadinessIssue):
    issue_type: ClassVar[str] = "ZERO_WORK_MINUTES"
    severity: ClassVar[Severity] = Severity.WARNING
    remediation: ClassVar[str] = "Confirm zero-minute records are genuine absences or leave"


@dataclass(frozen=True)
class PendingExceptionsIssue(ReadinessIssue):
    issue_type: ClassVar[str] = "PENDING_EXCEPTIONS"
    severity: ClassVar[Severity] = Severity.ERROR
    remediation: ClassVar[str] = "Approve, reject or resolve all open and pending time exceptions before sync"


@dataclass(frozen=True)
class PendingCorrectionsIssue(ReadinessIssue):
    issue_type: ClassVar[str] = "PENDING_CORRECTIONS"
    severity: ClassVar[Severity] = Severity.ERROR
    remediation: ClassVar[str] = "Review submitted attendance correction requests before sync"


@dataclass
class ReadinessReport:
    start_date: date
    end_date: date
    employee_id: Optional[uuid.UUID]
    total_records: int
    issues: List[ReadinessIssue]
    validated_at: datetime

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.is_blocking)

    @property
    def warning_count(self) -> int:
        return len(self.issues) - self.error_count

    @property
    def is_valid(self) -> bool:
        return self.error_count == 0

    @property
    def can_proceed_with_sync(self) -> bool:
        return self.is_valid

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "employee_id": str(self.employee_id) if self.employee_id else None,
            "is_valid": self.is_valid,
            "validated_at": self.validated_at.isoformat(),
            "total_records": self.total_records,
            "issues": [issue.to_dict() for issue in self.issues],
            "summary": {
                "error_count": self.error_count,
                "warning_count": self.warning_count,
                "can_proceed_with_sync": self.can_proceed_with_sync,
            },
        }


# ===========================================
# CONSISTENCY FINDINGS
# ===========================================

@dataclass(frozen=True)
class ConsistencyFinding:
    """One kind of cross-module inconsistency."""
    finding_type: ClassVar[str]
    severity: ClassVar[Severity]
    description: ClassVar[str]
    remediation: ClassVar[str]

    count: int
    affected_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.finding_type,
            "severity": self.severity.value,
            "count": self.count,
            "description": self.description,
            "affected_ids": self.affected_ids,
            "remediation": self.remediation,
        }


@dataclass(frozen=True)
class NoClockInWithWorkMinutes(ConsistencyFinding):
    finding_type: ClassVar[str] = "NO_CLOCKIN_BUT_HAS_WORK_MINUTES"
    severity: ClassVar[Severity] = Severity.WARNING
    description: ClassVar[str] = "Records with work minutes but no clock-in time"
    remediation: ClassVar[str] = "Review attendance records with work minutes but no clock-in time"


@dataclass(frozen=True)
class OrphanOvertimeExceptions(ConsistencyFinding):
    finding_type: ClassVar[str] = "ORPHAN_OVERTIME_EXCEPTIONS"
    severity: ClassVar[Severity] = Severity.ERROR
    description: ClassVar[str] = "Overtime exceptions not linked to attendance records"
    remediation: ClassVar[str] = "Link overtime exceptions to corresponding attendance records"


@dataclass(frozen=True)
class FinalizedWithPendingExceptions(ConsistencyFinding):
    finding_type: ClassVar[str] = "FINALIZED_WITH_PENDING_EXCEPTIONS"
    severity: ClassVar[Severity] = Severity.ERROR
    description: ClassVar[str] = "Finalized attendance records have pending exceptions"
    remediation: ClassVar[str] = (
        "Resolve pending exceptions before keeping records finalized, or un-finalize records"
    )


@dataclass(frozen=True)
class DuplicateAttendanceRecords(ConsistencyFinding):
    finding_type: ClassVar[str] = "DUPLICATE_ATTENDANCE_RECORDS"
    severity: ClassVar[Severity] = Severity.WARNING
    description: ClassVar[str] = "Multiple attendance records for same employee on same date"
    remediation: ClassVar[str] = "Merge or remove duplicate attendance records for same employee/date"

    groups: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["details"] = self.groups
        return result


@dataclass
class ConsistencyReport:
    start_date: date
    end_date: date
    employee_id: Optional[uuid.UUID]
    records_checked: int
    exceptions_checked: int
    findings: List[ConsistencyFinding]
    checked_at: datetime
    checked_by: Optional[str] = None

    @property
    def error_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return len(self.findings) - self.error_count

    @property
    def is_consistent(self) -> bool:
        return self.error_count == 0

    @property
    def recommendations(self) -> List[str]:
        if not self.findings:
            return ["Data is consistent across modules"]
        return [f.remediation for f in self.findings]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": {"start_date": self.start_date.isoformat(), "end_date": self.end_date.isoformat()},
            "employee_filter": str(self.employee_id) if self.employee_id else "ALL",
            "is_consistent": self.is_consistent,
            "summary": {
                "attendance_records_checked": self.records_checked,
                "exceptions_checked": self.exceptions_checked,
                "error_count": self.error_count,
                "warning_count": self.warning_count,
            },
            "inconsistencies": [f.to_dict() for f in self.findings],
            "recommendations": self.recommendations,
            "checked_at": self.checked_at.isoformat(),
            "checked_by": self.checked_by,
        }


# ===========================================
# BATCH RESULTS
# ===========================================

@dataclass(frozen=True)
class BatchFailure:
    item_id: str
    reason: str
    remediation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.item_id, "reason": self.reason, "remediation": self.remediation}


@dataclass
class BatchResult:
    """Outcome of a best-effort batch: what went through and what did not."""
    succeeded: List[str] = field(default_factory=list)
    failed: List[BatchFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "failed": [f.to_dict() for f in self.failed],
            "succeeded_count": len(self.succeeded),
            "failed_count": len(self.failed),
        }


# ===========================================
# SERVICE
# ===========================================

class PayrollReadinessService:
    """Readiness gate, consistency audit and payroll finalization."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditTrailService(db)

    async def _attendance_in_range(
        self, start_date: date, end_date: date, employee_id: Optional[uuid.UUID] = None,
    ) -> List[AttendanceRecord]:
        query = select(AttendanceRecord).where(
            AttendanceRecord.record_date >= start_date,
            AttendanceRecord.record_date <= end_date,
        )
        if employee_id:
            query = query.where(AttendanceRecord.employee_id == employee_id)
        result = await self.db.execute(query.order_by(AttendanceRecord.record_date, AttendanceRecord.id))
        return list(result.scalars().all())

    async def _exceptions_in_range(
        self, start_date: date, end_date: date, employee_id: Optional[uuid.UUID] = None,
    ) -> List[TimeException]:
        start, end = period_bounds(start_date, end_date)
        query = select(TimeException).where(TimeException.created_at >= start, TimeException.created_at < end)
        if employee_id:
            query = query.where(TimeException.employee_id == employee_id)
        result = await self.db.execute(query.order_by(TimeException.created_at, TimeException.id))
        return list(result.scalars().all())

    async def validate_data_for_payroll_sync(
        self,
        start_date: date,
        end_date: date,
        employee_id: Optional[uuid.UUID] = None,
        actor_id: ActorId = None,
    ) -> ReadinessReport:
        """
        Readiness gate for a payroll period.

        Missed punches and zero-minute days are warnings; unresolved time
        exceptions and correction requests are errors and block the sync.
        """
        validate_date_range(start_date, end_date)

        records = await self._attendance_in_range(start_date, end_date, employee_id)
        exceptions = await self._exceptions_in_range(start_date, end_date, employee_id)

        start, end = period_bounds(start_date, end_date)
        corrections_query = select(AttendanceCorrectionRequest).where(
            AttendanceCorrectionRequest.created_at >= start,
            AttendanceCorrectionRequest.created_at < end,
            AttendanceCorrectionRequest.status.in_(UNRESOLVED_CORRECTION_STATUSES),
        )
        if employee_id:
            corrections_query = corrections_query.where(AttendanceCorrectionRequest.employee_id == employee_id)
        corrections = list((await self.db.execute(corrections_query)).scalars().all())

        missed = [r for r in records if r.has_missed_punch]
        zero_minutes = [r for r in records if not r.total_work_minutes]
        pending = [e for e in exceptions if e.is_unresolved]

        issues: List[ReadinessIssue] = []
        if missed:
            issues.append(MissedPunchesIssue(
                count=len(missed),
                message=f"{len(missed)} record(s) have missed punches",
                affected_ids=[str(r.id) for r in missed],
            ))
        if zero_minutes:
            issues.append(ZeroWorkMinutesIssue(
                count=len(zero_minutes),
                message=f"{len(zero_minutes)} record(s) have zero work minutes",
                affected_ids=[str(r.id) for r in zero_minutes],
            ))
        if pending:
            issues.append(PendingExceptionsIssue(
                count=len(pending),
                message=f"{len(pending)} unresolved exception(s) need attention before sync",
                affected_ids=[str(e.id) for e in pending],
            ))
        if corrections:
            issues.append(PendingCorrectionsIssue(
                count=len(corrections),
                message=f"{len(corrections)} pending correction request(s) need resolution",
                affected_ids=[str(c.id) for c in corrections],
            ))

        report = ReadinessReport(
            start_date=start_date,
            end_date=end_date,
            employee_id=employee_id,
            total_records=len(records),
            issues=issues,
            validated_at=datetime.utcnow(),
        )

        await self.audit.record(
            VALIDATION_EVENT,
            {
                "start_date": start_date,
                "end_date": end_date,
                "employee_id": employee_id,
                "is_valid": report.is_valid,
                "issues_count": len(issues),
            },
            actor_id=actor_id,
        )
        await self.db.commit()

        logger.info(
            f"Payroll sync validation {start_date}..{end_date}: valid={report.is_valid}, "
            f"errors={report.error_count}, warnings={report.warning_count}"
        )
        return report

    async def check_cross_module_data_consistency(
        self,
        start_date: date,
        end_date: date,
        employee_id: Optional[uuid.UUID] = None,
        actor_id: ActorId = None,
    ) -> ConsistencyReport:
        """Run the four cross-module anomaly detectors over a period."""
        validate_date_range(start_date, end_date)

        records = await self._attendance_in_range(start_date, end_date, employee_id)
        exceptions = await self._exceptions_in_range(start_date, end_date, employee_id)

        findings: List[ConsistencyFinding] = []

        no_clock_in = [r for r in records if r.clock_in is None and (r.total_work_minutes or 0) > 0]
        if no_clock_in:
            findings.append(NoClockInWithWorkMinutes(
                count=len(no_clock_in), affected_ids=[str(r.id) for r in no_clock_in],
            ))

        # Orphan overtime is checked across all dates
        orphan_query = select(TimeException).where(
            TimeException.exception_type == TimeExceptionType.OVERTIME_REQUEST,
            TimeException.attendance_record_id.is_(None),
        )
        if employee_id:
            orphan_query = orphan_query.where(TimeException.employee_id == employee_id)
        orphans = list((await self.db.execute(orphan_query.order_by(TimeException.id))).scalars().all())
        if orphans:
            findings.append(OrphanOvertimeExceptions(
                count=len(orphans), affected_ids=[str(e.id) for e in orphans],
            ))

        finalized_ids = [r.id for r in records if r.finalised_for_payroll]
        if finalized_ids:
            blocking = list((await self.db.execute(
                select(TimeException)
                .where(TimeException.attendance_record_id.in_(finalized_ids))
                .where(TimeException.status.in_(UNRESOLVED_EXCEPTION_STATUSES))
                .order_by(TimeException.id)
            )).scalars().all())
            if blocking:
                findings.append(FinalizedWithPendingExceptions(
                    count=len(blocking), affected_ids=[str(e.id) for e in blocking],
                ))

        by_employee_day = defaultdict(list)
        for record in records:
            by_employee_day[(str(record.employee_id), record.record_date)].append(record)
        duplicates = sorted(
            (key, group) for key, group in by_employee_day.items() if len(group) > 1
        )
        if duplicates:
            findings.append(DuplicateAttendanceRecords(
                count=len(duplicates),
                affected_ids=[str(r.id) for _, group in duplicates for r in group],
                groups=[
                    {
                        "employee_id": employee,
                        "date": day.isoformat(),
                        "record_count": len(group),
                        "record_ids": [str(r.id) for r in group],
                    }
                    for (employee, day), group in duplicates
                ],
            ))

        report = ConsistencyReport(
            start_date=start_date,
            end_date=end_date,
            employee_id=employee_id,
            records_checked=len(records),
            exceptions_checked=len(exceptions),
            findings=findings,
            checked_at=datetime.utcnow(),
            checked_by=str(actor_id) if actor_id else None,
        )

        await self.audit.record(
            CONSISTENCY_EVENT,
            {
                "start_date": start_date,
                "end_date": end_date,
                "employee_id": employee_id,
                "is_consistent": report.is_consistent,
                "inconsistency_count": len(findings),
            },
            actor_id=actor_id,
        )
        await self.db.commit()
        return report

    async def finalize_records_for_payroll(
        self,
        record_ids: Sequence[uuid.UUID],
        actor_id: ActorId = None,
    ) -> BatchResult:
        """
        Mark attendance records as finalized for payroll.

        A record still referenced by an open or pending exception is left
        alone and reported in `failed`.
        """
        outcome = BatchResult()
        for record_id in record_ids:
            record = (await self.db.execute(
                select(AttendanceRecord).where(AttendanceRecord.id == record_id)
            )).scalar_one_or_none()
            if record is None:
                outcome.failed.append(BatchFailure(str(record_id), "Attendance record not found"))
                continue

            blocking = (await self.db.execute(
                select(TimeException.id)
                .where(TimeException.attendance_record_id == record.id)
                .where(TimeException.status.in_(UNRESOLVED_EXCEPTION_STATUSES))
            )).scalars().all()
            if blocking:
                outcome.failed.append(BatchFailure(
                    str(record.id),
                    f"{len(blocking)} unresolved exception(s) reference this record",
                    "Resolve pending exceptions before finalizing the record",
                ))
                continue

            record.finalised_for_payroll = True
            outcome.succeeded.append(str(record.id))

        await self.audit.record(
            FINALIZE_EVENT,
            {"record_ids": [str(r) for r in record_ids], "finalized": outcome.succeeded,
             "failed": [f.item_id for f in outcome.failed]},
            actor_id=actor_id,
        )
        await self.db.commit()

        logger.info(f"Finalized {len(outcome.succeeded)} record(s) for payroll, {len(outcome.failed)} skipped")
        return outcome

    async def get_exception_data_for_payroll_sync(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        employee_id: Optional[uuid.UUID] = None,
    ) -> Dict[str, Any]:
        """Time exceptions grouped by type and status, plus the subsets payroll cares about."""
        query = select(TimeException)
        if employee_id:
            query = query.where(TimeException.employee_id == employee_id)
        if start_date and end_date:
            validate_date_range(start_date, end_date)
            start, end = period_bounds(start_date, end_date)
            query = query.where(TimeException.created_at >= start, TimeException.created_at < end)
        exceptions = list((await self.db.execute(
            query.order_by(TimeException.created_at.desc(), TimeException.id)
        )).scalars().all())

        by_type: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        by_status = {s.name: 0 for s in TimeExceptionStatus}
        for exc in exceptions:
            by_type[exc.exception_type.name].append({
                "exception_id": str(exc.id),
                "employee_id": str(exc.employee_id),
                "type": exc.exception_type.name,
                "status": exc.status.name,
                "reason": exc.reason,
                "date": exc.created_at.isoformat(),
                "attendance_record_id": str(exc.attendance_record_id) if exc.attendance_record_id else None,
            })
            by_status[exc.status.name] += 1

        return {
            "filters": {
                "start_date": start_date.isoformat() if start_date else None,
                "end_date": end_date.isoformat() if end_date else None,
                "employee_id": str(employee_id) if employee_id else None,
            },
            "total_count": len(exceptions),
            "by_type": [
                {"type": type_name, "count": len(items), "records": items}
                for type_name, items in by_type.items()
            ],
            "by_status": by_status,
            "payroll_relevant": {
                "approved_overtime": [
                    e for e in by_type.get(TimeExceptionType.OVERTIME_REQUEST.name, [])
                    if e["status"] == TimeExceptionStatus.APPROVED.name
                ],
                "lateness_records": by_type.get(TimeExceptionType.LATE.name, []),
                "early_leave_records": by_type.get(TimeExceptionType.EARLY_LEAVE.name, []),
            },
        }

    async def get_pending_payroll_sync_data(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        employee_id: Optional[uuid.UUID] = None,
        department_id: Optional[uuid.UUID] = None,
    ) -> Dict[str, Any]:
        """Attendance records not yet finalized for payroll, newest first."""
        query = (
            select(AttendanceRecord, Employee)
            .outerjoin(Employee, Employee.id == AttendanceRecord.employee_id)
            .where(AttendanceRecord.finalised_for_payroll == False)  # noqa: E712
        )
        if start_date and end_date:
            validate_date_range(start_date, end_date)
            query = query.where(
                AttendanceRecord.record_date >= start_date,
                AttendanceRecord.record_date <= end_date,
            )
        if employee_id:
            query = query.where(AttendanceRecord.employee_id == employee_id)
        if department_id:
            query = query.where(Employee.department_id == department_id)
        rows = (await self.db.execute(
            query.order_by(AttendanceRecord.record_date.desc(), AttendanceRecord.id)
        )).all()

        records = []
        for record, employee in rows:
            minutes = record.total_work_minutes or 0
            records.append({
                "record_id": str(record.id),
                "employee_id": str(record.employee_id),
                "employee_name": employee.full_name if employee else "Unknown",
                "date": record.record_date.isoformat(),
                "total_work_minutes": minutes,
                "total_work_hours": round(minutes / 60, 2),
                "has_missed_punch": record.has_missed_punch,
                "punch_count": len(record.punches or []),
            })

        total_minutes = sum(r["total_work_minutes"] for r in records)
        return {
            "filters": {
                "start_date": start_date.isoformat() if start_date else None,
                "end_date": end_date.isoformat() if end_date else None,
                "employee_id": str(employee_id) if employee_id else None,
                "department_id": str(department_id) if department_id else None,
            },
            "count": len(records),
            "records": records,
            "summary": {
                "total_minutes": total_minutes,
                "total_hours": round(total_minutes / 60, 2),
                "records_with_missed_punches": sum(1 for r in records if r["has_missed_punch"]),
                "employees": len({r["employee_id"] for r in records}),
            },
        }

    async def get_payroll_sync_history(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = 50,
    ) -> Dict[str, Any]:
        """Sync validations and finalizations from the audit trail, newest first."""
        start = end = None
        if start_date and end_date:
            validate_date_range(start_date, end_date)
            start, end = datetime.combine(start_date, time.min), datetime.combine(end_date, time.max)
        entries = await self.audit.query(start=start, end=end, entities=SYNC_HISTORY_EVENTS)

        items = [
            {
                "operation": entry.entity,
                "details": entry.change_set,
                "performed_by": entry.actor_id,
                "recorded_at": entry.recorded_at.isoformat(),
            }
            for entry in reversed(entries)
        ][:limit]
        return {"count": len(items), "items": items}

    async def get_cross_module_sync_status(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        actor_id: ActorId = None,
    ) -> Dict[str, Any]:
        """
        How far a period's data has moved towards payroll.

        Defaults to the current month so far. The attendance sync rate is
        the share of records finalized; the exception processing rate is
        the share of exceptions approved, rejected or resolved. Health is
        CRITICAL when either rate is under 50%, WARNING under 80%.
        """
        today = datetime.utcnow().date()
        start_date = start_date or today.replace(day=1)
        end_date = end_date or today
        validate_date_range(start_date, end_date)

        records = await self._attendance_in_range(start_date, end_date)
        exceptions = await self._exceptions_in_range(start_date, end_date)

        finalized = sum(1 for r in records if r.finalised_for_payroll)
        processed = sum(1 for e in exceptions if e.status in PROCESSED_EXCEPTION_STATUSES)
        attendance_rate = percent(finalized, len(records))
        exception_rate = percent(processed, len(exceptions))
        health = sync_health(attendance_rate, exception_rate)

        start, end = period_bounds(start_date, end_date)
        syncs = await self.audit.query(start=start, end=end, entities=SYNC_HISTORY_EVENTS)
        last_sync = syncs[-1].recorded_at.isoformat() if syncs else None

        await self.audit.record(
            SYNC_STATUS_EVENT,
            {
                "start_date": start_date,
                "end_date": end_date,
                "attendance_count": len(records),
                "exception_count": len(exceptions),
                "health": health,
            },
            actor_id=actor_id,
        )
        await self.db.commit()

        return {
            "period": {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            "attendance": {
                "total": len(records),
                "finalized": finalized,
                "pending": len(records) - finalized,
                "sync_rate": attendance_rate,
            },
            "exceptions": {
                "total": len(exceptions),
                "processed": processed,
                "pending": sum(1 for e in exceptions if e.is_unresolved),
                "processing_rate": exception_rate,
            },
            "health": health,
            "last_sync": last_sync,
            "generated_at": datetime.utcnow().isoformat(),
        }


def get_payroll_readiness_service(db: AsyncSession) -> PayrollReadinessService:
    """Factory function for PayrollReadinessService"""
    return PayrollReadinessService(db)
