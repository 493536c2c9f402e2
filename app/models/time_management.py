"""
Payroll Readiness Engine - Time Management Models

Attendance records, time exceptions and attendance correction requests.
These tables belong to the attendance subsystem; the engine reads them and
only ever writes TimeException.status / TimeException.reason and
AttendanceRecord.finalised_for_payroll.
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, Date, ForeignKey, Integer, JSON, Text, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class TimeExceptionType(str, Enum):
    """Kind of attendance anomaly."""
    MISSED_PUNCH = "missed_punch"
    OVERTIME_REQUEST = "overtime_request"
    LATE = "late"
    EARLY_LEAVE = "early_leave"
    SHORT_TIME = "short_time"


class TimeExceptionStatus(str, Enum):
    """Time exception workflow status."""
    OPEN = "open"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ESCALATED = "escalated"
    RESOLVED = "resolved"


# Exceptions in these states still need a decision before payroll
UNRESOLVED_EXCEPTION_STATUSES = (TimeExceptionStatus.OPEN, TimeExceptionStatus.PENDING)


class CorrectionRequestStatus(str, Enum):
    """Attendance correction request status."""
    SUBMITTED = "submitted"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    ESCALATED = "escalated"


UNRESOLVED_CORRECTION_STATUSES = (CorrectionRequestStatus.SUBMITTED, CorrectionRequestStatus.IN_REVIEW)


class AttendanceRecord(BaseModel):
    """One employee/day attendance snapshot."""

    __tablename__ = "attendance_records"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    record_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Ordered ISO timestamps; the first one is the clock-in
    punches: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    total_work_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=0)
    has_missed_punch: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    finalised_for_payroll: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    @property
    def clock_in(self) -> Optional[datetime]:
        """First punch of the day, if any."""
        if not self.punches:
            return None
        return datetime.fromisoformat(self.punches[0])

    def __repr__(self) -> str:
        return f"<AttendanceRecord(id={self.id}, employee={self.employee_id}, date={self.record_date})>"


class TimeException(BaseModel):
    """
    Anomaly flagged against attendance.

    `reason` is append-only: escalation annotations are added after the
    existing text, never in place of it.
    """

    __tablename__ = "time_exceptions"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    exception_type: Mapped[TimeExceptionType] = mapped_column(
        SQLEnum(TimeExceptionType),
        nullable=False,
        index=True,
    )
    status: Mapped[TimeExceptionStatus] = mapped_column(
        SQLEnum(TimeExceptionStatus),
        default=TimeExceptionStatus.OPEN,
        nullable=False,
        index=True,
    )
    attendance_record_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("attendance_records.id"),
        nullable=True,
        index=True,
    )
    assigned_to: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id"), nullable=True, index=True,
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def is_unresolved(self) -> bool:
        return self.status in UNRESOLVED_EXCEPTION_STATUSES

    def __repr__(self) -> str:
        return f"<TimeException(id={self.id}, type={self.exception_type}, status={self.status})>"


class AttendanceCorrectionRequest(BaseModel):
    """Employee request to correct an attendance record (external queue)."""

    __tablename__ = "attendance_correction_requests"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attendance_record_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("attendance_records.id"), nullable=True,
    )
    status: Mapped[CorrectionRequestStatus] = mapped_column(
        SQLEnum(CorrectionRequestStatus),
        default=CorrectionRequestStatus.SUBMITTED,
        nullable=False,
        index=True,
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
