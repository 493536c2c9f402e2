"""
Payroll Readiness Engine - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin, AuditMixin
from app.models.employee import Employee, EmployeeStatus, SystemRole
from app.models.payroll import (
    PayrollRun,
    PayrollRunStatus,
    Payslip,
    PayslipPaymentStatus,
    CLOSED_RUN_STATUSES,
)
from app.models.payroll_tracking import (
    Claim,
    ClaimStatus,
    Dispute,
    DisputeStatus,
    Refund,
    RefundStatus,
    ApprovalOperation,
    RefundOperation,
    CLAIM_TRANSITIONS,
    DISPUTE_TRANSITIONS,
    REFUND_TRANSITIONS,
)
from app.models.time_management import (
    AttendanceRecord,
    TimeException,
    TimeExceptionType,
    TimeExceptionStatus,
    AttendanceCorrectionRequest,
    CorrectionRequestStatus,
    UNRESOLVED_EXCEPTION_STATUSES,
    UNRESOLVED_CORRECTION_STATUSES,
)
from app.models.notification import Notification, NotificationType
from app.models.audit import AuditTrailEntry

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "AuditMixin",
    # Employee
    "Employee",
    "EmployeeStatus",
    "SystemRole",
    # Payroll
    "PayrollRun",
    "PayrollRunStatus",
    "Payslip",
    "PayslipPaymentStatus",
    "CLOSED_RUN_STATUSES",
    # Payroll tracking
    "Claim",
    "ClaimStatus",
    "Dispute",
    "DisputeStatus",
    "Refund",
    "RefundStatus",
    "ApprovalOperation",
    "RefundOperation",
    "CLAIM_TRANSITIONS",
    "DISPUTE_TRANSITIONS",
    "REFUND_TRANSITIONS",
    # Time management
    "AttendanceRecord",
    "TimeException",
    "TimeExceptionType",
    "TimeExceptionStatus",
    "AttendanceCorrectionRequest",
    "CorrectionRequestStatus",
    "UNRESOLVED_EXCEPTION_STATUSES",
    "UNRESOLVED_CORRECTION_STATUSES",
    # Notifications & audit
    "Notification",
    "NotificationType",
    "AuditTrailEntry",
]
