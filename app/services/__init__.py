"""
Payroll Readiness Engine - Services Package

Business logic services.
"""

from app.services.audit_service import AuditTrailService
from app.services.notification_service import NotificationService
from app.services.employee_directory import EmployeeDirectory
from app.services.payroll_run_registry import PayrollRunRegistry
from app.services.payroll_tracking_service import PayrollTrackingService
from app.services.refund_service import RefundService
from app.services.payroll_readiness_service import PayrollReadinessService
from app.services.payroll_cutoff_service import PayrollCutoffService
from app.services.downstream_data_service import DownstreamDataService

__all__ = [
    "AuditTrailService",
    "NotificationService",
    "EmployeeDirectory",
    "PayrollRunRegistry",
    "PayrollTrackingService",
    "RefundService",
    "PayrollReadinessService",
    "PayrollCutoffService",
    "DownstreamDataService",
]
