"""
Payroll Readiness Engine - Schemas Package

Pydantic schemas for request/response validation.
"""

from app.schemas.payroll_tracking import (
    ClaimCreate,
    ClaimApproval,
    ClaimResponse,
    DisputeCreate,
    DisputeResponse,
    DecisionComment,
    RejectionRequest,
    RefundDetails,
    RefundGenerate,
    RefundCreate,
    RefundProcess,
    RefundResponse,
)
from app.schemas.payroll_readiness import (
    PeriodRequest,
    FinalizeRecordsRequest,
    AutoEscalateRequest,
    ReminderRequest,
    ManualEscalationRequest,
    DownstreamDataRequest,
)

__all__ = [
    "ClaimCreate",
    "ClaimApproval",
    "ClaimResponse",
    "DisputeCreate",
    "DisputeResponse",
    "DecisionComment",
    "RejectionRequest",
    "RefundDetails",
    "RefundGenerate",
    "RefundCreate",
    "RefundProcess",
    "RefundResponse",
    "PeriodRequest",
    "FinalizeRecordsRequest",
    "AutoEscalateRequest",
    "ReminderRequest",
    "ManualEscalationRequest",
    "DownstreamDataRequest",
]
