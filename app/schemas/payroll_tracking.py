"""
Payroll Readiness Engine - Payroll Tracking Schemas

Pydantic schemas for claim, dispute and refund requests and responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.payroll_tracking import ClaimStatus, DisputeStatus, RefundStatus


# ===========================================
# CLAIMS
# ===========================================

class ClaimCreate(BaseModel):
    """Create claim request."""
    employee_id: UUID
    claim_type: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    finance_staff_id: Optional[UUID] = None


class ClaimApproval(BaseModel):
    """Specialist approval; approved_amount defaults to the requested amount."""
    approved_amount: Optional[Decimal] = Field(None, gt=0)
    comment: Optional[str] = None


class ClaimResponse(BaseModel):
    """Claim response."""
    id: UUID
    claim_number: str
    employee_id: UUID
    finance_staff_id: Optional[UUID] = None
    claim_type: str
    description: str
    amount: Decimal
    approved_amount: Optional[Decimal] = None
    status: ClaimStatus
    rejection_reason: Optional[str] = None
    resolution_comment: Optional[str] = None
    specialist_decided_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ===========================================
# DISPUTES
# ===========================================

class DisputeCreate(BaseModel):
    """Create dispute request."""
    employee_id: UUID
    payslip_id: UUID
    description: str = Field(..., min_length=1)
    finance_staff_id: Optional[UUID] = None


class DisputeResponse(BaseModel):
    """Dispute response."""
    id: UUID
    dispute_number: str
    employee_id: UUID
    payslip_id: UUID
    payroll_run_id: Optional[str] = None
    finance_staff_id: Optional[UUID] = None
    description: str
    status: DisputeStatus
    rejection_reason: Optional[str] = None
    resolution_comment: Optional[str] = None
    specialist_decided_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ===========================================
# SHARED DECISIONS
# ===========================================

class DecisionComment(BaseModel):
    """Optional comment attached to an approval or confirmation."""
    comment: Optional[str] = None


class RejectionRequest(BaseModel):
    """Specialist rejection."""
    reason: str = Field(..., min_length=1)


# ===========================================
# REFUNDS
# ===========================================

class RefundDetails(BaseModel):
    """Refund description and amount; amount may be omitted for claims."""
    description: str = Field(..., min_length=1)
    amount: Optional[Decimal] = Field(None, gt=0)

    def as_dict(self) -> dict:
        return self.model_dump(exclude_none=True)


class RefundGenerate(BaseModel):
    """Generate a refund from a confirmed claim or dispute."""
    refund_details: RefundDetails
    finance_staff_id: Optional[UUID] = None


class RefundCreate(BaseModel):
    """Finance-initiated refund."""
    employee_id: UUID
    refund_details: RefundDetails
    finance_staff_id: Optional[UUID] = None


class RefundProcess(BaseModel):
    """Pay a pending refund in a payroll run."""
    payroll_run_id: str = Field(..., min_length=1, max_length=50)


class RefundResponse(BaseModel):
    """Refund response."""
    id: UUID
    employee_id: UUID
    finance_staff_id: Optional[UUID] = None
    claim_id: Optional[UUID] = None
    dispute_id: Optional[UUID] = None
    refund_description: str
    refund_amount: Decimal
    status: RefundStatus
    paid_in_payroll_run_id: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
