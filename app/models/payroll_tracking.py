"""
Payroll Readiness Engine - Payroll Tracking Models

Claims, disputes and refunds raised against payroll.
Supports:
- Two-step approval (payroll specialist, then payroll manager)
- Refund generation from confirmed claims/disputes
- Refund payout through an open payroll run

Status changes go through the transition tables below; a pair that is
not listed is an illegal transition.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Tuple

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, AuditMixin


class ClaimStatus(str, Enum):
    """Claim approval status."""
    PENDING = "pending"
    APPROVED_BY_SPECIALIST = "approved_by_specialist"
    REJECTED_BY_SPECIALIST = "rejected_by_specialist"
    CONFIRMED = "confirmed"


class DisputeStatus(str, Enum):
    """Dispute approval status (same shape as claims)."""
    PENDING = "pending"
    APPROVED_BY_SPECIALIST = "approved_by_specialist"
    REJECTED_BY_SPECIALIST = "rejected_by_specialist"
    CONFIRMED = "confirmed"


class RefundStatus(str, Enum):
    """Refund payout status."""
    PENDING = "pending"
    PROCESSED = "processed"


class ApprovalOperation(str, Enum):
    """Operations that move a claim or dispute through approval."""
    APPROVE_BY_SPECIALIST = "approve_by_specialist"
    REJECT_BY_SPECIALIST = "reject_by_specialist"
    CONFIRM_APPROVAL = "confirm_approval"


class RefundOperation(str, Enum):
    """Operations on a refund."""
    PROCESS = "process_refund"


CLAIM_TRANSITIONS: Dict[Tuple[ClaimStatus, ApprovalOperation], ClaimStatus] = {
    (ClaimStatus.PENDING, ApprovalOperation.APPROVE_BY_SPECIALIST): ClaimStatus.APPROVED_BY_SPECIALIST,
    (ClaimStatus.PENDING, ApprovalOperation.REJECT_BY_SPECIALIST): ClaimStatus.REJECTED_BY_SPECIALIST,
    (ClaimStatus.APPROVED_BY_SPECIALIST, ApprovalOperation.CONFIRM_APPROVAL): ClaimStatus.CONFIRMED,
}

DISPUTE_TRANSITIONS: Dict[Tuple[DisputeStatus, ApprovalOperation], DisputeStatus] = {
    (DisputeStatus.PENDING, ApprovalOperation.APPROVE_BY_SPECIALIST): DisputeStatus.APPROVED_BY_SPECIALIST,
    (DisputeStatus.PENDING, ApprovalOperation.REJECT_BY_SPECIALIST): DisputeStatus.REJECTED_BY_SPECIALIST,
    (DisputeStatus.APPROVED_BY_SPECIALIST, ApprovalOperation.CONFIRM_APPROVAL): DisputeStatus.CONFIRMED,
}

REFUND_TRANSITIONS: Dict[Tuple[RefundStatus, RefundOperation], RefundStatus] = {
    (RefundStatus.PENDING, RefundOperation.PROCESS): RefundStatus.PROCESSED,
}

# Statuses with no outgoing transition
CLAIM_TERMINAL_STATUSES = frozenset({ClaimStatus.REJECTED_BY_SPECIALIST, ClaimStatus.CONFIRMED})
DISPUTE_TERMINAL_STATUSES = frozenset({DisputeStatus.REJECTED_BY_SPECIALIST, DisputeStatus.CONFIRMED})
REFUND_TERMINAL_STATUSES = frozenset({RefundStatus.PROCESSED})


def _check_transition_table(table, status_enum, operation_enum, terminal) -> None:
    """Every table key and target must use the declared enums, and every
    non-terminal status must have at least one way out."""
    for (source, operation), target in table.items():
        if not isinstance(source, status_enum) or not isinstance(target, status_enum):
            raise TypeError(f"Transition {source!r} -> {target!r} is not a {status_enum.__name__}")
        if not isinstance(operation, operation_enum):
            raise TypeError(f"Operation {operation!r} is not a {operation_enum.__name__}")
        if source in terminal:
            raise ValueError(f"Terminal status {source.value} cannot have outgoing transitions")
    sources = {source for source, _ in table}
    for status in status_enum:
        if status not in terminal and status not in sources:
            raise ValueError(f"Status {status.value} has no outgoing transition and is not terminal")


_check_transition_table(CLAIM_TRANSITIONS, ClaimStatus, ApprovalOperation, CLAIM_TERMINAL_STATUSES)
_check_transition_table(DISPUTE_TRANSITIONS, DisputeStatus, ApprovalOperation, DISPUTE_TERMINAL_STATUSES)
_check_transition_table(REFUND_TRANSITIONS, RefundStatus, RefundOperation, REFUND_TERMINAL_STATUSES)


# ===========================================
# CLAIM
# ===========================================

class Claim(BaseModel, AuditMixin):
    """
    Employee request for a payroll correction (e.g. a missing allowance).

    `amount` never changes after creation; `approved_amount` is only set
    once a payroll specialist approves.
    """

    __tablename__ = "payroll_claims"

    claim_number: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True,
        comment="Human readable reference, CLAIM-<year>-<seq>",
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    finance_staff_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id"), nullable=True,
    )
    payroll_specialist_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id"), nullable=True,
    )
    payroll_manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id"), nullable=True,
    )

    claim_type: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Amounts
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    approved_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2), nullable=True,
    )

    status: Mapped[ClaimStatus] = mapped_column(
        SQLEnum(ClaimStatus),
        default=ClaimStatus.PENDING,
        nullable=False,
        index=True,
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolution_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    specialist_decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Claim(id={self.id}, number={self.claim_number}, status={self.status})>"


# ===========================================
# DISPUTE
# ===========================================

class Dispute(BaseModel, AuditMixin):
    """
    Employee objection to a payslip line.

    `payroll_run_id` is copied from the payslip when the dispute is raised,
    so a refund can be kept out of the run that was already paid.
    """

    __tablename__ = "payroll_disputes"

    dispute_number: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True,
        comment="Human readable reference, DISP-<year>-<seq>",
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payslip_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("payslips.id"),
        nullable=False,
        index=True,
    )
    payroll_run_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    finance_staff_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id"), nullable=True,
    )
    payroll_specialist_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id"), nullable=True,
    )
    payroll_manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id"), nullable=True,
    )

    description: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[DisputeStatus] = mapped_column(
        SQLEnum(DisputeStatus),
        default=DisputeStatus.PENDING,
        nullable=False,
        index=True,
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolution_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    specialist_decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Dispute(id={self.id}, number={self.dispute_number}, status={self.status})>"


# ===========================================
# REFUND
# ===========================================

class Refund(BaseModel, AuditMixin):
    """
    Money owed back to an employee, paid through a payroll run.

    claim_id and dispute_id are unique so a source can only ever produce
    one refund; both are NULL for refunds finance raises directly.
    """

    __tablename__ = "payroll_refunds"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    finance_staff_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id"), nullable=True,
    )
    claim_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("payroll_claims.id"), nullable=True, unique=True,
    )
    dispute_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("payroll_disputes.id"), nullable=True, unique=True,
    )

    # Refund details
    refund_description: Mapped[str] = mapped_column(Text, nullable=False)
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)

    status: Mapped[RefundStatus] = mapped_column(
        SQLEnum(RefundStatus),
        default=RefundStatus.PENDING,
        nullable=False,
        index=True,
    )
    paid_in_payroll_run_id: Mapped[Optional[str]] = mapped_column(
        String(50), ForeignKey("payroll_runs.run_id"), nullable=True,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    processed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Refund(id={self.id}, amount={self.refund_amount}, status={self.status})>"
