"""
Payroll Readiness Engine - Payroll Run & Payslip Models

Payroll runs and payslips belong to the payroll-execution subsystem.
Refund processing only needs to know whether a run is still open and
which run a disputed payslip was paid in.
"""

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, ForeignKey, Numeric, String, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class PayrollRunStatus(str, Enum):
    """Payroll run lifecycle."""
    DRAFT = "draft"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    PAID = "paid"
    LOCKED = "locked"


# Runs in these states have paid out (or been frozen) and accept no new items
CLOSED_RUN_STATUSES = frozenset({PayrollRunStatus.PAID, PayrollRunStatus.LOCKED})


class PayslipPaymentStatus(str, Enum):
    """Payslip payment status."""
    PENDING = "pending"
    PAID = "paid"


class PayrollRun(BaseModel):
    """A monthly payroll run, identified by a human key such as RUN-2025-01."""

    __tablename__ = "payroll_runs"

    run_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[PayrollRunStatus] = mapped_column(
        SQLEnum(PayrollRunStatus),
        default=PayrollRunStatus.DRAFT,
        nullable=False,
        index=True,
    )

    @property
    def is_open(self) -> bool:
        return self.status not in CLOSED_RUN_STATUSES

    def __repr__(self) -> str:
        return f"<PayrollRun(run_id={self.run_id}, status={self.status})>"


class Payslip(BaseModel):
    """Payslip issued to one employee in one payroll run."""

    __tablename__ = "payslips"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payroll_run_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("payroll_runs.run_id"),
        nullable=False,
        index=True,
    )
    net_pay: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    payment_status: Mapped[PayslipPaymentStatus] = mapped_column(
        SQLEnum(PayslipPaymentStatus),
        default=PayslipPaymentStatus.PENDING,
        nullable=False,
    )
