"""
Payroll Readiness Engine - Refund Service

Generates refunds from confirmed claims/disputes (or directly for
finance) and pays them out through an open payroll run. This is the only
place that marks money as paid in a payroll run.
"""

import uuid
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notification import NotificationType
from app.models.payroll_tracking import (
    Claim, ClaimStatus, Dispute, DisputeStatus, Refund, RefundStatus,
    RefundOperation, REFUND_TRANSITIONS,
)
from app.services.audit_service import ActorId, AuditTrailService, as_uuid
from app.services.employee_directory import EmployeeDirectory
from app.services.notification_service import NotificationService
from app.services.payroll_run_registry import PayrollRunRegistry
from app.services.state_machine import apply_transition, load_or_404
from app.utils.error_handling import (
    ConflictException,
    InvalidAmountException,
    InvalidStateTransitionException,
    NotFoundException,
    ValidationException,
    require_text,
    validate_amount,
)

logger = logging.getLogger(__name__)


class RefundService:
    """Service for refund generation and processing."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditTrailService(db)
        self.notifications = NotificationService(db)
        self.directory = EmployeeDirectory(db)
        self.runs = PayrollRunRegistry(db)

    def _refund_fields(self, refund_details: Dict[str, Any], default_amount=None):
        """Validate {description, amount}; amount falls back to `default_amount`."""
        if not isinstance(refund_details, dict):
            raise ValidationException("Refund details are required", field="refund_details")
        description = require_text(refund_details.get("description"), "refund_details.description",
                                    "Refund description")
        raw_amount = refund_details.get("amount", default_amount)
        if raw_amount is None:
            raise ValidationException("Refund amount is required", field="refund_details.amount")
        amount = validate_amount(raw_amount, "refund_details.amount")
        if amount <= 0:
            raise InvalidAmountException(amount, "refund_details.amount", "Refund amount must be greater than zero")
        return description, amount

    async def _insert_refund(self, refund: Refund, source: str) -> Refund:
        self.db.add(refund)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictException(
                f"A refund has already been generated for this {source}",
                resource_type="Refund",
            )
        return refund

    # ===========================================
    # GENERATION
    # ===========================================

    async def generate_refund_for_claim(
        self,
        claim_id: uuid.UUID,
        refund_details: Dict[str, Any],
        finance_staff_id: Optional[uuid.UUID] = None,
        actor_id: ActorId = None,
    ) -> Refund:
        """
        Create a PENDING refund for a CONFIRMED claim.

        The amount defaults to the claim's approved amount. A claim can
        produce at most one refund.
        """
        claim = await load_or_404(self.db, Claim, claim_id, "Claim")
        if claim.status != ClaimStatus.CONFIRMED:
            raise InvalidStateTransitionException(
                resource_type="Claim",
                current_state=claim.status.value,
                attempted_operation="generate_refund",
                message="Only confirmed items can be refunded",
                remediation="Confirm the claim through the approval chain before generating a refund",
                resource_id=claim.id,
            )

        existing = await self.db.execute(select(Refund.id).where(Refund.claim_id == claim.id))
        if existing.scalar_one_or_none() is not None:
            raise ConflictException(
                f"A refund has already been generated for claim {claim.claim_number}",
                resource_type="Refund",
                details={"claim_id": str(claim.id)},
            )

        description, amount = self._refund_fields(refund_details, claim.approved_amount)
        refund = await self._insert_refund(
            Refund(
                employee_id=claim.employee_id,
                finance_staff_id=finance_staff_id or claim.finance_staff_id,
                claim_id=claim.id,
                refund_description=description,
                refund_amount=amount,
                status=RefundStatus.PENDING,
                created_by_id=as_uuid(actor_id),
            ),
            "claim",
        )
        await self.audit.record(
            "refund.generated",
            {"source": "claim", "claim_id": claim.id, "amount": amount},
            actor_id=actor_id,
            entity_id=refund.id,
        )
        await self.db.commit()

        logger.info(f"Refund {refund.id} generated for claim {claim.claim_number} ({amount})")
        return refund

    async def generate_refund_for_dispute(
        self,
        dispute_id: uuid.UUID,
        refund_details: Dict[str, Any],
        finance_staff_id: Optional[uuid.UUID] = None,
        actor_id: ActorId = None,
    ) -> Refund:
        """Create a PENDING refund for a CONFIRMED dispute. At most one per dispute."""
        dispute = await load_or_404(self.db, Dispute, dispute_id, "Dispute")
        if dispute.status != DisputeStatus.CONFIRMED:
            raise InvalidStateTransitionException(
                resource_type="Dispute",
                current_state=dispute.status.value,
                attempted_operation="generate_refund",
                message="Only confirmed items can be refunded",
                remediation="Confirm the dispute through the approval chain before generating a refund",
                resource_id=dispute.id,
            )

        existing = await self.db.execute(select(Refund.id).where(Refund.dispute_id == dispute.id))
        if existing.scalar_one_or_none() is not None:
            raise ConflictException(
                f"A refund has already been generated for dispute {dispute.dispute_number}",
                resource_type="Refund",
                details={"dispute_id": str(dispute.id)},
            )

        description, amount = self._refund_fields(refund_details)
        refund = await self._insert_refund(
            Refund(
                employee_id=dispute.employee_id,
                finance_staff_id=finance_staff_id or dispute.finance_staff_id,
                dispute_id=dispute.id,
                refund_description=description,
                refund_amount=amount,
                status=RefundStatus.PENDING,
                created_by_id=as_uuid(actor_id),
            ),
            "dispute",
        )
        await self.audit.record(
            "refund.generated",
            {"source": "dispute", "dispute_id": dispute.id, "amount": amount},
            actor_id=actor_id,
            entity_id=refund.id,
        )
        await self.db.commit()

        logger.info(f"Refund {refund.id} generated for dispute {dispute.dispute_number} ({amount})")
        return refund

    async def create_refund(
        self,
        employee_id: uuid.UUID,
        refund_details: Dict[str, Any],
        finance_staff_id: Optional[uuid.UUID] = None,
        actor_id: ActorId = None,
    ) -> Refund:
        """Finance-initiated refund with no claim or dispute behind it."""
        await self.directory.require_employee(employee_id)
        description, amount = self._refund_fields(refund_details)

        refund = Refund(
            employee_id=employee_id,
            finance_staff_id=finance_staff_id,
            refund_description=description,
            refund_amount=amount,
            status=RefundStatus.PENDING,
            created_by_id=as_uuid(actor_id),
        )
        self.db.add(refund)
        await self.db.flush()
        await self.audit.record(
            "refund.created",
            {"source": "direct", "employee_id": employee_id, "amount": amount},
            actor_id=actor_id,
            entity_id=refund.id,
        )
        await self.db.commit()

        logger.info(f"Direct refund {refund.id} created for employee {employee_id} ({amount})")
        return refund

    # ===========================================
    # PROCESSING
    # ===========================================

    async def get_refund(self, refund_id: uuid.UUID) -> Refund:
        return await load_or_404(self.db, Refund, refund_id, "Refund")

    async def process_refund(
        self,
        refund_id: uuid.UUID,
        payroll_run_id: str,
        actor_id: ActorId = None,
    ) -> Refund:
        """
        PENDING -> PROCESSED, paying the refund in `payroll_run_id`.

        Repeating the call with the same run returns the refund unchanged;
        a different run is rejected. A dispute refund is never paid in the
        run of the payslip it disputes.
        """
        payroll_run_id = require_text(payroll_run_id, "payroll_run_id", "Payroll run id")
        refund = await self.get_refund(refund_id)

        if refund.status == RefundStatus.PROCESSED:
            return self._already_processed(refund, payroll_run_id)

        if not await self.runs.is_open_run(payroll_run_id):
            run = await self.runs.get_run(payroll_run_id)
            if run is None:
                raise NotFoundException("PayrollRun", payroll_run_id)
            next_run = await self.runs.next_open_run()
            raise ValidationException(
                f"Payroll run {payroll_run_id} is {run.status.value} and cannot take new payments",
                field="payroll_run_id",
                details={
                    "run_status": run.status.value,
                    "next_open_run": next_run.run_id if next_run else None,
                    "remediation": "Process the refund in an open payroll run",
                },
            )

        if refund.dispute_id is not None:
            dispute = await load_or_404(self.db, Dispute, refund.dispute_id, "Dispute")
            if dispute.payroll_run_id == payroll_run_id:
                next_run = await self.runs.next_open_run(exclude_run_id=payroll_run_id)
                raise ValidationException(
                    f"Refund for dispute {dispute.dispute_number} cannot be paid in run {payroll_run_id}, "
                    f"the run of the disputed payslip",
                    field="payroll_run_id",
                    details={
                        "disputed_run": payroll_run_id,
                        "next_open_run": next_run.run_id if next_run else None,
                        "remediation": "Process the refund in the next open payroll run",
                    },
                )

        try:
            refund = await apply_transition(
                self.db, Refund, REFUND_TRANSITIONS, "Refund", refund, RefundOperation.PROCESS,
                {
                    "paid_in_payroll_run_id": payroll_run_id,
                    "processed_at": datetime.utcnow(),
                    "processed_by_id": as_uuid(actor_id),
                    "updated_by_id": as_uuid(actor_id),
                },
            )
        except InvalidStateTransitionException:
            # Lost a race: fine if the winner used the same run
            current = await load_or_404(self.db, Refund, refund_id, "Refund", refresh=True)
            if current.status == RefundStatus.PROCESSED:
                return self._already_processed(current, payroll_run_id)
            raise

        await self.audit.record(
            "refund.processed",
            {"payroll_run_id": payroll_run_id, "amount": refund.refund_amount},
            actor_id=actor_id,
            entity_id=refund.id,
        )
        await self.db.commit()
        logger.info(f"Refund {refund.id} processed in payroll run {payroll_run_id}")

        await self.notifications.send(
            recipient_id=refund.employee_id,
            notification_type=NotificationType.REFUND_PROCESSED,
            message=(
                f"Your refund of {refund.refund_amount} ({refund.refund_description}) "
                f"will be paid in payroll run {payroll_run_id}."
            ),
            metadata={"refund_id": str(refund.id), "payroll_run_id": payroll_run_id},
        )
        # A failed send rolls the session back; hand back a fresh row
        return await load_or_404(self.db, Refund, refund_id, "Refund", refresh=True)

    def _already_processed(self, refund: Refund, payroll_run_id: str) -> Refund:
        if refund.paid_in_payroll_run_id == payroll_run_id:
            return refund
        raise InvalidStateTransitionException(
            resource_type="Refund",
            current_state=refund.status.value,
            attempted_operation=RefundOperation.PROCESS.value,
            message=(
                f"Refund {refund.id} was already processed in payroll run "
                f"{refund.paid_in_payroll_run_id}; it cannot be paid again in {payroll_run_id}"
            ),
            remediation="Create a new refund for any further adjustment",
            resource_id=refund.id,
        )

    async def get_pending_refunds(self, employee_id: Optional[uuid.UUID] = None) -> List[Refund]:
        query = select(Refund).where(Refund.status == RefundStatus.PENDING)
        if employee_id:
            query = query.where(Refund.employee_id == employee_id)
        result = await self.db.execute(query.order_by(Refund.created_at, Refund.id))
        return list(result.scalars().all())


def get_refund_service(db: AsyncSession) -> RefundService:
    """Factory function for RefundService"""
    return RefundService(db)
