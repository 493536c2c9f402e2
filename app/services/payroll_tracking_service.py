"""
Payroll Readiness Engine - Payroll Tracking Service

Claims and disputes: creation and the two-step approval chain
(payroll specialist decides, payroll manager confirms).

Every transition is committed before notifications go out; a failed
notification never undoes a committed transition, and the row is re-read
before it is returned.
"""

import uuid
import logging
from datetime import datetime
from typing import Any, Callable, List, Optional, Type

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.employee import SystemRole
from app.models.notification import NotificationType
from app.models.payroll_tracking import (
    Claim, ClaimStatus, Dispute, DisputeStatus, Refund,
    ApprovalOperation, CLAIM_TRANSITIONS, DISPUTE_TRANSITIONS,
)
from app.services.audit_service import ActorId, AuditTrailService, as_uuid
from app.services.employee_directory import EmployeeDirectory
from app.services.notification_service import NotificationService
from app.services.payroll_run_registry import PayrollRunRegistry
from app.services.state_machine import apply_transition, load_or_404, next_status
from app.utils.error_handling import (
    ConflictException,
    InvalidAmountException,
    NotFoundException,
    ValidationException,
    require_text,
    validate_amount,
)

logger = logging.getLogger(__name__)


class PayrollTrackingService:
    """Service for claim and dispute operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditTrailService(db)
        self.notifications = NotificationService(db)
        self.directory = EmployeeDirectory(db)
        self.runs = PayrollRunRegistry(db)

    # ===========================================
    # REFERENCE NUMBERS
    # ===========================================

    async def _next_reference(self, model: Type, column, prefix: str) -> str:
        """Next <PREFIX>-<year>-<seq:04d> for the current year."""
        year = datetime.utcnow().year
        result = await self.db.execute(
            select(func.count()).select_from(model).where(column.like(f"{prefix}-{year}-%"))
        )
        count = result.scalar() or 0
        return f"{prefix}-{year}-{count + 1:04d}"

    async def _add_numbered(self, build: Callable[[str], Any], model: Type, column, prefix: str):
        """
        Add and flush the row `build(reference)` returns.

        Two writers can compute the same reference; the loser rolls back and
        numbers again once before giving up with a conflict.
        """
        for attempt in range(2):
            item = build(await self._next_reference(model, column, prefix))
            self.db.add(item)
            try:
                await self.db.flush()
                return item
            except IntegrityError:
                await self.db.rollback()
                logger.warning(f"{prefix} reference collided on attempt {attempt + 1}")
        raise ConflictException(
            f"Could not allocate a unique {prefix} reference, retry the request",
            resource_type=model.__name__,
        )

    # ===========================================
    # CLAIMS
    # ===========================================

    async def create_claim(
        self,
        employee_id: uuid.UUID,
        claim_type: str,
        description: str,
        amount: Any,
        finance_staff_id: Optional[uuid.UUID] = None,
        actor_id: ActorId = None,
    ) -> Claim:
        """Create a claim in PENDING status for an active employee."""
        await self.directory.require_employee(employee_id)

        claim_type = require_text(claim_type, "claim_type", "Claim type")
        description = require_text(description, "description", "Claim description")
        amount = validate_amount(amount, "amount")
        if amount <= 0:
            raise InvalidAmountException(amount, "amount", "Claim amount must be greater than zero")
        if amount > settings.max_claim_amount:
            raise InvalidAmountException(
                amount, "amount", f"Claim amount cannot exceed {settings.max_claim_amount:,}",
            )

        claim = await self._add_numbered(
            lambda number: Claim(
                claim_number=number,
                employee_id=employee_id,
                finance_staff_id=finance_staff_id,
                claim_type=claim_type,
                description=description,
                amount=amount,
                status=ClaimStatus.PENDING,
                created_by_id=as_uuid(actor_id),
            ),
            Claim, Claim.claim_number, "CLAIM",
        )
        await self.audit.record(
            "claim.created",
            {"claim_number": claim.claim_number, "amount": amount, "claim_type": claim_type},
            actor_id=actor_id,
            entity_id=claim.id,
        )
        await self.db.commit()

        logger.info(f"Claim {claim.claim_number} created for employee {employee_id} ({amount})")
        return claim

    async def get_claim(self, claim_id: uuid.UUID) -> Claim:
        return await load_or_404(self.db, Claim, claim_id, "Claim")

    async def approve_claim_by_specialist(
        self,
        claim_id: uuid.UUID,
        approved_amount: Any = None,
        comment: Optional[str] = None,
        actor_id: ActorId = None,
    ) -> Claim:
        """
        PENDING -> APPROVED_BY_SPECIALIST.

        approved_amount defaults to the requested amount and must satisfy
        0 < approved_amount <= amount.
        """
        claim = await self.get_claim(claim_id)
        # Reject decided claims before looking at the amount
        next_status(CLAIM_TRANSITIONS, "Claim", claim, ApprovalOperation.APPROVE_BY_SPECIALIST)
        if approved_amount is None:
            approved_amount = claim.amount
        approved_amount = validate_amount(approved_amount, "approved_amount")
        if approved_amount <= 0:
            raise InvalidAmountException(
                approved_amount, "approved_amount", "Approved amount must be greater than zero",
            )
        if approved_amount > claim.amount:
            raise ValidationException(
                f"Approved amount {approved_amount} exceeds the claimed amount {claim.amount}",
                field="approved_amount",
                details={"claimed_amount": str(claim.amount), "approved_amount": str(approved_amount)},
            )

        claim = await apply_transition(
            self.db, Claim, CLAIM_TRANSITIONS, "Claim", claim, ApprovalOperation.APPROVE_BY_SPECIALIST,
            {
                "approved_amount": approved_amount,
                "resolution_comment": comment,
                "payroll_specialist_id": as_uuid(actor_id),
                "specialist_decided_at": datetime.utcnow(),
                "updated_by_id": as_uuid(actor_id),
            },
        )
        await self._finish_transition(claim, "claim", ApprovalOperation.APPROVE_BY_SPECIALIST, actor_id,
                                      {"approved_amount": approved_amount, "comment": comment})
        await self._notify_employee(
            claim, NotificationType.CLAIM_STATUS_CHANGED,
            f"Your claim {claim.claim_number} was approved by a payroll specialist "
            f"for {approved_amount}. It is awaiting manager confirmation.",
        )
        return await self._reload(Claim, claim_id, "Claim")

    async def reject_claim_by_specialist(
        self,
        claim_id: uuid.UUID,
        reason: str,
        actor_id: ActorId = None,
    ) -> Claim:
        """PENDING -> REJECTED_BY_SPECIALIST (final)."""
        reason = require_text(reason, "reason", "Rejection reason")
        claim = await self.get_claim(claim_id)
        claim = await apply_transition(
            self.db, Claim, CLAIM_TRANSITIONS, "Claim", claim, ApprovalOperation.REJECT_BY_SPECIALIST,
            {
                "rejection_reason": reason,
                "payroll_specialist_id": as_uuid(actor_id),
                "specialist_decided_at": datetime.utcnow(),
                "updated_by_id": as_uuid(actor_id),
            },
        )
        await self._finish_transition(claim, "claim", ApprovalOperation.REJECT_BY_SPECIALIST, actor_id,
                                      {"reason": reason})
        await self._notify_employee(
            claim, NotificationType.CLAIM_STATUS_CHANGED,
            f"Your claim {claim.claim_number} was rejected. Reason: {reason}",
        )
        return await self._reload(Claim, claim_id, "Claim")

    async def confirm_claim_approval(
        self,
        claim_id: uuid.UUID,
        actor_id: ActorId = None,
        comment: Optional[str] = None,
    ) -> Claim:
        """APPROVED_BY_SPECIALIST -> CONFIRMED. Finance is told the claim is ready for refund."""
        claim = await self.get_claim(claim_id)
        values = {
            "payroll_manager_id": as_uuid(actor_id),
            "confirmed_at": datetime.utcnow(),
            "updated_by_id": as_uuid(actor_id),
        }
        if comment:
            values["resolution_comment"] = comment
        claim = await apply_transition(
            self.db, Claim, CLAIM_TRANSITIONS, "Claim", claim, ApprovalOperation.CONFIRM_APPROVAL, values,
        )
        await self._finish_transition(claim, "claim", ApprovalOperation.CONFIRM_APPROVAL, actor_id,
                                      {"comment": comment})
        finance_staff_id = claim.finance_staff_id
        finance_message = f"Claim {claim.claim_number} for {claim.approved_amount} is confirmed and ready for refund."
        finance_metadata = {"claim_id": str(claim.id), "approved_amount": str(claim.approved_amount)}
        await self._notify_employee(
            claim, NotificationType.CLAIM_STATUS_CHANGED,
            f"Your claim {claim.claim_number} has been confirmed by the payroll manager. "
            f"A refund of {claim.approved_amount} will be processed.",
        )
        await self._notify_finance(finance_staff_id, finance_message, finance_metadata)
        return await self._reload(Claim, claim_id, "Claim")

    async def get_confirmed_claims_for_finance(self) -> List[Claim]:
        """Confirmed claims that have not produced a refund yet."""
        refunded = select(Refund.claim_id).where(Refund.claim_id.is_not(None))
        result = await self.db.execute(
            select(Claim)
            .where(Claim.status == ClaimStatus.CONFIRMED)
            .where(Claim.id.not_in(refunded))
            .order_by(Claim.confirmed_at, Claim.claim_number)
        )
        return list(result.scalars().all())

    # ===========================================
    # DISPUTES
    # ===========================================

    async def create_dispute(
        self,
        employee_id: uuid.UUID,
        payslip_id: uuid.UUID,
        description: str,
        finance_staff_id: Optional[uuid.UUID] = None,
        actor_id: ActorId = None,
    ) -> Dispute:
        """
        Create a dispute against one of the employee's payslips.

        The payslip may already be paid; its run is recorded so the refund
        can later be kept out of that run.
        """
        await self.directory.require_employee(employee_id)

        description = (description or "").strip()
        if len(description) < settings.min_dispute_description_length:
            raise ValidationException(
                f"Dispute description must be at least {settings.min_dispute_description_length} characters",
                field="description",
            )

        payslip = await self.runs.get_payslip(payslip_id)
        if payslip is None or payslip.employee_id != employee_id:
            raise NotFoundException(
                "Payslip", payslip_id,
                message=f"Payslip '{payslip_id}' not found for employee '{employee_id}'",
            )

        payroll_run_id = payslip.payroll_run_id
        dispute = await self._add_numbered(
            lambda number: Dispute(
                dispute_number=number,
                employee_id=employee_id,
                payslip_id=payslip_id,
                payroll_run_id=payroll_run_id,
                finance_staff_id=finance_staff_id,
                description=description,
                status=DisputeStatus.PENDING,
                created_by_id=as_uuid(actor_id),
            ),
            Dispute, Dispute.dispute_number, "DISP",
        )
        await self.audit.record(
            "dispute.created",
            {"dispute_number": dispute.dispute_number, "payslip_id": payslip_id,
             "payroll_run_id": payroll_run_id},
            actor_id=actor_id,
            entity_id=dispute.id,
        )
        await self.db.commit()

        logger.info(f"Dispute {dispute.dispute_number} raised by employee {employee_id} on payslip {payslip_id}")
        return dispute

    async def get_dispute(self, dispute_id: uuid.UUID) -> Dispute:
        return await load_or_404(self.db, Dispute, dispute_id, "Dispute")

    async def approve_dispute_by_specialist(
        self,
        dispute_id: uuid.UUID,
        comment: Optional[str] = None,
        actor_id: ActorId = None,
    ) -> Dispute:
        """PENDING -> APPROVED_BY_SPECIALIST."""
        dispute = await self.get_dispute(dispute_id)
        dispute = await apply_transition(
            self.db, Dispute, DISPUTE_TRANSITIONS, "Dispute", dispute, ApprovalOperation.APPROVE_BY_SPECIALIST,
            {
                "resolution_comment": comment,
                "payroll_specialist_id": as_uuid(actor_id),
                "specialist_decided_at": datetime.utcnow(),
                "updated_by_id": as_uuid(actor_id),
            },
        )
        await self._finish_transition(dispute, "dispute", ApprovalOperation.APPROVE_BY_SPECIALIST, actor_id,
                                      {"comment": comment})
        await self._notify_employee(
            dispute, NotificationType.DISPUTE_STATUS_CHANGED,
            f"Your dispute {dispute.dispute_number} was approved by a payroll specialist "
            f"and is awaiting manager confirmation.",
        )
        return await self._reload(Dispute, dispute_id, "Dispute")

    async def reject_dispute_by_specialist(
        self,
        dispute_id: uuid.UUID,
        reason: str,
        actor_id: ActorId = None,
    ) -> Dispute:
        """PENDING -> REJECTED_BY_SPECIALIST (final)."""
        reason = require_text(reason, "reason", "Rejection reason")
        dispute = await self.get_dispute(dispute_id)
        dispute = await apply_transition(
            self.db, Dispute, DISPUTE_TRANSITIONS, "Dispute", dispute, ApprovalOperation.REJECT_BY_SPECIALIST,
            {
                "rejection_reason": reason,
                "payroll_specialist_id": as_uuid(actor_id),
                "specialist_decided_at": datetime.utcnow(),
                "updated_by_id": as_uuid(actor_id),
            },
        )
        await self._finish_transition(dispute, "dispute", ApprovalOperation.REJECT_BY_SPECIALIST, actor_id,
                                      {"reason": reason})
        await self._notify_employee(
            dispute, NotificationType.DISPUTE_STATUS_CHANGED,
            f"Your dispute {dispute.dispute_number} was rejected. Reason: {reason}",
        )
        return await self._reload(Dispute, dispute_id, "Dispute")

    async def confirm_dispute_approval(
        self,
        dispute_id: uuid.UUID,
        actor_id: ActorId = None,
        comment: Optional[str] = None,
    ) -> Dispute:
        """APPROVED_BY_SPECIALIST -> CONFIRMED."""
        dispute = await self.get_dispute(dispute_id)
        values = {
            "payroll_manager_id": as_uuid(actor_id),
            "confirmed_at": datetime.utcnow(),
            "updated_by_id": as_uuid(actor_id),
        }
        if comment:
            values["resolution_comment"] = comment
        dispute = await apply_transition(
            self.db, Dispute, DISPUTE_TRANSITIONS, "Dispute", dispute, ApprovalOperation.CONFIRM_APPROVAL, values,
        )
        await self._finish_transition(dispute, "dispute", ApprovalOperation.CONFIRM_APPROVAL, actor_id,
                                      {"comment": comment})
        finance_staff_id = dispute.finance_staff_id
        finance_message = f"Dispute {dispute.dispute_number} is confirmed and ready for refund."
        finance_metadata = {"dispute_id": str(dispute.id), "payroll_run_id": dispute.payroll_run_id}
        await self._notify_employee(
            dispute, NotificationType.DISPUTE_STATUS_CHANGED,
            f"Your dispute {dispute.dispute_number} has been confirmed by the payroll manager.",
        )
        await self._notify_finance(finance_staff_id, finance_message, finance_metadata)
        return await self._reload(Dispute, dispute_id, "Dispute")

    async def get_confirmed_disputes_for_finance(self) -> List[Dispute]:
        """Confirmed disputes that have not produced a refund yet."""
        refunded = select(Refund.dispute_id).where(Refund.dispute_id.is_not(None))
        result = await self.db.execute(
            select(Dispute)
            .where(Dispute.status == DisputeStatus.CONFIRMED)
            .where(Dispute.id.not_in(refunded))
            .order_by(Dispute.confirmed_at, Dispute.dispute_number)
        )
        return list(result.scalars().all())

    # ===========================================
    # HELPERS
    # ===========================================

    async def _finish_transition(self, item, kind: str, operation: ApprovalOperation, actor_id: ActorId, extra: dict):
        await self.audit.record(
            f"{kind}.{operation.value}",
            {"status": item.status.value, **extra},
            actor_id=actor_id,
            entity_id=item.id,
        )
        await self.db.commit()
        logger.info(f"{kind.title()} {item.id} -> {item.status.value} by {actor_id or 'system'}")

    async def _reload(self, model: Type, entity_id: uuid.UUID, resource_type: str):
        # A failed notification rolls the session back, expiring every loaded row
        return await load_or_404(self.db, model, entity_id, resource_type, refresh=True)

    async def _notify_employee(self, item, notification_type: NotificationType, message: str) -> None:
        await self.notifications.send(
            recipient_id=item.employee_id,
            notification_type=notification_type,
            message=message,
            metadata={"id": str(item.id), "status": item.status.value},
        )

    async def _notify_finance(self, finance_staff_id: Optional[uuid.UUID], message: str, metadata: dict) -> None:
        if finance_staff_id:
            await self.notifications.send(
                recipient_id=finance_staff_id,
                notification_type=NotificationType.READY_FOR_REFUND,
                message=message,
                metadata=metadata,
            )
        else:
            await self.notifications.send_to_role(
                SystemRole.FINANCE_STAFF,
                NotificationType.READY_FOR_REFUND,
                message,
                metadata=metadata,
            )


def get_payroll_tracking_service(db: AsyncSession) -> PayrollTrackingService:
    """Factory function for PayrollTrackingService"""
    return PayrollTrackingService(db)
