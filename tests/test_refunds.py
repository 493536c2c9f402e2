"""
Payroll Readiness Engine - Refund Tests

Tests for refund generation and payout through payroll runs.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from app.models.notification import Notification, NotificationType
from app.models.payroll_tracking import RefundStatus
from app.services.notification_service import NotificationService
from app.services.payroll_run_registry import PayrollRunRegistry
from app.services.payroll_tracking_service import PayrollTrackingService
from app.services.refund_service import RefundService
from app.utils.error_handling import (
    ConflictException,
    InvalidAmountException,
    InvalidStateTransitionException,
    NotFoundException,
    ValidationException,
)


async def _confirmed_claim(db, employee, specialist, manager, amount="500", approved="400"):
    service = PayrollTrackingService(db)
    claim = await service.create_claim(
        employee.id, "missing_allowance", "Transport allowance missing", amount, actor_id=employee.id,
    )
    await service.approve_claim_by_specialist(claim.id, approved_amount=approved, actor_id=specialist.id)
    return await service.confirm_claim_approval(claim.id, actor_id=manager.id)


async def _confirmed_dispute(db, employee, payslip, specialist, manager):
    service = PayrollTrackingService(db)
    dispute = await service.create_dispute(employee.id, payslip.id, "Overtime hours were not paid")
    await service.approve_dispute_by_specialist(dispute.id, actor_id=specialist.id)
    return await service.confirm_dispute_approval(dispute.id, actor_id=manager.id)


class TestClaimRefunds:
    """Test refunds generated from claims."""

    @pytest.mark.asyncio
    async def test_end_to_end_partial_claim(
        self, db_session, employee, specialist, manager, finance_staff, payroll_runs,
    ):
        """500 requested, 400 approved, refund paid in the open January run."""
        claim = await _confirmed_claim(db_session, employee, specialist, manager)
        refunds = RefundService(db_session)

        refund = await refunds.generate_refund_for_claim(
            claim.id, {"description": "Transport allowance"}, finance_staff_id=finance_staff.id,
            actor_id=finance_staff.id,
        )
        assert refund.status == RefundStatus.PENDING
        assert refund.refund_amount == Decimal("400.00")
        assert refund.claim_id == claim.id
        assert refund.dispute_id is None
        assert refund.paid_in_payroll_run_id is None

        refund = await refunds.process_refund(refund.id, "RUN-2025-01", actor_id=finance_staff.id)
        assert refund.status == RefundStatus.PROCESSED
        assert refund.paid_in_payroll_run_id == "RUN-2025-01"
        assert refund.processed_at is not None

        notes, _ = await NotificationService(db_session).get_notifications(
            employee.id, notification_type=NotificationType.REFUND_PROCESSED,
        )
        assert len(notes) == 1
        assert "RUN-2025-01" in notes[0].message

    @pytest.mark.asyncio
    async def test_explicit_amount(self, db_session, employee, specialist, manager, payroll_runs):
        claim = await _confirmed_claim(db_session, employee, specialist, manager)
        refund = await RefundService(db_session).generate_refund_for_claim(
            claim.id, {"description": "Transport allowance", "amount": "350.50"},
        )
        assert refund.refund_amount == Decimal("350.50")

    @pytest.mark.asyncio
    async def test_only_confirmed_claims(self, db_session, employee, specialist):
        service = PayrollTrackingService(db_session)
        claim = await service.create_claim(employee.id, "bonus", "Missing bonus", "100")
        await service.approve_claim_by_specialist(claim.id, actor_id=specialist.id)

        with pytest.raises(InvalidStateTransitionException) as exc_info:
            await RefundService(db_session).generate_refund_for_claim(claim.id, {"description": "Bonus"})

        assert exc_info.value.message == "Only confirmed items can be refunded"
        assert exc_info.value.current_state == "approved_by_specialist"

    @pytest.mark.asyncio
    async def test_second_refund_conflicts(self, db_session, employee, specialist, manager, payroll_runs):
        claim = await _confirmed_claim(db_session, employee, specialist, manager)
        refunds = RefundService(db_session)
        await refunds.generate_refund_for_claim(claim.id, {"description": "Transport allowance"})

        with pytest.raises(ConflictException):
            await refunds.generate_refund_for_claim(claim.id, {"description": "Transport allowance"})

        confirmed = await PayrollTrackingService(db_session).get_confirmed_claims_for_finance()
        assert confirmed == []

    @pytest.mark.asyncio
    async def test_refund_requires_description(self, db_session, employee, specialist, manager):
        claim = await _confirmed_claim(db_session, employee, specialist, manager)
        with pytest.raises(ValidationException):
            await RefundService(db_session).generate_refund_for_claim(claim.id, {"amount": "100"})

    @pytest.mark.asyncio
    async def test_refund_amount_must_be_positive(self, db_session, employee, specialist, manager):
        claim = await _confirmed_claim(db_session, employee, specialist, manager)
        with pytest.raises(InvalidAmountException):
            await RefundService(db_session).generate_refund_for_claim(
                claim.id, {"description": "Transport allowance", "amount": "0"},
            )


class TestProcessRefund:
    """Test paying refunds in payroll runs."""

    @pytest.mark.asyncio
    async def test_same_run_twice_is_a_no_op(self, db_session, employee, specialist, manager, payroll_runs):
        claim = await _confirmed_claim(db_session, employee, specialist, manager)
        refunds = RefundService(db_session)
        refund = await refunds.generate_refund_for_claim(claim.id, {"description": "Transport allowance"})
        first = await refunds.process_refund(refund.id, "RUN-2025-01")

        second = await refunds.process_refund(refund.id, "RUN-2025-01")

        assert second.id == first.id
        assert second.paid_in_payroll_run_id == "RUN-2025-01"
        notes, total = await NotificationService(db_session).get_notifications(
            employee.id, notification_type=NotificationType.REFUND_PROCESSED,
        )
        assert total == 1

    @pytest.mark.asyncio
    async def test_different_run_after_processing(self, db_session, employee, specialist, manager, payroll_runs):
        claim = await _confirmed_claim(db_session, employee, specialist, manager)
        refunds = RefundService(db_session)
        refund = await refunds.generate_refund_for_claim(claim.id, {"description": "Transport allowance"})
        await refunds.process_refund(refund.id, "RUN-2025-01")

        with pytest.raises(InvalidStateTransitionException) as exc_info:
            await refunds.process_refund(refund.id, "RUN-2025-02")
        assert exc_info.value.current_state == "processed"

    @pytest.mark.asyncio
    async def test_closed_run_suggests_next_open_run(
        self, db_session, employee, specialist, manager, payroll_runs,
    ):
        claim = await _confirmed_claim(db_session, employee, specialist, manager)
        refunds = RefundService(db_session)
        refund = await refunds.generate_refund_for_claim(claim.id, {"description": "Transport allowance"})

        with pytest.raises(ValidationException) as exc_info:
            await refunds.process_refund(refund.id, "RUN-2024-12")

        assert exc_info.value.details["next_open_run"] == "RUN-2025-01"
        refund = await refunds.get_refund(refund.id)
        assert refund.status == RefundStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_run(self, db_session, employee, specialist, manager, payroll_runs):
        claim = await _confirmed_claim(db_session, employee, specialist, manager)
        refunds = RefundService(db_session)
        refund = await refunds.generate_refund_for_claim(claim.id, {"description": "Transport allowance"})

        with pytest.raises(NotFoundException):
            await refunds.process_refund(refund.id, "RUN-2099-01")

    @pytest.mark.asyncio
    async def test_open_run_gate(self, db_session, payroll_runs):
        runs = PayrollRunRegistry(db_session)

        assert await runs.is_open_run("RUN-2025-01") is True
        assert await runs.is_open_run("RUN-2024-12") is False
        assert await runs.is_open_run("RUN-2099-01") is False

    @pytest.mark.asyncio
    async def test_failed_notification_keeps_payment(
        self, db_session, employee, specialist, manager, payroll_runs, monkeypatch,
    ):
        claim = await _confirmed_claim(db_session, employee, specialist, manager)
        refunds = RefundService(db_session)
        refund_id = (await refunds.generate_refund_for_claim(claim.id, {"description": "Transport allowance"})).id
        real_commit = db_session.commit

        async def commit_refusing_notifications():
            if any(isinstance(obj, Notification) for obj in db_session.new):
                raise RuntimeError("notification store unavailable")
            await real_commit()

        monkeypatch.setattr(db_session, "commit", commit_refusing_notifications)
        refund = await refunds.process_refund(refund_id, "RUN-2025-01")

        assert refund.status == RefundStatus.PROCESSED
        assert refund.paid_in_payroll_run_id == "RUN-2025-01"
        assert refund.refund_amount == Decimal("400.00")

    @pytest.mark.asyncio
    async def test_unknown_refund(self, db_session, payroll_runs):
        with pytest.raises(NotFoundException):
            await RefundService(db_session).process_refund(uuid4(), "RUN-2025-01")


class TestDisputeRefunds:
    """Test refunds generated from disputes."""

    @pytest.mark.asyncio
    async def test_paid_payslip_refund_goes_to_open_run(
        self, db_session, employee, paid_payslip, specialist, manager,
    ):
        dispute = await _confirmed_dispute(db_session, employee, paid_payslip, specialist, manager)
        refunds = RefundService(db_session)
        refund = await refunds.generate_refund_for_dispute(
            dispute.id, {"description": "Unpaid overtime", "amount": "1200"},
        )
        assert refund.dispute_id == dispute.id
        assert refund.claim_id is None

        with pytest.raises(ValidationException):
            await refunds.process_refund(refund.id, "RUN-2024-12")

        refund = await refunds.process_refund(refund.id, "RUN-2025-01")
        assert refund.paid_in_payroll_run_id == "RUN-2025-01"

    @pytest.mark.asyncio
    async def test_not_paid_in_disputed_run(self, db_session, employee, open_payslip, specialist, manager):
        dispute = await _confirmed_dispute(db_session, employee, open_payslip, specialist, manager)
        refunds = RefundService(db_session)
        refund = await refunds.generate_refund_for_dispute(
            dispute.id, {"description": "Unpaid overtime", "amount": "1200"},
        )

        with pytest.raises(ValidationException) as exc_info:
            await refunds.process_refund(refund.id, "RUN-2025-01")

        assert exc_info.value.details["disputed_run"] == "RUN-2025-01"
        assert exc_info.value.details["next_open_run"] == "RUN-2025-02"

    @pytest.mark.asyncio
    async def test_dispute_refund_needs_amount(self, db_session, employee, paid_payslip, specialist, manager):
        dispute = await _confirmed_dispute(db_session, employee, paid_payslip, specialist, manager)
        with pytest.raises(ValidationException):
            await RefundService(db_session).generate_refund_for_dispute(
                dispute.id, {"description": "Unpaid overtime"},
            )

    @pytest.mark.asyncio
    async def test_second_dispute_refund_conflicts(self, db_session, employee, paid_payslip, specialist, manager):
        dispute = await _confirmed_dispute(db_session, employee, paid_payslip, specialist, manager)
        refunds = RefundService(db_session)
        await refunds.generate_refund_for_dispute(dispute.id, {"description": "Unpaid overtime", "amount": "10"})

        with pytest.raises(ConflictException):
            await refunds.generate_refund_for_dispute(dispute.id, {"description": "Again", "amount": "10"})


class TestDirectRefunds:
    """Test finance-initiated refunds."""

    @pytest.mark.asyncio
    async def test_direct_refund_has_no_source(self, db_session, employee, finance_staff, payroll_runs):
        refunds = RefundService(db_session)
        refund = await refunds.create_refund(
            employee.id, {"description": "Pension over-deduction", "amount": "75.25"},
            finance_staff_id=finance_staff.id, actor_id=finance_staff.id,
        )

        assert refund.claim_id is None
        assert refund.dispute_id is None
        assert refund.refund_amount == Decimal("75.25")

        pending = await refunds.get_pending_refunds(employee.id)
        assert [r.id for r in pending] == [refund.id]

        await refunds.process_refund(refund.id, "RUN-2025-02")
        assert await refunds.get_pending_refunds(employee.id) == []

    @pytest.mark.asyncio
    async def test_direct_refund_unknown_employee(self, db_session):
        with pytest.raises(NotFoundException):
            await RefundService(db_session).create_refund(uuid4(), {"description": "X", "amount": "1"})
