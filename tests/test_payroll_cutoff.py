"""
Payroll Readiness Engine - Payroll Cutoff Tests

Tests for cutoff arithmetic, urgency bands, auto-escalation, reminders and
readiness status.
"""

from datetime import date, datetime

import pytest

from app.models.notification import Notification, NotificationType
from app.models.time_management import TimeExceptionStatus, TimeExceptionType
from app.services.notification_service import NotificationService
from app.services.payroll_cutoff_service import (
    AUTO_ESCALATION_MARKER,
    EscalationKind,
    PayrollCutoffService,
    ReadinessStatus,
    Urgency,
    auto_escalation_annotation,
    categorize_urgency,
    days_until_cutoff,
    derive_readiness_status,
    next_cutoff_date,
    readiness_recommendations,
)
from app.utils.error_handling import InvalidStateTransitionException
from tests.helpers import add_exception

CUTOFF = date(2025, 1, 25)


def fixed_clock(value: datetime):
    return lambda: value


class TestCutoffArithmetic:
    """Test cutoff date and days remaining."""

    def test_cutoff_later_this_month(self):
        assert next_cutoff_date(25, datetime(2025, 1, 10, 9, 0)) == date(2025, 1, 25)

    def test_cutoff_today_counts(self):
        assert next_cutoff_date(25, datetime(2025, 1, 25, 18, 0)) == date(2025, 1, 25)

    def test_rolls_to_next_month(self):
        assert next_cutoff_date(25, datetime(2025, 1, 26, 0, 0)) == date(2025, 2, 25)

    def test_rolls_over_year_end(self):
        assert next_cutoff_date(25, datetime(2025, 12, 26, 8, 0)) == date(2026, 1, 25)

    def test_day_clamped_to_month_end(self):
        assert next_cutoff_date(31, datetime(2025, 2, 3, 8, 0)) == date(2025, 2, 28)
        assert next_cutoff_date(31, datetime(2024, 2, 3, 8, 0)) == date(2024, 2, 29)

    def test_days_until_cutoff_rounds_up(self):
        assert days_until_cutoff(CUTOFF, datetime(2025, 1, 22, 0, 0)) == 3
        assert days_until_cutoff(CUTOFF, datetime(2025, 1, 22, 12, 0)) == 3
        assert days_until_cutoff(CUTOFF, datetime(2025, 1, 24, 23, 0)) == 1
        assert days_until_cutoff(CUTOFF, datetime(2025, 1, 25, 10, 0)) == 0


class TestUrgency:
    """Test urgency bands."""

    @pytest.mark.parametrize("days,age,expected", [
        (2, 0, Urgency.CRITICAL),
        (10, 5, Urgency.CRITICAL),
        (5, 0, Urgency.HIGH),
        (10, 3, Urgency.HIGH),
        (10, 2, Urgency.MEDIUM),
        (6, 0, Urgency.MEDIUM),
    ])
    def test_categorize(self, days, age, expected):
        assert categorize_urgency(days, age) == expected


class TestReadinessDerivation:
    """Test readiness status and recommendations."""

    def test_statuses(self):
        assert derive_readiness_status(0, 0, 1) == ReadinessStatus.READY
        assert derive_readiness_status(3, 0, 1) == ReadinessStatus.CRITICAL
        assert derive_readiness_status(3, 0, 4) == ReadinessStatus.BLOCKED
        assert derive_readiness_status(0, 2, 1) == ReadinessStatus.WARNING

    def test_recommendations(self):
        assert readiness_recommendations(0, 0, 5) == ["All items processed - payroll can proceed"]
        assert readiness_recommendations(4, 0, 1) == [
            "URGENT: 4 pending items require immediate review",
            "Consider auto-escalation to expedite processing",
        ]
        assert readiness_recommendations(4, 0, 3) == [
            "Review 4 pending items within the next 2 days",
            "Send reminders to assigned reviewers",
        ]
        assert readiness_recommendations(0, 2, 2) == [
            "2 escalated items need HR/management attention",
            "Prioritize escalated items for resolution",
        ]

    def test_annotation_keeps_original_reason(self):
        text = auto_escalation_annotation("Forgot badge", datetime(2025, 1, 23, 9, 0), CUTOFF, 2)

        assert text.startswith("Forgot badge\n\n")
        assert AUTO_ESCALATION_MARKER in text
        assert "Payroll cutoff: 2025-01-25" in text
        assert text.endswith("Days until cutoff: 2")


class TestCutoffConfig:
    """Test the cutoff configuration view."""

    def test_current_month_band(self, db_session):
        service = PayrollCutoffService(db_session, clock=fixed_clock(datetime(2025, 1, 23, 9, 0)))

        config = service.get_cutoff_config()

        assert config["cutoff_schedule"]["day_of_month"] == 25
        assert config["current_month"]["cutoff_date"] == "2025-01-25"
        assert config["current_month"]["days_until_cutoff"] == 2
        assert config["current_month"]["status"] == "CRITICAL"


class TestPendingBeforeCutoff:
    """Test the pending report grouped by urgency."""

    @pytest.mark.asyncio
    async def test_grouped_by_age(self, db_session, employee):
        now = datetime(2025, 1, 10, 9, 0)
        old = await add_exception(db_session, employee.id, TimeExceptionType.LATE,
                                  created_at=datetime(2025, 1, 4, 8, 0))
        aging = await add_exception(db_session, employee.id, TimeExceptionType.MISSED_PUNCH,
                                    TimeExceptionStatus.PENDING, created_at=datetime(2025, 1, 7, 8, 0))
        fresh = await add_exception(db_session, employee.id, TimeExceptionType.SHORT_TIME,
                                    created_at=datetime(2025, 1, 10, 8, 0))
        await add_exception(db_session, employee.id, TimeExceptionType.LATE, TimeExceptionStatus.APPROVED,
                            created_at=datetime(2025, 1, 1, 8, 0))

        service = PayrollCutoffService(db_session, clock=fixed_clock(now))
        report = await service.get_pending_requests_before_cutoff(CUTOFF)

        assert report["payroll_cutoff"]["days_remaining"] == 15
        assert report["payroll_cutoff"]["status"] == "NORMAL"
        assert report["summary"] == {"total_pending": 3, "critical": 1, "high": 1, "medium": 1}
        assert [i["id"] for i in report["pending_by_urgency"]["critical"]] == [str(old.id)]
        assert [i["id"] for i in report["pending_by_urgency"]["high"]] == [str(aging.id)]
        assert [i["id"] for i in report["pending_by_urgency"]["medium"]] == [str(fresh.id)]
        assert report["recommendation"].startswith("IMMEDIATE ACTION REQUIRED")

    @pytest.mark.asyncio
    async def test_on_track(self, db_session, employee):
        await add_exception(db_session, employee.id, TimeExceptionType.LATE,
                            created_at=datetime(2025, 1, 10, 8, 0))
        service = PayrollCutoffService(db_session, clock=fixed_clock(datetime(2025, 1, 10, 9, 0)))

        report = await service.get_pending_requests_before_cutoff(CUTOFF)

        assert report["recommendation"] == "ON TRACK: All pending items can be processed before cutoff"


class TestAutoEscalate:
    """Test auto-escalation before the cutoff."""

    @pytest.mark.asyncio
    async def test_outside_window_is_a_no_op(self, db_session, employee):
        exc = await add_exception(db_session, employee.id, TimeExceptionType.LATE)
        service = PayrollCutoffService(db_session, clock=fixed_clock(datetime(2025, 1, 10, 9, 0)))

        result = await service.auto_escalate(CUTOFF, escalation_days_before=3)

        assert not result.in_window
        assert result.message == (
            "Not within escalation window. 15 days until cutoff, escalation starts 3 days before."
        )
        assert result.escalated == []
        await db_session.refresh(exc)
        assert exc.status == TimeExceptionStatus.OPEN

    @pytest.mark.asyncio
    async def test_escalates_unresolved_and_notifies_hr(self, db_session, employee, hr_manager):
        open_exc = await add_exception(db_session, employee.id, TimeExceptionType.LATE, reason="Traffic")
        pending = await add_exception(db_session, employee.id, TimeExceptionType.MISSED_PUNCH,
                                      TimeExceptionStatus.PENDING)
        approved = await add_exception(db_session, employee.id, TimeExceptionType.OVERTIME_REQUEST,
                                       TimeExceptionStatus.APPROVED)
        service = PayrollCutoffService(db_session, clock=fixed_clock(datetime(2025, 1, 23, 9, 0)))

        result = await service.auto_escalate(CUTOFF, escalation_days_before=3, notify_managers=True)

        assert result.in_window
        assert result.days_until_cutoff == 2
        assert {e["id"] for e in result.escalated} == {str(open_exc.id), str(pending.id)}
        assert result.failed == []
        assert result.notification_sent

        for exc in (open_exc, pending, approved):
            await db_session.refresh(exc)
        assert open_exc.status == TimeExceptionStatus.ESCALATED
        assert open_exc.reason.startswith("Traffic\n\n" + AUTO_ESCALATION_MARKER)
        assert "Days until cutoff: 2" in open_exc.reason
        assert pending.status == TimeExceptionStatus.ESCALATED
        assert approved.status == TimeExceptionStatus.APPROVED

        notes, total = await NotificationService(db_session).get_notifications(hr_manager.id)
        assert total == 1
        assert notes[0].notification_type == NotificationType.CUTOFF_ESCALATION
        assert notes[0].message.startswith("2 time management requests have been auto-escalated")

    @pytest.mark.asyncio
    async def test_no_notification_when_disabled(self, db_session, employee, hr_manager):
        await add_exception(db_session, employee.id, TimeExceptionType.LATE)
        service = PayrollCutoffService(db_session, clock=fixed_clock(datetime(2025, 1, 23, 9, 0)))

        result = await service.auto_escalate(CUTOFF, escalation_days_before=3, notify_managers=False)

        assert len(result.escalated) == 1
        assert not result.notification_sent
        _, total = await NotificationService(db_session).get_notifications(hr_manager.id)
        assert total == 0

    @pytest.mark.asyncio
    async def test_one_failure_does_not_block_others(self, db_session, employee, monkeypatch):
        bad = await add_exception(db_session, employee.id, TimeExceptionType.LATE,
                                  created_at=datetime(2025, 1, 20, 8, 0))
        good = await add_exception(db_session, employee.id, TimeExceptionType.EARLY_LEAVE,
                                   created_at=datetime(2025, 1, 21, 8, 0))
        bad_id, good_id = bad.id, good.id
        service = PayrollCutoffService(db_session, clock=fixed_clock(datetime(2025, 1, 23, 9, 0)))
        original = service._escalate_one

        async def flaky(item, *args):
            if item.id == bad_id:
                raise RuntimeError("write failed")
            return await original(item, *args)

        monkeypatch.setattr(service, "_escalate_one", flaky)
        result = await service.auto_escalate(CUTOFF, escalation_days_before=3, notify_managers=False)

        assert [e["id"] for e in result.escalated] == [str(good_id)]
        assert [f.item_id for f in result.failed] == [str(bad_id)]
        assert "write failed" in result.failed[0].reason

        await db_session.refresh(bad)
        await db_session.refresh(good)
        assert bad.status == TimeExceptionStatus.OPEN
        assert good.status == TimeExceptionStatus.ESCALATED


class TestManualEscalation:
    """Test manual escalation of a single exception."""

    @pytest.mark.asyncio
    async def test_escalate_appends_note(self, db_session, employee, specialist):
        exc = await add_exception(db_session, employee.id, TimeExceptionType.LATE,
                                  assigned_to=specialist.id, reason="Bus strike")
        service = PayrollCutoffService(db_session, clock=fixed_clock(datetime(2025, 1, 20, 9, 0)))

        exc = await service.escalate_time_exception(exc.id, actor_id=specialist.id, note="Needs HR review")

        assert exc.status == TimeExceptionStatus.ESCALATED
        assert exc.reason.startswith("Bus strike\n\n[MANUALLY ESCALATED]")
        assert "Note: Needs HR review" in exc.reason

        notes, _ = await NotificationService(db_session).get_notifications(specialist.id)
        assert notes[0].notification_type == NotificationType.EXCEPTION_ESCALATED

    @pytest.mark.asyncio
    async def test_failed_notification_keeps_escalation(self, db_session, employee, specialist, monkeypatch):
        exc = await add_exception(db_session, employee.id, TimeExceptionType.LATE,
                                  assigned_to=specialist.id, reason="Bus strike")
        exc_id = exc.id
        service = PayrollCutoffService(db_session, clock=fixed_clock(datetime(2025, 1, 20, 9, 0)))
        real_commit = db_session.commit

        async def commit_refusing_notifications():
            if any(isinstance(obj, Notification) for obj in db_session.new):
                raise RuntimeError("notification store unavailable")
            await real_commit()

        monkeypatch.setattr(db_session, "commit", commit_refusing_notifications)
        exc = await service.escalate_time_exception(exc_id, note="Needs HR review")

        assert exc.status == TimeExceptionStatus.ESCALATED
        assert "Note: Needs HR review" in exc.reason

    @pytest.mark.asyncio
    async def test_cannot_escalate_twice(self, db_session, employee):
        exc = await add_exception(db_session, employee.id, TimeExceptionType.LATE)
        service = PayrollCutoffService(db_session)
        await service.escalate_time_exception(exc.id)

        with pytest.raises(InvalidStateTransitionException) as exc_info:
            await service.escalate_time_exception(exc.id)
        assert exc_info.value.current_state == "escalated"


class TestEscalationHistory:
    """Test escalation history from the audit trail."""

    @pytest.mark.asyncio
    async def test_history_by_kind(self, db_session, employee):
        await add_exception(db_session, employee.id, TimeExceptionType.LATE)
        manual = await add_exception(db_session, employee.id, TimeExceptionType.SHORT_TIME,
                                     TimeExceptionStatus.PENDING)

        await PayrollCutoffService(
            db_session, clock=fixed_clock(datetime(2025, 1, 20, 9, 0)),
        ).escalate_time_exception(manual.id)
        service = PayrollCutoffService(db_session, clock=fixed_clock(datetime(2025, 1, 23, 9, 0)))
        await service.auto_escalate(CUTOFF, escalation_days_before=3, notify_managers=False)

        history = await service.get_escalation_history()
        assert history["summary"] == {"total": 2, "by_payroll_cutoff": 1, "manual": 1}
        assert [i["kind"] for i in history["items"]] == ["PAYROLL", "MANUAL"]

        manual_only = await service.get_escalation_history(kind=EscalationKind.MANUAL)
        assert [i["exception_id"] for i in manual_only["items"]] == [str(manual.id)]

        windowed = await service.get_escalation_history(start=datetime(2025, 1, 22))
        assert windowed["summary"]["total"] == 1


class TestReadinessStatus:
    """Test readiness status before the cutoff."""

    @pytest.mark.asyncio
    async def test_ready(self, db_session, employee):
        await add_exception(db_session, employee.id, TimeExceptionType.LATE, TimeExceptionStatus.RESOLVED)
        service = PayrollCutoffService(db_session, clock=fixed_clock(datetime(2025, 1, 20, 9, 0)))

        status = await service.readiness_status(CUTOFF)

        assert status["readiness"]["status"] == "READY"
        assert status["readiness"]["message"] == (
            "All time management requests have been processed. Payroll can proceed."
        )
        assert status["counts"]["resolved"] == 1

    @pytest.mark.asyncio
    async def test_blocked_then_critical(self, db_session, employee):
        await add_exception(db_session, employee.id, TimeExceptionType.LATE)

        blocked = await PayrollCutoffService(
            db_session, clock=fixed_clock(datetime(2025, 1, 20, 9, 0)),
        ).readiness_status(CUTOFF)
        critical = await PayrollCutoffService(
            db_session, clock=fixed_clock(datetime(2025, 1, 24, 9, 0)),
        ).readiness_status(CUTOFF)

        assert blocked["readiness"]["status"] == "BLOCKED"
        assert blocked["readiness"]["message"] == "1 pending request(s) must be reviewed before payroll."
        assert critical["readiness"]["status"] == "CRITICAL"
        assert critical["recommendations"][0] == "URGENT: 1 pending items require immediate review"

    @pytest.mark.asyncio
    async def test_escalated_only_is_warning(self, db_session, employee):
        await add_exception(db_session, employee.id, TimeExceptionType.LATE, TimeExceptionStatus.ESCALATED)
        service = PayrollCutoffService(db_session, clock=fixed_clock(datetime(2025, 1, 20, 9, 0)))

        status = await service.readiness_status(CUTOFF)

        assert status["readiness"]["status"] == "WARNING"
        assert status["counts"]["escalated"] == 1


class TestCutoffReminders:
    """Test reminders to assignees."""

    @pytest.mark.asyncio
    async def test_one_reminder_per_assignee(self, db_session, employee, specialist, manager):
        for _ in range(2):
            await add_exception(db_session, employee.id, TimeExceptionType.LATE, assigned_to=specialist.id)
        await add_exception(db_session, employee.id, TimeExceptionType.MISSED_PUNCH, assigned_to=manager.id)
        await add_exception(db_session, employee.id, TimeExceptionType.SHORT_TIME)
        service = PayrollCutoffService(db_session, clock=fixed_clock(datetime(2025, 1, 22, 9, 0)))

        result = await service.send_cutoff_reminders(CUTOFF, reminder_days_before=5)

        assert result.in_window
        counts = {r["assignee_id"]: r["pending_count"] for r in result.reminders}
        assert counts == {str(specialist.id): 2, str(manager.id): 1}

        notes, total = await NotificationService(db_session).get_notifications(specialist.id)
        assert total == 1
        assert notes[0].notification_type == NotificationType.CUTOFF_REMINDER
        assert notes[0].message == (
            "Reminder: You have 2 pending time management request(s) that need review before "
            "payroll cutoff on 2025-01-25. Only 3 day(s) remaining."
        )

    @pytest.mark.asyncio
    async def test_outside_window(self, db_session, employee, specialist):
        await add_exception(db_session, employee.id, TimeExceptionType.LATE, assigned_to=specialist.id)
        service = PayrollCutoffService(db_session, clock=fixed_clock(datetime(2025, 1, 10, 9, 0)))

        result = await service.send_cutoff_reminders(CUTOFF, reminder_days_before=5)

        assert not result.in_window
        assert result.message == (
            "Not within reminder window. 15 days until cutoff, reminders start 5 days before."
        )
        _, total = await NotificationService(db_session).get_notifications(specialist.id)
        assert total == 0
