"""
Payroll Readiness Engine - Celery Task Tests

Tests for the periodic cutoff tasks and their beat schedule. The service is
stubbed; its behaviour is covered in test_payroll_cutoff.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime

import pytest

from app.celery_app import celery_app
from app.services.audit_service import SYSTEM_ACTOR
from app.services.payroll_cutoff_service import EscalationResult, ReminderResult
from app.services.payroll_readiness_service import BatchFailure
from app.tasks import celery_tasks


@asynccontextmanager
async def fake_session():
    yield object()


class FakeCutoffService:
    calls = []

    def __init__(self, db):
        self.db = db

    async def auto_escalate(self, actor_id=None):
        self.calls.append(("auto_escalate", actor_id))
        return EscalationResult(
            in_window=True,
            message="Escalated 1 exception(s); 1 failed",
            cutoff_date=date(2025, 1, 25),
            days_until_cutoff=2,
            escalation_days_before=3,
            escalated=[{"id": "a", "type": "LATE", "previous_status": "OPEN"}],
            failed=[BatchFailure("b", "Failed to escalate: boom")],
            executed_at=datetime(2025, 1, 23, 6, 0),
        )

    async def send_cutoff_reminders(self, actor_id=None):
        self.calls.append(("send_cutoff_reminders", actor_id))
        return ReminderResult(
            in_window=False,
            message="Not within reminder window. 15 days until cutoff, reminders start 5 days before.",
            cutoff_date=date(2025, 1, 25),
            days_until_cutoff=15,
        )

    async def readiness_status(self):
        self.calls.append(("readiness_status", None))
        return {"readiness": {"status": "READY", "is_ready": True, "message": "All clear"}}


@pytest.fixture
def stubbed(monkeypatch):
    FakeCutoffService.calls = []
    monkeypatch.setattr(celery_tasks, "async_session_factory", fake_session)
    monkeypatch.setattr(celery_tasks, "PayrollCutoffService", FakeCutoffService)
    return FakeCutoffService


class TestCutoffTasks:
    """Test task wiring."""

    def test_auto_escalate_task(self, stubbed):
        result = celery_tasks.auto_escalate_before_cutoff_task()

        assert stubbed.calls == [("auto_escalate", SYSTEM_ACTOR)]
        assert result["success"] is True
        assert result["payroll_cutoff"] == {"date": "2025-01-25", "days_remaining": 2}
        assert result["failed"][0]["id"] == "b"

    def test_reminder_task_outside_window(self, stubbed):
        result = celery_tasks.send_cutoff_reminders_task()

        assert stubbed.calls == [("send_cutoff_reminders", SYSTEM_ACTOR)]
        assert result["success"] is False
        assert result["reminders_sent"] == 0

    def test_readiness_task(self, stubbed):
        result = celery_tasks.check_payroll_readiness_task()

        assert result["readiness"]["status"] == "READY"


class TestBeatSchedule:
    """Test the beat schedule points at registered tasks."""

    def test_scheduled_tasks_are_registered(self):
        schedule = celery_app.conf.beat_schedule

        assert set(schedule) == {"auto-escalate-before-cutoff", "cutoff-reminders", "daily-readiness-check"}
        for entry in schedule.values():
            assert entry["task"] in celery_app.tasks
