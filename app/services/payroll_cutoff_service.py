"""
Payroll Readiness Engine - Payroll Cutoff Service

Monthly payroll cutoff scheduling for unresolved time exceptions:
- Next cutoff date and days remaining
- Urgency bands for pending exceptions
- Auto-escalation inside the escalation window
- Readiness status, reminders and escalation history

Nothing here schedules itself. Celery beat (see app.celery_app) calls these
methods periodically.
"""

import calendar
import math
import uuid
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.employee import Employee, SystemRole
from app.models.notification import NotificationType
from app.models.time_management import (
    TimeException,
    TimeExceptionStatus,
    UNRESOLVED_EXCEPTION_STATUSES,
)
from app.services.audit_service import ActorId, AuditTrailService
from app.services.notification_service import NotificationService
from app.services.payroll_readiness_service import BatchFailure
from app.services.state_machine import load_or_404
from app.utils.error_handling import InvalidStateTransitionException

logger = logging.getLogger(__name__)

AUTO_ESCALATION_MARKER = "[AUTO-ESCALATED - PAYROLL CUTOFF]"
MANUAL_ESCALATION_MARKER = "[MANUALLY ESCALATED]"

AUTO_ESCALATION_EVENT = "time_exception.auto_escalated"
MANUAL_ESCALATION_EVENT = "time_exception.escalated"


class Urgency(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


class ReadinessStatus(str, Enum):
    READY = "READY"
    WARNING = "WARNING"
    BLOCKED = "BLOCKED"
    CRITICAL = "CRITICAL"


class EscalationKind(str, Enum):
    PAYROLL = "PAYROLL"
    MANUAL = "MANUAL"
    ALL = "ALL"


# ===========================================
# CUTOFF ARITHMETIC
# ===========================================

def _clamped_day(year: int, month: int, day_of_month: int) -> date:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(max(day_of_month, 1), last_day))


def next_cutoff_date(day_of_month: int, now: Optional[datetime] = None) -> date:
    """
    Earliest date on or after today falling on `day_of_month`.

    The day is clamped to the month's last day (a 31st cutoff lands on
    Feb 28/29). Once this month's cutoff has passed, next month's is used.
    """
    today = (now or datetime.utcnow()).date()
    cutoff = _clamped_day(today.year, today.month, day_of_month)
    if today > cutoff:
        year, month = (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)
        cutoff = _clamped_day(year, month, day_of_month)
    return cutoff


def days_until_cutoff(cutoff: Union[date, datetime], now: Optional[datetime] = None) -> int:
    """Whole days left, rounded up. A date cutoff counts from its midnight."""
    if not isinstance(cutoff, datetime):
        cutoff = datetime.combine(cutoff, time.min)
    delta = cutoff - (now or datetime.utcnow())
    return math.ceil(delta.total_seconds() / 86400)


def categorize_urgency(days_to_cutoff: int, age_days: int) -> Urgency:
    """Whichever rule fires first wins: critical, then high, then medium."""
    if days_to_cutoff <= 2 or age_days >= 5:
        return Urgency.CRITICAL
    if days_to_cutoff <= 5 or age_days >= 3:
        return Urgency.HIGH
    return Urgency.MEDIUM


def cutoff_band(days_to_cutoff: int, critical_within: int, warning_within: int) -> str:
    if days_to_cutoff <= critical_within:
        return "CRITICAL"
    if days_to_cutoff <= warning_within:
        return "WARNING"
    return "NORMAL"


def derive_readiness_status(pending: int, escalated: int, days_to_cutoff: int) -> ReadinessStatus:
    if pending == 0 and escalated == 0:
        return ReadinessStatus.READY
    if pending > 0 and days_to_cutoff <= 1:
        return ReadinessStatus.CRITICAL
    if pending > 0:
        return ReadinessStatus.BLOCKED
    return ReadinessStatus.WARNING


def readiness_recommendations(pending: int, escalated: int, days_to_cutoff: int) -> List[str]:
    if pending == 0 and escalated == 0:
        return ["All items processed - payroll can proceed"]

    recommendations = []
    if pending > 0:
        if days_to_cutoff <= 1:
            recommendations.append(f"URGENT: {pending} pending items require immediate review")
            recommendations.append("Consider auto-escalation to expedite processing")
        elif days_to_cutoff <= 3:
            recommendations.append(f"Review {pending} pending items within the next {days_to_cutoff - 1} days")
            recommendations.append("Send reminders to assigned reviewers")
        else:
            recommendations.append(f"{pending} pending items should be processed before cutoff")

    if escalated > 0:
        recommendations.append(f"{escalated} escalated items need HR/management attention")
        if days_to_cutoff <= 2:
            recommendations.append("Prioritize escalated items for resolution")
    return recommendations


def auto_escalation_annotation(reason: Optional[str], escalated_at: datetime, cutoff: date, days_left: int) -> str:
    """Existing reason text followed by the escalation block."""
    return (
        f"{reason or ''}\n\n{AUTO_ESCALATION_MARKER}\n"
        f"Escalated on: {escalated_at.isoformat()}\n"
        f"Payroll cutoff: {cutoff.isoformat()}\n"
        f"Days until cutoff: {days_left}"
    )


# ===========================================
# RESULTS
# ===========================================

@dataclass
class EscalationResult:
    in_window: bool
    message: str
    cutoff_date: date
    days_until_cutoff: int
    escalation_days_before: int
    escalated: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[BatchFailure] = field(default_factory=list)
    notification_sent: bool = False
    executed_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.in_window,
            "message": self.message,
            "payroll_cutoff": {"date": self.cutoff_date.isoformat(), "days_remaining": self.days_until_cutoff},
            "escalation_days_before": self.escalation_days_before,
            "escalated": self.escalated,
            "failed": [f.to_dict() for f in self.failed],
            "notification_sent": self.notification_sent,
            "executed_at": self.executed_at.isoformat(),
        }


@dataclass
class ReminderResult:
    in_window: bool
    message: str
    cutoff_date: date
    days_until_cutoff: int
    reminders: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[BatchFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.in_window,
            "message": self.message,
            "payroll_cutoff": {"date": self.cutoff_date.isoformat(), "days_remaining": self.days_until_cutoff},
            "reminders_sent": len(self.reminders),
            "reminders": self.reminders,
            "failed": [f.to_dict() for f in self.failed],
        }


@dataclass(frozen=True)
class _PendingException:
    """Plain copy of the fields escalation needs; survives a rollback."""
    id: uuid.UUID
    exception_type: str
    status: TimeExceptionStatus
    reason: Optional[str]
    assigned_to: Optional[uuid.UUID]


# ===========================================
# SERVICE
# ===========================================

class PayrollCutoffService:
    """Cutoff-driven escalation scheduler."""

    def __init__(self, db: AsyncSession, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or datetime.utcnow
        self.audit = AuditTrailService(db)
        self.notifications = NotificationService(db)

    def _resolve_cutoff(self, cutoff_date: Optional[date], now: datetime) -> date:
        return cutoff_date or next_cutoff_date(settings.payroll_cutoff_day, now)

    async def _pending_exceptions(self, department_id: Optional[uuid.UUID] = None):
        query = (
            select(TimeException, Employee)
            .outerjoin(Employee, Employee.id == TimeException.employee_id)
            .where(TimeException.status.in_(UNRESOLVED_EXCEPTION_STATUSES))
        )
        if department_id:
            query = query.where(Employee.department_id == department_id)
        result = await self.db.execute(query.order_by(TimeException.created_at, TimeException.id))
        return list(result.all())

    # ===========================================
    # CONFIG & PENDING REPORT
    # ===========================================

    def get_cutoff_config(self) -> Dict[str, Any]:
        """Configured cutoff schedule plus where the current month stands."""
        now = self.clock()
        cutoff = next_cutoff_date(settings.payroll_cutoff_day, now)
        days_left = days_until_cutoff(cutoff, now)
        return {
            "cutoff_schedule": {
                "day_of_month": settings.payroll_cutoff_day,
                "escalation_days_before": settings.escalation_days_before,
                "warning_days_before": settings.warning_days_before,
                "reminder_days_before": settings.reminder_days_before,
            },
            "escalation_rules": {
                "auto_escalate_unreviewed_exceptions": True,
                "notify_hr_on_escalation": settings.notify_managers_on_escalation,
            },
            "current_month": {
                "cutoff_date": cutoff.isoformat(),
                "days_until_cutoff": days_left,
                "status": cutoff_band(days_left, settings.escalation_days_before, settings.warning_days_before),
            },
        }

    async def get_pending_requests_before_cutoff(
        self,
        cutoff_date: Optional[date] = None,
        department_id: Optional[uuid.UUID] = None,
        actor_id: ActorId = None,
    ) -> Dict[str, Any]:
        """Unresolved exceptions grouped by urgency, with a headline recommendation."""
        now = self.clock()
        cutoff = self._resolve_cutoff(cutoff_date, now)
        days_left = days_until_cutoff(cutoff, now)

        grouped: Dict[str, List[Dict[str, Any]]] = {u.value: [] for u in Urgency}
        rows = await self._pending_exceptions(department_id)
        for exc, employee in rows:
            age_days = math.floor((now - exc.created_at).total_seconds() / 86400)
            urgency = categorize_urgency(days_left, age_days)
            grouped[urgency.value].append({
                "id": str(exc.id),
                "type": exc.exception_type.name,
                "status": exc.status.name,
                "employee": {
                    "id": str(employee.id),
                    "name": employee.full_name,
                    "employee_number": employee.employee_number,
                } if employee else None,
                "assigned_to": str(exc.assigned_to) if exc.assigned_to else None,
                "age_in_days": age_days,
                "created_at": exc.created_at.isoformat(),
            })

        critical = len(grouped[Urgency.CRITICAL.value])
        high = len(grouped[Urgency.HIGH.value])
        if critical:
            recommendation = "IMMEDIATE ACTION REQUIRED: Critical items must be reviewed before payroll cutoff"
        elif high:
            recommendation = "HIGH PRIORITY: Review high-priority items within 1-2 days"
        else:
            recommendation = "ON TRACK: All pending items can be processed before cutoff"

        await self.audit.record(
            "payroll_cutoff.pending_check",
            {"cutoff_date": cutoff, "days_until_cutoff": days_left, "total_pending": len(rows),
             "critical": critical, "department_id": department_id},
            actor_id=actor_id,
        )
        await self.db.commit()

        return {
            "payroll_cutoff": {
                "date": cutoff.isoformat(),
                "days_remaining": days_left,
                "status": cutoff_band(days_left, 2, 5),
            },
            "summary": {
                "total_pending": len(rows),
                "critical": critical,
                "high": high,
                "medium": len(grouped[Urgency.MEDIUM.value]),
            },
            "pending_by_urgency": grouped,
            "recommendation": recommendation,
            "generated_at": now.isoformat(),
        }

    # ===========================================
    # ESCALATION
    # ===========================================

    async def auto_escalate(
        self,
        cutoff_date: Optional[date] = None,
        escalation_days_before: Optional[int] = None,
        notify_managers: Optional[bool] = None,
        actor_id: ActorId = None,
    ) -> EscalationResult:
        """
        Escalate every OPEN/PENDING exception once the cutoff is near.

        Outside the window this is a no-op. Inside it, each exception is
        escalated and committed on its own; one failing does not stop the
        rest and is reported in `failed`.
        """
        if escalation_days_before is None:
            escalation_days_before = settings.escalation_days_before
        if notify_managers is None:
            notify_managers = settings.notify_managers_on_escalation

        now = self.clock()
        cutoff = self._resolve_cutoff(cutoff_date, now)
        days_left = days_until_cutoff(cutoff, now)

        if days_left > escalation_days_before:
            return EscalationResult(
                in_window=False,
                message=(
                    f"Not within escalation window. {days_left} days until cutoff, "
                    f"escalation starts {escalation_days_before} days before."
                ),
                cutoff_date=cutoff,
                days_until_cutoff=days_left,
                escalation_days_before=escalation_days_before,
                executed_at=now,
            )

        pending = [
            _PendingException(exc.id, exc.exception_type.name, exc.status, exc.reason, exc.assigned_to)
            for exc, _ in await self._pending_exceptions()
        ]

        outcome = EscalationResult(
            in_window=True,
            message="",
            cutoff_date=cutoff,
            days_until_cutoff=days_left,
            escalation_days_before=escalation_days_before,
            executed_at=now,
        )
        for item in pending:
            try:
                escalated = await self._escalate_one(item, now, cutoff, days_left, actor_id)
            except Exception as e:
                await self.db.rollback()
                logger.error(f"Failed to auto-escalate time exception {item.id}: {e}")
                outcome.failed.append(BatchFailure(str(item.id), f"Failed to escalate: {e}"))
                continue
            if escalated:
                outcome.escalated.append({
                    "id": str(item.id),
                    "type": item.exception_type,
                    "previous_status": item.status.name,
                })
            else:
                outcome.failed.append(BatchFailure(
                    str(item.id),
                    "Status changed before escalation",
                    "Re-run escalation to pick up the current status",
                ))

        outcome.message = (
            f"Escalated {len(outcome.escalated)} exception(s); {len(outcome.failed)} failed"
        )

        await self.audit.record(
            "payroll.auto_escalation",
            {"cutoff_date": cutoff, "days_until_cutoff": days_left,
             "escalated_count": len(outcome.escalated), "failed_count": len(outcome.failed)},
            actor_id=actor_id,
        )
        await self.db.commit()
        logger.info(
            f"Payroll cutoff auto-escalation: {len(outcome.escalated)} escalated, "
            f"{len(outcome.failed)} failed, {days_left} day(s) to {cutoff}"
        )

        if notify_managers and outcome.escalated:
            sent = await self.notifications.send_to_role(
                SystemRole.HR_MANAGER,
                NotificationType.CUTOFF_ESCALATION,
                (
                    f"{len(outcome.escalated)} time management requests have been auto-escalated due to "
                    f"approaching payroll cutoff ({cutoff.isoformat()}). Immediate review required."
                ),
                metadata={"cutoff_date": cutoff.isoformat(), "escalated_count": len(outcome.escalated)},
            )
            outcome.notification_sent = bool(sent)

        return outcome

    async def _escalate_one(
        self,
        item: _PendingException,
        now: datetime,
        cutoff: date,
        days_left: int,
        actor_id: ActorId,
    ) -> bool:
        """Escalate a single exception and commit. False if its status moved meanwhile."""
        result = await self.db.execute(
            update(TimeException)
            .where(TimeException.id == item.id)
            .where(TimeException.status == item.status)
            .values(
                status=TimeExceptionStatus.ESCALATED,
                reason=auto_escalation_annotation(item.reason, now, cutoff, days_left),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            return False

        await self.audit.record(
            AUTO_ESCALATION_EVENT,
            {"previous_status": item.status, "cutoff_date": cutoff, "days_until_cutoff": days_left,
             "type": item.exception_type},
            actor_id=actor_id,
            timestamp=now,
            entity_id=item.id,
        )
        await self.db.commit()
        return True

    async def escalate_time_exception(
        self,
        exception_id: uuid.UUID,
        actor_id: ActorId = None,
        note: Optional[str] = None,
    ) -> TimeException:
        """Manually escalate one OPEN/PENDING exception, appending to its reason."""
        exc = await load_or_404(self.db, TimeException, exception_id, "TimeException")
        if not exc.is_unresolved:
            raise InvalidStateTransitionException(
                resource_type="TimeException",
                current_state=exc.status.value,
                attempted_operation="escalate",
                remediation="Only open or pending exceptions can be escalated",
                resource_id=exc.id,
            )

        now = self.clock()
        previous_status = exc.status
        annotation = f"{exc.reason or ''}\n\n{MANUAL_ESCALATION_MARKER}\nEscalated on: {now.isoformat()}"
        if actor_id:
            annotation += f"\nEscalated by: {actor_id}"
        if note:
            annotation += f"\nNote: {note}"

        result = await self.db.execute(
            update(TimeException)
            .where(TimeException.id == exc.id)
            .where(TimeException.status == previous_status)
            .values(status=TimeExceptionStatus.ESCALATED, reason=annotation, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            current = await load_or_404(self.db, TimeException, exception_id, "TimeException", refresh=True)
            raise InvalidStateTransitionException(
                resource_type="TimeException",
                current_state=current.status.value,
                attempted_operation="escalate",
                remediation="Only open or pending exceptions can be escalated",
                resource_id=exception_id,
            )

        await self.audit.record(
            MANUAL_ESCALATION_EVENT,
            {"previous_status": previous_status, "note": note, "type": exc.exception_type.name},
            actor_id=actor_id,
            timestamp=now,
            entity_id=exception_id,
        )
        await self.db.commit()
        exc = await load_or_404(self.db, TimeException, exception_id, "TimeException", refresh=True)

        if exc.assigned_to:
            await self.notifications.send(
                recipient_id=exc.assigned_to,
                notification_type=NotificationType.EXCEPTION_ESCALATED,
                message=f"Time exception {exc.id} ({exc.exception_type.name}) has been escalated.",
                metadata={"exception_id": str(exc.id)},
            )
            exc = await load_or_404(self.db, TimeException, exception_id, "TimeException", refresh=True)
        return exc

    # ===========================================
    # STATUS, REMINDERS, HISTORY
    # ===========================================

    async def readiness_status(
        self,
        cutoff_date: Optional[date] = None,
        department_id: Optional[uuid.UUID] = None,
    ) -> Dict[str, Any]:
        """READY / WARNING / BLOCKED / CRITICAL, recomputed on every call."""
        now = self.clock()
        cutoff = self._resolve_cutoff(cutoff_date, now)
        days_left = days_until_cutoff(cutoff, now)

        query = select(TimeException.status, func.count(TimeException.id))
        if department_id:
            query = query.join(Employee, Employee.id == TimeException.employee_id).where(
                Employee.department_id == department_id
            )
        rows = (await self.db.execute(query.group_by(TimeException.status))).all()
        counts = {status: count for status, count in rows}

        pending = sum(counts.get(s, 0) for s in UNRESOLVED_EXCEPTION_STATUSES)
        escalated = counts.get(TimeExceptionStatus.ESCALATED, 0)
        status = derive_readiness_status(pending, escalated, days_left)

        if status == ReadinessStatus.READY:
            message = "All time management requests have been processed. Payroll can proceed."
        elif pending > 0:
            message = f"{pending} pending request(s) must be reviewed before payroll."
        else:
            message = f"{escalated} escalated request(s) require attention but payroll can proceed with caution."

        return {
            "payroll_cutoff": {"date": cutoff.isoformat(), "days_remaining": days_left},
            "readiness": {
                "status": status.value,
                "is_ready": status == ReadinessStatus.READY,
                "has_blockers": pending > 0,
                "has_warnings": escalated > 0,
                "message": message,
            },
            "counts": {
                "pending": pending,
                "escalated": escalated,
                "approved": counts.get(TimeExceptionStatus.APPROVED, 0),
                "resolved": counts.get(TimeExceptionStatus.RESOLVED, 0),
            },
            "recommendations": readiness_recommendations(pending, escalated, days_left),
            "checked_at": now.isoformat(),
        }

    async def send_cutoff_reminders(
        self,
        cutoff_date: Optional[date] = None,
        reminder_days_before: Optional[int] = None,
        actor_id: ActorId = None,
    ) -> ReminderResult:
        """One reminder per assignee with their pending count, inside the reminder window."""
        if reminder_days_before is None:
            reminder_days_before = settings.reminder_days_before

        now = self.clock()
        cutoff = self._resolve_cutoff(cutoff_date, now)
        days_left = days_until_cutoff(cutoff, now)

        if days_left > reminder_days_before:
            return ReminderResult(
                in_window=False,
                message=(
                    f"Not within reminder window. {days_left} days until cutoff, "
                    f"reminders start {reminder_days_before} days before."
                ),
                cutoff_date=cutoff,
                days_until_cutoff=days_left,
            )

        by_assignee: Dict[uuid.UUID, int] = defaultdict(int)
        for exc, _ in await self._pending_exceptions():
            if exc.assigned_to:
                by_assignee[exc.assigned_to] += 1

        outcome = ReminderResult(
            in_window=True,
            message="",
            cutoff_date=cutoff,
            days_until_cutoff=days_left,
        )
        for assignee_id in sorted(by_assignee, key=str):
            count = by_assignee[assignee_id]
            notification = await self.notifications.send(
                recipient_id=assignee_id,
                notification_type=NotificationType.CUTOFF_REMINDER,
                message=(
                    f"Reminder: You have {count} pending time management request(s) that need review "
                    f"before payroll cutoff on {cutoff.isoformat()}. Only {days_left} day(s) remaining."
                ),
                metadata={"pending_count": count, "cutoff_date": cutoff.isoformat()},
            )
            if notification is None:
                outcome.failed.append(BatchFailure(str(assignee_id), "Reminder could not be delivered"))
                continue
            outcome.reminders.append({
                "assignee_id": str(assignee_id),
                "pending_count": count,
                "notification_id": str(notification.id),
            })

        outcome.message = f"Sent {len(outcome.reminders)} reminder(s)"
        await self.audit.record(
            "payroll_cutoff.reminders_sent",
            {"cutoff_date": cutoff, "days_until_cutoff": days_left, "reminder_count": len(outcome.reminders)},
            actor_id=actor_id,
        )
        await self.db.commit()
        return outcome

    async def get_escalation_history(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        kind: EscalationKind = EscalationKind.ALL,
        limit: int = 50,
    ) -> Dict[str, Any]:
        """Escalations read back from the audit trail, newest first."""
        entries = await self.audit.query(
            start=start, end=end, entities=[AUTO_ESCALATION_EVENT, MANUAL_ESCALATION_EVENT],
        )

        payroll, manual = [], []
        for entry in reversed(entries):
            item = {
                "exception_id": entry.entity_id,
                "kind": EscalationKind.PAYROLL.value if entry.entity == AUTO_ESCALATION_EVENT
                else EscalationKind.MANUAL.value,
                "escalated_at": entry.recorded_at.isoformat(),
                "escalated_by": entry.actor_id,
                "details": entry.change_set,
            }
            (payroll if entry.entity == AUTO_ESCALATION_EVENT else manual).append(item)

        if kind == EscalationKind.PAYROLL:
            items = payroll
        elif kind == EscalationKind.MANUAL:
            items = manual
        else:
            items = sorted(payroll + manual, key=lambda i: i["escalated_at"], reverse=True)

        return {
            "period": {
                "start": start.isoformat() if start else "ALL",
                "end": end.isoformat() if end else "NOW",
            },
            "filter": kind.value,
            "summary": {
                "total": len(payroll) + len(manual),
                "by_payroll_cutoff": len(payroll),
                "manual": len(manual),
            },
            "items": items[:limit],
        }


def get_payroll_cutoff_service(db: AsyncSession) -> PayrollCutoffService:
    """Factory function for PayrollCutoffService"""
    return PayrollCutoffService(db)
