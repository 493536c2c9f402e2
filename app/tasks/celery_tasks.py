"""
Payroll Readiness Engine - Celery Tasks

Periodic triggers for the payroll cutoff scheduler. Each task opens its own
session and calls the service; the services hold all the logic.
"""

import asyncio
import logging
from typing import Any, Dict

from celery import shared_task

from app.database import async_session_factory
from app.services.audit_service import SYSTEM_ACTOR
from app.services.payroll_cutoff_service import PayrollCutoffService

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async functions in Celery tasks."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ===========================================
# CUTOFF TASKS
# ===========================================

@shared_task(name='app.tasks.celery_tasks.auto_escalate_before_cutoff_task')
def auto_escalate_before_cutoff_task() -> Dict[str, Any]:
    """Escalate unresolved time exceptions once the cutoff is within the window."""
    return run_async(_auto_escalate())


async def _auto_escalate() -> Dict[str, Any]:
    async with async_session_factory() as db:
        result = await PayrollCutoffService(db).auto_escalate(actor_id=SYSTEM_ACTOR)
        if result.failed:
            logger.warning(f"Auto-escalation finished with {len(result.failed)} failure(s)")
        return result.to_dict()


@shared_task(name='app.tasks.celery_tasks.send_cutoff_reminders_task')
def send_cutoff_reminders_task() -> Dict[str, Any]:
    """Remind assignees of pending time exceptions before the cutoff."""
    return run_async(_send_reminders())


async def _send_reminders() -> Dict[str, Any]:
    async with async_session_factory() as db:
        result = await PayrollCutoffService(db).send_cutoff_reminders(actor_id=SYSTEM_ACTOR)
        logger.info(f"Cutoff reminders: {result.message}")
        return result.to_dict()


@shared_task(name='app.tasks.celery_tasks.check_payroll_readiness_task')
def check_payroll_readiness_task() -> Dict[str, Any]:
    """Log the current payroll readiness status."""
    return run_async(_check_readiness())


async def _check_readiness() -> Dict[str, Any]:
    async with async_session_factory() as db:
        status = await PayrollCutoffService(db).readiness_status()
        readiness = status["readiness"]
        if readiness["is_ready"]:
            logger.info(f"Payroll readiness: {readiness['message']}")
        else:
            logger.warning(f"Payroll readiness {readiness['status']}: {readiness['message']}")
        return status
