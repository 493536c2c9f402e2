"""
Payroll Readiness Engine - Celery Configuration

Celery configuration for the periodic cutoff jobs.
Uses Redis as the message broker and result backend.
"""

from celery import Celery
from celery.schedules import crontab

from app.config import settings


# Create Celery app
celery_app = Celery(
    'payroll_readiness',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['app.tasks.celery_tasks'],
)

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',

    # Timezone (cutoff arithmetic is done in UTC)
    timezone='UTC',
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # 5 minutes
    task_soft_time_limit=240,  # 4 minutes (warning before hard limit)

    # Worker settings
    worker_prefetch_multiplier=1,

    # Result backend settings
    result_expires=86400,  # 24 hours

    # Beat schedule for periodic tasks
    beat_schedule={
        # Escalation is a no-op outside the window, so a daily run is enough
        'auto-escalate-before-cutoff': {
            'task': 'app.tasks.celery_tasks.auto_escalate_before_cutoff_task',
            'schedule': crontab(hour=6, minute=0),
        },

        # Reminders to assignees every weekday morning inside the reminder window
        'cutoff-reminders': {
            'task': 'app.tasks.celery_tasks.send_cutoff_reminders_task',
            'schedule': crontab(day_of_week='1-5', hour=8, minute=0),
        },

        # Daily readiness check, logged for operators
        'daily-readiness-check': {
            'task': 'app.tasks.celery_tasks.check_payroll_readiness_task',
            'schedule': crontab(hour=7, minute=0),
        },
    },
)
