"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from app.config import settings

celery_app = Celery(
    "melhik_cms",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.workers.mail_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_soft_time_limit=300,  # 5 min soft limit
    task_time_limit=600,  # 10 min hard limit
    broker_connection_retry_on_startup=True,
)

# Periodic tasks (Celery Beat)
celery_app.conf.beat_schedule = {
    # Retry welcome emails that failed at account creation
    "welcome-email-retry": {
        "task": "app.workers.mail_tasks.retry_pending_welcome_emails_task",
        "schedule": crontab(minute=f"*/{settings.welcome_retry_interval_minutes}"),
    },
}
