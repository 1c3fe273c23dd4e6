"""
Celery application configuration for background jobs.

Two queues, each served by its own worker process (see ``trackline-admin worker``):
- screenshot-processing: resize/blur/upload of captured screenshots
- integration-sync: provider resource syncs and time entry pushes
"""
from celery import Celery

from app.core.config import settings, SCREENSHOT_QUEUE, INTEGRATION_SYNC_QUEUE

# Create Celery app instance
celery_app = Celery(
    "trackline",
    include=[
        "app.tasks.screenshot_tasks",
        "app.integrations.tasks",
    ],
)

# Configure Celery from settings
celery_app.conf.update(
    broker_url=settings.celery_broker_url,
    result_backend=settings.celery_result_backend,
    task_serializer=settings.celery_task_serializer,
    result_serializer=settings.celery_result_serializer,
    accept_content=settings.celery_accept_content,
    timezone=settings.celery_timezone,
    enable_utc=settings.celery_enable_utc,
    result_expires=settings.celery_result_expires_seconds,
    task_routes={
        "app.tasks.screenshot_tasks.*": {"queue": SCREENSHOT_QUEUE},
        "app.integrations.tasks.*": {"queue": INTEGRATION_SYNC_QUEUE},
    },
    task_track_started=True,
    task_time_limit=900,  # 15 minute hard limit for tasks
    task_soft_time_limit=840,
    worker_prefetch_multiplier=1,  # One task at a time
    worker_max_tasks_per_child=1000,  # Restart worker after 1000 tasks
    task_acks_late=True,  # Acknowledge tasks after completion
    task_reject_on_worker_lost=True,  # Requeue tasks if worker dies
    broker_connection_retry_on_startup=True,  # Retry broker connection on startup
)


def get_celery_app() -> Celery:
    """Get Celery app instance."""
    return celery_app
