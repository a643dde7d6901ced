"""Celery application configuration."""

from celery import Celery
from celery.signals import setup_logging

from app.config import get_settings
from app.logging_config import configure_logging

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "omnidesk",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.tasks.email_polling",
        "app.tasks.cleanup",
    ],
)

# Configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Result settings
    result_expires=3600,  # 1 hour

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Beat schedule for periodic tasks
    beat_schedule={
        "poll-email-inbox": {
            "task": "app.tasks.email_polling.poll_email_inbox",
            "schedule": settings.email_poll_interval_seconds,
        },
        "cleanup-old-function-traces": {
            "task": "app.tasks.cleanup.cleanup_old_function_traces",
            "schedule": 86400.0,  # Every 24 hours (daily)
            "args": [30],  # Keep 30 days of traces
        },
    },
)


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    configure_logging(settings)
