"""Celery worker configuration.

Runs the scheduled reservation sweep:
- Stale reservation cleanup (cancel, no-show, check-out)
- Nightly integrity pass with auto-fixes
"""

from celery import Celery
from celery.schedules import crontab

from lifecycle_engine.config import settings

# Create Celery app
celery_app = Celery(
    "lifecycle_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["lifecycle_engine.tasks"],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=600,  # 10 minutes max
    task_soft_time_limit=540,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=2,

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour

    # Retry settings
    task_default_retry_delay=60,  # 1 minute
    task_max_retries=3,

    # Beat schedule for periodic tasks
    beat_schedule={
        "sweep-stale-reservations": {
            "task": "lifecycle_engine.tasks.sweep_stale_reservations",
            "schedule": crontab(minute=f"*/{settings.sweep_interval_minutes}"),
        },
        # Integrity pass daily at 3 AM UTC
        "sweep-integrity": {
            "task": "lifecycle_engine.tasks.sweep_integrity",
            "schedule": crontab(hour=3, minute=0),
        },
    },
)


if __name__ == "__main__":
    celery_app.start()
