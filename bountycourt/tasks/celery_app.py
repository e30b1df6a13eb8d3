from celery import Celery
from celery.schedules import crontab

from bountycourt.config import settings

app = Celery(
    "bountycourt",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "bountycourt.tasks.dispute_tasks.*": {"queue": "disputes"},
    },
    beat_schedule={
        "auto-close-stale-disputes": {
            "task": "bountycourt.tasks.dispute_tasks.auto_close_stale_disputes",
            "schedule": crontab(minute=0),  # every hour
        },
        "escalate-stagnant-disputes": {
            "task": "bountycourt.tasks.dispute_tasks.escalate_stagnant_disputes",
            "schedule": crontab(minute=30),
        },
    },
)

app.autodiscover_tasks(["bountycourt.tasks.dispute_tasks"])
