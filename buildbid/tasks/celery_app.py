from celery import Celery
from celery.schedules import crontab

from buildbid.config import settings

app = Celery(
    "buildbid",
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
        "buildbid.tasks.proposal_tasks.*": {"queue": "proposals"},
    },
    beat_schedule={
        "expire-stale-proposals": {
            "task": "buildbid.tasks.proposal_tasks.expire_stale_proposals",
            "schedule": crontab(minute=0),  # every hour
        },
    },
)

app.autodiscover_tasks(["buildbid.tasks.proposal_tasks"])
