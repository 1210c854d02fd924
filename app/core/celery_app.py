"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from app.core.config import settings

celery_app = Celery(
    "learning_platform",
    broker=settings.broker_url,
    backend=settings.result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.JOB_TIME_LIMIT_SECONDS,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="default",
    result_extended=True,
    worker_hijack_root_logger=False,
)

celery_app.conf.beat_schedule = {
    "requeue-stale-videos": {
        "task": "app.modules.video.tasks.requeue_stale_videos",
        "schedule": crontab(minute="*/10"),
        "options": {"queue": "video-processing"},
    },
}

celery_app.autodiscover_tasks(["app.modules.video", "app.modules.certificate"])
