"""Celery application used for background fan-out work."""

from celery import Celery

from app.config import get_settings

settings = get_settings()

celery_app = Celery(
    "palabre",
    broker=settings.celery_broker_url,
    include=["app.tasks.notification_task"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_ignore_result=True,
    task_always_eager=settings.celery_always_eager,
)
