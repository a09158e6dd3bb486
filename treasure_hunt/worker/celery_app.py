"""
Celery Application Configuration

The worker only delivers push notifications; game state never depends on it.
"""
from celery import Celery
from treasure_hunt.config import settings

celery_app = Celery(
    "treasure_hunt_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["treasure_hunt.worker.tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Push batches are small HTTP calls; anything slower is a stuck gateway
    task_time_limit=120,
    task_soft_time_limit=100,
    task_default_queue="notifications",
    task_ignore_result=True,
    worker_prefetch_multiplier=4,
    broker_connection_retry_on_startup=True,
)

celery_app.conf.task_routes = {
    "treasure_hunt.worker.tasks.send_push_notifications": {"queue": "notifications"},
}
