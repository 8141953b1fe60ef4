from celery import Celery
from celery.schedules import crontab

from backoffice.core.config import settings

celery_app = Celery(
    "backoffice_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "backoffice.workers.token_tasks",
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
    broker_connection_retry_on_startup=True,
)

celery_app.conf.beat_schedule = {
    "cleanup-action-tokens-daily": {
        "task": "backoffice.workers.token_tasks.cleanup_action_tokens",
        "schedule": crontab(hour=2, minute=0),
    },
}
