from __future__ import annotations

import logging

from celery import Celery

from relohire.core.config import settings


logger = logging.getLogger(__name__)

BROKER_CONFIGURED = bool(settings.CELERY_BROKER_URL)

celery_app = Celery("relohire", include=["relohire.tasks.documents", "relohire.tasks.exam", "relohire.tasks.payments"])

if BROKER_CONFIGURED:
    broker_url = settings.CELERY_BROKER_URL
else:
    broker_url = "memory://"
    logger.warning("CELERY_BROKER_URL is not configured; background tasks will run inline.")

celery_app.conf.update(
    broker_url=broker_url,
    result_backend=None,
    task_default_queue="relohire-tasks",
    task_serializer="json",
    accept_content=["json"],
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    broker_connection_retry_on_startup=True,
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "expire-stale-payments": {
            "task": "payments.expire_old_payments",
            "schedule": 15 * 60,
        },
        "cleanup-expired-exam-sessions": {
            "task": "exam.cleanup_expired_sessions",
            "schedule": 30 * 60,
        },
    },
)


def enqueue(task, *args, **kwargs):
    """
    Queue a task on the broker, or run it inline when no broker is configured
    (tests and local dev).
    """
    if BROKER_CONFIGURED:
        return task.delay(*args, **kwargs)
    logger.info("Celery broker not configured; running %s synchronously", task.name)
    return task.apply(args=args, kwargs=kwargs)
