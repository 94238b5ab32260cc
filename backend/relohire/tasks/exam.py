from __future__ import annotations

import logging

from relohire.celery_app import celery_app
from relohire.services.exam_security import get_exam_security_manager

logger = logging.getLogger(__name__)


@celery_app.task(name="exam.cleanup_expired_sessions")
def cleanup_expired_sessions() -> int:
    removed = get_exam_security_manager().cleanup_expired_sessions()
    logger.info("Exam session sweep finished: %s removed", removed)
    return removed
