from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from relohire.celery_app import celery_app
from relohire.core.database import SessionLocal
from relohire.models import company, generated_document, job, user  # noqa: F401  (mapper registration)
from relohire.services.payments import PaymentGateway

logger = logging.getLogger(__name__)


def _with_db_session() -> Session:
    return SessionLocal()


@celery_app.task(name="payments.expire_old_payments")
def expire_old_payments() -> int:
    db = _with_db_session()
    try:
        expired = PaymentGateway(db).expire_old_payments()
        logger.info("Payment expiry sweep finished: %s expired", expired)
        return expired
    finally:
        db.close()
