from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from relohire.celery_app import celery_app, enqueue
from relohire.core.database import SessionLocal
from relohire.core.errors import NotFoundError, ValidationFailedError
from relohire.models import job, payment, user  # noqa: F401  (mapper registration)
from relohire.services.documents import DocumentService

logger = logging.getLogger(__name__)


def _with_db_session() -> Session:
    return SessionLocal()


@celery_app.task(name="documents.generate_application_document", bind=True, max_retries=3)
def generate_application_document(self, application_id: int, kind: str) -> str | None:
    db = _with_db_session()
    try:
        row = DocumentService(db).generate(application_id, kind)
        return row.file_path
    except (NotFoundError, ValidationFailedError) as exc:
        # Retrying will not help.
        logger.warning("Skipping %s for application %s: %s", kind, application_id, exc.message)
        return None
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Failed to generate %s for application %s", kind, application_id)
        raise self.retry(exc=exc, countdown=30 * (self.request.retries + 1))
    finally:
        db.close()


def schedule_document(application_id: int, kind: str):
    return enqueue(generate_application_document, application_id, kind)
