from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from relohire.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationFailedError
from relohire.models.application import Application
from relohire.models.job import Job
from relohire.models.user import User, UserRole
from relohire.services.matching import score_job

logger = logging.getLogger(__name__)


def is_employer_of(user: User, application: Application) -> bool:
    return application.job is not None and application.job.posted_by == user.id


def get_application_for_viewer(db: Session, application_id: int, user: User) -> Application:
    """
    The applicant, the company that posted the job, or an admin. Anyone else
    gets a 404 so application ids cannot be enumerated.
    """
    application = db.get(Application, application_id)
    if not application:
        raise NotFoundError("Application not found")
    if user.role == UserRole.admin.value:
        return application
    if application.user_id == user.id or is_employer_of(user, application):
        return application
    raise NotFoundError("Application not found")


def get_application_for_employer(db: Session, application_id: int, user: User) -> Application:
    application = db.get(Application, application_id)
    if not application:
        raise NotFoundError("Application not found")
    if user.role != UserRole.admin.value and not is_employer_of(user, application):
        raise ForbiddenError("Only the hiring company can manage this application")
    return application


def get_job_for_employer(db: Session, job_id: int, user: User) -> Job:
    job = db.get(Job, job_id)
    if not job:
        raise NotFoundError("Job not found")
    if user.role != UserRole.admin.value and job.posted_by != user.id:
        raise ForbiddenError("Not authorized to view applications for this job")
    return job


def create_application(db: Session, user: User, job_id: int, cover_letter: str | None = None) -> Application:
    job = db.get(Job, job_id)
    if not job:
        raise NotFoundError("Job not found")
    if not job.is_active:
        raise ValidationFailedError("This job is no longer accepting applications")

    exists = (
        db.query(Application.id)
        .filter(Application.user_id == user.id, Application.job_id == job_id)
        .first()
    )
    if exists:
        raise ConflictError("You have already applied for this job")

    application = Application(
        user_id=user.id,
        job_id=job.id,
        cover_letter=(cover_letter or "").strip() or None,
        match_score=score_job(user, job),
        assessment_cutoff_score=job.assessment_cutoff_score,
    )
    db.add(application)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("You have already applied for this job") from exc

    db.execute(
        update(Job)
        .where(Job.id == job.id)
        .values(application_count=Job.application_count + 1)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(application)
    logger.info("User %s applied to job %s (application %s)", user.id, job.id, application.id)
    return application
