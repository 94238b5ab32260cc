from __future__ import annotations

import logging
import math

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import case, desc, func, or_
from sqlalchemy.orm import Session

from relohire.core.database import get_db
from relohire.core.errors import ForbiddenError, NotFoundError
from relohire.dependencies.auth import get_current_user, require_company_or_admin
from relohire.models.job import Job
from relohire.models.user import User, UserRole
from relohire.schemas.common import Envelope, ok
from relohire.schemas.jobs import (
    JobCreate,
    JobListOut,
    JobMatchesOut,
    JobOut,
    JobStatsOut,
    JobUpdate,
)
from relohire.services.cache import get_cache
from relohire.services.matching import find_matches

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])

MAX_PAGE_SIZE = 100


def _get_job(db: Session, job_id: int) -> Job:
    job = db.get(Job, job_id)
    if not job:
        raise NotFoundError("Job not found")
    return job


def _require_job_owner(job: Job, user: User) -> None:
    if user.role != UserRole.admin.value and job.posted_by != user.id:
        raise ForbiddenError("Not authorized to modify this job")


def _invalidate_job_caches() -> None:
    cache = get_cache()
    cache.invalidate_job_stats()
    cache.invalidate_job_matches()


@router.get("", response_model=Envelope[JobListOut])
def list_jobs(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
    category: str | None = None,
    country: str | None = None,
    job_type: str | None = None,
    visa_sponsorship: bool | None = None,
    experience_level: str | None = None,
    search: str | None = None,
    db: Session = Depends(get_db),
):
    qry = db.query(Job).filter(Job.is_active.is_(True))

    if category:
        qry = qry.filter(Job.category == category)
    if country:
        qry = qry.filter(Job.country == country)
    if job_type:
        qry = qry.filter(Job.job_type == job_type)
    if visa_sponsorship is not None:
        qry = qry.filter(Job.visa_sponsorship.is_(visa_sponsorship))
    if experience_level:
        qry = qry.filter(Job.experience_level == experience_level)

    # Text search (title/company/description)
    term = (search or "").strip()
    if term:
        like = f"%{term}%"
        qry = qry.filter(
            or_(
                Job.title.ilike(like),
                Job.company.ilike(like),
                Job.description.ilike(like),
            )
        )

    total = qry.count()
    jobs = (
        qry.order_by(desc(Job.created_at), desc(Job.id))
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    pagination = {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)}
    return ok({"jobs": jobs, "pagination": pagination})


@router.get("/stats", response_model=Envelope[JobStatsOut])
def job_stats(db: Session = Depends(get_db)):
    cache = get_cache()
    cached = cache.get_job_stats()
    if cached is not None:
        return ok(cached)

    totals = db.query(
        func.count(Job.id),
        func.coalesce(func.sum(case((Job.is_active.is_(True), 1), else_=0)), 0),
        func.coalesce(func.sum(case((Job.visa_sponsorship.is_(True), 1), else_=0)), 0),
        func.coalesce(func.sum(Job.view_count), 0),
        func.coalesce(func.sum(Job.application_count), 0),
    ).one()

    def _buckets(column) -> list[dict]:
        rows = (
            db.query(column, func.count(Job.id))
            .filter(Job.is_active.is_(True))
            .group_by(column)
            .order_by(desc(func.count(Job.id)), column)
            .all()
        )
        return [{"name": name, "count": int(count)} for name, count in rows]

    stats = {
        "total_jobs": int(totals[0] or 0),
        "active_jobs": int(totals[1] or 0),
        "visa_sponsored_jobs": int(totals[2] or 0),
        "total_views": int(totals[3] or 0),
        "total_applications": int(totals[4] or 0),
        "by_category": _buckets(Job.category),
        "by_country": _buckets(Job.country),
    }
    cache.set_job_stats(stats)
    return ok(stats)


@router.get("/matches/me", response_model=Envelope[JobMatchesOut])
def my_matches(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    cache = get_cache()
    cached = cache.get_job_matches(user.id)
    if cached is not None:
        return ok({"matches": cached})

    matches = [
        {"job": JobOut.model_validate(m.job).model_dump(mode="json"), "match_score": m.match_score}
        for m in find_matches(db, user)
    ]
    cache.set_job_matches(user.id, matches)
    return ok({"matches": matches})


@router.get("/{job_id}", response_model=Envelope[JobOut])
def get_job(job_id: int, db: Session = Depends(get_db)):
    job = _get_job(db, job_id)
    job.view_count = Job.view_count + 1
    db.commit()
    db.refresh(job)
    return ok(job)


@router.post("", response_model=Envelope[JobOut], status_code=status.HTTP_201_CREATED)
def create_job(
    payload: JobCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_company_or_admin),
):
    job = Job(**payload.model_dump())
    job.posted_by = user.id
    db.add(job)
    db.commit()
    db.refresh(job)

    _invalidate_job_caches()
    logger.info("Job %s created by user %s", job.id, user.id)
    return ok(job, "Job created successfully")


@router.patch("/{job_id}", response_model=Envelope[JobOut])
def update_job(
    job_id: int,
    payload: JobUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_company_or_admin),
):
    job = _get_job(db, job_id)
    _require_job_owner(job, user)

    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is None and key not in ("application_deadline", "start_date", "contract_duration"):
            continue
        setattr(job, key, value)

    db.commit()
    db.refresh(job)
    _invalidate_job_caches()
    return ok(job, "Job updated successfully")


@router.delete("/{job_id}", response_model=Envelope[None])
def delete_job(
    job_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_company_or_admin),
):
    job = _get_job(db, job_id)
    _require_job_owner(job, user)

    # Applications carry payment history, so a job that has any is only closed.
    if job.applications:
        job.is_active = False
        db.commit()
        _invalidate_job_caches()
        logger.info("Job %s closed by user %s (has applications)", job_id, user.id)
        return ok(message="Job has applications and was deactivated")

    db.delete(job)
    db.commit()
    _invalidate_job_caches()
    logger.info("Job %s deleted by user %s", job_id, user.id)
    return ok(message="Job deleted successfully")
