from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy import desc
from sqlalchemy.orm import Session

from relohire.core.database import get_db
from relohire.dependencies.auth import get_current_user, require_candidate, require_company_or_admin
from relohire.models.application import Application, ApplicationStatus
from relohire.models.user import User
from relohire.schemas.applications import ApplicationCreate, ApplicationOut, ApplicationStatusUpdate
from relohire.schemas.common import Envelope, ok
from relohire.services.applications import (
    create_application,
    get_application_for_employer,
    get_application_for_viewer,
    get_job_for_employer,
)
from relohire.services.workflow import WorkflowManager

router = APIRouter(prefix="/applications", tags=["applications"], dependencies=[Depends(get_current_user)])


@router.post("", response_model=Envelope[ApplicationOut], status_code=status.HTTP_201_CREATED)
def apply_to_job(
    payload: ApplicationCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_candidate),
):
    application = create_application(db, user, payload.job_id, payload.cover_letter)
    return ok(application, "Application submitted successfully")


@router.get("", response_model=Envelope[list[ApplicationOut]])
def list_my_applications(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    rows = (
        db.query(Application)
        .filter(Application.user_id == user.id)
        .order_by(desc(Application.applied_at), desc(Application.id))
        .all()
    )
    return ok(rows)


@router.get("/job/{job_id}", response_model=Envelope[list[ApplicationOut]])
def list_job_applications(
    job_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_company_or_admin),
):
    job = get_job_for_employer(db, job_id, user)
    rows = (
        db.query(Application)
        .filter(Application.job_id == job.id)
        .order_by(desc(Application.applied_at), desc(Application.id))
        .all()
    )
    return ok(rows)


@router.get("/{application_id}", response_model=Envelope[ApplicationOut])
def get_application(
    application_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return ok(get_application_for_viewer(db, application_id, user))


@router.patch("/{application_id}/status", response_model=Envelope[ApplicationOut])
def update_application_status(
    application_id: int,
    payload: ApplicationStatusUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_company_or_admin),
):
    get_application_for_employer(db, application_id, user)
    workflow = WorkflowManager(db)
    if payload.status == ApplicationStatus.accepted.value:
        application = workflow.process_application_acceptance(application_id)
    else:
        application = workflow.reject(application_id, payload.reason)
    return ok(application, f"Application {payload.status} successfully")


@router.patch("/{application_id}/withdraw", response_model=Envelope[ApplicationOut])
def withdraw_application(
    application_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    application = WorkflowManager(db).withdraw(application_id, user_id=user.id)
    return ok(application, "Application withdrawn successfully")
