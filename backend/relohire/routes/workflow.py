from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from relohire.core.database import get_db
from relohire.core.errors import ForbiddenError
from relohire.dependencies.auth import get_current_user, require_company_or_admin
from relohire.models.user import User
from relohire.schemas.applications import ApplicationOut
from relohire.schemas.common import Envelope, ok
from relohire.schemas.workflow import (
    AssessmentScoreIn,
    DocumentSubmissionIn,
    DocumentVerificationIn,
    GatesOut,
    OfferDetailsIn,
    ProgressOut,
)
from relohire.services.applications import get_application_for_employer, get_application_for_viewer
from relohire.services.workflow import WorkflowManager

router = APIRouter(prefix="/workflow", tags=["workflow"], dependencies=[Depends(get_current_user)])


@router.get("/{application_id}/progress", response_model=Envelope[ProgressOut])
def get_progress(
    application_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    get_application_for_viewer(db, application_id, user)
    return ok(WorkflowManager(db).get_progress(application_id))


@router.get("/{application_id}/gates", response_model=Envelope[GatesOut])
def get_gates(
    application_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    get_application_for_viewer(db, application_id, user)
    return ok(WorkflowManager(db).check_payment_gates(application_id).as_dict())


@router.post("/{application_id}/assessment-score", response_model=Envelope[ApplicationOut])
def submit_assessment_score(
    application_id: int,
    payload: AssessmentScoreIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_company_or_admin),
):
    get_application_for_employer(db, application_id, user)
    application = WorkflowManager(db).process_assessment_completion(application_id, payload.score)
    return ok(application, "Assessment score recorded")


@router.post("/{application_id}/documents", response_model=Envelope[ApplicationOut])
def submit_documents(
    application_id: int,
    payload: DocumentSubmissionIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    application = get_application_for_viewer(db, application_id, user)
    if application.user_id != user.id:
        raise ForbiddenError("Only the applicant can submit documents")
    application = WorkflowManager(db).submit_documents(application_id, payload.documents)
    return ok(application, "Documents submitted")


@router.post("/{application_id}/verify-documents", response_model=Envelope[ApplicationOut])
def verify_documents(
    application_id: int,
    payload: DocumentVerificationIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_company_or_admin),
):
    get_application_for_employer(db, application_id, user)
    application = WorkflowManager(db).process_document_verification(application_id, payload.verified)
    message = "Documents verified; offer sent" if payload.verified else "Documents rejected"
    return ok(application, message)


@router.patch("/{application_id}/offer", response_model=Envelope[ApplicationOut])
def set_offer(
    application_id: int,
    payload: OfferDetailsIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_company_or_admin),
):
    get_application_for_employer(db, application_id, user)
    offer = payload.model_dump(mode="json", exclude_unset=True)
    application = WorkflowManager(db).set_offer_details(application_id, offer)
    return ok(application, "Offer details updated")


@router.post("/{application_id}/accept-offer", response_model=Envelope[ApplicationOut])
def accept_offer(
    application_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    application = WorkflowManager(db).accept_offer(application_id, user_id=user.id)
    return ok(application, "Offer accepted")


@router.post("/{application_id}/visa", response_model=Envelope[ApplicationOut])
def process_visa(
    application_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_company_or_admin),
):
    get_application_for_employer(db, application_id, user)
    application = WorkflowManager(db).process_visa_processing(application_id)
    return ok(application, "Visa processing started")


@router.post("/{application_id}/complete", response_model=Envelope[ApplicationOut])
def complete_relocation(
    application_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_company_or_admin),
):
    get_application_for_employer(db, application_id, user)
    application = WorkflowManager(db).complete(application_id)
    return ok(application, "Relocation completed")
