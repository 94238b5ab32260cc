from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import case, desc, func, select
from sqlalchemy.orm import Session

from relohire.core.errors import NotFoundError
from relohire.models.application import TERMINAL_STATUSES, Application, ApplicationStatus, StepPaymentStatus
from relohire.models.company import Company
from relohire.models.job import Job
from relohire.models.payment import Payment, PaymentStatus
from relohire.models.user import User

S = ApplicationStatus

PROFILE_FIELDS = (
    "name",
    "email",
    "phone",
    "nationality",
    "current_location",
    "skills",
    "preferred_countries",
    "languages",
)

RECENT_FOR_USER = 5
RECENT_FOR_COMPANY = 10

STEP_LABELS = {
    "assessment": "Assessment",
    "document_processing": "Document processing",
    "visa_processing": "Visa processing",
}


def profile_completion(user: User) -> int:
    filled = sum(1 for name in PROFILE_FIELDS if getattr(user, name, None))
    return int(round(filled / len(PROFILE_FIELDS) * 100))


def _status_counts(db: Session, *filters) -> dict[str, int]:
    rows = db.query(Application.status, func.count(Application.id)).filter(*filters).group_by(Application.status).all()
    return {str(status): int(count) for status, count in rows}


def _recent(application: Application, *, with_candidate: bool = False) -> dict[str, Any]:
    row = {
        "id": application.id,
        "job_id": application.job_id,
        "job_title": application.job.title if application.job else None,
        "status": application.status,
        "current_step": application.current_step,
        "applied_at": application.applied_at,
    }
    if with_candidate:
        row["candidate_name"] = application.user.name if application.user else None
    return row


def user_dashboard(db: Session, user: User) -> dict[str, Any]:
    by_status = _status_counts(db, Application.user_id == user.id)
    total = sum(by_status.values())
    closed = sum(by_status.get(s, 0) for s in TERMINAL_STATUSES)

    paid = (
        db.query(func.coalesce(func.sum(Payment.usd_amount), 0))
        .filter(Payment.user_id == user.id, Payment.status == PaymentStatus.confirmed.value)
        .scalar()
    )
    pending_payments = (
        db.query(func.count(Payment.id))
        .filter(Payment.user_id == user.id, Payment.status == PaymentStatus.pending.value)
        .scalar()
        or 0
    )
    active_jobs = db.query(func.count(Job.id)).filter(Job.is_active.is_(True)).scalar() or 0

    recent = (
        db.query(Application)
        .filter(Application.user_id == user.id)
        .order_by(desc(Application.applied_at), desc(Application.id))
        .limit(RECENT_FOR_USER)
        .all()
    )
    return {
        "stats": {
            "total_applications": total,
            "active_applications": total - closed,
            "by_status": by_status,
            "assessments_pending": by_status.get(S.assessment_pending.value, 0),
            "documents_required": by_status.get(S.documents_pending.value, 0),
            "visa_processing": by_status.get(S.visa_processing.value, 0),
            "pending_payments": int(pending_payments),
            "total_paid_usd": format(Decimal(str(paid or 0)).quantize(Decimal("0.01")), "f"),
            "total_jobs": int(active_jobs),
            "profile_completion": profile_completion(user),
        },
        "recent_applications": [_recent(a) for a in recent],
    }


def company_dashboard(db: Session, user: User) -> dict[str, Any]:
    company = db.query(Company).filter(Company.user_id == user.id).first()
    if company is None:
        raise NotFoundError("Company profile not found")

    job_totals = (
        db.query(func.count(Job.id), func.coalesce(func.sum(case((Job.is_active.is_(True), 1), else_=0)), 0))
        .filter(Job.posted_by == user.id)
        .one()
    )
    own_jobs = select(Job.id).where(Job.posted_by == user.id)
    by_status = _status_counts(db, Application.job_id.in_(own_jobs))
    documents_to_verify = (
        db.query(func.count(Application.id))
        .filter(
            Application.job_id.in_(own_jobs),
            Application.status == S.documents_pending.value,
            Application.documents_submitted.is_(True),
        )
        .scalar()
        or 0
    )

    recent = (
        db.query(Application)
        .filter(Application.job_id.in_(own_jobs))
        .order_by(desc(Application.applied_at), desc(Application.id))
        .limit(RECENT_FOR_COMPANY)
        .all()
    )
    return {
        "company": company,
        "stats": {
            "total_jobs": int(job_totals[0] or 0),
            "active_jobs": int(job_totals[1] or 0),
            "total_applications": sum(by_status.values()),
            "by_status": by_status,
            "pending_review": by_status.get(S.pending.value, 0),
            "assessments_completed": by_status.get(S.assessment_completed.value, 0),
            "documents_to_verify": int(documents_to_verify),
            "offers_outstanding": by_status.get(S.offer_sent.value, 0),
        },
        "recent_applications": [_recent(a, with_candidate=True) for a in recent],
    }


def user_notifications(db: Session, user: User) -> list[dict[str, Any]]:
    """
    Action items derived from the current state of the user's open
    applications. Nothing is stored, so an item disappears once acted on.
    """
    applications = (
        db.query(Application)
        .filter(Application.user_id == user.id, Application.status.notin_(tuple(TERMINAL_STATUSES)))
        .order_by(desc(Application.updated_at), desc(Application.id))
        .all()
    )

    items: list[dict[str, Any]] = []

    def add(application: Application, kind: str, title: str, message: str, priority: str) -> None:
        items.append(
            {
                "id": f"{application.id}:{kind}",
                "type": kind,
                "title": title,
                "message": message,
                "application_id": application.id,
                "priority": priority,
            }
        )

    for application in applications:
        job_title = application.job.title if application.job else "your job"
        for step, state in application.effective_payment_status.items():
            if state in (StepPaymentStatus.required.value, StepPaymentStatus.failed.value):
                add(
                    application,
                    f"payment_required_{step}",
                    "Payment Required",
                    f"{STEP_LABELS.get(step, step)} payment required for {job_title}",
                    "high",
                )

        if application.status == S.assessment_pending.value:
            add(application, "assessment_ready", "Assessment Ready", f"Your assessment for {job_title} is ready to take", "medium")
        elif application.status == S.documents_pending.value and not application.documents_submitted:
            add(
                application,
                "documents_required",
                "Documents Required",
                f"Please submit required documents for {job_title}",
                "high",
            )
        elif application.status == S.offer_sent.value:
            add(application, "offer_received", "Offer Received", f"You have a job offer for {job_title}", "high")

    return items
