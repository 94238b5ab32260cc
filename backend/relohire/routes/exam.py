from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from relohire.core.config import settings
from relohire.core.database import get_db
from relohire.core.errors import ExamSessionError, NotFoundError, PaymentRequiredError
from relohire.dependencies.auth import get_current_user
from relohire.dependencies.exam import get_exam_manager, require_exam_session
from relohire.models.application import Application, ApplicationStatus, PaymentStep
from relohire.models.user import User
from relohire.schemas.common import Envelope, ok
from relohire.schemas.exam import (
    ExamStartOut,
    ExamStatusOut,
    ExamSubmitIn,
    ExamSubmitOut,
    ExamTerminateIn,
    ViolationIn,
    ViolationOut,
)
from relohire.services.assessment import (
    EXAM_RULES,
    SECURITY_NOTICE,
    questions_by_ids,
    questions_for_exam,
    score_answers,
)
from relohire.services.exam_security import ExamSecurityManager, ExamSession, RequestContext
from relohire.services.workflow import WorkflowManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/exam", tags=["exam"], dependencies=[Depends(get_current_user)])

COMPLETED_REASON = "Exam completed successfully"


def _owned_session(manager: ExamSecurityManager, session_id: str, user: User) -> ExamSession:
    session = manager.get_session(session_id)
    if session is None or session.user_id != user.id:
        raise ExamSessionError("Invalid or compromised exam session")
    return session


@router.post("/start/{exam_id}", response_model=Envelope[ExamStartOut])
def start_exam(
    exam_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    manager: ExamSecurityManager = Depends(get_exam_manager),
):
    # The exam id is the application being assessed.
    application = (
        db.query(Application)
        .filter(
            Application.id == exam_id,
            Application.user_id == user.id,
            Application.status == ApplicationStatus.assessment_pending.value,
        )
        .first()
    )
    if not application:
        raise NotFoundError("Exam not found or not accessible")
    if not WorkflowManager(db).check_payment_gates(application.id).can_take_assessment:
        raise PaymentRequiredError(
            "Payment verification required before starting exam",
            details={"step": PaymentStep.assessment.value},
        )

    questions = questions_for_exam(db, application.job.category)
    session_id = manager.initialize_session(
        user.id,
        application.id,
        RequestContext.from_request(request),
        question_ids=[q["id"] for q in questions],
    )
    data = {
        "session_id": session_id,
        "exam_id": application.id,
        "time_limit_minutes": settings.EXAM_TIME_LIMIT_MINUTES,
        "security_notice": SECURITY_NOTICE,
        "rules": EXAM_RULES,
        "questions": questions,
    }
    return ok(data, "Exam session started")


@router.post("/violation", response_model=Envelope[ViolationOut])
def report_violation(
    payload: ViolationIn,
    session_id: str = Depends(require_exam_session),
    user: User = Depends(get_current_user),
    manager: ExamSecurityManager = Depends(get_exam_manager),
):
    _owned_session(manager, session_id, user)
    terminated = manager.record_violation(session_id, payload.violation_type, payload.severity, payload.description)
    counts = manager.violation_counts(session_id)
    if terminated:
        return JSONResponse(
            status_code=403,
            content={
                "success": False,
                "error": "EXAM_TERMINATED",
                "message": "Exam terminated due to security violations",
                "terminated": True,
                "details": {"violation_counts": counts},
            },
        )
    return ok({"terminated": False, "violation_counts": counts}, "Violation recorded")


@router.get("/status", response_model=Envelope[ExamStatusOut])
def session_status(
    session_id: str = Depends(require_exam_session),
    user: User = Depends(get_current_user),
    manager: ExamSecurityManager = Depends(get_exam_manager),
):
    session = _owned_session(manager, session_id, user)
    return ok(
        {
            "session_id": session.session_id,
            "exam_id": session.exam_id,
            "is_active": session.is_active,
            "started_at": session.started_at,
            "violation_counts": manager.violation_counts(session_id),
            "violations": session.violations,
        }
    )


@router.post("/submit", response_model=Envelope[ExamSubmitOut])
def submit_exam(
    payload: ExamSubmitIn,
    session_id: str = Depends(require_exam_session),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    manager: ExamSecurityManager = Depends(get_exam_manager),
):
    session = _owned_session(manager, session_id, user)
    application = db.get(Application, session.exam_id)
    if not application or application.user_id != user.id:
        raise NotFoundError("Application not found")

    questions = questions_by_ids(db, session.question_ids)
    answers = {a.question_id: a.answer for a in payload.answers}
    score = score_answers(questions, answers)

    security_data = {
        "session_id": session.session_id,
        "browser_fingerprint": session.browser_fingerprint,
        "ip_address": session.ip_address,
        "violations": session.violations,
        "time_spent_seconds": payload.time_spent_seconds,
        "tab_switches": payload.tab_switches,
        "submission_type": payload.submission_type,
    }

    manager.terminate_session(session_id, COMPLETED_REASON)
    logger.info(
        "Exam submitted: application=%s earned=%s possible=%s",
        application.id,
        score.earned,
        score.possible,
    )

    application = WorkflowManager(db).process_assessment_completion(
        application.id, score.percent, security_data=security_data
    )
    return ok(
        {
            "score": score.percent,
            "cutoff_score": application.assessment_cutoff_score,
            "passed": bool(application.assessment_passed),
            "status": application.status,
        },
        "Exam submitted successfully",
    )


@router.post("/terminate", response_model=Envelope[None])
def terminate_exam(
    payload: ExamTerminateIn,
    session_id: str = Depends(require_exam_session),
    user: User = Depends(get_current_user),
    manager: ExamSecurityManager = Depends(get_exam_manager),
):
    _owned_session(manager, session_id, user)
    manager.terminate_session(session_id, payload.reason)
    return ok(message="Exam session terminated")
