from __future__ import annotations

from fastapi import Depends, Header, Request

from relohire.core.errors import ExamSessionError, ValidationFailedError
from relohire.dependencies.auth import get_current_user
from relohire.models.user import User
from relohire.services.exam_security import (
    ExamSecurityManager,
    RequestContext,
    get_exam_security_manager,
)


def get_exam_manager() -> ExamSecurityManager:
    return get_exam_security_manager()


def require_exam_session(
    request: Request,
    x_exam_session: str | None = Header(default=None, alias="X-Exam-Session"),
    user: User = Depends(get_current_user),
    manager: ExamSecurityManager = Depends(get_exam_manager),
) -> str:
    """
    Resolve the X-Exam-Session header into a live, untampered session id.

    Ownership is checked before the fingerprint so a foreign caller cannot
    trip violations on someone else's session.
    """
    session_id = (x_exam_session or "").strip()
    if not session_id:
        raise ValidationFailedError("Exam session required")
    session = manager.get_session(session_id)
    if session is None or session.user_id != user.id:
        raise ExamSessionError("Invalid or compromised exam session")
    if not manager.validate_session(session_id, RequestContext.from_request(request)):
        raise ExamSessionError("Invalid or compromised exam session")
    return session_id
