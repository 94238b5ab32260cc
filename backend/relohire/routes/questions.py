from __future__ import annotations

import logging
import math

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from relohire.core.database import get_db
from relohire.core.errors import ForbiddenError, NotFoundError, ValidationFailedError
from relohire.dependencies.auth import require_company_or_admin
from relohire.models.question import Question
from relohire.models.user import User, UserRole
from relohire.schemas.common import Envelope, ok
from relohire.schemas.questions import (
    QuestionCreate,
    QuestionListOut,
    QuestionOut,
    QuestionUpdate,
    check_objective_answer,
)
from relohire.services.cache import get_cache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/questions", tags=["questions"])

MAX_PAGE_SIZE = 100


def _get_question(db: Session, question_id: int) -> Question:
    question = db.get(Question, question_id)
    if not question:
        raise NotFoundError("Question not found")
    return question


def _require_question_owner(question: Question, user: User) -> None:
    if user.role != UserRole.admin.value and question.created_by != user.id:
        raise ForbiddenError("Not authorized to modify this question")


def _invalidate_question_caches() -> None:
    # Category sets fall back to the general pool, so any change can affect any key.
    get_cache().invalidate_questions()


@router.get("", response_model=Envelope[QuestionListOut])
def list_questions(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    category: str | None = None,
    question_type: str | None = None,
    difficulty: str | None = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    user: User = Depends(require_company_or_admin),
):
    qry = db.query(Question)
    if not include_inactive:
        qry = qry.filter(Question.is_active.is_(True))
    if category:
        qry = qry.filter(func.lower(Question.category) == category.strip().lower())
    if question_type:
        qry = qry.filter(Question.question_type == question_type)
    if difficulty:
        qry = qry.filter(Question.difficulty == difficulty)

    total = qry.count()
    questions = qry.order_by(desc(Question.created_at), desc(Question.id)).offset((page - 1) * limit).limit(limit).all()
    pagination = {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)}
    return ok({"questions": questions, "pagination": pagination})


@router.post("", response_model=Envelope[QuestionOut], status_code=status.HTTP_201_CREATED)
def create_question(
    payload: QuestionCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_company_or_admin),
):
    data = payload.model_dump()
    data["category"] = data["category"].strip().lower()
    if data["question_type"] == "theory":
        data["correct_answer"] = None
    question = Question(**data, created_by=user.id)
    db.add(question)
    db.commit()
    db.refresh(question)

    _invalidate_question_caches()
    logger.info("Question %s created by user %s", question.id, user.id)
    return ok(question, "Question created successfully")


@router.patch("/{question_id}", response_model=Envelope[QuestionOut])
def update_question(
    question_id: int,
    payload: QuestionUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_company_or_admin),
):
    question = _get_question(db, question_id)
    _require_question_owner(question, user)

    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if "category" in changes:
        changes["category"] = changes["category"].strip().lower()
    try:
        check_objective_answer(
            question.question_type,
            changes.get("options", question.options),
            changes.get("correct_answer", question.correct_answer),
        )
    except ValueError as exc:
        raise ValidationFailedError(str(exc))

    for key, value in changes.items():
        setattr(question, key, value)
    db.commit()
    db.refresh(question)

    _invalidate_question_caches()
    return ok(question, "Question updated successfully")


@router.delete("/{question_id}", response_model=Envelope[None])
def deactivate_question(
    question_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_company_or_admin),
):
    # Submitted exams are scored against the rows they were served, so questions are never hard-deleted.
    question = _get_question(db, question_id)
    _require_question_owner(question, user)

    question.is_active = False
    db.commit()

    _invalidate_question_caches()
    logger.info("Question %s deactivated by user %s", question_id, user.id)
    return ok(message="Question deactivated")
