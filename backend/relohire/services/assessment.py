from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from sqlalchemy import func
from sqlalchemy.orm import Session

from relohire.core.config import settings
from relohire.models.question import Question
from relohire.services.cache import get_cache

GENERAL_CATEGORY = "general"

EXAM_RULES = [
    "Do not switch tabs or applications",
    "Do not copy or paste content",
    "Do not use browser developer tools",
    "Do not leave fullscreen mode",
    "Do not use external devices or assistance",
    "Maintain stable internet connection",
]

SECURITY_NOTICE = (
    "This exam is monitored for security violations. "
    "Any suspicious activity will result in automatic termination."
)


@dataclass
class ExamScore:
    earned: int
    possible: int

    @property
    def percent(self) -> int:
        if self.possible <= 0:
            return 0
        return int(math.floor(self.earned / self.possible * 100 + 0.5))


def select_questions(db: Session, category: str | None, *, limit: int | None = None) -> list[Question]:
    """
    Active questions for a job category, falling back to the general pool.
    Ordered by id so repeated selections over an unchanged bank agree.
    """
    size = int(limit or settings.EXAM_QUESTION_COUNT)
    base = db.query(Question).filter(Question.is_active.is_(True))

    wanted = (category or "").strip().lower()
    if wanted:
        rows = base.filter(func.lower(Question.category) == wanted).order_by(Question.id.asc()).limit(size).all()
        if rows:
            return rows
    return base.filter(Question.category == GENERAL_CATEGORY).order_by(Question.id.asc()).limit(size).all()


def questions_by_ids(db: Session, question_ids: Iterable[int]) -> list[Question]:
    """
    The exact rows an exam session was served, in serving order. Questions
    deactivated since then still count.
    """
    ids = [int(i) for i in question_ids]
    if not ids:
        return []
    rows = {q.id: q for q in db.query(Question).filter(Question.id.in_(ids)).all()}
    return [rows[i] for i in ids if i in rows]


def public_question(q: Question) -> dict[str, Any]:
    return {
        "id": q.id,
        "text": q.text,
        "question_type": q.question_type,
        "difficulty": q.difficulty,
        "options": list(q.options) if q.options else None,
        "points": int(q.points or 0),
    }


def questions_for_exam(db: Session, category: str | None) -> list[dict[str, Any]]:
    """Answer-free question set, read through the cache."""
    key = (category or GENERAL_CATEGORY).strip().lower() or GENERAL_CATEGORY
    cache = get_cache()
    cached = cache.get_questions(key)
    if cached is not None:
        return cached
    questions = [public_question(q) for q in select_questions(db, category)]
    if questions:
        cache.set_questions(key, questions)
    return questions


def _normalize_answer(value: Any) -> str:
    return " ".join(str(value or "").split()).lower()


def score_answers(questions: Iterable[Question], answers: Mapping[int, str]) -> ExamScore:
    # Theory questions are marked by a reviewer and are not part of the automatic score.
    earned = possible = 0
    for q in questions:
        if q.question_type != "objective" or not q.correct_answer:
            continue
        points = int(q.points or 0)
        possible += points
        given = answers.get(q.id)
        if given is not None and _normalize_answer(given) == _normalize_answer(q.correct_answer):
            earned += points
    return ExamScore(earned=earned, possible=possible)
