from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class ExamQuestionOut(BaseModel):
    id: int
    text: str
    question_type: str
    difficulty: str
    options: Optional[list[str]] = None
    points: int


class ExamStartOut(BaseModel):
    session_id: str
    exam_id: int
    time_limit_minutes: int
    security_notice: str
    rules: list[str]
    questions: list[ExamQuestionOut]


class ViolationIn(BaseModel):
    violation_type: str = Field(min_length=1, max_length=50)
    severity: Literal["low", "medium", "high", "critical"] = "medium"
    description: str = Field(default="Security violation detected", max_length=500)


class ViolationOut(BaseModel):
    terminated: bool
    violation_counts: dict[str, int]


class ExamAnswer(BaseModel):
    question_id: int
    answer: str = Field(max_length=5000)


class ExamSubmitIn(BaseModel):
    answers: list[ExamAnswer]
    time_spent_seconds: Optional[int] = Field(default=None, ge=0)
    tab_switches: int = Field(default=0, ge=0)
    submission_type: Literal["manual", "automatic"] = "manual"


class ExamSubmitOut(BaseModel):
    score: int
    cutoff_score: Optional[int] = None
    passed: bool
    status: str


class ExamTerminateIn(BaseModel):
    reason: str = Field(default="Terminated by candidate", max_length=500)


class ExamStatusOut(BaseModel):
    session_id: str
    exam_id: int
    is_active: bool
    started_at: str
    violation_counts: dict[str, int]
    violations: list[dict[str, Any]]
