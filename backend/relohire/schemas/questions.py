from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from relohire.schemas.common import Pagination

QuestionTypeLiteral = Literal["objective", "theory"]
DifficultyLiteral = Literal["easy", "medium", "hard"]


def check_objective_answer(question_type, options, correct_answer) -> None:
    if question_type != "objective":
        return
    if not options or len(options) < 2:
        raise ValueError("Objective questions need at least two options")
    if not correct_answer:
        raise ValueError("Objective questions need a correct_answer")
    if correct_answer not in options:
        raise ValueError("correct_answer must be one of the options")


class QuestionCreate(BaseModel):
    category: str = Field(min_length=1, max_length=100)
    question_type: QuestionTypeLiteral = "objective"
    difficulty: DifficultyLiteral = "medium"
    text: str = Field(min_length=1, max_length=5000)
    options: Optional[list[str]] = Field(default=None, max_length=10)
    correct_answer: Optional[str] = Field(default=None, max_length=500)
    points: int = Field(default=1, ge=1, le=100)

    @model_validator(mode="after")
    def _objective_needs_answer(self):
        check_objective_answer(self.question_type, self.options, self.correct_answer)
        return self


class QuestionUpdate(BaseModel):
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    difficulty: Optional[DifficultyLiteral] = None
    text: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    options: Optional[list[str]] = Field(default=None, max_length=10)
    correct_answer: Optional[str] = Field(default=None, max_length=500)
    points: Optional[int] = Field(default=None, ge=1, le=100)
    is_active: Optional[bool] = None


class QuestionOut(BaseModel):
    id: int
    category: str
    question_type: str
    difficulty: str
    text: str
    options: Optional[list[str]] = None
    correct_answer: Optional[str] = None
    points: int
    is_active: bool
    created_by: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class QuestionListOut(BaseModel):
    questions: list[QuestionOut]
    pagination: Pagination
