from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from relohire.core.base import Base
from relohire.models.json_type import JSONBCompat


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)

    category = Column(String(100), nullable=False, index=True)
    # objective | theory
    question_type = Column(String(20), nullable=False, default="objective")
    # easy | medium | hard
    difficulty = Column(String(20), nullable=False, default="medium")
    text = Column(Text, nullable=False)
    options = Column(JSONBCompat, nullable=True)
    correct_answer = Column(String(500), nullable=True)
    points = Column(Integer, nullable=False, default=1, server_default="1")
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")

    # Null for seeded questions; companies may only edit their own.
    created_by = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
