# relohire/models/job.py
from __future__ import annotations

from enum import Enum as PyEnum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from relohire.core.base import Base
from relohire.models.json_type import JSONBCompat


class ExperienceLevel(str, PyEnum):
    entry = "Entry"
    mid = "Mid"
    senior = "Senior"
    executive = "Executive"


class JobType(str, PyEnum):
    full_time = "Full-time"
    part_time = "Part-time"
    contract = "Contract"
    internship = "Internship"


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)

    title = Column(String(200), nullable=False)
    # Display name; the posting account is posted_by.
    company = Column(String(100), nullable=False)
    location = Column(String(255), nullable=False)
    country = Column(String(100), nullable=False, index=True)
    salary = Column(String(100), nullable=False)
    job_type = Column(String(20), nullable=False, default=JobType.full_time.value)
    category = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=False)

    skills = Column(JSONBCompat, nullable=False, default=list)
    requirements = Column(JSONBCompat, nullable=False, default=list)
    benefits = Column(JSONBCompat, nullable=False, default=list)

    visa_sponsorship = Column(Boolean, nullable=False, default=False, server_default="false")
    relocation_assistance = Column(Boolean, nullable=False, default=False, server_default="false")
    experience_level = Column(String(20), nullable=False, index=True)
    education_level = Column(String(30), nullable=False, default="Any", server_default="Any")

    assessment_required = Column(Boolean, nullable=False, default=True, server_default="true")
    # 0..100; candidates pass with score >= cutoff
    assessment_cutoff_score = Column(Integer, nullable=False, default=70, server_default="70")

    application_deadline = Column(DateTime(timezone=True), nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    contract_duration = Column(String(100), nullable=True)
    accommodation_provided = Column(Boolean, nullable=False, default=False, server_default="false")

    is_active = Column(Boolean, nullable=False, default=True, server_default="true", index=True)
    view_count = Column(Integer, nullable=False, default=0, server_default="0")
    application_count = Column(Integer, nullable=False, default=0, server_default="0")

    posted_by = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    poster = relationship("User", foreign_keys=[posted_by])
    applications = relationship("Application", back_populates="job")
