# relohire/models/user.py
from __future__ import annotations

from enum import Enum as PyEnum

from sqlalchemy import Boolean, Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship

from relohire.core.base import Base
from relohire.models.json_type import JSONBCompat


class UserRole(str, PyEnum):
    user = "user"
    company = "company"
    admin = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False)
    password_hash = Column(String(255), nullable=False)
    # user (candidate) | company | admin
    role = Column(String(20), nullable=False, default=UserRole.user.value, server_default="user")

    is_active = Column(Boolean, nullable=False, default=True, server_default="true")

    phone = Column(String(50), nullable=True)
    nationality = Column(String(100), nullable=True)
    current_location = Column(String(255), nullable=True)
    preferred_countries = Column(JSONBCompat, nullable=False, default=list)
    skills = Column(JSONBCompat, nullable=False, default=list)
    experience_years = Column(Integer, nullable=False, default=0, server_default="0")
    # [{"language": "English", "proficiency": "fluent"}]
    languages = Column(JSONBCompat, nullable=False, default=list)

    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    company = relationship("Company", back_populates="user", uselist=False)

    applications = relationship(
        "Application",
        back_populates="user",
        foreign_keys="Application.user_id",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin.value
