# relohire/schemas/auth.py
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class LanguageSkill(BaseModel):
    language: str = Field(min_length=1, max_length=50)
    proficiency: str = Field(default="intermediate", max_length=30)


class RegisterIn(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=8, max_length=128)
    role: Literal["user", "company"] = "user"
    phone: Optional[str] = Field(default=None, max_length=50)
    nationality: Optional[str] = Field(default=None, max_length=100)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    nationality: Optional[str] = Field(default=None, max_length=100)
    current_location: Optional[str] = Field(default=None, max_length=255)
    preferred_countries: Optional[list[str]] = None
    skills: Optional[list[str]] = None
    experience_years: Optional[int] = Field(default=None, ge=0, le=60)
    languages: Optional[list[LanguageSkill]] = None


class UserOut(BaseModel):
    id: int
    email: EmailStr
    name: str
    role: str
    is_active: bool
    phone: Optional[str] = None
    nationality: Optional[str] = None
    current_location: Optional[str] = None
    preferred_countries: list[str] = []
    skills: list[str] = []
    experience_years: int = 0
    languages: list[dict] = []
    last_login_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut
