from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from relohire.schemas.common import Pagination

ExperienceLevelLiteral = Literal["Entry", "Mid", "Senior", "Executive"]
JobTypeLiteral = Literal["Full-time", "Part-time", "Contract", "Internship"]
EducationLiteral = Literal["High School", "Bachelor", "Master", "PhD", "Any"]


class JobBase(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    company: str = Field(min_length=1, max_length=100)
    location: str = Field(min_length=1, max_length=255)
    country: str = Field(min_length=1, max_length=100)
    salary: str = Field(min_length=1, max_length=100)
    job_type: JobTypeLiteral = "Full-time"
    category: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=5000)
    skills: list[str] = []
    requirements: list[str] = []
    benefits: list[str] = []
    visa_sponsorship: bool = False
    relocation_assistance: bool = False
    experience_level: ExperienceLevelLiteral
    education_level: EducationLiteral = "Any"
    assessment_required: bool = True
    assessment_cutoff_score: int = Field(default=70, ge=0, le=100)
    application_deadline: Optional[datetime] = None
    start_date: Optional[datetime] = None
    contract_duration: Optional[str] = Field(default=None, max_length=100)
    accommodation_provided: bool = False


class JobCreate(JobBase):
    pass


class JobUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    company: Optional[str] = Field(default=None, min_length=1, max_length=100)
    location: Optional[str] = Field(default=None, min_length=1, max_length=255)
    country: Optional[str] = Field(default=None, min_length=1, max_length=100)
    salary: Optional[str] = Field(default=None, min_length=1, max_length=100)
    job_type: Optional[JobTypeLiteral] = None
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    skills: Optional[list[str]] = None
    requirements: Optional[list[str]] = None
    benefits: Optional[list[str]] = None
    visa_sponsorship: Optional[bool] = None
    relocation_assistance: Optional[bool] = None
    experience_level: Optional[ExperienceLevelLiteral] = None
    education_level: Optional[EducationLiteral] = None
    assessment_required: Optional[bool] = None
    assessment_cutoff_score: Optional[int] = Field(default=None, ge=0, le=100)
    application_deadline: Optional[datetime] = None
    start_date: Optional[datetime] = None
    contract_duration: Optional[str] = Field(default=None, max_length=100)
    accommodation_provided: Optional[bool] = None
    is_active: Optional[bool] = None


class JobOut(JobBase):
    id: int
    is_active: bool
    view_count: int
    application_count: int
    posted_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class JobListOut(BaseModel):
    jobs: list[JobOut]
    pagination: Pagination


class JobMatchOut(BaseModel):
    job: JobOut
    match_score: int

    model_config = ConfigDict(from_attributes=True)


class JobMatchesOut(BaseModel):
    matches: list[JobMatchOut]


class CountBucket(BaseModel):
    name: str
    count: int


class JobStatsOut(BaseModel):
    total_jobs: int
    active_jobs: int
    visa_sponsored_jobs: int
    total_views: int
    total_applications: int
    by_category: list[CountBucket]
    by_country: list[CountBucket]
