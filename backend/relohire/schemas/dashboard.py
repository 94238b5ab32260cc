from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from relohire.schemas.companies import CompanyOut


class RecentApplicationOut(BaseModel):
    id: int
    job_id: int
    job_title: Optional[str] = None
    status: str
    current_step: str
    applied_at: datetime
    candidate_name: Optional[str] = None


class UserDashboardStats(BaseModel):
    total_applications: int
    active_applications: int
    by_status: dict[str, int]
    assessments_pending: int
    documents_required: int
    visa_processing: int
    pending_payments: int
    total_paid_usd: str
    total_jobs: int
    profile_completion: int


class UserDashboardOut(BaseModel):
    stats: UserDashboardStats
    recent_applications: list[RecentApplicationOut]


class CompanyDashboardStats(BaseModel):
    total_jobs: int
    active_jobs: int
    total_applications: int
    by_status: dict[str, int]
    pending_review: int
    assessments_completed: int
    documents_to_verify: int
    offers_outstanding: int


class CompanyDashboardOut(BaseModel):
    company: CompanyOut
    stats: CompanyDashboardStats
    recent_applications: list[RecentApplicationOut]


class NotificationOut(BaseModel):
    id: str
    type: str
    title: str
    message: str
    application_id: int
    priority: str


class NotificationListOut(BaseModel):
    notifications: list[NotificationOut]
    total: int
