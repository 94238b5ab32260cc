from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ApplicationCreate(BaseModel):
    job_id: int
    cover_letter: Optional[str] = Field(default=None, max_length=5000)


class ApplicationStatusUpdate(BaseModel):
    status: Literal["accepted", "rejected"]
    reason: Optional[str] = Field(default=None, max_length=500)


class PaymentGatesOut(BaseModel):
    assessment_blocked: bool
    document_submission_blocked: bool
    visa_processing_blocked: bool


class ApplicationJobOut(BaseModel):
    id: int
    title: str
    company: str
    country: str
    location: str

    model_config = ConfigDict(from_attributes=True)


class ApplicationOut(BaseModel):
    id: int
    user_id: int
    job_id: int
    status: str
    current_step: str
    payment_status: dict[str, str] = Field(validation_alias="effective_payment_status")
    payment_gates: PaymentGatesOut
    cover_letter: Optional[str] = None
    match_score: Optional[int] = None
    assessment_score: Optional[int] = None
    assessment_cutoff_score: Optional[int] = None
    assessment_passed: Optional[bool] = None
    documents_submitted: bool
    documents_verified: bool
    required_documents: dict[str, bool]
    offer_details: Optional[dict[str, Any]] = None
    generated_documents: dict[str, str] = {}
    rejection_reason: Optional[str] = None
    version: int
    applied_at: datetime
    updated_at: datetime
    job: Optional[ApplicationJobOut] = None

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)
