from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class AssessmentScoreIn(BaseModel):
    score: int = Field(ge=0, le=100)


class DocumentSubmissionIn(BaseModel):
    documents: list[str] = Field(min_length=1)


class DocumentVerificationIn(BaseModel):
    verified: bool


class OfferDetailsIn(BaseModel):
    salary: Optional[str] = Field(default=None, max_length=100)
    start_date: Optional[datetime] = None
    benefits: Optional[list[str]] = None
    conditions: Optional[list[str]] = None
    expiry_date: Optional[datetime] = None


class GatesOut(BaseModel):
    can_take_assessment: bool
    can_submit_documents: bool
    can_process_visa: bool


class ProgressOut(BaseModel):
    application_id: int
    status: str
    current_step: str
    version: int
    payment_gates: GatesOut
    payment_status: dict[str, str]
    assessment: dict[str, Any]
    documents: dict[str, Any]
    offer_details: Optional[dict[str, Any]] = None
    generated_documents: dict[str, str]
    rejection_reason: Optional[str] = None
