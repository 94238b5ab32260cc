from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CompanyProfileIn(BaseModel):
    company_name: str = Field(min_length=1, max_length=255)
    registration_number: Optional[str] = Field(default=None, max_length=100)
    industry: Optional[str] = Field(default=None, max_length=100)
    address: Optional[str] = Field(default=None, max_length=500)
    city: Optional[str] = Field(default=None, max_length=100)
    country: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=5000)
    website: Optional[str] = Field(default=None, max_length=500)


class CompanyOut(CompanyProfileIn):
    id: int
    user_id: int
    is_verified: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
