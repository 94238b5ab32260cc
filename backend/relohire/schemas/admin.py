from typing import Literal, Optional

from pydantic import BaseModel, Field

from relohire.schemas.auth import UserOut
from relohire.schemas.companies import CompanyOut
from relohire.schemas.payments import PaymentOut


class AdminUserUpdate(BaseModel):
    role: Optional[Literal["user", "company", "admin"]] = None
    is_active: Optional[bool] = None


class AdminUserListOut(BaseModel):
    users: list[UserOut]
    total: int


class AdminPaymentListOut(BaseModel):
    payments: list[PaymentOut]
    total: int


class AdminCompanyListOut(BaseModel):
    companies: list[CompanyOut]
    total: int


class PaymentFailIn(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class ExpireOut(BaseModel):
    expired: int


class PlatformStatsOut(BaseModel):
    users: dict[str, int]
    jobs: dict[str, int]
    applications: dict[str, int]
    payments: dict[str, int]
    revenue_usd: str
