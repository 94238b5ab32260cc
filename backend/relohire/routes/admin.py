from __future__ import annotations

import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from relohire.core.database import get_db
from relohire.core.errors import NotFoundError, ValidationFailedError
from relohire.dependencies.auth import require_admin
from relohire.models.application import Application
from relohire.models.company import Company
from relohire.models.job import Job
from relohire.models.payment import Payment, PaymentStatus
from relohire.models.user import User
from relohire.schemas.admin import (
    AdminCompanyListOut,
    AdminPaymentListOut,
    AdminUserListOut,
    AdminUserUpdate,
    ExpireOut,
    PaymentFailIn,
    PlatformStatsOut,
)
from relohire.schemas.auth import UserOut
from relohire.schemas.common import Envelope, ok
from relohire.schemas.companies import CompanyOut
from relohire.schemas.payments import PaymentOut
from relohire.services.cache import get_cache
from relohire.services.payments import PaymentGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

MAX_PAGE_SIZE = 100


# -------------------------
# Users
# -------------------------
@router.get("/users", response_model=Envelope[AdminUserListOut])
def list_users(
    role: str | None = None,
    is_active: bool | None = None,
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    qry = db.query(User)
    if role:
        qry = qry.filter(User.role == role.strip().lower())
    if is_active is not None:
        qry = qry.filter(User.is_active.is_(is_active))
    total = qry.count()
    users = qry.order_by(desc(User.created_at), desc(User.id)).offset(offset).limit(limit).all()
    return ok({"users": users, "total": total})


@router.patch("/users/{user_id}", response_model=Envelope[UserOut])
def update_user(
    user_id: int,
    payload: AdminUserUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    if user.id == admin.id and (payload.is_active is False or payload.role not in (None, user.role)):
        raise ValidationFailedError("Admins cannot demote or deactivate their own account")

    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(user, key, value)
    db.commit()
    db.refresh(user)

    get_cache().invalidate_user_profile(user.id)
    logger.info("Admin %s updated user %s", admin.id, user.id)
    return ok(user, "User updated successfully")


# -------------------------
# Payments
# -------------------------
@router.get("/payments", response_model=Envelope[AdminPaymentListOut])
def list_payments(
    status_filter: str | None = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=PaymentGateway.MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    rows, total = PaymentGateway(db).list_history(status=status_filter, limit=limit, offset=offset)
    return ok({"payments": rows, "total": total})


@router.post("/payments/{payment_id}/fail", response_model=Envelope[PaymentOut])
def fail_payment(
    payment_id: int,
    payload: PaymentFailIn,
    db: Session = Depends(get_db),
):
    payment = PaymentGateway(db).mark_failed(payment_id, reason=payload.reason)
    return ok(payment, "Payment marked as failed")


@router.post("/payments/expire", response_model=Envelope[ExpireOut])
def expire_payments(db: Session = Depends(get_db)):
    expired = PaymentGateway(db).expire_old_payments()
    return ok({"expired": expired})


# -------------------------
# Companies
# -------------------------
@router.get("/companies", response_model=Envelope[AdminCompanyListOut])
def list_companies(
    is_verified: bool | None = None,
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    qry = db.query(Company)
    if is_verified is not None:
        qry = qry.filter(Company.is_verified.is_(is_verified))
    total = qry.count()
    companies = qry.order_by(desc(Company.created_at), desc(Company.id)).offset(offset).limit(limit).all()
    return ok({"companies": companies, "total": total})


@router.post("/companies/{company_id}/verify", response_model=Envelope[CompanyOut])
def verify_company(
    company_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    company = db.get(Company, company_id)
    if not company:
        raise NotFoundError("Company not found")
    company.is_verified = True
    db.commit()
    db.refresh(company)
    logger.info("Admin %s verified company %s", admin.id, company.id)
    return ok(company, "Company verified")


# -------------------------
# Stats
# -------------------------
def _counts(db: Session, column) -> dict[str, int]:
    return {str(key): int(count) for key, count in db.query(column, func.count()).group_by(column).all()}


@router.get("/stats", response_model=Envelope[PlatformStatsOut])
def platform_stats(db: Session = Depends(get_db)):
    revenue = (
        db.query(func.coalesce(func.sum(Payment.usd_amount), 0))
        .filter(Payment.status == PaymentStatus.confirmed.value)
        .scalar()
    )
    jobs_total = db.query(func.count(Job.id)).scalar() or 0
    jobs_active = db.query(func.count(Job.id)).filter(Job.is_active.is_(True)).scalar() or 0
    return ok(
        {
            "users": _counts(db, User.role),
            "jobs": {"total": int(jobs_total), "active": int(jobs_active)},
            "applications": _counts(db, Application.status),
            "payments": _counts(db, Payment.status),
            "revenue_usd": format(Decimal(str(revenue or 0)).quantize(Decimal("0.01")), "f"),
        }
    )
