from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from relohire.core.database import get_db
from relohire.core.errors import NotFoundError
from relohire.dependencies.auth import require_roles
from relohire.models.company import Company
from relohire.models.user import User, UserRole
from relohire.schemas.common import Envelope, ok
from relohire.schemas.companies import CompanyOut, CompanyProfileIn

logger = logging.getLogger(__name__)

require_company = require_roles(UserRole.company)

router = APIRouter(prefix="/companies", tags=["companies"])


@router.post("/profile", response_model=Envelope[CompanyOut])
def upsert_company_profile(
    payload: CompanyProfileIn,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(require_company),
):
    company = db.query(Company).filter(Company.user_id == user.id).first()
    created = company is None
    if created:
        company = Company(user_id=user.id)
        db.add(company)

    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is None and key == "company_name":
            continue
        setattr(company, key, value)

    db.commit()
    db.refresh(company)

    if created:
        response.status_code = status.HTTP_201_CREATED
        logger.info("Company profile %s created for user %s", company.id, user.id)
        return ok(company, "Company profile created successfully")
    return ok(company, "Company profile updated successfully")


@router.get("/me", response_model=Envelope[CompanyOut])
def my_company(
    db: Session = Depends(get_db),
    user: User = Depends(require_company),
):
    company = db.query(Company).filter(Company.user_id == user.id).first()
    if not company:
        raise NotFoundError("Company profile not found")
    return ok(company)
