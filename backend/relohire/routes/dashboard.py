from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from relohire.core.database import get_db
from relohire.dependencies.auth import get_current_user, require_roles
from relohire.models.user import User, UserRole
from relohire.schemas.common import Envelope, ok
from relohire.schemas.dashboard import CompanyDashboardOut, NotificationListOut, UserDashboardOut
from relohire.services.dashboard import company_dashboard, user_dashboard, user_notifications

require_company = require_roles(UserRole.company)

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/user/stats", response_model=Envelope[UserDashboardOut])
def user_stats(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return ok(user_dashboard(db, user))


@router.get("/company/stats", response_model=Envelope[CompanyDashboardOut])
def company_stats(
    db: Session = Depends(get_db),
    user: User = Depends(require_company),
):
    return ok(company_dashboard(db, user))


@router.get("/notifications", response_model=Envelope[NotificationListOut])
def notifications(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    items = user_notifications(db, user)
    return ok({"notifications": items, "total": len(items)})
