# relohire/routes/auth.py
from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from relohire.core.database import get_db
from relohire.core.errors import ConflictError
from relohire.core.security import create_access_token, hash_password, password_needs_rehash, verify_password
from relohire.dependencies.auth import get_current_user
from relohire.dependencies.rate_limit import require_auth_rate_limit
from relohire.models.user import User
from relohire.schemas.auth import LoginIn, ProfileUpdateIn, RegisterIn, TokenOut, UserOut
from relohire.schemas.common import Envelope, ok
from relohire.services.cache import get_cache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_response(user: User) -> dict:
    return {
        "access_token": create_access_token(user.id, role=user.role),
        "token_type": "bearer",
        "user": UserOut.model_validate(user),
    }


@router.post(
    "/register",
    response_model=Envelope[TokenOut],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_auth_rate_limit())],
)
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()
    if db.query(User.id).filter(User.email == email).first():
        raise ConflictError("An account with this email already exists")

    user = User(
        email=email,
        name=payload.name,
        password_hash=hash_password(payload.password),
        role=payload.role,
        phone=payload.phone,
        nationality=payload.nationality,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s (%s)", user.id, user.role)
    return ok(_token_response(user), "Registration successful")


@router.post("/login", response_model=Envelope[TokenOut], dependencies=[Depends(require_auth_rate_limit())])
def login(payload: LoginIn, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()
    user = db.query(User).filter(User.email == email).first()

    # Same message for unknown email and wrong password.
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is deactivated")

    if password_needs_rehash(user.password_hash):
        user.password_hash = hash_password(payload.password)
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(user)
    return ok(_token_response(user), "Login successful")


@router.get("/profile", response_model=Envelope[UserOut])
def get_profile(user: User = Depends(get_current_user)):
    cache = get_cache()
    cached = cache.get_user_profile(user.id)
    if cached is not None:
        return ok(cached)

    profile = UserOut.model_validate(user).model_dump(mode="json")
    cache.set_user_profile(user.id, profile)
    return ok(profile)


@router.patch("/profile", response_model=Envelope[UserOut])
def update_profile(
    payload: ProfileUpdateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    data = payload.model_dump(exclude_unset=True, mode="json")
    for key, value in data.items():
        if value is None and key in ("name", "experience_years"):
            continue
        if key == "name":
            value = value.strip()
        if key in ("preferred_countries", "skills"):
            value = [str(v).strip() for v in (value or []) if str(v).strip()]
        if key == "languages":
            value = value or []
        setattr(user, key, value)

    db.commit()
    db.refresh(user)

    cache = get_cache()
    cache.invalidate_user_profile(user.id)
    cache.invalidate_job_matches(user.id)
    return ok(user, "Profile updated")
