# relohire/dependencies/auth.py
from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from relohire.core.database import get_db
from relohire.core.security import access_token_user_id
from relohire.models.user import User, UserRole

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Validates:
      - Authorization: Bearer <token>
      - token signature + exp + purpose
      - user exists + is_active (looked up on every request)
    """
    if not creds or creds.scheme.lower() != "bearer":
        raise _unauthorized("Missing Authorization header")

    try:
        user_id = access_token_user_id(creds.credentials)
    except ValueError:
        raise _unauthorized("Invalid or expired token")

    user = db.get(User, user_id)
    if not user:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise _unauthorized("User is inactive")

    request.state.user = user
    return user


def require_roles(*roles: UserRole | str) -> Callable[..., User]:
    allowed = {r.value if isinstance(r, UserRole) else str(r) for r in roles}

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise HTTPException(
                status.HTTP_403_FORBIDDEN,
                detail=f"Access restricted to: {', '.join(sorted(allowed))}",
            )
        return current_user

    return dependency


require_admin = require_roles(UserRole.admin)
require_company_or_admin = require_roles(UserRole.company, UserRole.admin)
require_candidate = require_roles(UserRole.user)
