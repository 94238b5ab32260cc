# relohire/core/security.py
"""
Credentials for ReloHire accounts.

Candidates, companies and admins share one argon2 password scheme and one
access-token shape. The token carries the user id and role for clients to
read, but authorization always reloads the account: the role claim is never
trusted server-side.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt, JWTError
from passlib.context import CryptContext

from relohire.core.config import settings

ACCESS_PURPOSE = "access"

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


# -------------------------
# Password hashing
# -------------------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    # Accounts imported without a usable hash simply cannot log in.
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        return False


def password_needs_rehash(password_hash: str) -> bool:
    return pwd_context.needs_update(password_hash)


# -------------------------
# Access tokens
# -------------------------
def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _require_jwt_secret() -> None:
    if not settings.JWT_SECRET or not settings.JWT_SECRET.strip():
        raise RuntimeError("JWT_SECRET must be set (auth is required).")


def create_access_token(user_id: int, *, role: str | None = None) -> str:
    """
    Bearer token for the API. `sub` is the numeric user id as a string.
    """
    _require_jwt_secret()

    now = _now_utc()
    exp = now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    payload: dict[str, Any] = {
        "sub": str(user_id),
        "purpose": ACCESS_PURPOSE,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if role:
        payload["role"] = role

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict[str, Any]:
    _require_jwt_secret()
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])


def verify_token_purpose(token: str, expected_purpose: str) -> dict[str, Any]:
    try:
        payload = decode_token(token)
    except JWTError:
        raise ValueError("Invalid or expired token")

    if payload.get("purpose") != expected_purpose:
        raise ValueError("Invalid token purpose")

    return payload


def access_token_user_id(token: str) -> int:
    """
    User id from a valid access token; ValueError for anything else.
    """
    payload = verify_token_purpose(token, expected_purpose=ACCESS_PURPOSE)
    try:
        user_id = int(payload.get("sub") or 0)
    except (TypeError, ValueError):
        user_id = 0
    if user_id <= 0:
        raise ValueError("Token subject is not a user id")
    return user_id
