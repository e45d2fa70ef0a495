"""
Authentication and authorization dependencies.

Supports JWT auth (production) with demo-header fallback when AUTH_MODE=demo.
The approval engine only ever sees the resulting {user_id, role} context.
"""

import os
import uuid
from dataclasses import dataclass
from fastapi import HTTPException, Header, Depends
from sqlalchemy.orm import Session
from typing import Optional

from app.database import get_db
from app.services.auth import decode_access_token
from app.models.user import User, UserRole, role_value

AUTH_MODE = os.getenv("AUTH_MODE", "demo")  # "demo" or "jwt"

# Demo placeholders: used only when AUTH_MODE=demo and no token is provided
DEMO_USER_ID = "00000000-0000-0000-0000-000000000000"
DEMO_ROLE = "employee"

REVIEWER_ROLES = {
    UserRole.lead.value, UserRole.manager.value,
    UserRole.management.value, UserRole.super_admin.value,
}
MANAGEMENT_ROLES = {UserRole.management.value, UserRole.super_admin.value}


@dataclass(frozen=True)
class AuthContext:
    user_id: uuid.UUID
    role: str


def _as_uuid(value) -> uuid.UUID:
    if value is None:
        raise ValueError("None is not a UUID")
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Extract user from Bearer token. Returns None if no token and demo mode."""
    if not authorization:
        return None

    token = authorization.removeprefix("Bearer ").strip()
    if not token:
        return None

    payload = decode_access_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    try:
        user_uuid = _as_uuid(sub)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token subject (user id)")

    user = db.query(User).filter(User.user_id == user_uuid).first()
    if not user or getattr(user, "is_active", True) is False:
        raise HTTPException(status_code=401, detail="User not found or disabled")

    return user


def get_auth_context(
    authorization: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> AuthContext:
    """Resolve the caller from a JWT, or from demo headers when AUTH_MODE=demo."""
    if authorization:
        user = get_current_user(authorization, db)
        if user:
            return AuthContext(user_id=user.user_id, role=role_value(user.role))

    if AUTH_MODE == "demo":
        try:
            user_id = _as_uuid(x_user_id or DEMO_USER_ID)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid X-User-Id (must be UUID)")
        return AuthContext(user_id=user_id, role=(x_user_role or DEMO_ROLE))

    raise HTTPException(status_code=401, detail="Not authenticated")


def require_reviewer(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Require lead, manager, management or super admin."""
    if ctx.role not in REVIEWER_ROLES:
        raise HTTPException(status_code=403, detail="Reviewer access required")
    return ctx


def require_management(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Require management or super admin."""
    if ctx.role not in MANAGEMENT_ROLES:
        raise HTTPException(status_code=403, detail="Management access required")
    return ctx
