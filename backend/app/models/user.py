import enum
import uuid

from sqlalchemy import Column, String, Boolean, DateTime, Uuid
from sqlalchemy.sql import func

from app.database import Base


# ---------------------------------------------------
# Enums
# ---------------------------------------------------

class UserRole(str, enum.Enum):
    employee = "employee"
    lead = "lead"
    manager = "manager"
    management = "management"
    super_admin = "super_admin"


USER_ROLE_ENUM = String(50)  # keep String to avoid enum migration issues


def role_value(role) -> str:
    """Plain role string whether given a UserRole member or a raw column value."""
    if isinstance(role, enum.Enum):
        return role.value
    return str(role) if role else UserRole.employee.value


# ---------------------------------------------------
# User (directory owned by the auth/user service)
# ---------------------------------------------------

class User(Base):
    __tablename__ = "users"

    user_id = Column(Uuid, primary_key=True, default=uuid.uuid4, nullable=False)
    email = Column(String(255), nullable=True, index=True)
    full_name = Column(String(200), nullable=True)

    role = Column(USER_ROLE_ENUM, nullable=False, default=UserRole.employee.value)

    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
