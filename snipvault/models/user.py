"""User model with account-security state."""

import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, func
from snipvault.db.base import Base

# Singleton read-only identity used when individual accounts are disabled.
ANONYMOUS_USER_ID = 0


class UserStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class User(Base):
    """Platform user with role, lifecycle status and lockout bookkeeping."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), nullable=False)
    username_normalized = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False, default="")
    email = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="USER")
    status = Column(String(20), nullable=False, default=UserStatus.ACTIVE.value)
    is_active = Column(Boolean, default=True, nullable=False)

    failed_login_attempts = Column(Integer, default=0, nullable=False)
    locked_until = Column(DateTime, nullable=True)
    session_version = Column(Integer, default=1, nullable=False)
    force_password_reset = Column(Boolean, default=False, nullable=False)

    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def is_anonymous(self) -> bool:
        return self.id == ANONYMOUS_USER_ID
