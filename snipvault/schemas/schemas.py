"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


# ---- Auth ----
class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=64)
    password: str = Field(..., min_length=6)

class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(..., alias="currentPassword", min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=6)

class TokenResponse(BaseModel):
    token: str
    user: Dict[str, Any]

class PendingRegistrationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pending_approval: bool = Field(True, serialization_alias="pendingApproval")
    message: str
    user: Dict[str, Any]


# ---- User ----
class UserOut(BaseModel):
    id: int
    username: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: str
    status: str
    permissions: List[str] = []
    is_admin: bool = False
    is_active: bool = True
    force_password_reset: bool = False
    failed_login_attempts: int = 0
    locked_until: Optional[datetime] = None
    session_version: int = 1
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

class UserListResponse(BaseModel):
    users: List[UserOut]
    total: int

class StatusUpdateRequest(BaseModel):
    status: str

class RoleUpdateRequest(BaseModel):
    role: str

class ForcePasswordResetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    force_password_reset: bool = Field(True, alias="forcePasswordReset")


# ---- Settings ----
class SettingsUpdateRequest(BaseModel):
    """Partial update; fields left out are not touched.

    Values are validated by the admin service so that a bad field is reported
    with the same 400 body as every other settings error.
    """

    model_config = ConfigDict(populate_by_name=True)

    registration_mode: Optional[Any] = Field(None, alias="registrationMode")
    community_mode: Optional[Any] = Field(None, alias="communityMode")
    maintenance_mode: Optional[Any] = Field(None, alias="maintenanceMode")
    lockout_max_attempts: Optional[Any] = Field(None, alias="lockoutMaxAttempts")
    lockout_duration_minutes: Optional[Any] = Field(None, alias="lockoutDurationMinutes")
    rate_limit_window_ms: Optional[Any] = Field(None, alias="rateLimitWindowMs")
    auth_rate_limit: Optional[Any] = Field(None, alias="authRateLimit")
    public_rate_limit: Optional[Any] = Field(None, alias="publicRateLimit")
    general_rate_limit: Optional[Any] = Field(None, alias="generalRateLimit")
    feature_flags: Optional[Dict[str, Any]] = Field(None, alias="featureFlags")


# ---- Audit ----
class AuditLogOut(BaseModel):
    id: int
    actor_id: Optional[int] = None
    actor_username: Optional[str] = None
    action: str
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    metadata: Optional[Any] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None

class AuditLogListResponse(BaseModel):
    logs: List[AuditLogOut]
    total: int


# ---- Common ----
class MessageResponse(BaseModel):
    message: str
    success: bool = True

class HealthResponse(BaseModel):
    status: str = "ok"
