"""Admin / Audit API router."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from snipvault.api.deps import get_admin_service, get_audit_service
from snipvault.core.permissions import Permission
from snipvault.core.security import CurrentUser, RequirePermission
from snipvault.db.session import get_db
from snipvault.schemas.schemas import (
    AuditLogListResponse, ForcePasswordResetRequest, MessageResponse, RoleUpdateRequest,
    SettingsUpdateRequest, StatusUpdateRequest, UserListResponse, UserOut,
)
from snipvault.services.admin_service import AdminService
from snipvault.services.audit_service import AuditService

router = APIRouter(prefix="/admin", tags=["admin"])

require_panel = RequirePermission(Permission.ADMIN_PANEL_ACCESS)
require_users_read = RequirePermission(Permission.ADMIN_USERS_READ)
require_users_write = RequirePermission(Permission.ADMIN_USERS_WRITE)
require_settings_write = RequirePermission(Permission.ADMIN_SYSTEM_SETTINGS_WRITE)
require_audit_read = RequirePermission(Permission.ADMIN_AUDIT_READ)


@router.get("/users", response_model=UserListResponse)
async def admin_list_users(
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1),
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    actor: CurrentUser = Depends(require_users_read),
):
    """List users (admin only). ``limit`` is capped at 100."""
    result = admin.list_users(db, offset, min(limit, 100), search, status, role)
    return result


@router.get("/users/{user_id}", response_model=UserOut)
async def admin_get_user(
    user_id: int,
    db: Session = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    actor: CurrentUser = Depends(require_users_read),
):
    return admin.get_user_details(db, user_id)


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def admin_delete_user(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    actor: CurrentUser = Depends(require_users_write),
):
    admin.delete_user(db, actor, user_id, request=request)
    return MessageResponse(message="User deleted successfully")


@router.patch("/users/{user_id}/toggle-active", response_model=UserOut)
async def admin_toggle_active(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    actor: CurrentUser = Depends(require_users_write),
):
    return admin.toggle_active(db, actor, user_id, request=request)


@router.patch("/users/{user_id}/status", response_model=UserOut)
async def admin_set_status(
    user_id: int,
    body: StatusUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    actor: CurrentUser = Depends(require_users_write),
):
    """Approve, suspend or re-activate an account."""
    return admin.set_status(db, actor, user_id, body.status, request=request)


@router.patch("/users/{user_id}/role", response_model=UserOut)
async def admin_set_role(
    user_id: int,
    body: RoleUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    actor: CurrentUser = Depends(require_users_write),
):
    return admin.set_role(db, actor, user_id, body.role, request=request)


@router.patch("/users/{user_id}/unlock", response_model=UserOut)
async def admin_unlock(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    actor: CurrentUser = Depends(require_users_write),
):
    """Clear the lockout. Account status is left unchanged."""
    return admin.unlock(db, actor, user_id, request=request)


@router.patch("/users/{user_id}/reset-sessions", response_model=UserOut)
async def admin_reset_sessions(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    actor: CurrentUser = Depends(require_users_write),
):
    """Invalidate every credential issued to the user so far."""
    return admin.reset_sessions(db, actor, user_id, request=request)


@router.patch("/users/{user_id}/force-password-reset", response_model=UserOut)
async def admin_force_password_reset(
    user_id: int,
    request: Request,
    body: Optional[ForcePasswordResetRequest] = None,
    db: Session = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
    actor: CurrentUser = Depends(require_users_write),
):
    force = body.force_password_reset if body is not None else True
    return admin.force_password_reset(db, actor, user_id, force, request=request)


@router.get("/settings")
async def admin_get_settings(
    admin: AdminService = Depends(get_admin_service),
    actor: CurrentUser = Depends(require_panel),
):
    return admin.settings_snapshot()


@router.patch("/settings")
async def admin_update_settings(
    body: SettingsUpdateRequest,
    request: Request,
    admin: AdminService = Depends(get_admin_service),
    actor: CurrentUser = Depends(require_settings_write),
):
    """Apply a partial settings update and return the new snapshot."""
    patch = body.model_dump(exclude_none=True)
    return admin.update_settings(actor, patch, request=request)


@router.get("/audit", response_model=AuditLogListResponse)
async def get_audit_logs(
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1),
    audit: AuditService = Depends(get_audit_service),
    actor: CurrentUser = Depends(require_audit_read),
):
    """Query audit logs (admin only), newest first."""
    logs = audit.list(limit=min(limit, 100), offset=offset)
    return {"logs": logs, "total": audit.count()}
