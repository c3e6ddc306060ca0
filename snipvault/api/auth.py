"""Auth API router — config, register, login, logout, verify, password change."""

from fastapi import APIRouter, Depends, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from snipvault.api.deps import get_auth_service, get_config
from snipvault.core.config import Settings
from snipvault.core.exceptions import Unauthenticated
from snipvault.core.permissions import Role, permission_list
from snipvault.core.security import CurrentUser, get_current_user
from snipvault.db.session import get_db
from snipvault.models.user import User
from snipvault.schemas.schemas import (
    ChangePasswordRequest, LoginRequest, MessageResponse, PendingRegistrationResponse,
    RegisterRequest, TokenResponse,
)
from snipvault.services.auth_service import AuthService, serialize_user

router = APIRouter(prefix="/auth", tags=["auth"])


def set_auth_cookie(response: Response, token: str, config: Settings) -> None:
    response.set_cookie(
        key=config.AUTH_COOKIE_NAME,
        value=token,
        max_age=config.TOKEN_EXPIRY_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=config.COOKIE_SECURE,
        path=config.BASE_PATH or "/",
    )


def clear_auth_cookie(response: Response, config: Settings) -> None:
    response.delete_cookie(key=config.AUTH_COOKIE_NAME, path=config.BASE_PATH or "/")


@router.get("/config")
async def auth_config(
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """Public discovery of which auth flows are available."""
    return auth.auth_config(db)


@router.post("/register")
async def register(
    body: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
    config: Settings = Depends(get_config),
):
    """Register a new user. PENDING registrations answer 202 without a token."""
    result = auth.register(db, body.username, body.password, request=request)
    user = jsonable_encoder(serialize_user(result.user))

    if result.pending:
        pending = PendingRegistrationResponse(
            message="Registration submitted and awaiting admin approval",
            user=user,
        )
        return JSONResponse(status_code=202, content=pending.model_dump(by_alias=True))

    response = JSONResponse(content={"token": result.token, "user": user})
    set_auth_cookie(response, result.token, config)
    return response


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
    config: Settings = Depends(get_config),
):
    """Authenticate and return a session token."""
    result = auth.login(db, body.username, body.password, request=request)
    set_auth_cookie(response, result.token, config)
    return {"token": result.token, "user": serialize_user(result.user)}


@router.post("/logout")
async def logout(
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    config: Settings = Depends(get_config),
):
    clear_auth_cookie(response, config)
    return {"success": True}


@router.get("/verify")
async def verify(
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    config: Settings = Depends(get_config),
):
    """Confirm the caller's credential is still valid."""
    record = db.get(User, user.id)
    if record is None:
        clear_auth_cookie(response, config)
        raise Unauthenticated("User not found")
    payload = serialize_user(record)
    if user.is_anonymous:
        payload.update(role=Role.READ_ONLY.value, permissions=permission_list(Role.READ_ONLY), is_admin=False)
    return {"valid": True, "user": jsonable_encoder(payload)}


@router.post("/anonymous", response_model=TokenResponse)
async def anonymous(
    response: Response,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
    config: Settings = Depends(get_config),
):
    """Read-only session, available only when accounts are disabled."""
    result = auth.anonymous_session(db)
    set_auth_cookie(response, result.token, config)
    user = serialize_user(result.user)
    user.update(role=Role.READ_ONLY.value, permissions=permission_list(Role.READ_ONLY), is_admin=False)
    return {"token": result.token, "user": user}


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    request: Request,
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
    config: Settings = Depends(get_config),
):
    """Change the caller's password; earlier sessions stop working."""
    result = auth.change_password(
        db, user.id, body.current_password, body.new_password, request=request,
    )
    set_auth_cookie(response, result.token, config)
    return {
        **MessageResponse(message="Password changed successfully").model_dump(),
        "token": result.token,
    }
