"""Accessors for the process-scoped components built in ``create_app``."""

from fastapi import Request

from snipvault.core.config import Settings
from snipvault.core.security import app_settings
from snipvault.services.admin_service import AdminService
from snipvault.services.audit_service import AuditService
from snipvault.services.auth_service import AuthService
from snipvault.services.settings_service import SettingsStore


def get_config(request: Request) -> Settings:
    return app_settings(request)


def get_settings_store(request: Request) -> SettingsStore:
    return request.app.state.settings_store


def get_audit_service(request: Request) -> AuditService:
    return request.app.state.audit_service


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_admin_service(request: Request) -> AdminService:
    return request.app.state.admin_service
