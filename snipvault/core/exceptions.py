"""Custom exception classes for the SnipVault security plane.

Every class here is an expected, user-facing outcome. Each one knows its HTTP
status and response body so that dependencies, routes and middlewares can all
render it the same way.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse


class SnipVaultError(Exception):
    """Base exception for SnipVault."""

    status_code = 400
    default_message = "An error occurred"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def body(self) -> Dict[str, Any]:
        return {"error": self.message}

    def headers(self) -> Dict[str, str]:
        return {}

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content=self.body(),
            headers=self.headers() or None,
        )


class Unauthenticated(SnipVaultError):
    """Raised when no valid credential accompanies the request."""

    status_code = 401
    default_message = "Authentication required"

    def headers(self) -> Dict[str, str]:
        return {"WWW-Authenticate": "Bearer"}


class InvalidCredentials(Unauthenticated):
    """Raised when a username/password pair does not match."""

    default_message = "Invalid credentials"


class SessionInvalidated(Unauthenticated):
    """Raised when a credential carries a stale session version."""

    default_message = "Session expired"

    def body(self) -> Dict[str, Any]:
        return {"error": self.message, "code": "session_invalidated"}


class Forbidden(SnipVaultError):
    """Raised when the caller's role lacks a permission."""

    status_code = 403
    default_message = "Insufficient permissions"

    def body(self) -> Dict[str, Any]:
        return {"message": self.message}


class AccountLocked(SnipVaultError):
    """Raised while a lockout window is active."""

    status_code = 423
    default_message = "Account temporarily locked due to failed login attempts"

    def __init__(self, locked_until: datetime, message: Optional[str] = None):
        self.locked_until = locked_until
        super().__init__(message)

    def body(self) -> Dict[str, Any]:
        locked_until = self.locked_until
        if locked_until.tzinfo is None:
            locked_until = locked_until.replace(tzinfo=timezone.utc)
        return {"error": self.message, "lockedUntil": locked_until.isoformat()}


class AccountPending(SnipVaultError):
    """Raised when a PENDING account tries to sign in."""

    status_code = 403
    default_message = "Account pending approval"


class AccountSuspended(SnipVaultError):
    """Raised when a SUSPENDED account tries to act."""

    status_code = 403
    default_message = "Account suspended"


class RegistrationClosed(SnipVaultError):
    """Raised when registration mode is CLOSED."""

    status_code = 403
    default_message = "New account registration is closed"


class FeatureDisabled(SnipVaultError):
    """Raised when a deployment switch turns an endpoint off."""

    status_code = 403
    default_message = "This feature is disabled"

    def __init__(self, message: Optional[str] = None, status_code: int = 403):
        self.status_code = status_code
        super().__init__(message)


class RateLimited(SnipVaultError):
    """Raised when a client exhausts its quota for a scope."""

    status_code = 429
    default_message = "Too many requests"

    def __init__(self, scope: str, retry_after: int, limit: int):
        self.scope = scope
        self.retry_after = retry_after
        self.limit = limit
        super().__init__()

    def body(self) -> Dict[str, Any]:
        return {"error": self.message, "scope": self.scope}

    def headers(self) -> Dict[str, str]:
        return {
            "Retry-After": str(self.retry_after),
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": "0",
        }


class MaintenanceActive(SnipVaultError):
    """Raised when maintenance mode rejects a request."""

    status_code = 503
    default_message = "Maintenance mode is enabled"


class InvalidHost(SnipVaultError):
    """Raised when the request host is not on the allow-list."""

    status_code = 400
    default_message = "Invalid host"


class ConfigValidation(SnipVaultError):
    """Raised when an administrator submits a malformed setting value."""

    status_code = 400
    default_message = "Invalid setting value"

    def body(self) -> Dict[str, Any]:
        return {"message": self.message}


class SelfMutationError(SnipVaultError):
    """Raised when an admin action would target the acting admin."""

    status_code = 400
    default_message = "Cannot modify your own account in this action"

    def body(self) -> Dict[str, Any]:
        return {"message": self.message}


class ResourceNotFoundError(SnipVaultError):
    """Raised when a requested resource is not found."""

    status_code = 404
    default_message = "Resource not found"

    def body(self) -> Dict[str, Any]:
        return {"message": self.message}


class ResourceConflictError(SnipVaultError):
    """Raised when a resource already exists."""

    status_code = 409
    default_message = "Resource already exists"
