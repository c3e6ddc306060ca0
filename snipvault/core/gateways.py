"""Request-time policy gates: host validation, rate limiting, maintenance mode.

Each gate is a middleware that may short-circuit the chain with a terminal
response. They run in this order: host check, rate limit, maintenance check.
Identity resolution and permission checks follow as route dependencies.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from fastapi import Request, Response
from sqlalchemy.orm import sessionmaker
from starlette.middleware.base import BaseHTTPMiddleware

from snipvault.core.config import Settings
from snipvault.core.exceptions import InvalidHost, MaintenanceActive
from snipvault.core.permissions import is_privileged
from snipvault.core.rate_limiter import RateLimiter, ScopedRateLimiter
from snipvault.core.security import resolve_token_user, token_from_request
from snipvault.services.settings_service import SettingsStore

logger = logging.getLogger("snipvault.gateways")

MAINTENANCE_ON_VALUES = {"ON", "TRUE", "1", "ENABLED"}
MAINTENANCE_BYPASS_PREFIXES = ("/api/auth/config", "/api/auth/login", "/api/auth/oidc")
DOCS_PATHS = ("/docs", "/redoc", "/openapi.json")


def extract_host(request: Request) -> Optional[str]:
    """Host from X-Forwarded-Host (preferred) or Host, without port, lower-cased."""
    raw = request.headers.get("x-forwarded-host") or request.headers.get("host")
    if not raw:
        return None
    host = raw.split(",")[0].strip()
    if host.startswith("["):
        return host[1:].split("]")[0].lower()
    return host.split(":")[0].lower()


class HostValidationMiddleware(BaseHTTPMiddleware):
    """Reject requests whose host is not on the allow-list.

    An empty allow-list disables the check.
    """

    def __init__(self, app, allowed_hosts: Iterable[str] = ()):
        super().__init__(app)
        self.allowed_hosts = {h.strip().lower() for h in allowed_hosts if h.strip()}

    async def dispatch(self, request: Request, call_next) -> Response:
        if not self.allowed_hosts:
            return await call_next(request)

        host = extract_host(request)
        if host is None:
            return InvalidHost("Missing host header").to_response()
        if host not in self.allowed_hosts:
            logger.warning("Rejected request for host %s", host)
            return InvalidHost().to_response()
        return await call_next(request)


def default_scopes(base_path: str = "") -> List[Tuple[str, str]]:
    """Path prefix -> rate-limit scope, most specific first."""
    return [
        (f"{base_path}/api/auth", "auth"),
        (f"{base_path}/api/public", "public"),
        (f"{base_path}/api", "general"),
    ]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Apply the scoped limiter matching the request path."""

    def __init__(self, app, limiter: RateLimiter, scopes: Sequence[Tuple[str, str]] = ()):
        super().__init__(app)
        self.scoped: List[Tuple[str, ScopedRateLimiter]] = [
            (prefix, limiter.create_limiter(scope)) for prefix, scope in (scopes or default_scopes())
        ]

    def _resolve(self, path: str) -> Optional[ScopedRateLimiter]:
        for prefix, scoped in self.scoped:
            if path == prefix or path.startswith(prefix + "/"):
                return scoped
        return None

    async def dispatch(self, request: Request, call_next) -> Response:
        scoped = self._resolve(request.url.path)
        if scoped is None:
            return await call_next(request)

        decision = scoped.check(request)
        if not decision.allowed:
            logger.info("Rate limit exceeded: scope=%s", decision.scope)
            return decision.to_exception().to_response()

        response = await call_next(request)
        response.headers.update(decision.headers())
        return response


def is_maintenance_enabled(settings_store: SettingsStore) -> bool:
    mode = settings_store.get_string("maintenance.mode", "OFF")
    return str(mode).strip().upper() in MAINTENANCE_ON_VALUES


class MaintenanceModeMiddleware(BaseHTTPMiddleware):
    """Return 503 for API requests while maintenance mode is on.

    Login and auth discovery stay reachable, and so does anyone holding a
    valid SUPER_ADMIN or ADMIN credential. Any failure while resolving the
    credential counts as "not privileged".
    """

    def __init__(
        self,
        app,
        settings_store: SettingsStore,
        session_factory: sessionmaker,
        config: Settings,
    ):
        super().__init__(app)
        self.settings_store = settings_store
        self.session_factory = session_factory
        self.config = config
        self.base_path = config.BASE_PATH.rstrip("/")

    def _is_api_path(self, path: str) -> bool:
        return path.startswith(f"{self.base_path}/api") or "/api-docs" in path

    def _is_bypass_path(self, path: str) -> bool:
        if "/api-docs" in path:
            return True
        if any(path.startswith(f"{self.base_path}{docs}") for docs in DOCS_PATHS):
            return True
        return any(path.startswith(f"{self.base_path}{prefix}") for prefix in MAINTENANCE_BYPASS_PREFIXES)

    def _is_privileged(self, request: Request) -> bool:
        token = token_from_request(request)
        if not token:
            return False
        try:
            with self.session_factory() as db:
                user = resolve_token_user(db, token, self.config)
                return is_privileged(user.role)
        except Exception:
            logger.debug("Maintenance credential check failed", exc_info=True)
            return False

    async def dispatch(self, request: Request, call_next) -> Response:
        if not is_maintenance_enabled(self.settings_store):
            return await call_next(request)

        path = request.url.path
        if not self._is_api_path(path) or self._is_bypass_path(path):
            return await call_next(request)

        if self._is_privileged(request):
            return await call_next(request)
        return MaintenanceActive().to_response()
