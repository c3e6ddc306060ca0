"""FastAPI main application entry point."""

import logging
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request
from sqlalchemy.orm import sessionmaker

from snipvault.core.config import Settings, settings
from snipvault.core.exceptions import SnipVaultError
from snipvault.core.middleware import setup_middleware
from snipvault.core.rate_limiter import RateLimiter
from snipvault.db.session import SessionLocal
from snipvault.schemas.schemas import HealthResponse
from snipvault.services.admin_service import AdminService
from snipvault.services.audit_service import AuditService
from snipvault.services.auth_service import AuthService
from snipvault.services.settings_service import SettingsStore

from snipvault.api.auth import router as auth_router
from snipvault.api.admin import router as admin_router
from snipvault.api.public import router as public_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("snipvault")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("🚀 Starting SnipVault API")
    config: Settings = app.state.settings
    if not config.allowed_hosts:
        logger.warning("⚠️  ALLOWED_HOSTS is not set, every Host header is accepted")

    app.state.rate_limiter.start_sweeper(config.RATE_LIMIT_SWEEP_INTERVAL_SECONDS)

    yield

    await app.state.rate_limiter.stop_sweeper()
    logger.info("🔻 Shutting down SnipVault API")


def create_app(
    config: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    clock: Optional[Callable[[], float]] = None,
) -> FastAPI:
    """Build the application with its own settings cache and rate-limit buckets.

    ``clock`` drives both the settings cache and the rate-limit windows, in
    seconds.
    """
    config = config or settings
    session_factory = session_factory or SessionLocal
    base_path = config.BASE_PATH.rstrip("/")

    app = FastAPI(
        title="SnipVault API",
        description="Authentication, authorization and abuse-protection plane for SnipVault",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=f"{base_path}/docs",
        redoc_url=f"{base_path}/redoc",
        openapi_url=f"{base_path}/openapi.json",
    )

    settings_store = SettingsStore(
        session_factory,
        ttl_seconds=config.SETTINGS_CACHE_TTL_SECONDS,
        clock=clock or time.time,
    )
    audit_service = AuditService(session_factory)

    app.state.settings = config
    app.state.session_factory = session_factory
    app.state.settings_store = settings_store
    app.state.audit_service = audit_service
    app.state.rate_limiter = RateLimiter(settings_store, clock=clock or time.monotonic)
    app.state.auth_service = AuthService(settings_store, audit_service, config)
    app.state.admin_service = AdminService(settings_store, audit_service)

    # Middleware
    setup_middleware(app)

    @app.exception_handler(SnipVaultError)
    async def snipvault_exception_handler(request: Request, exc: SnipVaultError):
        return exc.to_response()

    # Register routers
    api_prefix = f"{base_path}/api"
    app.include_router(auth_router, prefix=api_prefix)
    app.include_router(admin_router, prefix=api_prefix)
    app.include_router(public_router, prefix=api_prefix)

    @app.get(f"{api_prefix}/health", response_model=HealthResponse)
    async def health():
        """Quick health check endpoint."""
        return HealthResponse()

    @app.get(base_path or "/")
    async def root():
        return {
            "name": config.APP_NAME,
            "version": "0.1.0",
            "docs": f"{base_path}/docs",
        }

    return app


app = create_app()
