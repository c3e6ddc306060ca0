"""CORS, request-id, security-header and gateway middleware wiring."""

import uuid
import time
import logging

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from snipvault.core.gateways import (
    HostValidationMiddleware, MaintenanceModeMiddleware, RateLimitMiddleware, default_scopes,
)

logger = logging.getLogger("snipvault")

API_DOCS_CSP = (
    "default-src 'self'; script-src 'self' 'unsafe-inline'; style-src 'self' 'unsafe-inline'; "
    "img-src 'self' data:; object-src 'none'; base-uri 'self';"
)
DEFAULT_CSP = (
    "default-src 'self'; script-src 'self' 'unsafe-inline'; style-src 'self' 'unsafe-inline'; "
    "img-src 'self' data: blob:; connect-src 'self'; font-src 'self' data:; object-src 'none'; "
    "frame-ancestors 'self'; base-uri 'self'; form-action 'self';"
)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Add a unique request ID to every request/response."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.time()

        response: Response = await call_next(request)

        duration = round((time.time() - start_time) * 1000, 2)
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time-Ms"] = str(duration)

        logger.info(
            "%s %s %s %sms",
            request.method,
            request.url.path,
            response.status_code,
            duration,
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach browser hardening headers, including to gate rejections."""

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)

        is_api_docs = "/api-docs" in request.url.path
        response.headers["Content-Security-Policy"] = API_DOCS_CSP if is_api_docs else DEFAULT_CSP
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "SAMEORIGIN"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"

        forwarded_proto = request.headers.get("x-forwarded-proto")
        if request.url.scheme == "https" or forwarded_proto == "https":
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains; preload"
        return response


def setup_middleware(app: FastAPI) -> None:
    """Configure all middleware for the application.

    Starlette runs the last-added middleware first, so gates are added
    innermost first: maintenance, rate limit, host check, then headers.
    """
    config = app.state.settings
    base_path = config.BASE_PATH.rstrip("/")

    app.add_middleware(
        MaintenanceModeMiddleware,
        settings_store=app.state.settings_store,
        session_factory=app.state.session_factory,
        config=config,
    )
    app.add_middleware(
        RateLimitMiddleware,
        limiter=app.state.rate_limiter,
        scopes=default_scopes(base_path),
    )
    app.add_middleware(HostValidationMiddleware, allowed_hosts=config.allowed_hosts)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(SecurityHeadersMiddleware)

    # Request ID + timing
    app.add_middleware(RequestIdMiddleware)
