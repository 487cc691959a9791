"""FastAPI application entry point.

This module creates and configures the FastAPI application, including:
- Long-lived services on app.state (throttle, sessions, backup tool, auth)
- Route gate and security header middleware
- Exception handlers for API errors
- API router, pages, static assets and health check
"""

from pathlib import Path

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from backup_panel import pages
from backup_panel.api.router import router as api_router
from backup_panel.core.auth import SessionIssuer
from backup_panel.core.config import settings
from backup_panel.core.errors import APIError, InternalError, ThrottledError
from backup_panel.core.logging_config import configure_logging
from backup_panel.core.magic_link import MagicLinkCodec
from backup_panel.core.rate_limiting import limiter, rate_limit_exceeded_handler
from backup_panel.core.responses import ErrorResponse
from backup_panel.core.route_gate import RouteGateMiddleware
from backup_panel.core.throttle import LoginThrottle
from backup_panel.services.authentication import AuthenticationService
from backup_panel.services.backup_tool import BackupTool
from backup_panel.services.credential_verifier import BackupToolCredentialVerifier

logger = structlog.get_logger()

_STATIC_DIR = Path(__file__).parent / "static"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses.

    Headers added:
    - X-Frame-Options: Prevents clickjacking attacks
    - X-Content-Type-Options: Prevents MIME sniffing
    - Referrer-Policy: Controls referrer information leakage
    - Cache-Control: Prevents caching of API responses
    - Content-Security-Policy: Same-origin resources only, no inline script
    - Cross-Origin-Opener-Policy / Cross-Origin-Resource-Policy: same-origin
    - Strict-Transport-Security: Forces HTTPS (production only)
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Add security headers to response."""
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Magic-link redirects set a stricter policy; keep it
        response.headers.setdefault(
            "Referrer-Policy", "strict-origin-when-cross-origin"
        )

        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, max-age=0"

        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; frame-ancestors 'none'; form-action 'self'"
        )
        response.headers["Cross-Origin-Opener-Policy"] = "same-origin"
        response.headers["Cross-Origin-Resource-Policy"] = "same-origin"

        # HSTS only in production (assumes HTTPS via reverse proxy)
        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors.

    Args:
        request: The incoming request.
        exc: The APIError that was raised.

    Returns:
        JSONResponse with error envelope and appropriate status code.
    """
    content = ErrorResponse(error=exc.message, code=exc.code, details=exc.details)
    if isinstance(exc, ThrottledError):
        content.retry_after_seconds = exc.retry_after_seconds
    return JSONResponse(
        status_code=exc.status_code,
        content=content.model_dump(exclude_none=True),
        headers=exc.headers,
    )


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors from FastAPI.

    Converts FastAPI's 422 validation errors to a 400 in our format.

    Args:
        request: The incoming request.
        exc: The RequestValidationError from Pydantic.

    Returns:
        JSONResponse with VALIDATION_ERROR code and field-level details.
    """
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error="Invalid request",
            code="VALIDATION_ERROR",
            details=[
                {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
                for e in exc.errors()
            ],
        ).model_dump(exclude_none=True),
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions.

    Args:
        request: The incoming request.
        exc: The unhandled exception.

    Returns:
        JSONResponse with generic error message (500).
    """
    logger.exception("Unhandled exception", exc_info=exc, path=str(request.url.path))

    error = InternalError()
    return JSONResponse(
        status_code=error.status_code,
        content=ErrorResponse(error=error.message, code=error.code).model_dump(
            exclude_none=True
        ),
    )


def _build_codec(password: str) -> MagicLinkCodec | None:
    if not password:
        logger.warning("Database password not configured; magic links disabled")
        return None
    return MagicLinkCodec(password)


def create_app(
    *,
    backup_tool: BackupTool | None = None,
    throttle: LoginThrottle | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Each app owns its own LoginThrottle, and the backup tool can be
    replaced with a test double.

    Args:
        backup_tool: Facade over the backup CLI. Defaults to the configured command.
        throttle: Login throttle. Defaults to a fresh LoginThrottle.

    Returns:
        Configured FastAPI application instance.
    """
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.app_title,
        version="1.0.0",
        description="Database backup administration panel",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    tool = backup_tool or BackupTool(
        settings.backup_command,
        timeout_seconds=settings.backup_command_timeout_seconds,
        login_timeout_seconds=settings.backup_login_timeout_seconds,
    )
    sessions = SessionIssuer(
        settings.service_user_admin.get_secret_value(),
        issuer=settings.auth_issuer,
    )
    if not settings.service_user_admin.get_secret_value():
        logger.warning("SERVICE_USER_ADMIN not set; no session can be issued")

    app.state.backup_tool = tool
    app.state.sessions = sessions
    app.state.auth_service = AuthenticationService(
        throttle=throttle or LoginThrottle(),
        verifier=BackupToolCredentialVerifier(tool, settings),
        sessions=sessions,
        codec=_build_codec(settings.database_password()),
    )

    # Middleware order: Starlette uses LIFO, so the LAST added runs FIRST.
    # Security headers wrap the gate so redirects and 401s get them too.
    app.add_middleware(RouteGateMiddleware, sessions=sessions)
    app.add_middleware(SecurityHeadersMiddleware)

    # Register exception handlers
    # Order matters: specific handlers first, then catch-all
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.state.limiter = limiter

    app.include_router(api_router, prefix="/api")
    app.include_router(pages.router)
    app.mount("/static", StaticFiles(directory=_STATIC_DIR), name="static")

    @app.get("/health")
    def health_check() -> dict:
        """Health check endpoint for monitoring.

        Returns:
            {"status": "healthy"} if service is running.
        """
        return {"status": "healthy"}

    return app


# Create the application instance
# Used by uvicorn: uvicorn backup_panel.main:app
app = create_app()
