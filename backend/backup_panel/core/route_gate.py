"""ASGI middleware that enforces a valid session on every protected route.

Each request is classified by path and decided once, with no state kept
between requests:

- PUBLIC: login API (and everything below it), logout, static assets,
  favicon, health check. Passed through untouched.
- LOGIN_PAGE: ``/login``. A visitor who already holds a valid session is
  redirected to ``/``; everyone else may proceed.
- API: any other ``/api/*`` path. Missing or invalid session -> 401 JSON.
- PAGE: everything else. Missing or invalid session -> redirect to
  ``/login``.

The gate only consults the SessionIssuer. Login attempt accounting lives
in the login handler, so gate rejections never touch the login throttle.

This is a raw ASGI middleware (not BaseHTTPMiddleware) so rejected
requests never reach routing and the verified username can be placed in
``scope["state"]`` for handlers.
"""

from __future__ import annotations

import enum

import structlog
from starlette.requests import HTTPConnection
from starlette.responses import JSONResponse, RedirectResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from backup_panel.core.auth import SessionIssuer
from backup_panel.core.config import settings

logger = structlog.get_logger()

LOGIN_PAGE_PATH = "/login"
HOME_PATH = "/"
LOGIN_API_PATH = "/api/login"
LOGOUT_API_PATH = "/api/logout"

_PUBLIC_PREFIXES = (f"{LOGIN_API_PATH}/", "/static/")
_PUBLIC_PATHS = frozenset(
    {LOGIN_API_PATH, LOGOUT_API_PATH, "/favicon.ico", "/health", "/static"}
)

SESSION_USERNAME_KEY = "username"
"""Key under request.state holding the verified session username."""


class RouteClass(enum.Enum):
    """How the gate treats a request path."""

    PUBLIC = "public"
    LOGIN_PAGE = "login_page"
    API = "api"
    PAGE = "page"


def classify_path(path: str) -> RouteClass:
    """Map a request path to its gating class.

    Args:
        path: URL path as received (no query string).

    Returns:
        The RouteClass for the path.
    """
    if path in _PUBLIC_PATHS or path.startswith(_PUBLIC_PREFIXES):
        return RouteClass.PUBLIC
    if path.rstrip("/") == LOGIN_PAGE_PATH:
        return RouteClass.LOGIN_PAGE
    if path == "/api" or path.startswith("/api/"):
        return RouteClass.API
    return RouteClass.PAGE


class RouteGateMiddleware:
    """Allow, redirect, or reject each request based on its session cookie."""

    def __init__(self, app: ASGIApp, sessions: SessionIssuer) -> None:
        """Initialize with the next ASGI application.

        Args:
            app: The next ASGI application in the middleware chain.
            sessions: Verifier for the session cookie.
        """
        self.app = app
        self.sessions = sessions

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        route_class = classify_path(scope["path"])
        if route_class is RouteClass.PUBLIC:
            await self.app(scope, receive, send)
            return

        connection = HTTPConnection(scope)
        claims = self.sessions.verify(connection.cookies.get(settings.auth_cookie_name))

        if route_class is RouteClass.LOGIN_PAGE:
            if claims is not None:
                response = RedirectResponse(url=HOME_PATH)
                await response(scope, receive, send)
                return
            await self.app(scope, receive, send)
            return

        if claims is None:
            if route_class is RouteClass.API:
                response = JSONResponse(
                    status_code=401,
                    content={"error": "Not authorized", "code": "UNAUTHORIZED"},
                )
            else:
                response = RedirectResponse(url=LOGIN_PAGE_PATH)
            logger.debug(
                "Request rejected by route gate",
                path=scope["path"],
                route_class=route_class.value,
            )
            await response(scope, receive, send)
            return

        scope.setdefault("state", {})[SESSION_USERNAME_KEY] = claims.username
        await self.app(scope, receive, send)
