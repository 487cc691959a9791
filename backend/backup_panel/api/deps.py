"""Shared dependencies for API endpoints.

Long-lived services (throttle, session issuer, backup tool, authentication
service) are created once in create_app() and stored on ``app.state``.
Handlers receive them through these dependencies.

The login throttle is one instance owned by the app, not a module global.
"""

from typing import Annotated

from fastapi import Depends, Request

from backup_panel.core.errors import UnauthorizedError
from backup_panel.core.route_gate import SESSION_USERNAME_KEY
from backup_panel.services.authentication import AuthenticationService
from backup_panel.services.backup_tool import BackupTool


def get_auth_service(request: Request) -> AuthenticationService:
    """Return the application's AuthenticationService."""
    return request.app.state.auth_service


def get_backup_tool(request: Request) -> BackupTool:
    """Return the application's BackupTool."""
    return request.app.state.backup_tool


def get_current_username(request: Request) -> str:
    """Username verified by the route gate for this request.

    Raises:
        UnauthorizedError: If the request did not pass through the gate with
            a valid session (e.g. a public route asking for a user).
    """
    username = getattr(request.state, SESSION_USERNAME_KEY, None)
    if not username:
        raise UnauthorizedError()
    return username


# Reusable type aliases for dependency injection
AuthService = Annotated[AuthenticationService, Depends(get_auth_service)]
Backups = Annotated[BackupTool, Depends(get_backup_tool)]
CurrentUsername = Annotated[str, Depends(get_current_username)]
