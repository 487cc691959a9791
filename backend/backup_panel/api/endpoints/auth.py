"""Authentication endpoints.

Endpoints:
- POST /api/login: username/password login, sets session cookie
- GET /api/login?token=: magic-link login, sets cookie and redirects home
- POST /api/login/generate-token: mint a magic link for a credential pair
- POST /api/logout: clear session cookie

All of these sit outside the route gate. Login attempts are serialized and
throttled by the AuthenticationService.
"""

from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field

from backup_panel.api.deps import AuthService
from backup_panel.core.auth import clear_auth_cookie, set_auth_cookie
from backup_panel.core.config import settings
from backup_panel.core.errors import ValidationError
from backup_panel.core.rate_limiting import limiter
from backup_panel.core.responses import MagicLinkResponse, MessageResponse

router = APIRouter()

_HOME_PATH = "/"
_MAX_TOKEN_LENGTH = 4096


# ===================================================================
# Request models
# ===================================================================


class LoginRequest(BaseModel):
    """Request body for POST /api/login and /api/login/generate-token."""

    model_config = ConfigDict(extra="forbid")

    username: str = Field(min_length=1, max_length=256)
    password: str = Field(min_length=1, max_length=1024)


# ===================================================================
# POST /api/login
# ===================================================================


@router.post("/login")
async def login(
    body: LoginRequest,
    response: Response,
    auth: AuthService,
) -> MessageResponse:
    """Verify username + password and issue the session cookie.

    Responses: 200 with cookie, 401 bad credentials, 429 throttled,
    400 malformed body.
    """
    result = await auth.login_with_password(body.username, body.password)
    set_auth_cookie(response, result.session_token, max_age=auth.sessions.ttl)
    return MessageResponse(message="Login successful")


# ===================================================================
# GET /api/login?token=
# ===================================================================


@router.get("/login")
async def login_with_magic_link(
    auth: AuthService,
    token: Annotated[str | None, Query(max_length=_MAX_TOKEN_LENGTH)] = None,
) -> RedirectResponse:
    """Exchange a magic-link token for a session and redirect home.

    Responses: 302 to / with cookie, 401 invalid/expired token or rejected
    credentials, 429 throttled, 400 missing token, 500 no key configured.
    """
    if not token:
        raise ValidationError("Missing token")

    result = await auth.login_with_magic_link(token)

    response = RedirectResponse(url=_HOME_PATH, status_code=302)
    set_auth_cookie(response, result.session_token, max_age=auth.sessions.ttl)
    # Prevent token leakage via Referer header
    response.headers["Referrer-Policy"] = "no-referrer"
    return response


# ===================================================================
# POST /api/login/generate-token
# ===================================================================


@router.post("/login/generate-token")
@limiter.limit(lambda: settings.rate_limit_generate_token)
async def generate_token(
    request: Request,
    body: LoginRequest,
    auth: AuthService,
) -> MagicLinkResponse:
    """Encrypt a credential pair into a magic link.

    The credentials are not checked here; they are verified when the link
    is used. Rate limited per IP.
    """
    codec = auth.require_codec()
    token = codec.encode(body.username, body.password)
    login_url = f"{str(request.base_url).rstrip('/')}/api/login?{urlencode({'token': token})}"
    return MagicLinkResponse(token=token, login_url=login_url)


# ===================================================================
# POST /api/logout
# ===================================================================


@router.post("/logout")
async def logout(response: Response) -> MessageResponse:
    """Clear the session cookie. Always succeeds."""
    clear_auth_cookie(response)
    return MessageResponse(message="Logged out")
