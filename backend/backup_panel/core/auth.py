"""Session tokens: JWT issuance, verification and cookie management.

Pipeline:
- SessionIssuer.issue: HS256 JWT for a successfully authenticated username
- SessionIssuer.verify: fail-closed verification used by the route gate
- set_auth_cookie / clear_auth_cookie: cookie attributes in one place

Sessions are stateless. Nothing is stored server-side; a session ends when
the cookie is deleted or the token expires.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
from fastapi import Response

from backup_panel.core.config import settings
from backup_panel.core.errors import ServerMisconfigurationError

logger = logging.getLogger(__name__)

# Fixed session lifetime: 1 hour
SESSION_TTL = timedelta(hours=1)

_ALGORITHM = "HS256"
_AUDIENCE = "backup-panel"


@dataclass(frozen=True)
class SessionClaims:
    """Verified content of a session token."""

    username: str
    issued_at: datetime
    expires_at: datetime


class SessionIssuer:
    """Mints and verifies signed, time-bounded session tokens.

    The secret is fixed for the lifetime of the instance, so one issuer can
    be shared across concurrent requests.
    """

    def __init__(
        self,
        secret: str,
        *,
        issuer: str = "backup-panel",
        ttl: timedelta = SESSION_TTL,
    ) -> None:
        self._secret = secret
        self._issuer = issuer
        self._ttl = ttl

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, username: str, *, now: datetime | None = None) -> str:
        """Create a signed session token for a username.

        Args:
            username: Authenticated username for the sub claim.
            now: Issuance time. Defaults to the current time.

        Returns:
            Encoded JWT string.

        Raises:
            ServerMisconfigurationError: If no signing secret is configured.
        """
        if not self._secret:
            logger.error("Cannot issue session: SERVICE_USER_ADMIN is not set")
            raise ServerMisconfigurationError()

        issued_at = (now or datetime.now(UTC)).replace(microsecond=0)
        payload = {
            "sub": username,
            "aud": _AUDIENCE,
            "iss": self._issuer,
            "iat": issued_at,
            "exp": issued_at + self._ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(
        self, token: str | None, *, now: datetime | None = None
    ) -> SessionClaims | None:
        """Verify a session token.

        Security: every failure (absent, malformed, bad signature, wrong
        audience/issuer, missing claims, expired) returns None. The reason is
        only logged at debug level.

        Args:
            token: Cookie value, possibly None.
            now: Verification time. Defaults to the current time.

        Returns:
            SessionClaims if the token is valid, otherwise None.
        """
        if not token or not self._secret:
            return None

        try:
            # Expiry is compared below against `now` so callers can pin time.
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                audience=_AUDIENCE,
                issuer=self._issuer,
                options={
                    "require": ["sub", "iat", "exp"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
            username = payload["sub"]
            issued_at = datetime.fromtimestamp(int(payload["iat"]), UTC)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), UTC)
        except (jwt.InvalidTokenError, KeyError, TypeError, ValueError) as exc:
            logger.debug("Session token rejected: %s", type(exc).__name__)
            return None

        if not isinstance(username, str) or not username:
            return None

        current = now or datetime.now(UTC)
        if current >= expires_at:
            logger.debug("Session token rejected: expired")
            return None

        return SessionClaims(
            username=username, issued_at=issued_at, expires_at=expires_at
        )


def set_auth_cookie(
    response: Response, token: str, *, max_age: timedelta = SESSION_TTL
) -> None:
    """Set httpOnly session cookie on response.

    Security: httpOnly prevents script access. Secure and SameSite come from
    settings (defaults: Secure, SameSite=strict).

    Args:
        response: Response object to attach the cookie to.
        token: JWT token string.
        max_age: Remaining validity of the token.
    """
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        max_age=int(max_age.total_seconds()),
    )


def clear_auth_cookie(response: Response) -> None:
    """Expire the session cookie.

    Attributes must match set_auth_cookie() for the browser to replace it.
    """
    response.set_cookie(
        key=settings.auth_cookie_name,
        value="",
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        max_age=0,
    )
