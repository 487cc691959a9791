"""Login: two ways to present credentials, one way to authenticate.

Both entry points produce a ProvenCredentials value:

- login_with_password: username/password typed into the login form
- login_with_magic_link: username/password recovered from an encrypted
  magic-link token (decode + expiry check first)

and both funnel into _authenticate(), which applies the throttle, asks the
credential verifier and issues a session token.

Throttle accounting:
- Throttled attempts fail fast: no decode, no verifier call, no increment.
- Undecodable or expired magic links count as failures.
- Verifier rejections count as failures.
- Success resets the counter.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from backup_panel.core.auth import SessionIssuer
from backup_panel.core.errors import (
    InvalidCredentialsError,
    ServerMisconfigurationError,
    ThrottledError,
)
from backup_panel.core.magic_link import MagicLinkCodec, MagicLinkDecodeError
from backup_panel.core.throttle import LoginThrottle
from backup_panel.services.credential_verifier import CredentialVerifier

logger = logging.getLogger(__name__)

_INVALID_CREDENTIALS_MSG = "Invalid username or password"
_INVALID_TOKEN_MSG = "Invalid or expired token"


@dataclass(frozen=True)
class ProvenCredentials:
    """A credential pair ready for verification, whatever its transport."""

    username: str
    password: str
    source: str


@dataclass(frozen=True)
class LoginResult:
    """A successful login."""

    username: str
    session_token: str


class AuthenticationService:
    """Owns the login flow. One instance per application."""

    def __init__(
        self,
        *,
        throttle: LoginThrottle,
        verifier: CredentialVerifier,
        sessions: SessionIssuer,
        codec: MagicLinkCodec | None,
    ) -> None:
        self.throttle = throttle
        self.verifier = verifier
        self.sessions = sessions
        self.codec = codec

    async def login_with_password(self, username: str, password: str) -> LoginResult:
        """Authenticate a form submission.

        Raises:
            ThrottledError: Lockout window active.
            InvalidCredentialsError: Verifier rejected the pair.
            ServerMisconfigurationError: Required configuration missing.
        """
        return await self._authenticate(
            lambda: ProvenCredentials(
                username=username, password=password, source="password"
            )
        )

    async def login_with_magic_link(self, token: str) -> LoginResult:
        """Authenticate with a magic-link token.

        Raises:
            ThrottledError: Lockout window active.
            InvalidCredentialsError: Token undecodable, expired, or its
                credentials rejected.
            ServerMisconfigurationError: No key material configured.
        """
        codec = self.require_codec()
        return await self._authenticate(lambda: self._credentials_from_token(codec, token))

    def require_codec(self) -> MagicLinkCodec:
        """Return the magic-link codec, or fail if none is configured."""
        if self.codec is None:
            logger.error("Magic links unavailable: <DB_TYPE>_PASSWORD is not set")
            raise ServerMisconfigurationError()
        return self.codec

    @staticmethod
    def _credentials_from_token(codec: MagicLinkCodec, token: str) -> ProvenCredentials:
        try:
            payload = codec.decode(token)
        except MagicLinkDecodeError as exc:
            logger.warning("Magic link rejected: undecodable (%s)", exc.__cause__.__class__.__name__)
            raise InvalidCredentialsError(_INVALID_TOKEN_MSG) from exc

        if payload.is_expired():
            logger.warning("Magic link rejected: expired for user %r", payload.username)
            raise InvalidCredentialsError(_INVALID_TOKEN_MSG)

        return ProvenCredentials(
            username=payload.username, password=payload.password, source="magic_link"
        )

    async def _authenticate(
        self, obtain_credentials: Callable[[], ProvenCredentials]
    ) -> LoginResult:
        """Throttle, prove, verify and issue, as one serialized attempt.

        The attempt lock is held across the verifier call so that two
        concurrent failures are counted one after the other and the second
        sees the first's increment.
        """
        async with self.throttle.serialized():
            decision = self.throttle.check()
            if not decision.allowed:
                logger.warning(
                    "Login throttled: %d consecutive failures, retry in %ds",
                    self.throttle.failure_count,
                    decision.retry_after_seconds,
                )
                raise ThrottledError(decision.retry_after_seconds)

            try:
                credentials = obtain_credentials()
            except InvalidCredentialsError:
                self.throttle.record_failure()
                raise

            if not await self.verifier.verify(credentials.username, credentials.password):
                failures = self.throttle.record_failure()
                logger.warning(
                    "Login failed for user %r via %s (%d consecutive failures)",
                    credentials.username,
                    credentials.source,
                    failures,
                )
                raise InvalidCredentialsError(_INVALID_CREDENTIALS_MSG)

            token = self.sessions.issue(credentials.username)
            self.throttle.record_success()
            logger.info(
                "Login succeeded for user %r via %s",
                credentials.username,
                credentials.source,
            )
            return LoginResult(username=credentials.username, session_token=token)
