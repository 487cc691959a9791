"""API error classes.

Every failure a handler can surface maps to one of these. The exception
handlers in main.py render them as ``{"error": message, "code": code}``.

Security: messages are generic by category. Cryptographic, verifier and
configuration detail is logged server-side and never placed in a message.
"""

import math


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "INVALID_CREDENTIALS").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
        headers: Optional extra response headers.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.headers = headers
        super().__init__(message)


class ValidationError(APIError):
    """Missing or malformed request input (400).

    Never counted against the login throttle.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid session is present.
    """

    def __init__(self, message: str = "Not authorized") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class InvalidCredentialsError(APIError):
    """Credential proof rejected (401).

    Raised when the verifier rejects a username/password pair, or when a
    magic-link token cannot be decoded or has expired. Counted against the
    login throttle.
    """

    def __init__(self, message: str = "Invalid username or password") -> None:
        super().__init__(
            code="INVALID_CREDENTIALS",
            message=message,
            status_code=401,
        )


class ThrottledError(APIError):
    """Login lockout window active (429).

    Args:
        retry_after_seconds: Whole seconds until the next attempt is allowed.
    """

    def __init__(self, retry_after_seconds: float) -> None:
        self.retry_after_seconds = max(1, math.ceil(retry_after_seconds))
        super().__init__(
            code="TOO_MANY_ATTEMPTS",
            message=(
                "Too many failed attempts. "
                f"Try again in {self.retry_after_seconds} seconds."
            ),
            status_code=429,
            headers={"Retry-After": str(self.retry_after_seconds)},
        )


class ServerMisconfigurationError(APIError):
    """Required secret or configuration is absent (500).

    The missing setting is logged by the raiser; the client only sees a
    generic message.
    """

    def __init__(self) -> None:
        super().__init__(
            code="SERVER_MISCONFIGURATION",
            message="Server misconfiguration",
            status_code=500,
        )


class BackupCommandError(APIError):
    """The backup tool reported a failure (500).

    Tool output is logged by the facade, never returned to the client.
    """

    def __init__(self, message: str) -> None:
        super().__init__(
            code="BACKUP_COMMAND_FAILED",
            message=message,
            status_code=500,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
