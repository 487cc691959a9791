"""Rate limiting configuration using slowapi.

Security: Limits the public magic-link generation endpoint per client IP.
That endpoint sits outside the route gate and would otherwise be a free
encryption service for anyone who can reach the panel.

Login attempts are NOT limited here. They are governed by the global
LoginThrottle, which counts failures instead of requests.

Usage in routers:
    from backup_panel.core.rate_limiting import limiter

    @router.post("/login/generate-token")
    @limiter.limit(lambda: settings.rate_limit_generate_token)
    async def generate_token(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from backup_panel.core.config import settings

# Global limiter instance
# In-memory storage: the panel runs as a single instance
limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Returns 429 with the standard error envelope and a Retry-After header.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Window length of the violated limit; 60 seconds if unavailable
    try:
        retry_after = str(exc.limit.limit.get_expiry())
    except AttributeError:
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content={
            "error": f"Rate limit exceeded: {exc.detail}",
            "code": "RATE_LIMITED",
        },
        headers={"Retry-After": retry_after},
    )
