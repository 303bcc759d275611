"""Rate limiting configuration using slowapi.

Security: Limits how often a client can start an OAuth flow, so the
initiation endpoint can't be used to hammer the providers or to mint
unbounded transient cookies.

Requests carrying a valid session key on the session subject (per-user)
so users behind a shared IP don't throttle each other. Everything else
falls back to IP-based keying.

Usage in routers:
    from invoice_easy.core.rate_limiting import limiter

    @router.get("/providers/{provider}")
    @limiter.limit(lambda: settings.rate_limit_oauth_initiate)
    async def initiate_oauth(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from invoice_easy.core.config import settings
from invoice_easy.core.session import decode_session_token

# Session subjects are UUID strings
_MAX_SUBJECT_LENGTH = 36


def _rate_limit_key_func(request: Request) -> str:
    """Get rate limit key from request.

    Key format:
    - Valid session cookie: "user:{sub}"
    - No/invalid session cookie: "unauth:{ip}"

    Args:
        request: The incoming request.

    Returns:
        Rate limit key string.
    """
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        claims = decode_session_token(
            token, secret=settings.auth_secret.get_secret_value()
        )
        if claims is not None and len(claims.user_id) <= _MAX_SUBJECT_LENGTH:
            return f"user:{claims.user_id}"

    return f"unauth:{get_remote_address(request)}"


# Global limiter instance
# Configured with in-memory storage (suitable for single-instance deployment)
# For multi-instance, configure Redis storage via RATELIMIT_STORAGE_URL
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Security: Returns 429 Too Many Requests with standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse retry-after from exception detail (e.g., "10 per 1 hour")
    # Fallback to 60 seconds if parsing fails
    try:
        retry_after = str(exc.detail.split()[-1])
        int(retry_after.rstrip("s"))
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
            }
        },
        headers={"Retry-After": retry_after},
    )
