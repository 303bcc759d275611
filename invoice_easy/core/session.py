"""Application session issuance and validation.

The ``oauth_session`` cookie holds an HS256 JWT bound to the user ID,
email, and the provider used to sign in. It is minted only after identity
resolution succeeds.

Pipeline:
- create_session_token / set_session_cookie: issuance after a callback
- decode_session_token: validation for /auth/me and other session reads
- clear_session_cookie: logout
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
from fastapi import Response

from invoice_easy.core.config import settings

logger = logging.getLogger(__name__)

_SESSION_AUDIENCE = "invoice-easy"


@dataclass(frozen=True)
class SessionClaims:
    """Validated contents of an application session.

    Attributes:
        user_id: User UUID string (``sub`` claim).
        email: Email the session was issued for.
        provider: Provider used to sign in (e.g., "google").
        issued_at: Issuance time.
        expires_at: Expiry time.
    """

    user_id: str
    email: str
    provider: str
    issued_at: datetime
    expires_at: datetime


def _session_lifetime() -> timedelta:
    return timedelta(hours=settings.session_ttl_hours)


def create_session_token(
    *,
    user_id: str,
    email: str,
    provider: str,
    secret: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed session JWT.

    Args:
        user_id: User UUID string for the sub claim.
        email: User email.
        provider: Provider used for this sign-in.
        secret: HMAC signing secret.
        expires_delta: Time until expiration. Defaults to the session TTL.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "email": email,
        "provider": provider,
        "aud": _SESSION_AUDIENCE,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or _session_lifetime()),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def decode_session_token(token: str, *, secret: str) -> SessionClaims | None:
    """Validate a session JWT.

    Args:
        token: JWT from the session cookie.
        secret: HMAC signing secret.

    Returns:
        SessionClaims if signature, audience, issuer, and expiry are valid
        and all bound claims are present; None otherwise.
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=_SESSION_AUDIENCE,
            issuer=settings.auth_issuer,
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.InvalidTokenError:
        return None

    email = payload.get("email")
    provider = payload.get("provider")
    if not isinstance(email, str) or not isinstance(provider, str):
        logger.warning("Session token missing bound claims")
        return None

    return SessionClaims(
        user_id=str(payload["sub"]),
        email=email,
        provider=provider,
        issued_at=datetime.fromtimestamp(payload["iat"], UTC),
        expires_at=datetime.fromtimestamp(payload["exp"], UTC),
    )


def set_session_cookie(response: Response, token: str) -> None:
    """Set the httpOnly session cookie on a response.

    Security: httpOnly prevents XSS cookie theft. SameSite=Lax keeps the
    cookie on top-level navigations back from the provider.

    Args:
        response: Response object.
        token: Session JWT.
    """
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
        max_age=int(_session_lifetime().total_seconds()),
    )


def clear_session_cookie(response: Response) -> None:
    """Delete the session cookie.

    Cookie attributes must match set_session_cookie() for the browser to
    delete it.
    """
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
