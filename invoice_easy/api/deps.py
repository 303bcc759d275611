"""Shared dependencies for API endpoints.

Database session, the lifespan-owned HTTP client, and the current
application session read from the ``oauth_session`` cookie.

WHY DEPENDENCY INJECTION:
- Consistent auth across all endpoints
- Testable with overridden dependencies (test DB, mock transports)
"""

from typing import Annotated

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_easy.core.config import settings
from invoice_easy.core.database import get_db
from invoice_easy.core.errors import UnauthorizedError
from invoice_easy.core.session import SessionClaims, decode_session_token


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Get the shared outbound HTTP client.

    The client is created and closed by the application lifespan and
    stored on ``app.state``.

    Args:
        request: HTTP request (injected by FastAPI).

    Returns:
        Shared httpx.AsyncClient.
    """
    return request.app.state.http_client


def get_session_claims(request: Request) -> SessionClaims:
    """Get the current application session from its cookie.

    Security: Never include specifics about WHY auth failed (expired,
    bad signature, etc.) in the response.

    Args:
        request: HTTP request (injected by FastAPI).

    Returns:
        Validated session claims.

    Raises:
        UnauthorizedError: If the cookie is missing or invalid.
    """
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        raise UnauthorizedError()

    claims = decode_session_token(
        token, secret=settings.auth_secret.get_secret_value()
    )
    if claims is None:
        raise UnauthorizedError()
    return claims


# Reusable type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
HttpClient = Annotated[httpx.AsyncClient, Depends(get_http_client)]
CurrentSession = Annotated[SessionClaims, Depends(get_session_claims)]
