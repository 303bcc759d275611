"""Application session endpoints.

GET /auth/me returns the signed-in user; POST /auth/logout deletes the
session cookie.
"""

import uuid

import structlog
from fastapi import APIRouter
from pydantic import BaseModel
from starlette.responses import Response

from invoice_easy.api.deps import CurrentSession, DbSession
from invoice_easy.core.errors import UnauthorizedError
from invoice_easy.core.responses import DataResponse
from invoice_easy.core.session import clear_session_cookie
from invoice_easy.repositories.user_repository import UserRepository

logger = structlog.get_logger()

router = APIRouter()


class SessionUser(BaseModel):
    """Signed-in user returned by /auth/me."""

    id: str
    email: str
    username: str
    display_name: str | None = None
    avatar_url: str | None = None
    provider: str


@router.get("/me")
async def get_me(session: CurrentSession, db: DbSession) -> DataResponse[SessionUser]:
    """Return the user bound to the current session.

    Raises:
        UnauthorizedError: No valid session, or the user no longer exists
            or no longer has the session's email.
    """
    try:
        user_id = uuid.UUID(session.user_id)
    except ValueError:
        raise UnauthorizedError() from None

    user = await UserRepository.get_by_id(db, user_id)
    if user is None or user.email != session.email:
        raise UnauthorizedError()

    return DataResponse(
        data=SessionUser(
            id=str(user.id),
            email=user.email,
            username=user.username,
            display_name=user.display_name,
            avatar_url=user.avatar_url,
            provider=session.provider,
        )
    )


@router.post("/logout")
async def logout(response: Response) -> DataResponse[dict]:
    """Delete the session cookie. Succeeds with or without a session."""
    clear_session_cookie(response)
    logger.info("Session cleared")
    return DataResponse(data={"message": "Logged out"})
