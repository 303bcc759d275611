"""Tests for the session endpoints: GET /auth/me and POST /auth/logout."""

import uuid
from datetime import timedelta

import pytest

from invoice_easy.core.config import settings
from invoice_easy.core.session import create_session_token
from invoice_easy.repositories.user_repository import UserRepository
from tests.conftest import TEST_AUTH_SECRET

_ME_URL = "/api/v1/auth/me"
_LOGOUT_URL = "/api/v1/auth/logout"


@pytest.fixture
async def signed_in_user(session_factory):
    """Persisted user for session tests."""
    async with session_factory() as db:
        user = await UserRepository.create(
            db,
            email="me@example.com",
            username="me1a2b",
            country="US",
            currency="USD",
            display_name="Me",
            avatar_url="https://example.com/me.png",
        )
        await db.commit()
    return user


def _session_cookie(user_id: str, email: str, **kwargs) -> str:
    return create_session_token(
        user_id=user_id,
        email=email,
        provider="microsoft",
        secret=kwargs.pop("secret", TEST_AUTH_SECRET),
        **kwargs,
    )


class TestGetMe:
    """Tests for GET /auth/me."""

    async def test_returns_current_user(self, oauth_client, signed_in_user):
        """A valid session returns the bound user and sign-in provider."""
        oauth_client.cookies.set(
            settings.session_cookie_name,
            _session_cookie(str(signed_in_user.id), "me@example.com"),
        )

        response = await oauth_client.get(_ME_URL)

        assert response.status_code == 200
        assert response.json()["data"] == {
            "id": str(signed_in_user.id),
            "email": "me@example.com",
            "username": "me1a2b",
            "display_name": "Me",
            "avatar_url": "https://example.com/me.png",
            "provider": "microsoft",
        }

    async def test_no_cookie_is_401(self, oauth_client):
        """No session cookie means unauthorized."""
        response = await oauth_client.get(_ME_URL)

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    async def test_expired_session_is_401(self, oauth_client, signed_in_user):
        """Expired sessions are rejected."""
        oauth_client.cookies.set(
            settings.session_cookie_name,
            _session_cookie(
                str(signed_in_user.id),
                "me@example.com",
                expires_delta=timedelta(seconds=-1),
            ),
        )
        response = await oauth_client.get(_ME_URL)
        assert response.status_code == 401

    async def test_forged_session_is_401(self, oauth_client, signed_in_user):
        """Sessions signed with another secret are rejected."""
        oauth_client.cookies.set(
            settings.session_cookie_name,
            _session_cookie(
                str(signed_in_user.id),
                "me@example.com",
                secret="forged-secret-key-that-is-at-least-32-characters",  # nosec B106
            ),
        )
        response = await oauth_client.get(_ME_URL)
        assert response.status_code == 401

    async def test_unknown_user_is_401(self, oauth_client):
        """A session for a deleted user is rejected."""
        oauth_client.cookies.set(
            settings.session_cookie_name,
            _session_cookie(str(uuid.uuid4()), "gone@example.com"),
        )
        response = await oauth_client.get(_ME_URL)
        assert response.status_code == 401

    async def test_email_mismatch_is_401(self, oauth_client, signed_in_user):
        """A session issued for another email is rejected."""
        oauth_client.cookies.set(
            settings.session_cookie_name,
            _session_cookie(str(signed_in_user.id), "other@example.com"),
        )
        response = await oauth_client.get(_ME_URL)
        assert response.status_code == 401

    async def test_malformed_subject_is_401(self, oauth_client):
        """A non-UUID subject is rejected without a database error."""
        oauth_client.cookies.set(
            settings.session_cookie_name,
            _session_cookie("not-a-uuid", "me@example.com"),
        )
        response = await oauth_client.get(_ME_URL)
        assert response.status_code == 401


class TestLogout:
    """Tests for POST /auth/logout."""

    async def test_clears_session_cookie(
        self, oauth_client, signed_in_user, set_cookie_headers
    ):
        """Logout deletes the session cookie."""
        oauth_client.cookies.set(
            settings.session_cookie_name,
            _session_cookie(str(signed_in_user.id), "me@example.com"),
        )

        response = await oauth_client.post(_LOGOUT_URL)

        assert response.status_code == 200
        assert response.json()["data"]["message"] == "Logged out"
        header = set_cookie_headers(response)[settings.session_cookie_name]
        assert "Max-Age=0" in header
        assert "Path=/" in header

    async def test_succeeds_without_session(self, oauth_client):
        """Logout is idempotent."""
        response = await oauth_client.post(_LOGOUT_URL)
        assert response.status_code == 200
