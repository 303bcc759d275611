"""Tests for SocialAccountRepository.

Tests cover link creation, the one-link-per-provider constraint, token
updates, and cascade delete with the owning user.
"""

import pytest
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_easy.models import User
from invoice_easy.repositories.social_account_repository import (
    SocialAccountRepository,
)
from invoice_easy.repositories.user_repository import UserRepository


@pytest.fixture
async def user(db_session: AsyncSession) -> User:
    return await UserRepository.create(
        db_session,
        email="link@example.com",
        username="link1a2b",
        country="US",
        currency="USD",
    )


async def _link(db: AsyncSession, user: User, provider: str = "google", **kwargs):
    values = {
        "provider_account_id": f"{provider}-1",
        "email": user.email,
        "access_token": "enc-at",
        "refresh_token": "enc-rt",
    }
    values.update(kwargs)
    return await SocialAccountRepository.create(
        db, user_id=user.id, provider=provider, **values
    )


class TestCreate:
    """Test SocialAccountRepository.create()."""

    async def test_creates_link(self, db_session, user):
        """A link stores the provider identity and tokens."""
        link = await _link(db_session, user, name="Link User")
        assert link.user_id == user.id
        assert link.provider == "google"
        assert link.provider_account_id == "google-1"
        assert link.name == "Link User"

    async def test_one_link_per_provider(self, db_session, user):
        """A user can't have two links for the same provider."""
        await _link(db_session, user)
        with pytest.raises(IntegrityError):
            await _link(db_session, user, provider_account_id="google-2")

    async def test_links_for_different_providers(self, db_session, user):
        """One user may link several providers."""
        await _link(db_session, user, "google")
        await _link(db_session, user, "microsoft")
        links = await SocialAccountRepository.list_by_user_id(db_session, user.id)
        assert sorted(link.provider for link in links) == ["google", "microsoft"]


class TestUpdateTokens:
    """Test SocialAccountRepository.update_tokens()."""

    async def test_replaces_tokens_and_profile(self, db_session, user):
        """Tokens and profile fields are overwritten."""
        link = await _link(db_session, user)
        updated = await SocialAccountRepository.update_tokens(
            db_session,
            link,
            provider_account_id="google-1",
            access_token="enc-at-2",
            refresh_token="enc-rt-2",
            token_expires_at=None,
            name="New Name",
            avatar_url="https://example.com/new.png",
        )
        assert updated.access_token == "enc-at-2"
        assert updated.refresh_token == "enc-rt-2"
        assert updated.name == "New Name"

    async def test_none_refresh_token_keeps_existing(self, db_session, user):
        """An absent refresh token doesn't erase the stored one."""
        link = await _link(db_session, user)
        updated = await SocialAccountRepository.update_tokens(
            db_session,
            link,
            provider_account_id="google-1",
            access_token="enc-at-2",
            refresh_token=None,
            token_expires_at=None,
            name=None,
            avatar_url=None,
        )
        assert updated.refresh_token == "enc-rt"


class TestLookups:
    """Test get_by_user_and_provider() and list_by_user_id()."""

    async def test_get_by_user_and_provider(self, db_session, user):
        """Finds the link for the given provider only."""
        await _link(db_session, user, "google")
        assert (
            await SocialAccountRepository.get_by_user_and_provider(
                db_session, user.id, "google"
            )
        ) is not None
        assert (
            await SocialAccountRepository.get_by_user_and_provider(
                db_session, user.id, "microsoft"
            )
        ) is None

    async def test_deleting_user_cascades(self, db_session, user):
        """Links are removed with their user."""
        await _link(db_session, user)
        await db_session.commit()

        await db_session.execute(delete(User).where(User.id == user.id))
        await db_session.commit()

        assert await SocialAccountRepository.list_by_user_id(db_session, user.id) == []
