"""Repository for SocialAccount CRUD operations.

Provides database access for the social_accounts table. Token columns
are written as given; callers encrypt before calling.
"""

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_easy.models.social_account import SocialAccount


class SocialAccountRepository:
    """Stateless repository for SocialAccount table operations.

    All methods are static: no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        provider: str,
        provider_account_id: str,
        email: str,
        access_token: str,
        refresh_token: str | None = None,
        token_expires_at: datetime | None = None,
        name: str | None = None,
        avatar_url: str | None = None,
    ) -> SocialAccount:
        """Create a new link between a provider identity and a user.

        Args:
            db: Async database session.
            user_id: FK to users table.
            provider: Provider name ("google", "microsoft").
            provider_account_id: Provider's unique user identifier.
            email: Email reported by the provider.
            access_token: Encrypted access token.
            refresh_token: Encrypted refresh token.
            token_expires_at: Access token expiry.
            name: Provider display name.
            avatar_url: Provider profile picture URL.

        Returns:
            Created SocialAccount with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If the user already has a link for
                this provider.
        """
        account = SocialAccount(
            user_id=user_id,
            provider=provider,
            provider_account_id=provider_account_id,
            email=email,
            name=name,
            avatar_url=avatar_url,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expires_at=token_expires_at,
        )
        db.add(account)
        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def update_tokens(
        db: AsyncSession,
        account: SocialAccount,
        *,
        provider_account_id: str,
        access_token: str,
        refresh_token: str | None,
        token_expires_at: datetime | None,
        name: str | None,
        avatar_url: str | None,
    ) -> SocialAccount:
        """Refresh tokens and profile fields on an existing link.

        A provider only returns a refresh token on some consents, so an
        absent refresh token keeps the stored one.

        Args:
            db: Async database session.
            account: Link to update.
            provider_account_id: Provider's unique user identifier.
            access_token: Encrypted access token.
            refresh_token: Encrypted refresh token, or None to keep existing.
            token_expires_at: Access token expiry.
            name: Provider display name.
            avatar_url: Provider profile picture URL.

        Returns:
            The updated SocialAccount.
        """
        account.provider_account_id = provider_account_id
        account.access_token = access_token
        if refresh_token is not None:
            account.refresh_token = refresh_token
        account.token_expires_at = token_expires_at
        account.name = name
        account.avatar_url = avatar_url
        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def get_by_user_and_provider(
        db: AsyncSession,
        user_id: uuid.UUID,
        provider: str,
    ) -> SocialAccount | None:
        """Find a user's link for one provider.

        Args:
            db: Async database session.
            user_id: UUID of the user.
            provider: Provider name.

        Returns:
            SocialAccount if found, None otherwise.
        """
        stmt = select(SocialAccount).where(
            SocialAccount.user_id == user_id,
            SocialAccount.provider == provider,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_user_id(
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> list[SocialAccount]:
        """List all links for a user.

        Args:
            db: Async database session.
            user_id: UUID of the user.

        Returns:
            List of SocialAccount records (may be empty).
        """
        stmt = select(SocialAccount).where(SocialAccount.user_id == user_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())
