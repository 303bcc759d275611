"""Repository for User CRUD operations.

Provides database access for the users table. Lookups used by identity
resolution eager-load the user's provider links.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from invoice_easy.models.user import User


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static: no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email_with_accounts(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email with social accounts loaded.

        Args:
            db: Async database session.
            email: Email address to look up (case-insensitive).

        Returns:
            User with ``social_accounts`` populated, or None if not found.
        """
        stmt = (
            select(User)
            .where(User.email == email.strip().lower())
            .options(selectinload(User.social_accounts))
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        username: str,
        country: str,
        currency: str,
        display_name: str | None = None,
        avatar_url: str | None = None,
    ) -> User:
        """Create a new user.

        Email is normalized to lowercase before storage.

        Args:
            db: Async database session.
            email: User email address.
            username: Unique handle.
            country: Default country code.
            currency: Default currency code.
            display_name: Display name.
            avatar_url: Profile picture URL.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email or username already exists.
        """
        user = User(
            email=email.strip().lower(),
            username=username,
            country=country,
            currency=currency,
            display_name=display_name,
            avatar_url=avatar_url,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user
