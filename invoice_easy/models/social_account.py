"""SocialAccount model - identity provider links.

Stores one row per (user, provider). Multiple rows per user, at most one
per provider.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoice_easy.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from invoice_easy.models.user import User


class SocialAccount(Base, TimestampMixin):
    """Identity provider connection for a user.

    OAuth tokens (access_token, refresh_token) are encrypted at the
    application layer before storage. See core/token_encryption.py.

    Attributes:
        id: UUID primary key.
        user_id: FK to users table.
        provider: Provider name ("google", "microsoft").
        provider_account_id: Provider's unique user ID.
        email: Email reported by the provider.
        name: Display name reported by the provider.
        avatar_url: Profile picture URL reported by the provider.
        access_token: OAuth access token (encrypted).
        refresh_token: OAuth refresh token (encrypted), if granted.
        token_expires_at: Access token expiry.
        created_at: Record creation timestamp.
        updated_at: Last token/profile refresh.
    """

    __tablename__ = "social_accounts"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_social_accounts_user_provider"),
        Index(
            "idx_social_accounts_provider_account",
            "provider",
            "provider_account_id",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text(), nullable=True)
    access_token: Mapped[str] = mapped_column(Text(), nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text(), nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="social_accounts")
