"""User model - the Invoice Easy account.

Identity resolution for social sign-in is keyed by email, so several
providers can attach to one user through SocialAccount rows.
"""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoice_easy.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from invoice_easy.models.social_account import SocialAccount


class User(Base, TimestampMixin):
    """Invoice Easy user account.

    Attributes:
        id: UUID primary key.
        email: Unique email address (lowercase).
        username: Unique handle, generated at social sign-up.
        display_name: Name shown in the app (from the provider profile).
        avatar_url: Profile picture URL from the provider.
        country: ISO country code used for invoicing defaults.
        currency: ISO currency code used for invoicing defaults.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    username: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
    )
    display_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    avatar_url: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    country: Mapped[str] = mapped_column(String(2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Relationships
    social_accounts: Mapped[list["SocialAccount"]] = relationship(
        "SocialAccount",
        back_populates="user",
        cascade="all, delete-orphan",
    )
