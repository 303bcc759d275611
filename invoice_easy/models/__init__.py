"""SQLAlchemy ORM models for Invoice Easy sign-in.

All models are exported from this module for convenient imports:
    from invoice_easy.models import User, SocialAccount

Models:
- user.py: User (the account, unique by email)
- social_account.py: SocialAccount (provider link, unique per user+provider)
"""

from invoice_easy.models.base import Base, TimestampMixin
from invoice_easy.models.social_account import SocialAccount
from invoice_easy.models.user import User

__all__ = [
    "Base",
    "SocialAccount",
    "TimestampMixin",
    "User",
]
