"""Identity resolution for social sign-in.

Decides what a verified external identity means for the account store.
Resolution is keyed by email, never by provider user ID, so one account
can carry several providers.

Rules, in priority order:
1. Email exists AND already linked to this provider → update link in place
2. Email exists AND not linked to this provider → add a link (no new user)
3. No such email AND sign-up/trial flow → create user + first link
4. No such email AND plain sign-in → create nothing, send user to sign-up

All writes of one resolution run in a savepoint, so a user and its link
land together or not at all. When a concurrent callback wins the race
for the same email (unique email or unique user+provider), the savepoint
is rolled back and resolution re-runs against the committed row.
"""

import logging
import re
import secrets
import string
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_easy.core.config import settings
from invoice_easy.core.oauth import SignupContext
from invoice_easy.core.oauth_client import ExternalIdentity, ProviderTokenSet
from invoice_easy.core.oauth_errors import ResolutionError
from invoice_easy.core.token_encryption import TokenCipher
from invoice_easy.models.user import User
from invoice_easy.repositories.social_account_repository import (
    SocialAccountRepository,
)
from invoice_easy.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

# One initial attempt plus one re-resolution after a uniqueness conflict
_MAX_ATTEMPTS = 2

_DB_ERROR_MSG = "Database error occurred"

_USERNAME_SUFFIX_LENGTH = 4
_USERNAME_SUFFIX_CHARS = string.ascii_lowercase + string.digits
_USERNAME_MAX_BASE_LENGTH = 48
_NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]")


class ResolutionOutcome(str, Enum):
    """What identity resolution did.

    Values:
        UPDATED_LINK: Existing link refreshed with new tokens/profile.
        LINKED_PROVIDER: New link attached to an existing user.
        CREATED_ACCOUNT: New user and first link created.
        SIGNUP_REQUIRED: No user and no sign-up intent; nothing written.
    """

    UPDATED_LINK = "updated_link"
    LINKED_PROVIDER = "linked_provider"
    CREATED_ACCOUNT = "created_account"
    SIGNUP_REQUIRED = "signup_required"


@dataclass(frozen=True)
class ResolutionResult:
    """Outcome of identity resolution.

    Attributes:
        outcome: Which rule applied.
        user: Resolved user (None only for SIGNUP_REQUIRED).
    """

    outcome: ResolutionOutcome
    user: User | None

    @property
    def issues_session(self) -> bool:
        """True if the caller should sign the user in."""
        return self.user is not None


def generate_username(email: str) -> str:
    """Derive a username from an email local-part plus a random suffix.

    Non-alphanumeric characters are stripped from the local-part; the
    4-character suffix disambiguates users with the same local-part.

    Args:
        email: Email address.

    Returns:
        Username such as ``janedoe7k2q``.
    """
    local_part = email.split("@", 1)[0]
    base = _NON_ALPHANUMERIC.sub("", local_part)[:_USERNAME_MAX_BASE_LENGTH] or "user"
    suffix = "".join(
        secrets.choice(_USERNAME_SUFFIX_CHARS) for _ in range(_USERNAME_SUFFIX_LENGTH)
    )
    return f"{base}{suffix}"


async def _apply_resolution(
    db: AsyncSession,
    *,
    identity: ExternalIdentity,
    provider: str,
    context: SignupContext,
    access_token: str,
    refresh_token: str | None,
    tokens: ProviderTokenSet,
) -> ResolutionResult:
    """Run the decision table once. Must be called inside a savepoint."""
    user = await UserRepository.get_by_email_with_accounts(db, identity.email)

    if user is not None:
        existing_link = next(
            (a for a in user.social_accounts if a.provider == provider), None
        )
        if existing_link is not None:
            await SocialAccountRepository.update_tokens(
                db,
                existing_link,
                provider_account_id=identity.provider_account_id,
                access_token=access_token,
                refresh_token=refresh_token,
                token_expires_at=tokens.expires_at,
                name=identity.display_name,
                avatar_url=identity.avatar_url,
            )
            logger.info(
                "Updated existing social account",
                extra={"user_id": str(user.id), "provider": provider},
            )
            return ResolutionResult(ResolutionOutcome.UPDATED_LINK, user)

        await SocialAccountRepository.create(
            db,
            user_id=user.id,
            provider=provider,
            provider_account_id=identity.provider_account_id,
            email=identity.email,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expires_at=tokens.expires_at,
            name=identity.display_name,
            avatar_url=identity.avatar_url,
        )
        logger.info(
            "Linked social account to existing user",
            extra={
                "user_id": str(user.id),
                "provider": provider,
                "email_verified": identity.email_verified,
            },
        )
        return ResolutionResult(ResolutionOutcome.LINKED_PROVIDER, user)

    if not context.allows_account_creation:
        logger.info(
            "No account for social sign-in, deferring to sign-up",
            extra={"provider": provider},
        )
        return ResolutionResult(ResolutionOutcome.SIGNUP_REQUIRED, None)

    new_user = await UserRepository.create(
        db,
        email=identity.email,
        username=generate_username(identity.email),
        country=settings.default_country,
        currency=settings.default_currency,
        display_name=identity.display_name,
        avatar_url=identity.avatar_url,
    )
    await SocialAccountRepository.create(
        db,
        user_id=new_user.id,
        provider=provider,
        provider_account_id=identity.provider_account_id,
        email=identity.email,
        access_token=access_token,
        refresh_token=refresh_token,
        token_expires_at=tokens.expires_at,
        name=identity.display_name,
        avatar_url=identity.avatar_url,
    )
    logger.info(
        "Created new user from social sign-up",
        extra={
            "user_id": str(new_user.id),
            "provider": provider,
            "trial": context.is_trial,
        },
    )
    return ResolutionResult(ResolutionOutcome.CREATED_ACCOUNT, new_user)


async def resolve_oauth_identity(
    db: AsyncSession,
    *,
    identity: ExternalIdentity,
    provider: str,
    context: SignupContext,
    tokens: ProviderTokenSet,
    cipher: TokenCipher,
) -> ResolutionResult:
    """Create, link, update, or reject an external identity.

    Does not commit: the caller owns the outer transaction and commits
    before issuing a session. The welcome notification for a created
    account is also the caller's job, after commit.

    Args:
        db: Async database session.
        identity: Profile from the provider (email already normalized).
        provider: Provider name (e.g., "google").
        context: Signup context from the initiation cookie.
        tokens: Provider tokens to store (encrypted here).
        cipher: Token cipher.

    Returns:
        ResolutionResult describing which rule applied.

    Raises:
        ResolutionError: On any account-store failure, or if a uniqueness
            conflict persists after re-resolution.
    """
    access_token = cipher.encrypt(tokens.access_token)
    refresh_token = cipher.encrypt_optional(tokens.refresh_token)

    for attempt in range(1, _MAX_ATTEMPTS + 1):
        try:
            async with db.begin_nested():
                return await _apply_resolution(
                    db,
                    identity=identity,
                    provider=provider,
                    context=context,
                    access_token=access_token,
                    refresh_token=refresh_token,
                    tokens=tokens,
                )
        except IntegrityError as exc:
            if attempt >= _MAX_ATTEMPTS:
                logger.error(
                    "Identity resolution conflict persisted after retry",
                    extra={"provider": provider},
                )
                raise ResolutionError(_DB_ERROR_MSG) from exc
            # Another callback committed the same email or link first
            logger.info(
                "Concurrent identity resolution detected, re-resolving",
                extra={"provider": provider},
            )
        except SQLAlchemyError as exc:
            logger.exception(
                "Database error during identity resolution",
                extra={"provider": provider},
            )
            raise ResolutionError(_DB_ERROR_MSG) from exc

    # Unreachable: the loop either returns or raises
    raise ResolutionError(_DB_ERROR_MSG)
