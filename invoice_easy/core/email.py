"""Email sending via Resend API.

Simple HTTP POST to Resend for the welcome email sent after a social
sign-up creates a new account. Plain-text format.
"""

import logging

import httpx

from invoice_easy.core.config import settings

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0


async def send_welcome_email(*, to_email: str, display_name: str | None = None) -> None:
    """Send a welcome email to a newly created account via Resend.

    Runs as a background task after the account is committed, so delivery
    failures are logged and never raised. Skipped when no Resend API key
    is configured (local development).

    Args:
        to_email: Recipient email address.
        display_name: Name from the provider profile, if any.
    """
    api_key = settings.resend_api_key.get_secret_value()
    if not api_key:
        logger.info("Resend API key not configured, skipping welcome email")
        return

    greeting = f"Hi {display_name}," if display_name else "Hi,"
    login_url = f"{settings.base_url}{settings.login_path}"

    try:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                _RESEND_API_URL,
                headers={"Authorization": f"Bearer {api_key}"},
                json={
                    "from": settings.email_from,
                    "to": to_email,
                    "subject": f"Welcome to {settings.app_name}",
                    "text": (
                        f"{greeting}\n\n"
                        f"Your {settings.app_name} account is ready. "
                        f"Sign in any time at {login_url}\n\n"
                        "If you didn't create this account, you can safely "
                        "ignore this email."
                    ),
                },
                timeout=_RESEND_TIMEOUT,
            )
            resp.raise_for_status()
    except Exception:
        logger.warning("Failed to send welcome email", exc_info=True)
