"""OAuth HTTP client: authorization URL, token exchange, and userinfo.

One ``OAuthProviderClient`` per provider wraps the process-wide
``httpx.AsyncClient``. Every network call is single-attempt with a bounded
timeout: authorization codes are single-use, so a retried exchange can only
fail or, worse, race the first attempt.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import httpx

from invoice_easy.core.config import settings
from invoice_easy.core.oauth import OAuthProviderConfig
from invoice_easy.core.oauth_errors import (
    ProfileEmailMissingError,
    ProfileFetchError,
    TokenExchangeError,
)

logger = logging.getLogger(__name__)

# HTTP client timeout for OAuth token exchange and userinfo
_OAUTH_HTTP_TIMEOUT = 10.0

# Provider error codes are echoed to logs only; cap their length
_MAX_PROVIDER_ERROR_LENGTH = 100

# users.display_name and social_accounts.name are String(255)
_MAX_DISPLAY_NAME_LENGTH = 255

_EXCHANGE_FAILED_MSG = "Failed to exchange authorization code"
_PROFILE_FAILED_MSG = "Failed to get user information"


@dataclass(frozen=True)
class ProviderTokenSet:
    """Tokens returned by the provider's token endpoint.

    Secrets are excluded from repr so the object is safe to log by accident.

    Attributes:
        access_token: Bearer token for the userinfo call.
        refresh_token: Long-lived token (only when offline access was granted).
        expires_at: Absolute access token expiry, if the provider sent one.
        token_type: Token type (e.g., "Bearer").
        scope: Scopes actually granted.
    """

    access_token: str = field(repr=False)
    refresh_token: str | None = field(default=None, repr=False)
    expires_at: datetime | None = None
    token_type: str | None = None
    scope: str | None = None


@dataclass(frozen=True)
class ExternalIdentity:
    """User profile reported by the identity provider.

    Attributes:
        provider_account_id: Provider's stable user ID (OIDC ``sub``).
        email: Email address, lowercased. Always present.
        display_name: Full name, if shared.
        avatar_url: Profile picture URL, if shared.
        email_verified: Whether the provider verified the email.
    """

    provider_account_id: str
    email: str
    display_name: str | None = None
    avatar_url: str | None = None
    email_verified: bool = False


def get_provider_credentials(config: OAuthProviderConfig) -> tuple[str, str] | None:
    """Look up the client ID and secret for a provider.

    Args:
        config: Provider descriptor.

    Returns:
        (client_id, client_secret), or None if either is not configured.
    """
    client_id = getattr(settings, config.client_id_setting)
    client_secret = getattr(settings, config.client_secret_setting).get_secret_value()
    if not client_id or not client_secret:
        return None
    return client_id, client_secret


def _json_body(resp: httpx.Response) -> dict[str, Any] | None:
    """Parse a JSON object body, or None if it isn't one."""
    try:
        body = resp.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _expires_at(expires_in: Any) -> datetime | None:
    """Convert a relative ``expires_in`` to an absolute UTC datetime."""
    try:
        seconds = int(expires_in)
    except (TypeError, ValueError):
        return None
    if seconds <= 0:
        return None
    return datetime.now(UTC) + timedelta(seconds=seconds)


def _as_bool(value: Any) -> bool:
    """Providers report email_verified as a bool or as "true"/"false"."""
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


def _display_name(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    name = value.strip()[:_MAX_DISPLAY_NAME_LENGTH]
    return name or None


class OAuthProviderClient:
    """Protocol client for a single OAuth provider.

    Args:
        http_client: Shared async HTTP client (owned by the app lifespan).
        config: Provider descriptor.
        client_id: OAuth client ID.
        client_secret: OAuth client secret.
        timeout: Per-request timeout in seconds.
        request_offline_access: Ask the provider for a refresh token.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        config: OAuthProviderConfig,
        client_id: str,
        client_secret: str,
        timeout: float = _OAUTH_HTTP_TIMEOUT,
        request_offline_access: bool = True,
    ) -> None:
        self._http = http_client
        self._config = config
        self._client_id = client_id
        self._client_secret = client_secret
        self._timeout = timeout
        self._request_offline_access = request_offline_access

    @property
    def config(self) -> OAuthProviderConfig:
        """Provider descriptor this client talks to."""
        return self._config

    def build_authorization_url(
        self,
        *,
        redirect_uri: str,
        state: str,
        code_challenge: str,
    ) -> str:
        """Build the provider authorization URL for the browser redirect.

        Args:
            redirect_uri: Callback URL registered with the provider.
            state: CSRF state parameter.
            code_challenge: PKCE S256 challenge.

        Returns:
            Full authorization URL.
        """
        scopes = list(self._config.scopes)
        if self._request_offline_access:
            scopes.extend(self._config.offline_access_scopes)

        params = {
            "client_id": self._client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        if self._request_offline_access:
            params.update(self._config.offline_access_params)

        return f"{self._config.authorization_url}?{urlencode(params)}"

    async def exchange_code(
        self,
        *,
        code: str,
        redirect_uri: str,
        code_verifier: str,
    ) -> ProviderTokenSet:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code from callback.
            redirect_uri: Callback URL used in initiation.
            code_verifier: Original PKCE code verifier.

        Returns:
            ProviderTokenSet with the access token and optional refresh token.

        Raises:
            TokenExchangeError: On transport failure, timeout, non-2xx status,
                provider-reported error, or missing access token.
        """
        provider = self._config.name
        try:
            resp = await self._http.post(
                self._config.token_url,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": redirect_uri,
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "code_verifier": code_verifier,
                },
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "OAuth token exchange transport failure",
                extra={"provider": provider, "error_type": type(exc).__name__},
            )
            raise TokenExchangeError(_EXCHANGE_FAILED_MSG) from None

        body = _json_body(resp)
        provider_error = body.get("error") if body else None
        if resp.is_error or provider_error:
            error_code = (
                str(provider_error)[:_MAX_PROVIDER_ERROR_LENGTH]
                if provider_error
                else None
            )
            logger.warning(
                "OAuth token exchange rejected",
                extra={
                    "provider": provider,
                    "status_code": resp.status_code,
                    "provider_error": error_code,
                },
            )
            raise TokenExchangeError(_EXCHANGE_FAILED_MSG, provider_error=error_code)

        access_token = body.get("access_token") if body else None
        if not access_token or not isinstance(access_token, str):
            logger.warning(
                "OAuth token response missing access token",
                extra={"provider": provider},
            )
            raise TokenExchangeError(_EXCHANGE_FAILED_MSG)

        return ProviderTokenSet(
            access_token=access_token,
            refresh_token=body.get("refresh_token") or None,
            expires_at=_expires_at(body.get("expires_in")),
            token_type=body.get("token_type"),
            scope=body.get("scope"),
        )

    async def fetch_profile(self, access_token: str) -> ExternalIdentity:
        """Fetch the user's profile from the provider's userinfo endpoint.

        Args:
            access_token: OAuth access token.

        Returns:
            ExternalIdentity with a non-empty, lowercased email.

        Raises:
            ProfileFetchError: On transport failure, non-2xx status, or an
                unusable response body.
            ProfileEmailMissingError: If the profile has no email.
        """
        provider = self._config.name
        try:
            resp = await self._http.get(
                self._config.userinfo_url,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "OAuth userinfo transport failure",
                extra={"provider": provider, "error_type": type(exc).__name__},
            )
            raise ProfileFetchError(_PROFILE_FAILED_MSG) from None

        body = _json_body(resp)
        if resp.is_error or body is None:
            logger.warning(
                "OAuth userinfo request failed",
                extra={"provider": provider, "status_code": resp.status_code},
            )
            raise ProfileFetchError(_PROFILE_FAILED_MSG)

        email = str(body.get("email") or "").strip().lower()
        if not email:
            logger.warning(
                "OAuth userinfo has no email", extra={"provider": provider}
            )
            raise ProfileEmailMissingError(
                f"Unable to retrieve email from {self._config.display_name}"
            )

        subject = str(body.get("sub") or body.get("id") or "").strip()
        if not subject:
            logger.warning(
                "OAuth userinfo has no subject", extra={"provider": provider}
            )
            raise ProfileFetchError(_PROFILE_FAILED_MSG)

        return ExternalIdentity(
            provider_account_id=subject,
            email=email,
            display_name=_display_name(body.get("name")),
            avatar_url=body.get("picture") or None,
            email_verified=_as_bool(body.get("email_verified", False)),
        )


def build_provider_client(
    http_client: httpx.AsyncClient,
    config: OAuthProviderConfig,
) -> OAuthProviderClient | None:
    """Create a provider client from settings.

    Args:
        http_client: Shared async HTTP client.
        config: Provider descriptor.

    Returns:
        OAuthProviderClient, or None if credentials are not configured.
    """
    credentials = get_provider_credentials(config)
    if credentials is None:
        return None
    client_id, client_secret = credentials
    return OAuthProviderClient(
        http_client=http_client,
        config=config,
        client_id=client_id,
        client_secret=client_secret,
        timeout=settings.oauth_http_timeout,
        request_offline_access=settings.oauth_request_offline_access,
    )
