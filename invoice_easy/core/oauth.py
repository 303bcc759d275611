"""OAuth utilities: PKCE, state, transient cookies, and provider configuration.

PKCE code verifier/challenge generation (RFC 7636), the random state
parameter, signed JWT values for the three per-flow cookies, the signup
context carried between initiation and callback, and the provider
descriptors that parametrize the single OAuth flow.
"""

import base64
import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple
from urllib.parse import urlsplit

import jwt

# PKCE code verifier length (RFC 7636 allows 43-128)
_VERIFIER_LENGTH = 128

# Characters allowed in PKCE code verifier (RFC 7636 §4.1)
# unreserved = ALPHA / DIGIT / "-" / "." / "_" / "~"
_UNRESERVED_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"

# State token entropy in bytes (256 bits)
_STATE_BYTES = 32

# Default TTL for the transient OAuth cookies (10 minutes)
OAUTH_COOKIE_TTL = 600

_DEFAULT_RETURN_TO = "/dashboard"


def generate_state() -> str:
    """Generate the OAuth state parameter for CSRF protection.

    Returns:
        URL-safe random token with 256 bits of entropy.
    """
    return secrets.token_urlsafe(_STATE_BYTES)


def generate_code_verifier() -> str:
    """Generate a PKCE code verifier.

    RFC 7636 §4.1: 128-character string from unreserved characters.

    Returns:
        Random 128-character code verifier string.
    """
    return "".join(secrets.choice(_UNRESERVED_CHARS) for _ in range(_VERIFIER_LENGTH))


def generate_code_challenge(verifier: str) -> str:
    """Generate a PKCE code challenge from a verifier.

    RFC 7636 §4.2: BASE64URL(SHA256(code_verifier)), no padding.

    Args:
        verifier: PKCE code verifier string.

    Returns:
        Base64url-encoded SHA256 hash without padding.
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


# ===================================================================
# Transient cookies
# ===================================================================


class OAuthCookieNames(NamedTuple):
    """Names of the per-flow cookies for one provider."""

    state: str
    verifier: str
    context: str


def oauth_cookie_names(provider: str) -> OAuthCookieNames:
    """Cookie names for a provider (e.g., ``google_oauth_state``)."""
    return OAuthCookieNames(
        state=f"{provider}_oauth_state",
        verifier=f"{provider}_code_verifier",
        context=f"{provider}_signup_context",
    )


def create_signed_cookie(
    *,
    cookie_name: str,
    value: Any,
    secret: str,
    ttl_seconds: int = OAUTH_COOKIE_TTL,
) -> str:
    """Wrap a cookie value in a signed, expiring JWT.

    The cookie name is part of the signed payload, so a value minted for
    one cookie is rejected when replayed under another name.

    Args:
        cookie_name: Name of the cookie the value will be stored in.
        value: JSON-serializable value to carry.
        secret: HMAC signing secret.
        ttl_seconds: Expiry in seconds (default 10 minutes).

    Returns:
        Signed JWT string.
    """
    payload = {
        "cn": cookie_name,
        "v": value,
        "exp": int(time.time()) + ttl_seconds,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def read_signed_cookie(
    *,
    cookie_name: str,
    cookie_value: str | None,
    secret: str,
) -> Any | None:
    """Verify a signed cookie value and return what it carries.

    Args:
        cookie_name: Name the cookie was read from.
        cookie_value: Raw cookie value, or None if the cookie was absent.
        secret: HMAC signing secret.

    Returns:
        The carried value, or None if absent, tampered, expired, or minted
        for a different cookie.
    """
    if not cookie_value:
        return None
    try:
        payload = jwt.decode(cookie_value, secret, algorithms=["HS256"])
    except jwt.InvalidTokenError:
        return None

    if payload.get("cn") != cookie_name:
        return None
    return payload.get("v")


def validate_oauth_state(
    *,
    names: OAuthCookieNames,
    cookies: dict[str, str],
    expected_state: str,
    secret: str,
) -> str | None:
    """Check the stored state against the callback state and return the verifier.

    Both the state and verifier cookies must be present and valid, and the
    stored state must equal the callback's state exactly.

    Args:
        names: Cookie names for the provider.
        cookies: Request cookies.
        expected_state: State parameter from the callback query string.
        secret: HMAC signing secret.

    Returns:
        The original PKCE code verifier if every check passes, None otherwise.
    """
    stored_state = read_signed_cookie(
        cookie_name=names.state,
        cookie_value=cookies.get(names.state),
        secret=secret,
    )
    code_verifier = read_signed_cookie(
        cookie_name=names.verifier,
        cookie_value=cookies.get(names.verifier),
        secret=secret,
    )
    if not isinstance(stored_state, str) or not isinstance(code_verifier, str):
        return None
    if not code_verifier:
        return None

    if not hmac.compare_digest(stored_state.encode(), expected_state.encode()):
        return None

    return code_verifier


# ===================================================================
# Signup context
# ===================================================================


def safe_return_to(value: str | None, default: str = _DEFAULT_RETURN_TO) -> str:
    """Return ``value`` if it is a local path, else ``default``.

    Open-redirect defense: only paths on this site are accepted. Scheme,
    host, protocol-relative (``//host``) and backslash forms are rejected.
    """
    if not value or not value.startswith("/") or value.startswith("//"):
        return default
    if "\\" in value or any(ord(ch) < 0x20 for ch in value):
        return default
    parts = urlsplit(value)
    if parts.scheme or parts.netloc:
        return default
    return value


@dataclass(frozen=True)
class SignupContext:
    """Why the user started the flow and where to send them afterwards.

    Attributes:
        is_sign_up: Started from the sign-up page.
        is_trial: Started from a free-trial button.
        return_to: Local path to redirect to after sign-in.
    """

    is_sign_up: bool = False
    is_trial: bool = False
    return_to: str = _DEFAULT_RETURN_TO

    @property
    def allows_account_creation(self) -> bool:
        """True if a missing account may be created on callback."""
        return self.is_sign_up or self.is_trial

    def to_payload(self) -> dict[str, Any]:
        """Cookie payload for this context."""
        return {
            "isSignUp": self.is_sign_up,
            "isTrial": self.is_trial,
            "returnTo": self.return_to,
        }


class ContextParseStatus(str, Enum):
    """Outcome of reading the signup context cookie.

    Values:
        PARSED: Cookie present, signed, and well-formed.
        ABSENT: No cookie (expired or never set).
        MALFORMED: Cookie present but tampered, expired, or wrongly shaped.
    """

    PARSED = "parsed"
    ABSENT = "absent"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class SignupContextResult:
    """Signup context plus how it was obtained.

    ABSENT and MALFORMED both carry the default context.
    """

    context: SignupContext
    status: ContextParseStatus


def parse_signup_context(
    *,
    cookie_name: str,
    cookie_value: str | None,
    secret: str,
    default_return_to: str = _DEFAULT_RETURN_TO,
) -> SignupContextResult:
    """Read the signup context cookie without ever failing the flow.

    Args:
        cookie_name: Name of the context cookie.
        cookie_value: Raw cookie value, or None if absent.
        secret: HMAC signing secret.
        default_return_to: Path used when the cookie has none.

    Returns:
        SignupContextResult with the parsed or default context.
    """
    default = SignupContext(return_to=default_return_to)
    if not cookie_value:
        return SignupContextResult(default, ContextParseStatus.ABSENT)

    payload = read_signed_cookie(
        cookie_name=cookie_name, cookie_value=cookie_value, secret=secret
    )
    if not isinstance(payload, dict):
        return SignupContextResult(default, ContextParseStatus.MALFORMED)

    is_sign_up = payload.get("isSignUp", False)
    is_trial = payload.get("isTrial", False)
    return_to = payload.get("returnTo", default_return_to)
    if not (
        isinstance(is_sign_up, bool)
        and isinstance(is_trial, bool)
        and isinstance(return_to, str)
    ):
        return SignupContextResult(default, ContextParseStatus.MALFORMED)

    context = SignupContext(
        is_sign_up=is_sign_up,
        is_trial=is_trial,
        return_to=safe_return_to(return_to, default_return_to),
    )
    return SignupContextResult(context, ContextParseStatus.PARSED)


# ===================================================================
# OAuth Provider Configuration
# ===================================================================


@dataclass(frozen=True)
class OAuthProviderConfig:
    """Configuration for an OAuth provider.

    One descriptor per provider; the initiation and callback flows are
    shared and only read what they need from here.

    Attributes:
        name: Provider key used in URLs and cookie names (e.g., "google").
        display_name: Human-readable name for messages (e.g., "Google").
        authorization_url: Provider's authorization endpoint.
        token_url: Provider's token exchange endpoint.
        userinfo_url: Provider's OIDC userinfo endpoint.
        scopes: OAuth scopes to request.
        client_id_setting: Settings attribute holding the client ID.
        client_secret_setting: Settings attribute holding the client secret.
        offline_access_params: Extra authorization parameters that request a
            refresh token.
        offline_access_scopes: Extra scopes that request a refresh token.
    """

    name: str
    display_name: str
    authorization_url: str
    token_url: str
    userinfo_url: str
    scopes: tuple[str, ...]
    client_id_setting: str
    client_secret_setting: str
    offline_access_params: tuple[tuple[str, str], ...] = ()
    offline_access_scopes: tuple[str, ...] = ()


_PROVIDERS: dict[str, OAuthProviderConfig] = {
    "google": OAuthProviderConfig(  # nosec B106: token_url is an endpoint, not a password
        name="google",
        display_name="Google",
        authorization_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        userinfo_url="https://openidconnect.googleapis.com/v1/userinfo",
        scopes=("openid", "email", "profile"),
        client_id_setting="google_client_id",
        client_secret_setting="google_client_secret",
        offline_access_params=(("access_type", "offline"), ("prompt", "consent")),
    ),
    "microsoft": OAuthProviderConfig(  # nosec B106: token_url is an endpoint, not a password
        name="microsoft",
        display_name="Microsoft",
        authorization_url="https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
        token_url="https://login.microsoftonline.com/common/oauth2/v2.0/token",
        userinfo_url="https://graph.microsoft.com/oidc/userinfo",
        scopes=("openid", "email", "profile"),
        client_id_setting="microsoft_client_id",
        client_secret_setting="microsoft_client_secret",
        offline_access_scopes=("offline_access",),
    ),
}


def get_provider_config(provider: str) -> OAuthProviderConfig:
    """Get OAuth configuration for a provider.

    Args:
        provider: Provider name (e.g., "google", "microsoft").

    Returns:
        OAuthProviderConfig for the provider.

    Raises:
        ValueError: If provider is not supported.
    """
    config = _PROVIDERS.get(provider)
    if config is None:
        msg = f"Unsupported OAuth provider: {provider}"
        raise ValueError(msg)
    return config
