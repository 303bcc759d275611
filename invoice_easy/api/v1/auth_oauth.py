"""OAuth authentication endpoints.

Initiation and callback for every configured provider (Google, Microsoft).
Uses the authorization code flow with PKCE. Per-flow state lives in three
signed, short-lived cookies scoped to the provider:

- ``<provider>_oauth_state``: CSRF state compared with the callback
- ``<provider>_code_verifier``: PKCE verifier sent to the token endpoint
- ``<provider>_signup_context``: sign-up/trial flags and return path

The callback never answers with JSON. Every outcome is a 302 to the web
app (dashboard, sign-up, or login with an ``error`` message), and the
three cookies are deleted on every one of them.
"""

from typing import Annotated, Any
from urllib.parse import quote, urlencode

import structlog
from fastapi import APIRouter, BackgroundTasks, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from invoice_easy.api.deps import DbSession, HttpClient
from invoice_easy.core.account_linking import (
    ResolutionOutcome,
    resolve_oauth_identity,
)
from invoice_easy.core.config import settings
from invoice_easy.core.email import send_welcome_email
from invoice_easy.core.errors import OAuthConfigurationError, ValidationError
from invoice_easy.core.oauth import (
    OAUTH_COOKIE_TTL,
    ContextParseStatus,
    OAuthCookieNames,
    OAuthProviderConfig,
    SignupContext,
    create_signed_cookie,
    generate_code_challenge,
    generate_code_verifier,
    generate_state,
    get_provider_config,
    oauth_cookie_names,
    parse_signup_context,
    safe_return_to,
    validate_oauth_state,
)
from invoice_easy.core.oauth_client import build_provider_client
from invoice_easy.core.oauth_errors import (
    OAuthFlowError,
    OAuthSecurityError,
    ParameterError,
    ProviderConfigurationError,
    ProviderError,
    ResolutionError,
    TokenExchangeError,
)
from invoice_easy.core.rate_limiting import limiter
from invoice_easy.core.session import create_session_token, set_session_cookie
from invoice_easy.core.token_encryption import TokenEncryptionError, get_token_cipher

logger = structlog.get_logger()

router = APIRouter()

# Provider ``error`` codes (RFC 6749 §4.1.2.1) shown on the login page.
# ``{provider}`` is the provider's display name.
_PROVIDER_ERROR_MESSAGES = {
    "access_denied": "You denied access to your {provider} account",
    "invalid_request": "Invalid OAuth request",
    "unauthorized_client": "Unauthorized OAuth client",
    "unsupported_response_type": "Unsupported OAuth response type",
    "invalid_scope": "Invalid OAuth scope requested",
    "server_error": "{provider} OAuth server error",
    "temporarily_unavailable": "{provider} OAuth temporarily unavailable",
}
_PROVIDER_ERROR_FALLBACK = "{provider} authentication failed"

_MAX_ERROR_CODE_LENGTH = 100

_UNSUPPORTED_PROVIDER_MSG = "Unsupported sign-in provider"
_CONFIGURATION_ERROR_MSG = "OAuth configuration error"
_MISSING_CODE_MSG = "No authorization code received"
_MISSING_STATE_MSG = "Missing OAuth state parameter"
_INVALID_STATE_MSG = "Invalid OAuth state"
_DATABASE_ERROR_MSG = "Database error occurred"
_UNEXPECTED_ERROR_MSG = "Authentication failed"


def _callback_url(provider: str) -> str:
    """Redirect URI registered with the provider for this service."""
    return f"{settings.base_url}/api/v1/auth/callback/{provider}"


def _cookie_secret() -> str:
    return settings.auth_secret.get_secret_value()


def _with_query(url: str, params: dict[str, str]) -> str:
    """Append query parameters, spaces encoded as ``%20``."""
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params, quote_via=quote)}"


def _set_oauth_cookie(response: Response, *, name: str, value: Any) -> None:
    """Set one signed per-flow cookie."""
    response.set_cookie(
        key=name,
        value=create_signed_cookie(
            cookie_name=name,
            value=value,
            secret=_cookie_secret(),
            ttl_seconds=OAUTH_COOKIE_TTL,
        ),
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=OAUTH_COOKIE_TTL,
        path="/",
    )


def _clear_oauth_cookies(response: Response, names: OAuthCookieNames) -> None:
    """Delete the per-flow cookies.

    Attributes must match _set_oauth_cookie() for the browser to delete them.
    """
    for name in names:
        response.delete_cookie(
            key=name,
            path="/",
            httponly=True,
            secure=settings.cookie_secure,
            samesite="lax",
        )


def _login_redirect(reason: str) -> RedirectResponse:
    url = _with_query(f"{settings.base_url}{settings.login_path}", {"error": reason})
    return RedirectResponse(url=url, status_code=302)


def _provider_error_reason(config: OAuthProviderConfig, error_code: str) -> str:
    template = _PROVIDER_ERROR_MESSAGES.get(error_code, _PROVIDER_ERROR_FALLBACK)
    return template.format(provider=config.display_name)


async def _safe_rollback(db: AsyncSession) -> None:
    """Roll back after a failed callback without losing the redirect.

    A connection that can't roll back is invalidated so the trailing
    commit in get_db() has nothing left to do.
    """
    try:
        await db.rollback()
    except SQLAlchemyError:
        logger.exception("OAuth callback rollback failed")
        await db.invalidate()


# ===================================================================
# GET /auth/providers/{provider}: OAuth Initiation
# ===================================================================


@router.get("/providers/{provider}")
@limiter.limit(lambda: settings.rate_limit_oauth_initiate)
async def oauth_initiate(
    provider: str,
    request: Request,
    http_client: HttpClient,
    signup: str | None = None,
    trial: str | None = None,
    return_to: Annotated[str | None, Query(alias="returnTo")] = None,
) -> Response:
    """Redirect to the provider's authorization URL.

    Generates the PKCE verifier + challenge and the CSRF state, stores
    them with the signup context in signed cookies, and redirects to the
    provider. Does not touch the account store.

    Rate limit: ``rate_limit_oauth_initiate`` per user or IP.

    Raises:
        ValidationError: Unknown provider (400).
        OAuthConfigurationError: Provider credentials not configured (500).
    """
    try:
        config = get_provider_config(provider)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    client = build_provider_client(http_client, config)
    if client is None:
        logger.error("OAuth provider not configured", provider=config.name)
        raise OAuthConfigurationError(config.display_name)

    state = generate_state()
    code_verifier = generate_code_verifier()
    code_challenge = generate_code_challenge(code_verifier)

    context = SignupContext(
        is_sign_up=signup == "true",
        is_trial=trial == "true",
        return_to=safe_return_to(return_to, settings.default_return_to),
    )

    auth_url = client.build_authorization_url(
        redirect_uri=_callback_url(config.name),
        state=state,
        code_challenge=code_challenge,
    )

    names = oauth_cookie_names(config.name)
    redirect = RedirectResponse(url=auth_url, status_code=302)
    _set_oauth_cookie(redirect, name=names.state, value=state)
    _set_oauth_cookie(redirect, name=names.verifier, value=code_verifier)
    _set_oauth_cookie(redirect, name=names.context, value=context.to_payload())

    logger.info(
        "OAuth flow initiated",
        provider=config.name,
        is_sign_up=context.is_sign_up,
        is_trial=context.is_trial,
    )
    return redirect


# ===================================================================
# GET /auth/callback/{provider}: OAuth Callback
# ===================================================================


async def _complete_callback(
    *,
    config: OAuthProviderConfig,
    names: OAuthCookieNames,
    request: Request,
    db: DbSession,
    http_client: HttpClient,
    background_tasks: BackgroundTasks,
    code: str | None,
    state: str | None,
    error: str | None,
) -> Response:
    """Run the callback steps in order. Raises OAuthFlowError on failure."""
    if error:
        raise ProviderError(
            _provider_error_reason(config, error),
            error_code=error[:_MAX_ERROR_CODE_LENGTH],
        )

    if not code:
        raise ParameterError(_MISSING_CODE_MSG)
    if not state:
        raise ParameterError(_MISSING_STATE_MSG)

    client = build_provider_client(http_client, config)
    if client is None:
        raise ProviderConfigurationError(_CONFIGURATION_ERROR_MSG)

    secret = _cookie_secret()
    code_verifier = validate_oauth_state(
        names=names,
        cookies=request.cookies,
        expected_state=state,
        secret=secret,
    )
    if code_verifier is None:
        raise OAuthSecurityError(_INVALID_STATE_MSG)

    context_result = parse_signup_context(
        cookie_name=names.context,
        cookie_value=request.cookies.get(names.context),
        secret=secret,
        default_return_to=settings.default_return_to,
    )
    if context_result.status is ContextParseStatus.MALFORMED:
        logger.warning("OAuth signup context malformed", provider=config.name)
    context = context_result.context

    # Checked before the exchange so a misconfigured key never burns a code
    try:
        cipher = get_token_cipher()
    except TokenEncryptionError:
        raise ProviderConfigurationError(_CONFIGURATION_ERROR_MSG) from None

    tokens = await client.exchange_code(
        code=code,
        redirect_uri=_callback_url(config.name),
        code_verifier=code_verifier,
    )
    identity = await client.fetch_profile(tokens.access_token)

    result = await resolve_oauth_identity(
        db,
        identity=identity,
        provider=config.name,
        context=context,
        tokens=tokens,
        cipher=cipher,
    )

    if not result.issues_session:
        url = _with_query(
            f"{settings.base_url}{settings.signup_path}",
            {"prefill": identity.email, "provider": config.name},
        )
        return RedirectResponse(url=url, status_code=302)

    try:
        await db.commit()
    except SQLAlchemyError as exc:
        raise ResolutionError(_DATABASE_ERROR_MSG) from exc

    user = result.user
    created = result.outcome is ResolutionOutcome.CREATED_ACCOUNT
    params = {"oauth": "success", "provider": config.name}
    if created:
        params["welcome"] = "true"
    else:
        params["linked"] = config.name

    session_token = create_session_token(
        user_id=str(user.id),
        email=user.email,
        provider=config.name,
        secret=secret,
    )
    redirect = RedirectResponse(
        url=_with_query(f"{settings.base_url}{context.return_to}", params),
        status_code=302,
    )
    set_session_cookie(redirect, session_token)

    if created:
        background_tasks.add_task(
            send_welcome_email,
            to_email=user.email,
            display_name=user.display_name,
        )

    logger.info(
        "OAuth sign-in completed",
        provider=config.name,
        outcome=result.outcome.value,
        user_id=str(user.id),
    )
    return redirect


@router.get("/callback/{provider}")
async def oauth_callback(
    provider: str,
    request: Request,
    db: DbSession,
    http_client: HttpClient,
    background_tasks: BackgroundTasks,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
) -> Response:
    """Handle the provider callback after user consent.

    Validates state and verifier, exchanges the code, fetches the profile,
    resolves the identity, issues the session, and redirects to the web
    app. Every failure redirects to the login page with a user-facing
    ``error`` message instead.
    """
    try:
        config = get_provider_config(provider)
    except ValueError:
        # No cookies were ever set for an unknown provider
        logger.warning("OAuth callback for unsupported provider")
        return _login_redirect(_UNSUPPORTED_PROVIDER_MSG)

    names = oauth_cookie_names(config.name)
    try:
        response = await _complete_callback(
            config=config,
            names=names,
            request=request,
            db=db,
            http_client=http_client,
            background_tasks=background_tasks,
            code=code,
            state=state,
            error=error,
        )
    except OAuthFlowError as exc:
        await _safe_rollback(db)
        log_context: dict[str, Any] = {"provider": config.name, "step": exc.step}
        if isinstance(exc, ProviderError):
            log_context["error_code"] = exc.error_code
        if isinstance(exc, TokenExchangeError) and exc.provider_error:
            log_context["provider_error"] = exc.provider_error
        logger.warning("OAuth callback failed", reason=exc.reason, **log_context)
        response = _login_redirect(exc.reason)
    except Exception:
        await _safe_rollback(db)
        logger.exception("Unexpected OAuth callback error", provider=config.name)
        response = _login_redirect(_UNEXPECTED_ERROR_MSG)

    _clear_oauth_cookies(response, names)
    return response
