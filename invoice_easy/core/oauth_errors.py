"""OAuth callback failure taxonomy.

Every failure the callback can hit maps to one of these classes. Each
carries a ``reason`` that is safe to show the user (it ends up in the
login redirect's ``error`` query parameter) and a ``step`` name for logs.
Provider error bodies, tokens, and client secrets never go into ``reason``.
"""


class OAuthFlowError(Exception):
    """Base class for OAuth callback failures.

    Attributes:
        reason: Human-readable, non-sensitive message for the login page.
        step: Callback step that failed (for logs only).
    """

    step = "unknown"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class ProviderError(OAuthFlowError):
    """The provider redirected back with an ``error`` parameter."""

    step = "provider_error"

    def __init__(self, reason: str, error_code: str) -> None:
        self.error_code = error_code
        super().__init__(reason)


class ParameterError(OAuthFlowError):
    """``code`` or ``state`` is missing from the callback."""

    step = "parameters"


class OAuthSecurityError(OAuthFlowError):
    """State or verifier cookie is missing, tampered, expired, or mismatched.

    CSRF/replay defense. Never downgraded to a data error.
    """

    step = "state_validation"


class TokenExchangeError(OAuthFlowError):
    """Token endpoint call failed.

    Attributes:
        provider_error: Provider's ``error`` code when it sent one
            (e.g., "invalid_grant"). For logs only.
    """

    step = "token_exchange"

    def __init__(self, reason: str, provider_error: str | None = None) -> None:
        self.provider_error = provider_error
        super().__init__(reason)


class ProfileError(OAuthFlowError):
    """Base class for user-info failures."""

    step = "profile_fetch"


class ProfileFetchError(ProfileError):
    """User-info request failed in transport or returned non-2xx."""


class ProfileEmailMissingError(ProfileError):
    """User-info response has no email address."""


class ResolutionError(OAuthFlowError):
    """Account store failed while resolving the identity."""

    step = "identity_resolution"


class ProviderConfigurationError(OAuthFlowError):
    """Provider credentials or token encryption are not configured."""

    step = "configuration"
