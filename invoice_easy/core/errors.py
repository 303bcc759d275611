"""API error classes.

HTTP status codes and machine-readable error codes for JSON responses.

WHY CUSTOM ERROR CLASSES:
- Consistent error response format across all endpoints
- Easy to map to HTTP status codes in exception handlers
- Type-safe error handling in services/repositories

The OAuth callback never raises these: it always answers with a redirect.
See oauth_errors.py for the flow taxonomy.
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "VALIDATION_ERROR").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request validation errors, unknown providers, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid session cookie is provided.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class OAuthConfigurationError(APIError):
    """OAuth provider credentials are missing (500).

    The service itself cannot start a sign-in, so the caller gets a JSON
    error instead of a redirect to the provider.

    Args:
        provider_name: Human-readable provider name (e.g., "Google").
    """

    def __init__(self, provider_name: str) -> None:
        super().__init__(
            code="OAUTH_NOT_CONFIGURED",
            message=f"{provider_name} sign-in is not configured",
            status_code=500,
        )

