"""FastAPI application entry point.

This module creates and configures the FastAPI application, including:
- Lifespan-managed outbound HTTP client for the OAuth providers
- Exception handlers for API errors
- API v1 router mounting
- Health check endpoint
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from invoice_easy.api.v1.router import router as v1_router
from invoice_easy.core.config import settings
from invoice_easy.core.errors import APIError
from invoice_easy.core.rate_limiting import limiter, rate_limit_exceeded_handler
from invoice_easy.core.responses import ErrorDetail, ErrorResponse

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the shared outbound HTTP client for the app's lifetime.

    Provider calls reuse one connection pool. The per-request timeout is
    set on each call from settings.
    """
    app.state.http_client = httpx.AsyncClient(
        timeout=settings.oauth_http_timeout,
        follow_redirects=False,
    )
    logger.info("HTTP client started")
    try:
        yield
    finally:
        await app.state.http_client.aclose()
        logger.info("HTTP client closed")


# Headers added to every response. API and redirect responses never
# render HTML, so the CSP denies everything.
_SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses.

    Adds the static headers above, plus:
    - Cache-Control: no-store on /api/ responses (redirects carry cookies)
    - Strict-Transport-Security: Forces HTTPS (production only)
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Add security headers to response."""
        response = await call_next(request)

        for name, value in _SECURITY_HEADERS.items():
            response.headers[name] = value

        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, max-age=0"

        # HSTS only in production (assumes HTTPS via reverse proxy)
        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response


def _error_json(status_code: int, detail: ErrorDetail) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=detail).model_dump(),
    )


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Render an APIError into the standard error envelope."""
    return _error_json(
        exc.status_code,
        ErrorDetail(code=exc.code, message=exc.message, details=exc.details),
    )


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors from FastAPI.

    Args:
        request: The incoming request.
        exc: The RequestValidationError from Pydantic.

    Returns:
        JSONResponse (400) with VALIDATION_ERROR code and field-level details.
    """
    return _error_json(
        400,
        ErrorDetail(
            code="VALIDATION_ERROR",
            message="Request validation failed",
            details=[
                {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
                for e in exc.errors()
            ],
        ),
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions.

    Never exposes internal error details to clients. Logged for debugging.
    """
    logger.exception("Unhandled exception", exc_info=exc, path=str(request.url.path))
    return _error_json(
        500,
        ErrorDetail(code="INTERNAL_ERROR", message="An unexpected error occurred"),
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title=f"{settings.app_name} API",
        version="1.0.0",
        description="Social sign-in and session service",
        lifespan=lifespan,
    )

    # Starlette runs the LAST added middleware FIRST; CORS must see preflights
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept"],
    )

    # Specific handlers first, then catch-all
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.state.limiter = limiter

    app.include_router(v1_router, prefix="/api/v1")

    @app.get("/health")
    def health_check() -> dict:
        """Liveness probe. Returns {"status": "healthy"}."""
        return {"status": "healthy"}

    return app


# Used by uvicorn: uvicorn invoice_easy.main:app
app = create_app()
