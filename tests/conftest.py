from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from invoice_easy.core.config import settings
from invoice_easy.core.oauth import (
    SignupContext,
    create_signed_cookie,
    oauth_cookie_names,
)
from invoice_easy.core.rate_limiting import limiter
from invoice_easy.core.token_encryption import TokenCipher
from invoice_easy.models.base import Base

# Security: These are test-only secrets. Production uses real secrets from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow
TEST_TOKEN_ENCRYPTION_KEY = "test-token-encryption-key-for-unit-tests"  # nosec B105  # gitleaks:allow
TEST_BASE_URL = "http://localhost:3000"

TEST_STATE = "test-state-value"
TEST_CODE_VERIFIER = "test-code-verifier-" + "v" * 60


def make_flow_cookies(
    provider: str = "google",
    *,
    state: str = TEST_STATE,
    code_verifier: str = TEST_CODE_VERIFIER,
    context: SignupContext | None = None,
    secret: str = TEST_AUTH_SECRET,
) -> dict[str, str]:
    """Build the signed per-flow cookies that initiation would have set.

    Args:
        provider: Provider name used in the cookie names.
        state: Stored OAuth state.
        code_verifier: Stored PKCE verifier.
        context: Signup context; omitted from the cookies when None.
        secret: Signing secret.

    Returns:
        Mapping of cookie name to signed value.
    """
    names = oauth_cookie_names(provider)
    values: dict[str, Any] = {names.state: state, names.verifier: code_verifier}
    if context is not None:
        values[names.context] = context.to_payload()
    return {
        name: create_signed_cookie(cookie_name=name, value=value, secret=secret)
        for name, value in values.items()
    }


@pytest.fixture(autouse=True)
def test_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Configure secrets and providers for every test.

    Rate limiting is disabled so repeated initiation calls never hit 429.
    """
    monkeypatch.setattr(settings, "auth_secret", SecretStr(TEST_AUTH_SECRET))
    monkeypatch.setattr(
        settings, "token_encryption_key", SecretStr(TEST_TOKEN_ENCRYPTION_KEY)
    )
    monkeypatch.setattr(settings, "token_encryption_previous_keys", [])
    monkeypatch.setattr(settings, "base_url", TEST_BASE_URL)
    monkeypatch.setattr(settings, "environment", "test")
    monkeypatch.setattr(settings, "auth_cookie_secure", None)
    monkeypatch.setattr(settings, "google_client_id", "test-google-client-id")
    monkeypatch.setattr(
        settings, "google_client_secret", SecretStr("test-google-client-secret")
    )
    monkeypatch.setattr(settings, "microsoft_client_id", "test-microsoft-client-id")
    monkeypatch.setattr(
        settings, "microsoft_client_secret", SecretStr("test-microsoft-client-secret")
    )
    monkeypatch.setattr(settings, "oauth_request_offline_access", True)
    monkeypatch.setattr(settings, "resend_api_key", SecretStr(""))
    monkeypatch.setattr(limiter, "enabled", False)


@pytest.fixture
def token_cipher() -> TokenCipher:
    """Cipher keyed with the test encryption key."""
    return TokenCipher([TEST_TOKEN_ENCRYPTION_KEY])


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Throwaway SQLite database with the full schema.

    The pysqlite driver's own transaction handling is disabled and BEGIN is
    emitted explicitly, so SAVEPOINT works inside begin_nested().
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


def _unreachable_provider(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"Unexpected outbound request: {request.method} {request.url}")


@pytest_asyncio.fixture
async def provider_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Outbound client that fails any request not patched out by the test."""
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(_unreachable_provider)
    ) as client:
        yield client


@pytest_asyncio.fixture
async def oauth_client(
    session_factory: async_sessionmaker[AsyncSession],
    provider_http_client: httpx.AsyncClient,
) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated client for the auth endpoints.

    Sets up:
    - Test database connection via dependency override
    - Shared outbound HTTP client via dependency override (ASGITransport
      does not run the lifespan)
    - Redirects are not followed so Location and Set-Cookie can be checked
    """
    from invoice_easy.api.deps import get_http_client
    from invoice_easy.core.database import get_db
    from invoice_easy.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_http_client] = lambda: provider_http_client

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        follow_redirects=False,
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def set_cookie_headers() -> Callable[[httpx.Response], dict[str, str]]:
    """Return a helper mapping cookie name to its raw Set-Cookie header."""

    def _collect(response: httpx.Response) -> dict[str, str]:
        headers: dict[str, str] = {}
        for header in response.headers.get_list("set-cookie"):
            name = header.split("=", 1)[0]
            headers[name] = header
        return headers

    return _collect
