"""Tests for application configuration.

Settings for the database, session signing, token encryption and the
OAuth providers. Tests cover defaults, env var loading, and production
security validation.
"""

import pytest
from pydantic import ValidationError

from invoice_easy.core.config import _INSECURE_DEFAULT_PASSWORD, Settings

# Reusable test constants
_SECURE_DB_PASSWORD = "my-secure-production-password-123!"
_TEST_AUTH_SECRET = "a" * 64
_TEST_ENCRYPTION_KEY = "production-token-encryption-key"
_PRODUCTION = "production"


def _production(**overrides) -> Settings:
    values = {
        "environment": _PRODUCTION,
        "database_password": _SECURE_DB_PASSWORD,
        "auth_secret": _TEST_AUTH_SECRET,
        "token_encryption_key": _TEST_ENCRYPTION_KEY,
    }
    values.update(overrides)
    return Settings(**values)


class TestProductionSecurityValidation:
    """Tests for production security requirements."""

    def test_allows_default_password_in_development(self):
        """Default password is allowed in development environment."""
        s = Settings(
            environment="development",
            database_password=_INSECURE_DEFAULT_PASSWORD,
        )
        assert s.database_password == _INSECURE_DEFAULT_PASSWORD

    def test_rejects_default_password_in_production(self):
        """Default password is rejected in production environment."""
        with pytest.raises(ValidationError) as exc_info:
            _production(database_password=_INSECURE_DEFAULT_PASSWORD)

        errors = exc_info.value.errors()
        assert len(errors) == 1
        assert "Cannot use default database password in production" in str(
            errors[0]["msg"]
        )

    def test_allows_complete_production_config(self):
        """Secure password, secret and encryption key pass validation."""
        s = _production()
        assert s.environment == _PRODUCTION

    def test_rejects_short_auth_secret_in_production(self):
        """Auth secret must be >= 32 characters in production."""
        with pytest.raises(ValidationError) as exc_info:
            _production(auth_secret="a" * 31)
        assert "AUTH_SECRET must be at least 32 characters" in str(exc_info.value)

    def test_allows_auth_secret_at_exact_boundary(self):
        """Auth secret of exactly 32 chars is accepted in production."""
        s = _production(auth_secret="a" * 32)
        assert len(s.auth_secret.get_secret_value()) == 32

    def test_rejects_missing_encryption_key_in_production(self):
        """Provider tokens can't be stored without an encryption key."""
        with pytest.raises(ValidationError) as exc_info:
            _production(token_encryption_key="")
        assert "TOKEN_ENCRYPTION_KEY must be set" in str(exc_info.value)

    def test_allows_empty_secrets_in_development(self):
        """Secrets are not required outside production."""
        s = Settings(auth_secret="", token_encryption_key="")
        assert s.auth_secret.get_secret_value() == ""


class TestCorsWildcardValidation:
    """CORS wildcard incompatible with credentials."""

    def test_rejects_wildcard_origin(self):
        """Wildcard origin is rejected (incompatible with credentials)."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(allowed_origins=["*"])
        assert "must not contain '*'" in str(exc_info.value)

    def test_allows_specific_origins(self):
        """Specific origins are accepted."""
        s = Settings(allowed_origins=["http://localhost:3000"])
        assert s.allowed_origins == ["http://localhost:3000"]


class TestDefaults:
    """Session, redirect and provider defaults."""

    def test_session_defaults(self):
        """Session cookie is oauth_session and lasts 24 hours."""
        s = Settings()
        assert s.session_cookie_name == "oauth_session"
        assert s.session_ttl_hours == 24
        assert s.auth_issuer == "invoice-easy"

    def test_redirect_paths(self):
        """Login, sign-up and return paths default to the web app routes."""
        s = Settings()
        assert s.base_url == "http://localhost:3000"
        assert s.login_path == "/login"
        assert s.signup_path == "/signup"
        assert s.default_return_to == "/dashboard"

    def test_providers_unconfigured_by_default(self):
        """No provider credentials are configured out of the box."""
        s = Settings()
        assert s.google_client_id == ""
        assert s.google_client_secret.get_secret_value() == ""
        assert s.microsoft_client_id == ""
        assert s.microsoft_client_secret.get_secret_value() == ""

    def test_new_accounts_default_to_us(self):
        """Accounts created through social sign-up get US/USD."""
        s = Settings()
        assert (s.default_country, s.default_currency) == ("US", "USD")

    def test_oauth_initiate_rate_limit(self):
        """Initiation is limited to 10 per hour."""
        assert Settings().rate_limit_oauth_initiate == "10/hour"


class TestCookieSecure:
    """Secure flag resolution for auth cookies."""

    def test_secure_only_in_production_by_default(self):
        """Without an override, Secure follows the environment."""
        assert Settings(environment="development").cookie_secure is False
        assert _production().cookie_secure is True

    def test_explicit_override_wins(self):
        """AUTH_COOKIE_SECURE overrides the environment default."""
        assert Settings(auth_cookie_secure=True).cookie_secure is True
        assert _production(auth_cookie_secure=False).cookie_secure is False


class TestDatabaseUrls:
    """Database URL construction."""

    def test_async_url_uses_asyncpg(self):
        """Runtime URL targets the asyncpg driver."""
        s = Settings(database_host="db", database_port=6543)
        assert s.database_url.startswith("postgresql+asyncpg://")
        assert "@db:6543/invoice_easy" in s.database_url

    def test_sync_url_for_migrations(self):
        """Alembic URL uses the plain postgresql scheme."""
        assert Settings().database_url_sync.startswith("postgresql://")


class TestEnvLoading:
    """Settings loaded from environment variables."""

    def test_auth_secret_loaded_from_env(self, monkeypatch: pytest.MonkeyPatch):
        """AUTH_SECRET env var is loaded into settings."""
        monkeypatch.setenv("AUTH_SECRET", "my-secret-key-for-testing-purposes-long")
        s = Settings()
        assert (
            s.auth_secret.get_secret_value()
            == "my-secret-key-for-testing-purposes-long"
        )

    def test_microsoft_client_id_loaded_from_env(
        self, monkeypatch: pytest.MonkeyPatch
    ):
        """MICROSOFT_CLIENT_ID env var is loaded into settings."""
        monkeypatch.setenv("MICROSOFT_CLIENT_ID", "ms-id-123")
        s = Settings()
        assert s.microsoft_client_id == "ms-id-123"

    def test_previous_encryption_keys_loaded_from_env(
        self, monkeypatch: pytest.MonkeyPatch
    ):
        """Rotated keys are read as a JSON list."""
        monkeypatch.setenv("TOKEN_ENCRYPTION_PREVIOUS_KEYS", '["old-1", "old-2"]')
        s = Settings()
        assert [k.get_secret_value() for k in s.token_encryption_previous_keys] == [
            "old-1",
            "old-2",
        ]

    def test_auth_cookie_secure_loaded_from_env(
        self, monkeypatch: pytest.MonkeyPatch
    ):
        """AUTH_COOKIE_SECURE env var is correctly parsed as boolean."""
        monkeypatch.setenv("AUTH_COOKIE_SECURE", "false")
        s = Settings()
        assert s.auth_cookie_secure is False
