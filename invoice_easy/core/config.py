"""Application configuration loaded from environment variables.

Settings for the database, HTTP surface, session signing, token encryption,
and the OAuth providers. Uses pydantic-settings for validation and .env
file support.
"""

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "invoice_easy_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "invoice_easy"
    database_user: str = "invoice_easy_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # CORS (Security)
    # CRITICAL: Never set to ["*"], the session cookie requires credentials
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    app_name: str = "Invoice Easy"

    # Public URL of the web application. Used for the provider redirect URI
    # and for every redirect issued by the OAuth callback.
    base_url: str = "http://localhost:3000"
    login_path: str = "/login"
    signup_path: str = "/signup"
    default_return_to: str = "/dashboard"

    # Session (signed oauth_session cookie)
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "invoice-easy"
    session_cookie_name: str = "oauth_session"
    session_ttl_hours: int = 24
    # None = Secure flag only in production
    auth_cookie_secure: bool | None = None

    # Provider token encryption at rest. Previous keys stay readable so the
    # primary key can be rotated without re-linking accounts.
    token_encryption_key: SecretStr = SecretStr("")
    token_encryption_previous_keys: list[SecretStr] = []

    # OAuth Providers
    google_client_id: str = ""
    google_client_secret: SecretStr = SecretStr("")
    microsoft_client_id: str = ""
    microsoft_client_secret: SecretStr = SecretStr("")
    oauth_http_timeout: float = 10.0
    oauth_request_offline_access: bool = True

    # Defaults for accounts created through social sign-up
    default_country: str = "US"
    default_currency: str = "USD"

    # Email (welcome notification)
    email_from: str = "noreply@invoiceeasy.app"
    resend_api_key: SecretStr = SecretStr("")

    # Rate Limiting (Security)
    # Format: "count/period" (e.g., "10/minute", "100/hour")
    rate_limit_oauth_initiate: str = "10/hour"
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def cookie_secure(self) -> bool:
        """Whether auth cookies carry the Secure flag."""
        if self.auth_cookie_secure is not None:
            return self.auth_cookie_secure
        return self.environment == "production"

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate production security requirements.

        Security: Prevents deployment with known insecure defaults.
        Checks:
        - CORS must not use wildcard origin (incompatible with credentials)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        - TOKEN_ENCRYPTION_KEY must be set in production
        """
        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials (cookies) which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)

            if not self.token_encryption_key.get_secret_value():
                msg = (
                    "TOKEN_ENCRYPTION_KEY must be set in production. "
                    "Provider tokens are encrypted before they are stored."
                )
                raise ValueError(msg)

        return self


settings = Settings()
