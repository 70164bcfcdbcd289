"""Application settings and configuration.

This module defines all configuration options for the messaging service and
the read-confirmation client. Settings are loaded from environment variables
with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Haven Messaging", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 7,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Database configuration
    database_url: str = Field(default="sqlite:///./haven.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Message content and admin summaries
    message_max_length: int = Field(default=5000, alias="MESSAGE_MAX_LENGTH")
    message_preview_length: int = Field(default=50, alias="MESSAGE_PREVIEW_LENGTH")
    message_preview_suffix: str = Field(default="...", alias="MESSAGE_PREVIEW_SUFFIX")

    # Read-confirmation protocol (client side)
    read_visibility_threshold: float = Field(default=0.5, alias="READ_VISIBILITY_THRESHOLD")
    read_dwell_seconds: float = Field(default=2.0, alias="READ_DWELL_SECONDS")
    read_flush_interval_seconds: float = Field(
        default=2.0,
        alias="READ_FLUSH_INTERVAL_SECONDS",
    )
    read_flush_max_retries: int = Field(default=3, alias="READ_FLUSH_MAX_RETRIES")

    # Polling client
    conversation_poll_interval_seconds: float = Field(
        default=120.0,
        alias="CONVERSATION_POLL_INTERVAL_SECONDS",
    )
    client_base_url: str = Field(default="http://localhost:8000", alias="CLIENT_BASE_URL")
    client_http_timeout_seconds: float = Field(
        default=10.0,
        alias="CLIENT_HTTP_TIMEOUT_SECONDS",
    )

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return the database URL with any async driver suffix removed.

        The service and Alembic both run on synchronous engines, so
        ``sqlite+aiosqlite://`` becomes ``sqlite://`` and
        ``postgresql+asyncpg://`` falls back to the dialect's default driver.
        """
        url = self.effective_database_url
        scheme, sep, rest = url.partition("://")
        dialect, _, driver = scheme.partition("+")
        if driver in {"aiosqlite", "asyncpg", "asyncmy", "aiomysql"}:
            return f"{dialect}{sep}{rest}"
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url


settings = Settings()  # type: ignore[call-arg]
