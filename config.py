"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

Durations that are part of the account lifecycle (OTP lifetime, registration
window, cleanup interval, lockout policy) are constants in the services that
own them; only deployment-dependent knobs live here.
"""

from __future__ import annotations

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "blog-app"

    # Upper bound for a single store round-trip before the request fails
    store_timeout_seconds: float = 10.0


class JWTSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    jwt_issuer: str = "blog-auth"
    jwt_audience: str = "blog-auth.api"
    token_ttl_seconds: int = 7 * 24 * 3600

    # RS256 keys (preferred)
    jwt_private_key: str = ""
    jwt_public_key: str = ""

    # HS256 fallback (used when RS256 keys are absent)
    jwt_secret: str = ""

    @property
    def use_rs256(self) -> bool:
        return bool(self.jwt_private_key and self.jwt_public_key)


class OAuthProviderSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    google_oauth_client_id: str = ""
    google_oauth_client_secret: str = ""
    google_oauth_redirect_uri: str = ""


class EmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    zepto_api_token: str = ""
    zepto_from_email: str = "noreply@blog-app.dev"
    zepto_from_name: str = "Blog-Web-App"
    email_timeout_seconds: float = 10.0


class RateLimitSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Only honoured outside production (see AppSettings.rate_limit_bypassed)
    bypass_rate_limiting: bool = False

    # Generic per-IP throttling of the public auth endpoints
    endpoint_points: int = 5
    endpoint_duration_seconds: int = 15 * 60
    endpoint_block_seconds: int = 15 * 60

    # OTP issuance (register / resend)
    otp_issue_points: int = 3
    otp_issue_duration_seconds: int = 15 * 60
    otp_issue_block_seconds: int = 60 * 60

    # Forgot-password issuance
    forgot_password_points: int = 5
    forgot_password_duration_seconds: int = 60 * 60
    forgot_password_block_seconds: int = 60 * 60

    # OTP verification attempts (signup verify, reset verify, reset)
    otp_verification_points: int = 5
    otp_verification_duration_seconds: int = 10 * 60
    otp_verification_block_seconds: int = 30 * 60


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1
    sentry_profile_sample_rate: float = 0.05


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    secret_key: str = ""
    env: str = "development"
    app_name: str = "blog-auth"

    # Front-end origin; OAuth callbacks redirect here
    client_url: str = "http://localhost:5173"

    # CORS: the SPA sends bearer tokens with credentials
    cors_origins: list[str] = ["http://localhost:5173"]

    # Shared secret for the operational endpoints (disabled check when empty)
    admin_token: str = ""

    # OpenAPI docs URL (None disables the docs UI in production)
    docs_url: Optional[str] = "/docs"

    # Sub-configs (composed via model_validator below)
    db: Optional[DatabaseSettings] = None
    jwt: Optional[JWTSettings] = None
    oauth: Optional[OAuthProviderSettings] = None
    email: Optional[EmailSettings] = None
    rate_limit: Optional[RateLimitSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs_and_secret(self) -> "AppSettings":
        # Populate sub-configs from the same env/dotenv source
        if self.db is None:
            self.db = DatabaseSettings()
        if self.jwt is None:
            self.jwt = JWTSettings()
        if self.oauth is None:
            self.oauth = OAuthProviderSettings()
        if self.email is None:
            self.email = EmailSettings()
        if self.rate_limit is None:
            self.rate_limit = RateLimitSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()

        # HS256 deployments may share one secret for tokens and sessions
        if not self.secret_key:
            self.secret_key = self.jwt.jwt_secret

        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def rate_limit_bypassed(self) -> bool:
        """Request-volume throttling is only ever bypassed outside production."""
        return self.rate_limit.bypass_rate_limiting and not self.is_production
