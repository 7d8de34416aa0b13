"""
Configuration module for the SpeechMate Gateway.

This module uses Pydantic Settings to load and validate environment variables
for the identity-provider registration, the session cookie, the trusted
front-end origins and the host-to-origin rules used after login.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import List, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SESSION_SECRET = "change-me-in-production"

# Values shipped in sample .env files; treated the same as "not configured"
PLACEHOLDER_CREDENTIALS = frozenset({
    "",
    "changeme",
    "change-me",
    "your-client-id",
    "your-client-secret",
    "your_client_id",
    "your_client_secret",
})


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All configuration for the Google OAuth2 registration, session cookie,
    CORS allow-list and post-login redirect resolution is defined here.
    """

    # =========================================================================
    # Identity Provider (Google OAuth2 / OIDC)
    # =========================================================================

    GOOGLE_CLIENT_ID: Optional[str] = Field(
        None,
        description="Google OAuth2 client ID (leave unset to disable login)",
    )

    GOOGLE_CLIENT_SECRET: Optional[str] = Field(
        None,
        description="Google OAuth2 client secret",
    )

    OAUTH_REGISTRATION_ID: str = Field(
        default="google",
        description="Registration ID used for the login redirect and callback path",
        min_length=1,
    )

    OAUTH_SCOPES: str = Field(
        default="openid,profile,email",
        description="Comma-separated list of scopes requested at login",
    )

    OAUTH_PROMPT: str = Field(
        default="consent select_account",
        description="Value of the 'prompt' parameter added to every authorization redirect",
    )

    OAUTH_ACCESS_TYPE: Optional[str] = Field(
        default="offline",
        description="Value of the 'access_type' parameter (empty to omit)",
    )

    PUBLIC_BASE_URL: Optional[str] = Field(
        None,
        description="Externally visible base URL used to build the OAuth redirect URI",
    )

    IDP_HTTP_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for token exchange, JWKS and userinfo requests",
        gt=0,
        le=120,
    )

    JWKS_CACHE_SECONDS: int = Field(
        default=3600,
        description="Time to cache identity-provider JWKS keys in seconds",
        ge=60,
        le=86400,
    )

    # =========================================================================
    # Front-end Origins
    # =========================================================================

    FRONTEND_URL: Optional[str] = Field(
        None,
        description="Front-end URL reported by the configuration diagnostics endpoint",
    )

    TRUSTED_ORIGINS: str = Field(
        default=(
            "http://localhost:5173,"
            "https://ashy-glacier-0f328380f.3.azurestaticapps.net,"
            "https://thespeechmate.tech,"
            "https://www.thespeechmate.tech"
        ),
        description="Comma-separated list of trusted front-end origins (CORS allow-list)",
        min_length=1,
    )

    HOST_ORIGIN_RULES: str = Field(
        default=(
            "localhost:8080=http://localhost:5173,"
            "speechmate-backend-hngqcsf9d5hadhf0.eastus-01.azurewebsites.net=https://thespeechmate.tech"
        ),
        description="Ordered comma-separated 'host-pattern=origin' rules for post-login redirects",
    )

    DEFAULT_FRONTEND_ORIGIN: str = Field(
        default="https://thespeechmate.tech",
        description="Origin used when no host rule matches",
        min_length=1,
    )

    POST_LOGIN_PATH: str = Field(
        default="/home",
        description="Path appended to the resolved front-end origin after login",
    )

    # =========================================================================
    # Session Cookie
    # =========================================================================

    SESSION_SECRET_KEY: str = Field(
        default=DEFAULT_SESSION_SECRET,
        description="Secret key for signing the session cookie",
        min_length=16,
    )

    SESSION_COOKIE_NAME: str = Field(
        default="SESSION",
        description="Name of the session cookie",
        min_length=1,
    )

    SESSION_MAX_AGE_SECONDS: int = Field(
        default=86400,
        description="Session cookie lifetime in seconds",
        ge=60,
        le=2592000,
    )

    SESSION_SAME_SITE: str = Field(
        default="lax",
        description="SameSite attribute of the session cookie (lax, strict, none)",
    )

    SESSION_HTTPS_ONLY: bool = Field(
        default=False,
        description="Mark the session cookie Secure",
    )

    # =========================================================================
    # Server
    # =========================================================================

    GATEWAY_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the gateway server",
    )

    GATEWAY_PORT: int = Field(
        default=8080,
        description="Port to bind the gateway server",
        ge=1,
        le=65535,
    )

    WEBJARS_DIRECTORY: Optional[str] = Field(
        None,
        description="Directory served under /webjars (static assets)",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def trusted_origins_list(self) -> List[str]:
        """
        Parse and return TRUSTED_ORIGINS as a list.

        Returns:
            List of origin strings without whitespace or trailing slashes.
        """
        return [
            origin.strip().rstrip("/")
            for origin in self.TRUSTED_ORIGINS.split(",")
            if origin.strip()
        ]

    @property
    def host_origin_rules_list(self) -> List[Tuple[str, str]]:
        """
        Parse HOST_ORIGIN_RULES into ordered (pattern, origin) pairs.

        Returns:
            List of tuples in declaration order.
        """
        rules = []
        for entry in self.HOST_ORIGIN_RULES.split(","):
            entry = entry.strip()
            if not entry:
                continue
            pattern, _, origin = entry.partition("=")
            rules.append((pattern.strip(), origin.strip().rstrip("/")))
        return rules

    @property
    def oauth_scopes_list(self) -> List[str]:
        return [scope.strip() for scope in self.OAUTH_SCOPES.split(",") if scope.strip()]

    @property
    def google_credentials_configured(self) -> bool:
        """True when both client ID and secret are set to non-placeholder values."""
        return (
            (self.GOOGLE_CLIENT_ID or "").strip().lower() not in PLACEHOLDER_CREDENTIALS
            and (self.GOOGLE_CLIENT_SECRET or "").strip().lower() not in PLACEHOLDER_CREDENTIALS
        )

    @property
    def frontend_url_is_set(self) -> bool:
        return bool(self.FRONTEND_URL and self.FRONTEND_URL.strip())

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("TRUSTED_ORIGINS")
    @classmethod
    def validate_trusted_origins(cls, v: str) -> str:
        """
        Validate that every trusted origin is an explicit http(s) origin.

        Raises:
            ValueError: If an origin is a wildcard or has no scheme
        """
        origins = [o.strip() for o in v.split(",") if o.strip()]

        if not origins:
            raise ValueError("TRUSTED_ORIGINS must contain at least one origin")

        for origin in origins:
            if "*" in origin:
                raise ValueError(
                    f"Wildcard origin '{origin}' cannot be combined with credentialed CORS"
                )
            if not origin.startswith(("http://", "https://")):
                raise ValueError(
                    f"Invalid origin format: '{origin}'. "
                    "Expected format: 'https://example.com'"
                )

        return v

    @field_validator("HOST_ORIGIN_RULES")
    @classmethod
    def validate_host_origin_rules(cls, v: str) -> str:
        """
        Validate that every rule has the 'pattern=origin' form.

        Raises:
            ValueError: If a rule is missing its pattern or origin
        """
        for entry in v.split(","):
            entry = entry.strip()
            if not entry:
                continue
            pattern, sep, origin = entry.partition("=")
            if not sep or not pattern.strip() or not origin.strip():
                raise ValueError(
                    f"Invalid host rule: '{entry}'. "
                    "Expected format: 'host-pattern=https://frontend.example'"
                )
        return v

    @field_validator("SESSION_SAME_SITE")
    @classmethod
    def validate_same_site(cls, v: str) -> str:
        allowed = ["lax", "strict", "none"]
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"SESSION_SAME_SITE must be one of {allowed}, got: {v}")
        return v

    @field_validator("POST_LOGIN_PATH")
    @classmethod
    def validate_post_login_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("POST_LOGIN_PATH must start with '/'")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}, got: {v}")
        return v


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If environment variables are invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Validate configuration settings and return a status report.

    Called during application startup; errors mean login can never succeed,
    warnings point at settings that are only acceptable in development.

    Returns:
        Dictionary with validation status, errors and warnings.

    Example:
        >>> status = validate_configuration(get_settings())
        >>> if not status["valid"]:
        ...     print(status["errors"])
    """
    errors = []
    warnings = []

    if not settings.google_credentials_configured:
        errors.append(
            "GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET are missing or placeholders; "
            "protected paths will be unavailable"
        )

    if settings.SESSION_SECRET_KEY == DEFAULT_SESSION_SECRET:
        warnings.append("SESSION_SECRET_KEY is the default value (set a real secret in production)")

    if not settings.frontend_url_is_set:
        warnings.append("FRONTEND_URL is not set")

    if settings.SESSION_SAME_SITE == "none" and not settings.SESSION_HTTPS_ONLY:
        warnings.append("SESSION_SAME_SITE=none requires SESSION_HTTPS_ONLY=true in browsers")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "trusted_origins": settings.trusted_origins_list,
        "registration_id": settings.OAUTH_REGISTRATION_ID,
    }
