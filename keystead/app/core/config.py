# keystead/app/core/config.py
"""
Application configuration using pydantic-settings.

Security considerations:
- Every token scope is signed with its own secret; the secrets must differ
- Default secrets are dev-only and refused when ENVIRONMENT=production
- CORS_ORIGINS parsed from comma-separated env var, never defaults to "*"
- Database URLs normalized for async drivers automatically
"""
from functools import lru_cache
from typing import List, NamedTuple, Tuple

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PublicEndpoint(NamedTuple):
    """
    A (path, HTTP method) pair that bypasses the auth gate.

    With prefix=True every path below `path` (at a "/" boundary) matches too.
    """
    path: str
    method: str
    prefix: bool = False

    def matches(self, path: str, method: str) -> bool:
        if method.upper() != self.method.upper():
            return False
        if len(path) > 1:
            path = path.rstrip("/")
        if path == self.path:
            return True
        return self.prefix and path.startswith(self.path.rstrip("/") + "/")


_DEV_SECRET_PREFIX = "INSECURE_DEV_"


class Settings(BaseSettings):
    """
    Strictly typed application settings.

    Priority for loading:
    1. Environment variables (highest priority)
    2. .env file (via pydantic-settings)
    3. Default values (lowest priority, dev-safe only)
    """

    # ─────────────────────────────────────────────────────────────
    # Application metadata
    # ─────────────────────────────────────────────────────────────
    PROJECT_NAME: str = "Keystead"
    PROJECT_VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"

    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # ─────────────────────────────────────────────────────────────
    # Secrets
    # SERVER_SECRET is the pepper mixed into the server-side password hash.
    # The other five sign one token scope each and MUST be distinct,
    # otherwise a token minted for one stage validates at another.
    # ─────────────────────────────────────────────────────────────
    SERVER_SECRET: str = "INSECURE_DEV_SERVER_PEPPER"
    CHALLENGE_ACCESS_TOKEN_SECRET: str = "INSECURE_DEV_CHALLENGE_ACCESS_SECRET"
    SESSION_ACCESS_TOKEN_SECRET: str = "INSECURE_DEV_SESSION_ACCESS_SECRET"
    ACCESS_TOKEN_SECRET: str = "INSECURE_DEV_ACCESS_SECRET"
    REFRESH_TOKEN_SECRET: str = "INSECURE_DEV_REFRESH_SECRET"
    EMAIL_TOKEN_SECRET: str = "INSECURE_DEV_EMAIL_SECRET"
    ALGORITHM: str = "HS256"

    # ─────────────────────────────────────────────────────────────
    # Token and challenge lifetimes
    # ─────────────────────────────────────────────────────────────
    CHALLENGE_ACCESS_TOKEN_EXPIRE_SECONDS: int = 120
    SESSION_ACCESS_TOKEN_EXPIRE_SECONDS: int = 120
    ACCESS_TOKEN_EXPIRE_SECONDS: int = 180
    REFRESH_TOKEN_EXPIRE_SECONDS: int = 3 * 60 * 60
    REFRESH_TOKEN_MAX_EXPIRE_SECONDS: int = 3 * 60 * 60
    EMAIL_TOKEN_EXPIRE_SECONDS: int = 300
    CHALLENGE_TTL_SECONDS: int = 120

    # Base of the link mailed to users; the token is appended as ?token=
    EMAIL_VERIFICATION_URL: str = "keystead://verify-email"

    # ─────────────────────────────────────────────────────────────
    # Database Configuration
    # Priority: DATABASE_URL env var → SQLite fallback for local dev
    # ─────────────────────────────────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./keystead.db"
    DATABASE_ECHO: bool = False
    # Upper bound for a single commit; exceeded → TransientFailureError
    DB_OPERATION_TIMEOUT_SECONDS: float = 5.0

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """
        Normalize database URLs for async SQLAlchemy compatibility.

        Conversions:
        - postgres://     → postgresql+asyncpg://
        - postgresql://   → postgresql+asyncpg://
        - sqlite:///      → sqlite+aiosqlite:///
        """
        if v is None:
            return "sqlite+aiosqlite:///./keystead.db"

        url = v.strip()

        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql+asyncpg://", 1)

        if url.startswith("postgresql://") and "+asyncpg" not in url:
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)

        if url.startswith("sqlite:///") and "+aiosqlite" not in url:
            return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)

        return url

    @field_validator("REFRESH_TOKEN_MAX_EXPIRE_SECONDS")
    @classmethod
    def cap_refresh_lifetime(cls, v: int) -> int:
        if v > 3 * 60 * 60:
            raise ValueError("refresh tokens may not live longer than 3 hours")
        return v

    @model_validator(mode="after")
    def check_secrets(self) -> "Settings":
        """
        Refuse to start with shared token secrets, or with the dev
        defaults in production.
        """
        secrets = self.token_secrets
        if len(set(secrets)) != len(secrets):
            raise ValueError("token secrets must be distinct per scope")

        if self.REFRESH_TOKEN_EXPIRE_SECONDS > self.REFRESH_TOKEN_MAX_EXPIRE_SECONDS:
            raise ValueError("REFRESH_TOKEN_EXPIRE_SECONDS exceeds the allowed maximum")

        if self.is_production:
            for value in (self.SERVER_SECRET, *secrets):
                if value.startswith(_DEV_SECRET_PREFIX):
                    raise ValueError("dev secrets are not allowed in production")
        return self

    # ─────────────────────────────────────────────────────────────
    # CORS Configuration
    # Empty string → empty list (NOT "*" for security)
    # ─────────────────────────────────────────────────────────────
    CORS_ORIGINS: str = "http://localhost:5500,http://127.0.0.1:5500,http://localhost:8000,http://127.0.0.1:8000"

    @property
    def BACKEND_CORS_ORIGINS(self) -> List[str]:
        """Parse CORS_ORIGINS string into a list of allowed origins."""
        if not self.CORS_ORIGINS or not self.CORS_ORIGINS.strip():
            return []

        return [
            origin.strip()
            for origin in self.CORS_ORIGINS.split(",")
            if origin.strip()
        ]

    @property
    def token_secrets(self) -> Tuple[str, ...]:
        return (
            self.CHALLENGE_ACCESS_TOKEN_SECRET,
            self.SESSION_ACCESS_TOKEN_SECRET,
            self.ACCESS_TOKEN_SECRET,
            self.REFRESH_TOKEN_SECRET,
            self.EMAIL_TOKEN_SECRET,
        )

    @property
    def public_endpoints(self) -> Tuple[PublicEndpoint, ...]:
        """
        Requests matching one of these pairs skip the auth gate.

        Built from API_V1_STR so the list follows the router prefix.
        """
        api = self.API_V1_STR
        return (
            PublicEndpoint(f"{api}/users", "POST"),
            PublicEndpoint(f"{api}/users/email-verification", "POST"),
            PublicEndpoint(f"{api}/sessions/credentials", "POST"),
            PublicEndpoint(f"{api}/sessions/challenges", "POST"),
            PublicEndpoint(f"{api}/sessions/tokens/refresh-tokens", "POST"),
            PublicEndpoint(f"{api}/sessions", "POST"),
            PublicEndpoint(f"{api}/openapi.json", "GET"),
            PublicEndpoint("/docs", "GET", prefix=True),
            PublicEndpoint("/health", "GET"),
            PublicEndpoint("/", "GET"),
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        # Extra fields in .env are ignored (prevents config injection)
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite database (local development)."""
        return "sqlite" in self.DATABASE_URL.lower()


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings instance.

    Loaded once so every component sees the same secrets and TTLs.
    """
    return Settings()


settings = get_settings()
