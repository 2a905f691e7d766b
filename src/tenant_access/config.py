"""Settings for key issuance, quota accounting and the database."""

from enum import StrEnum
from functools import lru_cache

from pydantic import Field, SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tenant_access.models.api_keys import RateLimits

DEFAULT_KEY_NAMESPACE = "wiiv_shop"
DEFAULT_QUOTA_LIMIT = 50_000

# Keyed by key class name, not prefix.
DEFAULT_RATE_LIMITS: dict[str, RateLimits] = {
    "public": RateLimits(per_minute=1000, daily=50_000),
    "secret": RateLimits(per_minute=5000, daily=100_000),
}

DEFAULT_PERMISSION_MAPPING: dict[str, str | list[str]] = {
    "orders:read": "view orders",
    "orders:write": ["create orders", "update orders"],
    "orders:delete": "delete orders",
    "products:read": "view products",
    "products:write": ["create products", "update products"],
    "products:delete": "delete products",
    "admin:access": "access admin panel",
}


class Environment(StrEnum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class Settings(BaseSettings):
    """Process settings read from the environment and ``.env``.

    Mapping-valued settings (rate limits, permission mapping) are read
    as JSON, e.g. ``PERMISSION_MAPPING='{"orders:read": "view orders"}'``.
    The ``POSTGRES_*`` names follow the postgres Docker image.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "DEBUG"

    # --- PostgreSQL ---
    postgres_user: str = "tenant_access"
    postgres_password: SecretStr = SecretStr("secret")
    postgres_db: str = "tenant_access"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    db_pool_size: int = Field(default=5, ge=1)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def database_url(self) -> str:
        """SQLAlchemy URL for the psycopg (v3) dialect.

        The same URL serves the async engine and Alembic's sync one.
        """
        return (
            "postgresql+psycopg://"
            f"{self.postgres_user}:{self.postgres_password.get_secret_value()}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # --- API keys ---
    # Middle segment of every key id; underscores are allowed.
    key_namespace: str = Field(
        default=DEFAULT_KEY_NAMESPACE, pattern=r"^[A-Za-z0-9_]+$"
    )
    default_rate_limits: dict[str, RateLimits] = DEFAULT_RATE_LIMITS
    permission_mapping: dict[str, str | list[str]] = DEFAULT_PERMISSION_MAPPING
    # bcrypt work factor; 4 is the minimum and is only sensible in tests.
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # --- Usage quota ---
    default_quota_limit: int = Field(default=DEFAULT_QUOTA_LIMIT, ge=0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings singleton for entry points (CLI, migrations).

    Library classes never call this themselves; build their config
    explicitly, e.g. ``KeyStoreConfig.from_settings(get_settings())``.
    """
    return Settings()
