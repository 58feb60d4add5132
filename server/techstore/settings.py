"""
TechStore Server Settings

Configuration management using pydantic settings.
Loads from environment variables with TECHSTORE_ prefix.
"""

import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import computed_field
from typing import List


class Settings(BaseSettings):
    """
    Server configuration settings.

    Environment variables:
    - TECHSTORE_JWT_SECRET: Secret used to sign bearer tokens
    - TECHSTORE_JWT_EXPIRES_DAYS: Bearer token lifetime in days (default: 30)
    - TECHSTORE_API_KEYS_RAW: Comma-separated list of admin/service keys (catalog admin)
    - TECHSTORE_ALLOWED_ORIGINS_RAW: Comma-separated list of allowed CORS origins
    - TECHSTORE_ORDER_TIMEOUT_SECONDS: Upper bound for one order transaction (default: 10)
    - TECHSTORE_REPRICE_FROM_CATALOG: Lock catalog prices into orders instead of cart prices
    - TECHSTORE_DECREMENT_STOCK: Decrement product stock inside the order transaction
    - TECHSTORE_AUTH_RATE_LIMIT: slowapi limit for login/register (default: 10/minute)
    - TECHSTORE_DEBUG: Enable debug mode (default: false)
    - DATABASE_URL: PostgreSQL connection string
    """

    model_config = SettingsConfigDict(
        env_prefix="TECHSTORE_",
        env_file=".env",
        extra="ignore",
    )

    # Bearer tokens
    jwt_secret: str = "techstore-dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    jwt_expires_days: int = 30

    # Password hashing cost
    bcrypt_rounds: int = 10

    # Raw string fields for comma-separated values
    api_keys_raw: str = ""
    allowed_origins_raw: str = ""

    # Connection pool
    db_min_pool_size: int = 2
    db_max_pool_size: int = 10
    db_command_timeout: float = 5.0

    # Order placement
    order_timeout_seconds: float = 10.0
    reprice_from_catalog: bool = False
    decrement_stock: bool = False
    max_quantity_per_item: int = 100

    # Throttling for credential endpoints
    auth_rate_limit: str = "10/minute"

    # Debug mode
    debug: bool = False

    @computed_field
    @property
    def api_keys(self) -> List[str]:
        """Parse comma-separated admin keys into list."""
        if not self.api_keys_raw:
            return []
        return [v.strip() for v in self.api_keys_raw.split(",") if v.strip()]

    @computed_field
    @property
    def allowed_origins(self) -> List[str]:
        """Parse comma-separated allowed origins into list."""
        if not self.allowed_origins_raw:
            return []
        return [v.strip() for v in self.allowed_origins_raw.split(",") if v.strip()]


# Database URL (read separately since it doesn't have the TECHSTORE_ prefix)
DATABASE_URL = os.environ.get("DATABASE_URL", "")

# Global settings instance
settings = Settings()
