# config/settings.py
"""
Configuration settings for the exchange.

Values come from environment variables (a local .env file is loaded first)
and fall back to defaults suitable for a local PostgreSQL instance.
"""

import os
from typing import Optional, Dict, Any

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """
    Exchange settings.

    Supports environment variables and provides sensible defaults.
    """

    def __init__(self):
        # Database
        self.db_host = os.getenv("DB_HOST", "localhost")
        self.db_name = os.getenv("DB_NAME", "bitcoin_exchange")
        self.db_user = os.getenv("DB_USER", "exchange")
        self.db_password = os.getenv("DB_PASSWORD", "exchange_pw")
        self.db_port = int(os.getenv("DB_PORT", "5432"))
        self.db_pool_min = int(os.getenv("DB_POOL_MIN", "1"))
        self.db_pool_max = int(os.getenv("DB_POOL_MAX", "10"))
        self.db_pool_timeout = float(os.getenv("DB_POOL_TIMEOUT", "30"))

        # Authentication
        self.jwt_secret = os.getenv("JWT_SECRET", "BITCOIN_EXCHANGE_SECRET_KEY")
        self.jwt_algorithm = os.getenv("JWT_ALGORITHM", "HS256")
        self.token_ttl_hours = int(os.getenv("TOKEN_TTL_HOURS", "12"))

        # Matching
        self.match_page_size = int(os.getenv("MATCH_PAGE_SIZE", "10"))
        self.executor_workers = int(os.getenv("EXECUTOR_WORKERS", "4"))

        # Outbound HTTP
        self.webhook_timeout = float(os.getenv("WEBHOOK_TIMEOUT", "2"))
        self.rate_url = os.getenv(
            "RATE_URL", "https://api.coinbase.com/v2/prices/spot?currency=USD"
        )
        self.rate_timeout = float(os.getenv("RATE_TIMEOUT", "2"))

        # Logging
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.log_file = os.getenv("LOG_FILE") or None

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary (secrets masked)."""
        return {
            "db_host": self.db_host,
            "db_name": self.db_name,
            "db_user": self.db_user,
            "db_port": self.db_port,
            "db_pool_min": self.db_pool_min,
            "db_pool_max": self.db_pool_max,
            "db_pool_timeout": self.db_pool_timeout,
            "jwt_algorithm": self.jwt_algorithm,
            "token_ttl_hours": self.token_ttl_hours,
            "match_page_size": self.match_page_size,
            "executor_workers": self.executor_workers,
            "webhook_timeout": self.webhook_timeout,
            "rate_url": self.rate_url,
            "rate_timeout": self.rate_timeout,
            "log_level": self.log_level,
            "log_file": self.log_file,
        }

    def validate(self) -> None:
        """Validate configuration settings."""
        errors = []

        if not (1 <= self.db_port <= 65535):
            errors.append(f"Invalid DB port: {self.db_port}")

        if self.db_pool_min < 1:
            errors.append(f"DB pool min must be positive: {self.db_pool_min}")

        if self.db_pool_max < self.db_pool_min:
            errors.append(
                f"DB pool max must be at least pool min: {self.db_pool_max} < {self.db_pool_min}"
            )

        if self.db_pool_timeout <= 0:
            errors.append(f"DB pool timeout must be positive: {self.db_pool_timeout}")

        if self.match_page_size <= 0:
            errors.append(f"Match page size must be positive: {self.match_page_size}")

        if self.executor_workers <= 0:
            errors.append(f"Executor workers must be positive: {self.executor_workers}")

        if self.token_ttl_hours <= 0:
            errors.append(f"Token TTL must be positive: {self.token_ttl_hours}")

        if self.webhook_timeout <= 0 or self.rate_timeout <= 0:
            errors.append("HTTP timeouts must be positive")

        if not self.jwt_secret:
            errors.append("JWT secret must not be empty")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the process settings instance.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
        _settings.validate()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment variables."""
    global _settings
    _settings = Settings()
    _settings.validate()
    return _settings
