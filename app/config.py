"""Application configuration."""

import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storage
    database_path: str = os.getenv("DATABASE_PATH", "data/habits.db")

    # Auth
    auth_secret: str = os.getenv("AUTH_SECRET", "")
    auth_token_ttl_days: int = int(os.getenv("AUTH_TOKEN_TTL_DAYS", "90"))

    # Calendar
    default_timezone: str = os.getenv("DEFAULT_TIMEZONE", "America/Bogota")

    # Server
    server_host: str = os.getenv("SERVER_HOST", "0.0.0.0")
    server_port: int = int(os.getenv("SERVER_PORT", "3000"))
    cors_origins: str = os.getenv("CORS_ORIGINS", "*")  # comma separated

    # Dashboard
    notifications_limit: int = int(os.getenv("NOTIFICATIONS_LIMIT", "10"))
    logs_default_limit: int = int(os.getenv("LOGS_DEFAULT_LIMIT", "10"))
    logs_max_limit: int = int(os.getenv("LOGS_MAX_LIMIT", "100"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False

    @property
    def cors_origin_list(self) -> list[str]:
        """CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


settings = Settings()
