# app/config/settings.py

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        case_sensitive=True
    )

    # Redis Configuration
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None
    REDIS_DECODE_RESPONSES: bool = True

    # PostgreSQL Configuration
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "friends_db"

    # Application Configuration
    APP_NAME: str = "Friend Requests Backend"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list = [
        "http://localhost:3000",  # React/Next.js default
        "http://localhost:5173",  # Vite default
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]

    # JWT Authentication Configuration (tokens are issued by the identity provider)
    SECRET_KEY: str = "CHANGE-THIS-SECRET-KEY-IN-PRODUCTION-USE-ENV-FILE"  # Must be changed in .env file!
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "friends:auth"
    AUTH_COOKIE_NAME: str = "friends_auth"

    # Change Feed Configuration
    CHANGE_FEED_CHANNEL_PREFIX: str = "table_changes"
    CHANGE_FEED_POLL_INTERVAL: float = 1.0  # Seconds to block waiting for a notification
    CHANGE_FEED_RECONNECT_BASE_DELAY: float = 0.5  # First reconnect backoff in seconds
    CHANGE_FEED_RECONNECT_MAX_DELAY: float = 30.0  # Backoff ceiling in seconds

    @property
    def DATABASE_URL(self) -> str:
        """Construct PostgreSQL connection URL for SQLAlchemy"""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"


settings = Settings()
