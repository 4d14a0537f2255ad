# app/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Env vars (.env):
      - DATABASE_URL (defaults to a local SQLite file)
      - JWT_SECRET (signing key for issued access tokens)

    Optional:
      - JWT_ALG, JWT_EXPIRES_MINUTES
      - BCRYPT_ROUNDS (lower it in tests, bcrypt is slow on purpose)
      - CORS_ORIGINS, LOG_LEVEL
    """

    PROJECT_NAME: str = "User Service API"
    API_PREFIX: str = ""

    DATABASE_URL: str = "sqlite:///./users.db"

    # JWT issuing / verification.
    # Left unset => login and bearer routes fail with SigningError.
    JWT_SECRET: str | None = None
    JWT_ALG: str = "HS256"
    JWT_EXPIRES_MINUTES: int = 60

    BCRYPT_ROUNDS: int = 12

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
