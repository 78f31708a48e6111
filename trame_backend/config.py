"""
Environment-driven settings via pydantic-settings.

Field names map case-insensitively to environment variables (DATABASE_URL,
DEBOUNCE_SECONDS, ...); a `.env` file is read when present. Invalid values
fail at startup with a ValidationError. `get_settings()` caches one instance
per process.
"""
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# PUBLIC_INTERFACE
class Settings(BaseSettings):
    """Runtime configuration for the service."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    database_url: str = "sqlite:///trame.db"
    host: str = "0.0.0.0"
    port: int = 3000
    # comma-separated
    allowed_origin: str = "*"

    session_ttl_seconds: int = Field(60 * 60 * 24 * 30, gt=0)  # 30 days
    session_cookie_name: str = "trame_session"

    debounce_seconds: float = Field(0.5, gt=0)
    max_note_length: int = Field(1_000_000, gt=0)

    username_min_length: int = Field(3, ge=1)
    password_min_length: int = Field(6, ge=1)

    argon2_memory_cost: int = 65536  # KiB
    argon2_rounds: int = 3
    argon2_parallelism: int = 4

    log_level: str = "INFO"
    log_format: str = "json"
    static_dir: str = "static"

    @property
    def allowed_origins(self) -> List[str]:
        return [item.strip() for item in self.allowed_origin.split(",") if item.strip()]

    # PUBLIC_INTERFACE
    @classmethod
    def from_env(cls) -> "Settings":
        """Builds a fresh instance from the environment and `.env`."""
        return cls()


# PUBLIC_INTERFACE
@lru_cache
def get_settings() -> Settings:
    """Returns the process-wide settings instance."""
    return Settings.from_env()
