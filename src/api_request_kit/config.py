from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="API_REQUEST_KIT_", env_file=".env", extra="ignore")

    db_path: Path = Path.home() / ".api-request-kit" / "data.db"

    # HTTP client
    http_timeout: float = 30.0
    verify_ssl: bool = True
    follow_redirects: bool = True

    # Coalescing delay (seconds) before state is written to storage
    persist_delay: float = 0.3

    log_level: str = "WARNING"


@lru_cache
def get_settings() -> Settings:
    return Settings()
