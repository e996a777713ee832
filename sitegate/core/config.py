from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Logging
    log_level: str = "INFO"
    log_dir: str = "/var/log/sitegate"
    file_logging: bool = False
    console_logging: bool = True

    # Policy and directory sources (YAML). None means built-in defaults / empty directory.
    policy_file: Optional[str] = None
    directory_file: Optional[str] = None

    # Database; None keeps requests in memory
    database_url: Optional[str] = None
    database_echo: bool = False

    model_config = SettingsConfigDict(
        env_prefix="SITEGATE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
