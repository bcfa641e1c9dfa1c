from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal
from functools import lru_cache
import os


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Payments Engine"
    app_version: str = "1.0.0"

    # Logging settings
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    # Pipeline settings
    queue_capacity: int = Field(1024, ge=1)  # Producer blocks when full

    # Storage settings
    ledger_backend: Literal["memory", "sqlite"] = "memory"
    ledger_path: str = "ledger.db"
    account_backend: Literal["memory", "sqlite"] = "memory"
    account_path: str = "accounts.db"

    model_config = SettingsConfigDict(
        env_prefix="PAYMENTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Environment-specific configurations
class DevelopmentSettings(Settings):
    log_level: str = "DEBUG"
    log_format: Literal["json", "text"] = "text"


class ProductionSettings(Settings):
    log_level: str = "WARNING"


class TestingSettings(Settings):
    log_level: str = "WARNING"  # Reduce noise in tests
    queue_capacity: int = Field(8, ge=1)


def get_settings_for_environment(env: str = "production") -> Settings:
    """Get settings for specific environment."""
    settings_map = {
        "development": DevelopmentSettings,
        "production": ProductionSettings,
        "testing": TestingSettings,
    }

    settings_class = settings_map.get(env.lower(), Settings)
    return settings_class()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance for the environment named by PAYMENTS_ENV."""
    return get_settings_for_environment(os.getenv("PAYMENTS_ENV", "production"))
