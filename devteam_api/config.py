"""Configuration management using pydantic-settings."""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the API service, read from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    node_env: str = "development"
    log_level: str = "info"
    shutdown_timeout: float = 10.0  # Seconds to drain in-flight requests

    # API layout
    api_prefix: str = "/api"
    docs_path: str = "/api-docs"
    openapi_file: str = "openapi.yaml"

    # Request bodies
    max_body_bytes: int = 10 * 1024 * 1024

    @field_validator("port")
    @classmethod
    def validate_port(cls, value: int) -> int:
        if not (0 <= value <= 65535):
            raise ValueError("PORT must be between 0 and 65535")
        return value

    @property
    def is_development(self) -> bool:
        return self.node_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance; raises ValidationError on bad environment values."""
    return Settings()
