"""Connector configuration."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Connector settings."""

    model_config = SettingsConfigDict(
        env_prefix="DOCUMENTDB_TUNNEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = "development"

    # Logging
    log_level: str = "INFO"

    # Connection
    uri_scheme: str = "mongodb"
    server_selection_timeout_ms: Optional[int] = None  # None = driver default

    # SSH tunnel
    tunnel_local_host: str = "127.0.0.1"
    tunnel_timeout: Optional[float] = None  # seconds, None = wait for the library

    # Diagnostics
    verbose_error_context: bool = False  # Raw credentials in error details when True

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.verbose_error_context and self.environment == "production":
            raise ValueError(
                "VERBOSE_ERROR_CONTEXT must not be enabled in production environment"
            )


settings = Settings()
