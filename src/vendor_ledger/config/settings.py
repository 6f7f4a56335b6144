"""Configuration settings for the vendor ledger engine."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Extraction provider (OpenAI-compatible chat completions)
    extraction_api_url: str = Field(
        default="https://openrouter.ai/api/v1", validation_alias="EXTRACTION_API_URL"
    )
    extraction_api_key: SecretStr = Field(..., validation_alias="OPENROUTER_API_KEY")
    extraction_model: str = Field(
        default="google/gemini-2.0-flash-001", validation_alias="EXTRACTION_MODEL"
    )
    extraction_timeout: float = Field(default=120.0, validation_alias="EXTRACTION_TIMEOUT")
    enrichment_temperature: float = Field(
        default=0.3, validation_alias="ENRICHMENT_TEMPERATURE"
    )
    site_url: str = Field(default="http://localhost:3000", validation_alias="SITE_URL")
    site_name: str = Field(default="Subscription Dashboard", validation_alias="SITE_NAME")

    # Import behavior
    default_currency: str = Field(default="USD", validation_alias="DEFAULT_CURRENCY")
    import_batch_size: int = Field(default=25, validation_alias="IMPORT_BATCH_SIZE")
    amount_tolerance: float = Field(default=0.01, validation_alias="AMOUNT_TOLERANCE")

    # Observability
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )
    otel_endpoint: str = Field(default="", validation_alias="OTEL_EXPORTER_OTLP_ENDPOINT")


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
