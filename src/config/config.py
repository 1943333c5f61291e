from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.exceptions.config import OpenAIKeyError


class Config(BaseSettings):
    """
    Application settings loaded from environment variables and .env files.

    This class handles all configuration for the weather advisor including
    the OpenAI credential, upstream API locations, call ceilings and logging.
    """

    # API Keys
    openai_api_key: str = Field(..., description="OpenAI API key for advice generation")
    openai_model: str = Field(default="gpt-4o-mini", description="Model used by the advisor agent")

    # Upstream APIs
    geocoding_base_url: str = Field(
        default="https://geocoding-api.open-meteo.com/v1/search",
        description="Open-Meteo geocoding search endpoint",
    )
    weather_base_url: str = Field(
        default="https://api.open-meteo.com/v1/forecast",
        description="Open-Meteo forecast endpoint",
    )

    # Call ceilings
    upstream_timeout_seconds: float = Field(default=10.0, gt=0, description="Timeout for geocoding and weather calls")
    advice_timeout_seconds: float = Field(default=30.0, gt=0, description="Ceiling for single-shot advice calls")
    stream_timeout_seconds: float = Field(default=60.0, gt=0, description="Ceiling for streaming advice calls")
    stream_buffer_size: int = Field(default=32, ge=1, description="Fragments buffered between generator and relay")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="FastAPI host")
    api_port: int = Field(default=8080, ge=1, le=65535, description="FastAPI port")
    api_token: Optional[str] = Field(default=None, description="API authentication token")

    # Logging Configuration
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format (json/text)")
    log_dir: str = Field(default="logs", description="Directory for log files")

    @field_validator("openai_api_key")
    def validate_openai_api_key(cls, v):
        if not v or not v.strip():
            raise OpenAIKeyError("OpenAI API key is required")
        return v

    @field_validator("log_level")
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    def validate_log_format(cls, v):
        if v.lower() not in ("json", "text"):
            raise ValueError(f"Invalid log format: {v}. Must be 'json' or 'text'")
        return v.lower()

    def get_log_dir(self) -> Path:
        """Get the absolute path to the log directory."""
        return Path(self.log_dir).resolve()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


config = Config()
