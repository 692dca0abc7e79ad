"""Configuration management using pydantic-settings."""

from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Declaration store
    config_store_path: Path = Path("data/state/knowledge_bases_config.yaml")
    default_namespace: str = "default"
    default_vector_store_name: str = "default-vectorstore"
    default_vector_store_namespace: str = "default"

    # Retrieval
    context_separator: str = "\n\n"
    request_timeout_seconds: Optional[float] = 60.0

    # Completion model (OpenAI-compatible endpoint)
    llm_model: str = "gpt-4o-mini"
    llm_api_key: str = ""
    llm_base_url: str = ""
    llm_temperature: float = 0.0

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("context_separator", mode="before")
    @classmethod
    def parse_context_separator(cls, value):
        # Env files cannot hold raw newlines; accept escaped ones.
        if isinstance(value, str):
            return value.replace("\\n", "\n").replace("\\t", "\t")
        return value

    @field_validator("request_timeout_seconds", mode="before")
    @classmethod
    def parse_request_timeout(cls, value):
        if value in (None, "", 0, "0"):
            return None
        return value


# Global settings instance
settings = Settings()
