"""
Application configuration using Pydantic Settings.
Loads from environment variables with validation.
"""
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "Task Assistant"
    app_env: str = "development"
    debug: bool = False

    # Anthropic (LLM fallback only)
    anthropic_api_key: str = ""
    fallback_model: str = "claude-haiku-4-5-20251001"
    llm_fallback_enabled: bool = True
    fallback_max_tokens: int = 1024
    fallback_temperature: float = 0.2

    # Logging
    log_level: str = "INFO"
    log_dir: str = ""  # Empty means console only, set to path for file logging
    log_json: bool = False  # Use JSON format for logs (recommended for production)

    @property
    def fallback_configured(self) -> bool:
        """True when an LLM fallback can actually be reached."""
        return self.llm_fallback_enabled and bool(self.anthropic_api_key)


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


settings = get_settings()
