"""
Configuration Management

Uses Pydantic Settings for environment-based configuration.
Loads from .env file automatically.
"""

from typing import Optional
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Pipeline switch
    MARKET_INTEL_ENABLED: bool = True

    # Phase flags (absent in env = enabled)
    PHASE_WEBSITE_EXTRACTION: bool = True
    PHASE_EXTERNAL_PRESENCE: bool = True
    PHASE_MARKETING_CONVERSION: bool = True
    PHASE_COMPETITOR_ANALYSIS: bool = True

    # Model provider: "openrouter" or "anthropic"
    LLM_PROVIDER: str = "openrouter"
    OPENROUTER_API_KEY: Optional[str] = None
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    ANTHROPIC_API_KEY: Optional[str] = None

    # Web search (optional - External Presence falls back to estimation)
    SERPER_API_KEY: Optional[str] = None

    # Model call behaviour
    MODEL_TIMEOUT_SECONDS: float = 60.0
    MODEL_MAX_RETRIES: int = 3
    MODEL_RETRY_DELAY_SECONDS: float = 2.0

    # Human pacing between phases
    PACING_ENABLED: bool = True
    PACING_MIN_DELAY_MS: int = 2000
    PACING_MAX_DELAY_MS: int = 7000

    # Output writing
    WRITE_OUTPUTS: bool = False
    OUTPUT_DIR: Optional[str] = None

    # Application Settings
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields in .env file
        case_sensitive = False  # Allow both UPPERCASE and lowercase

    @property
    def model_api_key(self) -> Optional[str]:
        """API key for the configured model provider."""
        if self.LLM_PROVIDER.lower() == "anthropic":
            return self.ANTHROPIC_API_KEY
        return self.OPENROUTER_API_KEY

    @property
    def has_model_credentials(self) -> bool:
        return bool(self.model_api_key)

    @property
    def has_search(self) -> bool:
        return bool(self.SERPER_API_KEY)


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()
