"""
Application settings.
Loaded from environment variables / .env.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Settings loaded from .env"""

    # App
    APP_NAME: str = "Audience Campaigns"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_KEY: str = ""

    # Redis (in-flight delivery markers)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_CONNECT_TIMEOUT: float = 2.0

    # CORS - allowed origins (comma separated)
    CORS_ORIGINS: str = "*"  # "*" only for development

    # Delivery simulation
    DELIVERY_STEPS: int = 8
    DELIVERY_STEP_INTERVAL_SECONDS: float = 1.0
    DELIVERY_SUCCESS_RATE: float = 0.9
    DELIVERY_LOCK_TIMEOUT_SECONDS: int = 300
    DELIVERY_WRITE_LOGS: bool = True

    # Segments
    PREVIEW_SAMPLE_SIZE: int = 5
    MAX_RECIPIENTS_PER_CAMPAIGN: int = 10000

    # Rule suggestions (pattern matching only when no key is set)
    ANTHROPIC_API_KEY: str = ""
    LLM_MODEL: str = "claude-3-5-haiku-20241022"

    @property
    def is_production(self) -> bool:
        """True when running in production."""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def cors_origins_list(self) -> list[str]:
        """
        List of allowed CORS origins.

        Must be configured explicitly in production.
        """
        if self.CORS_ORIGINS == "*":
            if self.is_production:
                import logging
                logging.warning(
                    "CORS_ORIGINS='*' in production. "
                    "Configure explicit origins."
                )
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Returns the cached settings instance."""
    return Settings()


settings = get_settings()
