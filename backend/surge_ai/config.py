"""
Configuration management for the Surge SEO AI gateway
Environment-based settings with secure defaults
"""

from functools import lru_cache
from typing import Dict, List, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "surge-seo"
    APP_ENV: str = "development"  # development, staging, production
    DEBUG: bool = False
    API_VERSION: str = "v1"
    LOG_LEVEL: str = "INFO"

    # Attribution headers sent to OpenRouter
    APP_URL: str = "https://surge-seo.com"
    APP_TITLE: str = "Surge SEO Platform"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Database
    DATABASE_URL: str  # Required
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # JWT Auth (tokens are issued by the auth service, only verified here)
    JWT_SECRET_KEY: str  # Required
    JWT_ALGORITHM: str = "HS256"

    # LLM Provider API Keys (platform-level, callers may supply their own)
    OPENAI_API_KEY: Optional[str] = None
    ANTHROPIC_API_KEY: Optional[str] = None
    MISTRAL_API_KEY: Optional[str] = None
    TOGETHER_API_KEY: Optional[str] = None
    OPENROUTER_API_KEY: Optional[str] = None

    # Provider endpoints
    OPENAI_API_BASE: str = "https://api.openai.com/v1"
    ANTHROPIC_API_BASE: str = "https://api.anthropic.com/v1"
    ANTHROPIC_API_VERSION: str = "2023-06-01"
    MISTRAL_API_BASE: str = "https://api.mistral.ai/v1"
    TOGETHER_API_BASE: str = "https://api.together.xyz/v1"
    OPENROUTER_API_BASE: str = "https://openrouter.ai/api/v1"
    OLLAMA_BASE_URL: str = "http://localhost:11434"

    # LLM Execution Settings
    LLM_DEFAULT_TEMPERATURE: float = 0.7
    LLM_DEFAULT_MAX_TOKENS: int = 2000
    LLM_REQUEST_TIMEOUT: int = 60  # seconds, applies to every upstream call

    # Monthly token limits per subscription tier
    TOKEN_LIMIT_FREE: int = 100_000
    TOKEN_LIMIT_STANDARD: int = 500_000
    TOKEN_LIMIT_PREMIUM: int = 2_000_000

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def token_limits(self) -> Dict[str, int]:
        return {
            "free": self.TOKEN_LIMIT_FREE,
            "standard": self.TOKEN_LIMIT_STANDARD,
            "premium": self.TOKEN_LIMIT_PREMIUM,
        }

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings loader"""
    return Settings()
