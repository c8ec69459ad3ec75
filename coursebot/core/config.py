"""
Configuration settings for the course assistant semantic engine
"""
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Course Assistant Semantic Engine"
    version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False

    # CORS
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ]

    # OpenAI (LLM completion collaborator)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_max_tokens: int = 800
    openai_temperature: float = 0.3
    openai_timeout: float = 30.0
    openai_max_retries: int = 1

    # AI analyzer
    ai_analyzer_timeout: float = 8.0  # seconds, hard bound on the LLM call
    ai_history_turns: int = 3

    # Key-value persistence (conversation state)
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 5.0
    kv_backend: str = "redis"  # "redis" or "memory"
    context_ttl_seconds: int = 1800  # 30 minutes, sliding
    context_history_limit: int = 20
    mentioned_entity_limit: int = 10

    # Decision controller
    ai_confidence_threshold: float = 0.3
    regex_strength_threshold: float = 0.8
    fallback_threshold: float = 0.3

    # Semantic normalizer
    strict_mode: bool = False
    log_unmapped: bool = True
    normalizer_max_cache_size: int = 2000

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from .env


# Global settings instance
settings = Settings()
