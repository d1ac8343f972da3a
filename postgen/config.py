"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is malformed.
"""
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_env: str = "development"
    log_level: str = "INFO"
    allowed_origins: str = ""  # Comma-separated CORS origins

    # Session cache
    session_backend: str = Field(default="memory", pattern="^(memory|redis)$")
    redis_url: str = "redis://localhost:6379/0"
    session_ttl_seconds: int = Field(default=1800, gt=0)  # 30 minutes
    cache_default_ttl_seconds: int = Field(default=1800, gt=0)
    cache_key_prefix: str = "postgen"
    session_sweep_interval_seconds: int = 300  # 0 disables the sweeper

    # Anthropic (primary)
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    anthropic_max_tokens: int = 1024

    # OpenAI (fallback LLM + embeddings)
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_model: str = "gpt-4o-mini"

    llm_timeout_seconds: float = 60.0
    llm_default_temperature: float = 0.7

    # Embeddings
    embedding_model: str = "text-embedding-3-small"
    embedding_dim: int = 1536
    embedding_timeout_seconds: float = 20.0

    # Vector store
    vector_backend: str = Field(default="memory", pattern="^(memory|pgvector)$")
    database_url: str = ""
    database_pool_size: int = 10
    database_max_overflow: int = 5

    # Research provider (Perplexity)
    perplexity_api_key: str = ""
    perplexity_base_url: str = "https://api.perplexity.ai"
    perplexity_model: str = "sonar"
    research_timeout_seconds: float = 45.0

    # Content similarity
    similarity_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    similarity_prefilter_factor: float = Field(default=0.8, gt=0.0, le=1.0)
    similarity_limit: int = Field(default=3, ge=1)
    similarity_preview_chars: int = 200

    # Pipeline
    rag_limit: int = 5
    default_language: str = "vietnamese"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
