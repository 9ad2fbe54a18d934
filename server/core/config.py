"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from constants import CHILD_JOB_COUNT, DEEP_DIVE_CHILD_LIMIT


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="0.0.0.0", env="HOST")
    port: int = Field(default=3010, env="PORT", ge=1024, le=65535)
    debug: bool = Field(default=False, env="DEBUG")
    workers: int = Field(default=1, env="WORKERS", ge=1, le=8)
    cors_origins: List[str] = Field(default=["*"], env="CORS_ORIGINS")

    # Cache Configuration (remote tier)
    redis_url: Optional[str] = Field(default=None, env="REDIS_URL")
    redis_enabled: bool = Field(default=False, env="REDIS_ENABLED")
    cache_key_prefix: str = Field(default="flashforge", env="CACHE_KEY_PREFIX")

    # Tiered caches: (ttl seconds, max local entries)
    flashcard_cache_ttl: int = Field(default=86400, env="FLASHCARD_CACHE_TTL", ge=1)
    flashcard_cache_max_entries: int = Field(default=1000, env="FLASHCARD_CACHE_MAX_ENTRIES", ge=1)
    cache_llm_ttl: int = Field(default=86400, env="CACHE_LLM_TTL", ge=1)
    cache_llm_max_entries: int = Field(default=500, env="CACHE_LLM_MAX_ENTRIES", ge=1)
    cache_search_ttl: int = Field(default=3600, env="CACHE_SEARCH_TTL", ge=1)
    cache_search_max_entries: int = Field(default=100, env="CACHE_SEARCH_MAX_ENTRIES", ge=1)

    # Provider selection
    llm_priority: str = Field(default="ollama,anthropic,openai,gemini", env="LLM_PRIORITY")
    llm_default_provider: str = Field(default="ollama", env="LLM_DEFAULT_PROVIDER")
    mock_llm_enabled: bool = Field(default=False, env="MOCK_LLM_ENABLED")

    # Provider credentials / endpoints (all optional)
    ollama_base_url: str = Field(default="http://localhost:11434", env="OLLAMA_BASE_URL")
    ollama_model: str = Field(default="llama3.2", env="OLLAMA_MODEL")
    openai_api_key: Optional[str] = Field(default=None, env="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", env="OPENAI_MODEL")
    anthropic_api_key: Optional[str] = Field(default=None, env="ANTHROPIC_API_KEY")
    anthropic_model: str = Field(default="claude-3-5-haiku-20241022", env="ANTHROPIC_MODEL")
    google_ai_api_key: Optional[str] = Field(default=None, env="GOOGLE_AI_API_KEY")
    gemini_model: str = Field(default="gemini-1.5-flash", env="GEMINI_MODEL")
    llm_temperature: float = Field(default=0.4, env="LLM_TEMPERATURE", ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=4096, env="LLM_MAX_TOKENS", ge=256)

    # Web search tool
    serper_api_key: Optional[str] = Field(default=None, env="SERPER_API_KEY")
    serper_url: str = Field(default="https://google.serper.dev/search", env="SERPER_URL")
    search_result_limit: int = Field(default=5, env="SEARCH_RESULT_LIMIT", ge=1, le=20)

    # Circuit breakers per logical operation
    breaker_llm_timeout: float = Field(default=60.0, env="BREAKER_LLM_TIMEOUT", gt=0)
    breaker_llm_error_threshold: int = Field(default=50, env="BREAKER_LLM_ERROR_THRESHOLD", ge=1, le=100)
    breaker_llm_reset_timeout: float = Field(default=30.0, env="BREAKER_LLM_RESET_TIMEOUT", gt=0)
    breaker_search_timeout: float = Field(default=10.0, env="BREAKER_SEARCH_TIMEOUT", gt=0)
    breaker_search_error_threshold: int = Field(default=50, env="BREAKER_SEARCH_ERROR_THRESHOLD", ge=1, le=100)
    breaker_search_reset_timeout: float = Field(default=30.0, env="BREAKER_SEARCH_RESET_TIMEOUT", gt=0)
    breaker_rolling_window: float = Field(default=10.0, env="BREAKER_ROLLING_WINDOW", gt=0)

    # Job queue
    queue_enabled: bool = Field(default=True, env="QUEUE_ENABLED")
    use_local_queue: bool = Field(default=False, env="USE_LOCAL_QUEUE")
    queue_name: str = Field(default="flashcard-generation", env="QUEUE_NAME")
    worker_enabled: bool = Field(default=True, env="WORKER_ENABLED")
    worker_concurrency: int = Field(default=1, env="WORKER_CONCURRENCY", ge=1, le=32)
    job_retention_seconds: int = Field(default=3600, env="JOB_RETENTION_SECONDS", ge=60)
    job_poll_timeout: float = Field(default=1.0, env="JOB_POLL_TIMEOUT", gt=0)
    job_attempts: int = Field(default=3, env="JOB_ATTEMPTS", ge=1, le=10)
    job_backoff_delay: float = Field(default=2.0, env="JOB_BACKOFF_DELAY", ge=0)
    job_backoff_max_delay: float = Field(default=60.0, env="JOB_BACKOFF_MAX_DELAY", ge=0)
    job_lock_ttl: int = Field(default=30, env="JOB_LOCK_TTL", ge=1)
    dlq_enabled: bool = Field(default=False, env="DLQ_ENABLED")
    deep_dive_child_limit: int = Field(default=DEEP_DIVE_CHILD_LIMIT, env="DEEP_DIVE_CHILD_LIMIT", ge=0, le=10)
    child_job_count: int = Field(default=CHILD_JOB_COUNT, env="CHILD_JOB_COUNT", ge=1)

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: Literal["json", "console"] = Field(default="json", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")

    @field_validator("llm_priority")
    @classmethod
    def validate_llm_priority(cls, v):
        """Reject a priority list with no provider names."""
        if not [name for name in v.split(",") if name.strip()]:
            raise ValueError("LLM_PRIORITY must name at least one provider")
        return v

    @property
    def priority_list(self) -> List[str]:
        """Normalized provider priority order."""
        return [name.strip().lower() for name in self.llm_priority.split(",") if name.strip()]

    @property
    def default_provider(self) -> str:
        return self.llm_default_provider.strip().lower()

    @property
    def remote_cache_enabled(self) -> bool:
        return self.redis_enabled and bool(self.redis_url)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
        "env_nested_delimiter": "__",
    }
