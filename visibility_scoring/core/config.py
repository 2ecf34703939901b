from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "vs_user"
    postgres_password: str = "changeme"
    postgres_db: str = "visibility"

    @property
    def postgres_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis (Celery broker + result backend)
    redis_url: str = "redis://localhost:6379/0"

    # App
    app_env: str = "development"
    app_debug: bool = False

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable

    # OpenRouter (primary batch-safe backend)
    openrouter_api_key: str = ""
    openrouter_model: str = "openai/gpt-4o-mini"
    openrouter_url: str = "https://openrouter.ai/api/v1/chat/completions"
    openrouter_site_url: str = ""
    openrouter_site_title: str = ""
    openrouter_timeout_seconds: float = 120.0

    # OpenAI (fallback batch-safe backend)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_url: str = "https://api.openai.com/v1/chat/completions"
    openai_timeout_seconds: float = 120.0

    # Ollama (local, serialize-only backend)
    ollama_enabled: bool = False
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "qwen2.5:latest"
    ollama_timeout_seconds: float = 300.0

    # Scoring pipeline
    scoring_default_limit: int = 50
    scoring_batch_concurrency: int = 5
    scoring_max_failed_claims: int = 10  # consecutive lost claims before giving up
    scoring_serial_failure_threshold: int = 5  # consecutive serial-mode failures before disabling the local backend
    scoring_backend_semantic_retries: int = 2
    scoring_backend_attempts: int = 3  # transient retries per backend call
    scoring_backend_retry_delay: float = 2.0
    scoring_max_answer_chars: int = 50_000

    # Store retries (transient errors only)
    store_retry_attempts: int = 3
    store_retry_base_delay: float = 1.0

    # Stuck-item reaper
    stuck_timeout_hours: float = 2.0  # processing longer than this -> timeout
    stuck_error_hours: float = 8.0  # processing longer than this -> error

    # Scheduler
    reaper_interval_minutes: int = 15
    dispatch_interval_minutes: int = 5


settings = Settings()
