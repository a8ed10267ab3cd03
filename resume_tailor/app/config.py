# resume_tailor/app/config.py

from pydantic import BaseModel, Field
import os
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseModel):
    # LLM config
    LLM_PROVIDER: str = Field(default=os.getenv("LLM_PROVIDER", "openrouter"))
    LLM_API_KEY: str = Field(default=os.getenv("LLM_API_KEY", ""))
    LLM_BASE_URL: str = Field(default=os.getenv("LLM_BASE_URL", "https://openrouter.ai/api/v1"))

    # Default models per stage; profiler/researcher/strategist can be overridden per job
    DEFAULT_PROFILER_MODEL: str = Field(default=os.getenv("DEFAULT_PROFILER_MODEL", "anthropic/claude-3-opus"))
    DEFAULT_RESEARCHER_MODEL: str = Field(default=os.getenv("DEFAULT_RESEARCHER_MODEL", "anthropic/claude-3-opus"))
    DEFAULT_STRATEGIST_MODEL: str = Field(default=os.getenv("DEFAULT_STRATEGIST_MODEL", "anthropic/claude-3-opus"))
    DEFAULT_FACT_CHECKER_MODEL: str = Field(default=os.getenv("DEFAULT_FACT_CHECKER_MODEL", "anthropic/claude-3-haiku"))

    # Per-call resilience
    LLM_REQUEST_TIMEOUT: float = Field(default=float(os.getenv("LLM_REQUEST_TIMEOUT", "60")))
    LLM_MAX_RETRIES: int = Field(default=int(os.getenv("LLM_MAX_RETRIES", "2")))
    LLM_RETRY_BASE_DELAY: float = Field(default=float(os.getenv("LLM_RETRY_BASE_DELAY", "2.0")))
    CIRCUIT_FAILURE_THRESHOLD: int = Field(default=int(os.getenv("CIRCUIT_FAILURE_THRESHOLD", "5")))
    CIRCUIT_RESET_TIMEOUT: float = Field(default=float(os.getenv("CIRCUIT_RESET_TIMEOUT", "60")))

    # Warmup
    WARMUP_ENABLED: bool = Field(default=os.getenv("WARMUP_ENABLED", "false").lower() == "true")
    WARMUP_PROMPT: str = Field(default=os.getenv("WARMUP_PROMPT", "Warm up. Reply with OK."))

    # Celery/Redis
    REDIS_URL: str = Field(default=os.getenv("REDIS_URL", "redis://localhost:6379/0"))
    WORKER_CONCURRENCY: int = Field(default=int(os.getenv("WORKER_CONCURRENCY", "3")))

    # Job store
    DATABASE_URL: str = Field(default=os.getenv("DATABASE_URL", "sqlite:///resume_tailor.db"))
    STORE_WRITE_RETRIES: int = Field(default=int(os.getenv("STORE_WRITE_RETRIES", "3")))

    # Job-level retry and recovery
    JOB_MAX_ATTEMPTS: int = Field(default=int(os.getenv("JOB_MAX_ATTEMPTS", "3")))
    JOB_RETRY_BASE_DELAY: float = Field(default=float(os.getenv("JOB_RETRY_BASE_DELAY", "5")))
    JOB_TIMEOUT: int = Field(default=int(os.getenv("JOB_TIMEOUT", "300")))  # 5 min
    LEASE_GRACE: int = Field(default=int(os.getenv("LEASE_GRACE", "60")))
    RECOVERY_INTERVAL: float = Field(default=float(os.getenv("RECOVERY_INTERVAL", "60")))
    RECOVERY_STALE_AFTER: int = Field(default=int(os.getenv("RECOVERY_STALE_AFTER", "120")))

    # Collaborators
    JD_FETCH_TIMEOUT: float = Field(default=float(os.getenv("JD_FETCH_TIMEOUT", "30")))

    LOG_LEVEL: str = Field(default=os.getenv("LOG_LEVEL", "INFO"))
    BACKEND_CORS_ORIGINS: str = Field(default=os.getenv("BACKEND_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"))

    def full_model_id(self, model: str) -> str:
        """
        Return provider-prefixed model id for LiteLLM, e.g.:
        - 'openrouter/anthropic/claude-3-opus'
        - 'ollama/llama3.2'
        - 'openai/gpt-4o-mini'
        """
        provider = self.LLM_PROVIDER.strip().lower()
        # If already prefixed with the provider, keep as is
        if model.startswith(f"{provider}/"):
            return model
        return f"{provider}/{model}"

    @property
    def lease_seconds(self) -> int:
        """How long a claimed job stays owned before it counts as abandoned."""
        return self.JOB_TIMEOUT + self.LEASE_GRACE


settings = Settings()
