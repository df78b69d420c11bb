"""Orchestrator configuration using Pydantic Settings."""
from pathlib import Path
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Orchestrator settings loaded from environment variables / .env file."""

    # Application
    APP_NAME: str = "Opportunity Jobs"
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    # Backend job service
    API_BASE_URL: str = "http://localhost:7300"
    API_TOKEN: str = ""                   # optional bearer token, passed through as-is
    REQUEST_TIMEOUT_SECONDS: float = 30.0  # per status/submit request
    CONNECT_TIMEOUT_SECONDS: float = 10.0

    # Polling
    POLL_INTERVAL_SECONDS: float = 5.0
    MAX_POLL_ATTEMPTS: int = 120          # 120 x 5s = 10 minutes

    # Generation defaults
    DEFAULT_GENERATION_LIMIT: int = 100

    # Recovery checkpoint
    JOB_STORE_BACKEND: str = "file"       # "file", "redis", "memory"
    JOB_STORE_PATH: str = "./data/active_job.json"
    REDIS_URL: str = "redis://localhost:6379/0"
    JOB_STORE_KEY_PREFIX: str = "opportunity_jobs:"
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 2.0

    @property
    def job_store_path(self) -> Path:
        return Path(self.JOB_STORE_PATH)

    @property
    def max_wait_seconds(self) -> float:
        return self.POLL_INTERVAL_SECONDS * self.MAX_POLL_ATTEMPTS

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
