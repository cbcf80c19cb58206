"""Settings via pydantic-settings with SPAWNKIT_ env prefix.

DB connection fields use validation_alias to read from the same unprefixed
env vars (DB_PASSWORD, DB_PORT, etc.) that docker-compose uses, so a single
.env file drives both the container and the Python app.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SPAWNKIT_", env_file=".env")

    # DB connection; unprefixed aliases match the usual deployment env vars
    db_host: str = Field("localhost", validation_alias="DB_HOST")
    db_port: int = Field(5432, validation_alias="DB_PORT")
    db_user: str = Field("spawnkit", validation_alias="DB_USER")
    db_password: str = Field("spawnkit_dev_password", validation_alias="DB_PASSWORD")
    db_name: str = Field("spawnkit", validation_alias="DB_NAME")

    db_pool_size: int = 10
    db_max_overflow: int = 5
    store_backend: Literal["postgres", "memory"] = "postgres"
    log_level: str = "info"

    # Runtime
    host: str = "0.0.0.0"
    port: int = 8000

    # Generation backend (OpenAI-compatible chat completions)
    groq_api_key: str = Field("", validation_alias="GROQ_API_KEY")
    model: str = Field("openai/gpt-oss-120b", validation_alias="GROQ_MODEL")
    api_base_url: str = "https://api.groq.com/openai/v1"
    max_tokens: int = 2000
    temperature: float = 0.7
    summary_max_tokens: int = 800
    api_timeout_connect: int = 10  # seconds
    api_timeout_read: int = 30  # seconds

    # Mode scheduler (hours in scheduler-local time)
    sleep_start_hour: int = 3
    sleep_end_hour: int = 5

    # Orchestrator retry policy
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0  # seconds, doubled per attempt
    retry_max_jitter: float = 1.0  # seconds
    turn_timeout: float = 30.0  # seconds per attempt
    inter_agent_delay: float = 0.1  # seconds, full-set runs only

    # Memory lifecycle
    history_retention: int = 10
    note_default_days: int = 7
    note_min_days: int = 1
    note_max_days: int = 14
    thought_ttl_seconds: int = 259200  # 3 days, storage backstop only

    # Prompt assembly
    tool_results_window: int = 10
    tool_results_max_age_hours: int = 2

    @model_validator(mode="after")
    def _validate_ranges(self) -> "Settings":
        if not 0 <= self.sleep_start_hour < self.sleep_end_hour <= 24:
            raise ValueError(
                f"sleep window [{self.sleep_start_hour}, {self.sleep_end_hour}) "
                "must be a non-empty range within a day"
            )
        if self.retry_max_attempts < 1:
            raise ValueError("retry_max_attempts must be >= 1")
        if self.history_retention < 1:
            raise ValueError("history_retention must be >= 1")
        if not 1 <= self.note_min_days <= self.note_default_days <= self.note_max_days:
            raise ValueError(
                "note expiry bounds must satisfy "
                "note_min_days <= note_default_days <= note_max_days"
            )
        return self

    @property
    def db_url(self) -> str:
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"
