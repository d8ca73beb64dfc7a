"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "workspace-agent"
    app_env: str = "dev"
    app_debug: bool = False
    database_url: str = ""

    # Engine bounds.
    max_retries: int = Field(default=2, ge=0)
    max_iterations_per_step: int = Field(default=5, ge=1)
    max_iterations: int = Field(default=50, ge=1)
    max_plan_steps: int = Field(default=10, ge=1)

    # Context assembly and history compaction.
    history_compaction_threshold: int = Field(default=20, ge=1)
    history_recent_ratio: float = Field(default=0.7, gt=0.0, le=1.0)
    summary_max_pairs: int = Field(default=10, ge=1)
    summary_chars_per_turn: int = Field(default=200, ge=10)
    memory_context_limit: int = Field(default=10, ge=0)
    learning_context_limit: int = Field(default=5, ge=0)

    tool_timeout_s: float = Field(default=10.0, ge=0.01)
    image_directory: str = "public/images"

    llm_provider: str = "openai"
    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_timeout_s: float = Field(default=60.0, ge=0.5)
    llm_max_retries: int = Field(default=1, ge=0)
    llm_backoff_s: float = Field(default=0.2, ge=0.0)
    openai_api_key: str = ""

    model_config = SettingsConfigDict(
        env_prefix="WORKSPACE_AGENT_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")

    def resolved_openai_api_key(self) -> str:
        return self.openai_api_key or os.getenv("OPENAI_API_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
