"""
Application Settings

Loaded once from the environment (and an optional .env file).
Import the shared instance with `from config import settings`.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the workflow engine and its collaborators."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = Field(default="sqlite:///./workflows.db")

    # LLM agents
    ANTHROPIC_API_KEY: Optional[str] = None
    DEFAULT_AGENT_MODEL: str = "claude-sonnet-4-20250514"
    DEFAULT_AGENT_MAX_TOKENS: int = 4096
    DEFAULT_AGENT_TEMPERATURE: float = 0.7
    AGENT_MAX_TOOL_CALLS: int = Field(default=10, ge=1)

    # Workflow engine guards (None = unbounded)
    WORKFLOW_MAX_STEPS: Optional[int] = Field(default=None, ge=1)
    WORKFLOW_STEP_TIMEOUT_SECONDS: Optional[float] = Field(default=None, gt=0)
    WORKFLOW_DETECT_VARIABLE_CONFLICTS: bool = True


settings = Settings()
