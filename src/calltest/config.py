"""Configuration for calltest runs."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMProvider(str, Enum):
    """Completion service backing the simulator or the evaluator."""

    OPENAI = "openai"
    VLLM = "vllm"
    AZURE = "azure"
    ANTHROPIC = "anthropic"
    ANTHROPIC_VERTEX = "anthropic-vertex"
    GOOGLE_GENAI = "google-genai"
    GOOGLE_VERTEX = "google-vertex"


class LogLevel(str, Enum):
    """Logging level for the CLI."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class CallTestConfig(BaseSettings):
    """Configuration for simulated conversation test runs.

    Loaded from environment variables with CALLTEST_ prefix
    or from a .env.calltest file.
    """

    model_config = SettingsConfigDict(
        env_prefix="CALLTEST_",
        env_file=".env.calltest",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Simulation LLM settings (plays both the caller and the agent)
    llm_provider: LLMProvider = Field(
        default=LLMProvider.ANTHROPIC,
        description="LLM provider for conversation simulation",
    )
    llm_model: str = Field(
        default="claude-haiku-4-20250514",
        description="Model name for conversation simulation",
    )
    llm_api_key: str = Field(
        default="",
        description="API key for the simulation LLM",
    )
    llm_base_url: str | None = Field(
        default=None,
        description="Base URL for vLLM or Azure endpoint",
    )

    # Evaluation LLM settings
    eval_provider: LLMProvider = Field(
        default=LLMProvider.ANTHROPIC,
        description="LLM provider for transcript evaluation",
    )
    eval_model: str = Field(
        default="claude-sonnet-4-6-20250514",
        description="Model name for transcript evaluation",
    )
    eval_api_key: str = Field(
        default="",
        description="API key for the evaluation LLM",
    )
    eval_base_url: str | None = Field(
        default=None,
        description="Base URL for the evaluation model endpoint",
    )

    # Vertex AI settings (for anthropic-vertex and google-vertex providers)
    vertex_project_id: str | None = Field(
        default=None,
        description="Google Cloud project ID for Vertex AI",
    )
    vertex_location: str = Field(
        default="us-central1",
        description="Google Cloud region for Vertex AI",
    )

    # Orchestration
    max_concurrency: int = Field(
        default=3,
        ge=1,
        le=32,
        description="Maximum number of test cases simulated at once",
    )
    case_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Wall-clock limit for one conversation simulation",
    )
    default_max_turns: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Exchange limit for cases that do not set max_turns",
    )

    # Token budgets
    max_tokens_per_turn: int = Field(
        default=256,
        ge=16,
        description="Output token budget for one simulated utterance",
    )
    max_eval_tokens: int = Field(
        default=1024,
        ge=64,
        description="Output token budget for the evaluation JSON",
    )
    max_generation_tokens: int = Field(
        default=4096,
        ge=256,
        description="Output token budget for scenario generation",
    )

    # Cost estimation (USD per million tokens)
    input_price_per_million: float = Field(
        default=1.0,
        ge=0.0,
        description="Price per million input tokens",
    )
    output_price_per_million: float = Field(
        default=5.0,
        ge=0.0,
        description="Price per million output tokens",
    )

    # Storage and logging
    results_dir: Path = Field(
        default=Path(".calltest/runs"),
        description="Directory holding one JSON document per run",
    )
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )


@lru_cache
def get_config() -> CallTestConfig:
    """Get the process-wide configuration, loaded once from the environment."""
    return CallTestConfig()
