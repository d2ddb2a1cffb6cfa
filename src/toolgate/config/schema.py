"""Pydantic models for toolgate configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field


class BudgetConfig(BaseModel):
    """Per-turn call caps and timeouts for one agent mode."""

    max_retrieval_calls: int = Field(default=5, ge=0)
    max_total_calls: int = Field(default=10, ge=0)
    # Hard outer timeout in seconds; the call is abandoned and reported TRANSIENT.
    request_timeout: float | None = 30.0
    # Soft per-call target in seconds; misses are logged and counted only.
    latency_target: float | None = None
    # Optional hard cutoff applied on top of a soft target.
    hard_ceiling: float | None = None


def _voice_budget() -> BudgetConfig:
    return BudgetConfig(
        max_retrieval_calls=2,
        max_total_calls=3,
        request_timeout=None,
        latency_target=0.8,
    )


class BudgetsConfig(BaseModel):
    """Budgets for both agent modes."""

    text: BudgetConfig = Field(default_factory=BudgetConfig)
    voice: BudgetConfig = Field(default_factory=_voice_budget)


class LoopConfig(BaseModel):
    """Loop detector thresholds."""

    same_call_threshold: int = Field(default=3, ge=2)
    empty_result_threshold: int = Field(default=2, ge=1)


class MetricsConfig(BaseModel):
    """Per-session metrics accumulation."""

    max_samples: int = Field(default=1000, ge=1)
    chars_per_token: int = Field(default=4, ge=1)


class MemoryConfig(BaseModel):
    """Per-session memory of executed tool calls."""

    # Newest records keep their full response; the next ones only a summary.
    recent: int = Field(default=10, ge=0)
    summarized: int = Field(default=40, ge=0)
    max_age: float | None = 3600.0


class SessionsConfig(BaseModel):
    """Session lifecycle settings."""

    idle_timeout: float = 1800.0


class RegistryConfig(BaseModel):
    """Where tool descriptors come from."""

    # Directory of *.toml / *.json descriptors; empty means built-in tools only.
    descriptors_path: str = ""


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: str = ""
    structured: bool = False


class ToolgateConfig(BaseModel):
    """Top-level configuration for toolgate."""

    budgets: BudgetsConfig = Field(default_factory=BudgetsConfig)
    loop: LoopConfig = Field(default_factory=LoopConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
