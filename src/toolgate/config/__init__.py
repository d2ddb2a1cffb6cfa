"""Configuration loading and validation."""

from toolgate.config.loader import load_config
from toolgate.config.schema import (
    BudgetConfig,
    BudgetsConfig,
    LoggingConfig,
    LoopConfig,
    MemoryConfig,
    MetricsConfig,
    RegistryConfig,
    SessionsConfig,
    ToolgateConfig,
)

__all__ = [
    "BudgetConfig",
    "BudgetsConfig",
    "LoggingConfig",
    "LoopConfig",
    "MemoryConfig",
    "MetricsConfig",
    "RegistryConfig",
    "SessionsConfig",
    "ToolgateConfig",
    "load_config",
]
