"""Core types, errors, and shared utilities."""

from toolgate.core.errors import (
    ConfigError,
    ErrorKind,
    RegistryBuildError,
    SessionInactiveError,
    ToolError,
    ToolgateError,
    ToolNotFoundError,
    ToolRateLimitError,
    ToolTransientError,
    ToolValidationError,
    classify_exception,
)
from toolgate.core.retry import RetryConfig, is_retryable, retry_with_backoff

__all__ = [
    "ConfigError",
    "ErrorKind",
    "RegistryBuildError",
    "RetryConfig",
    "SessionInactiveError",
    "ToolError",
    "ToolNotFoundError",
    "ToolRateLimitError",
    "ToolTransientError",
    "ToolValidationError",
    "ToolgateError",
    "classify_exception",
    "is_retryable",
    "retry_with_backoff",
]
