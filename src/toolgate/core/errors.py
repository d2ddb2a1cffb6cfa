"""Error taxonomy and exception hierarchy for toolgate.

Every module imports from here. The hierarchy is:

    ToolgateError
    ├── ToolError(kind, details)
    │   ├── ToolValidationError
    │   ├── ToolNotFoundError(tool_id)
    │   ├── SessionInactiveError
    │   ├── ToolRateLimitError(retry_after)
    │   └── ToolTransientError
    ├── RegistryBuildError(problems)
    └── ConfigError

``ErrorKind`` is the closed vocabulary carried by error envelopes. Handlers
raise ``ToolError`` subclasses to signal a specific kind; the dispatcher is
the only place that turns an exception into a kind (``classify_exception``).
"""

from __future__ import annotations

import asyncio
import enum
import socket
from typing import Any


class ErrorKind(enum.Enum):
    """Failure kinds reported in error envelopes."""

    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    SESSION_INACTIVE = "SESSION_INACTIVE"
    RATE_LIMIT = "RATE_LIMIT"
    TRANSIENT = "TRANSIENT"
    LOOP_DETECTED = "LOOP_DETECTED"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"
    INTERNAL = "INTERNAL"

    @property
    def retryable(self) -> bool:
        """Whether a call failing with this kind may be reissued verbatim."""
        return self in _RETRYABLE_KINDS


_RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset({ErrorKind.RATE_LIMIT, ErrorKind.TRANSIENT})


class ToolgateError(Exception):
    """Base exception for all toolgate errors."""


# ─── Tool Errors ──────────────────────────────────────────────


class ToolError(ToolgateError):
    """A failure with a known kind, raised by handlers or engine components."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if kind is not None:
            self.kind = kind
        self.message = message
        self.details = details
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


class ToolValidationError(ToolError):
    """Arguments do not satisfy the tool's contract."""

    kind = ErrorKind.VALIDATION


class ToolNotFoundError(ToolError):
    """Tool is unknown, or not enabled for the requesting mode."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, tool_id: str, message: str | None = None) -> None:
        self.tool_id = tool_id
        super().__init__(message or f"Tool not found: {tool_id}")


class SessionInactiveError(ToolError):
    """Session state does not allow the requested operation."""

    kind = ErrorKind.SESSION_INACTIVE


class ToolRateLimitError(ToolError):
    """Upstream quota exhausted. Includes retry_after if available."""

    kind = ErrorKind.RATE_LIMIT

    def __init__(self, message: str = "Rate limited", retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        details = {"retry_after": retry_after} if retry_after is not None else None
        if retry_after is not None:
            message += f" (retry after {retry_after}s)"
        super().__init__(message, details=details)


class ToolTransientError(ToolError):
    """Temporary failure (network, timeout, overloaded upstream)."""

    kind = ErrorKind.TRANSIENT


# ─── Build / Configuration Errors ─────────────────────────────


class RegistryBuildError(ToolgateError):
    """One or more tool descriptors are invalid. Lists every problem."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        joined = "; ".join(self.problems)
        super().__init__(f"Invalid tool registry ({len(self.problems)} problem(s)): {joined}")


class ConfigError(ToolgateError):
    """Invalid configuration."""


# ─── Classification ───────────────────────────────────────────

# Network conditions only; a missing file or a permission error is not transient.
_TRANSIENT_TYPES: tuple[type[BaseException], ...] = (
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
    socket.gaierror,
)


def classify_exception(exc: BaseException) -> ErrorKind:
    """Map an exception raised by a handler to an error kind.

    ``ToolError`` keeps its own kind; network and timeout conditions are
    TRANSIENT; everything else is INTERNAL.
    """
    if isinstance(exc, ToolError):
        return exc.kind
    if isinstance(exc, _TRANSIENT_TYPES):
        return ErrorKind.TRANSIENT
    return ErrorKind.INTERNAL
