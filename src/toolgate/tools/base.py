"""Tool protocol and data types.

Defines the ``ToolHandler`` protocol that every tool implementation must
satisfy, plus the enums and data classes shared between handlers, the
registry and the dispatcher.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from toolgate.engine.memory import ToolMemory
    from toolgate.engine.state import SessionStateView


class Mode(enum.Enum):
    """Which agent is calling."""

    TEXT = "text"
    VOICE = "voice"


class Category(enum.Enum):
    """Declared tool category. Retrieval calls have their own budget."""

    RETRIEVAL = "retrieval"
    ACTION = "action"
    SESSION_CONTROL = "session_control"
    UTILITY = "utility"


class Requirement(enum.Enum):
    """Session preconditions a tool may declare."""

    VOICE_SESSION_ACTIVE = "voice_session_active"
    VOICE_SESSION_INACTIVE = "voice_session_inactive"


class IntentType(enum.Enum):
    """Follow-up signals a tool may attach to its response."""

    START_VOICE_SESSION = "START_VOICE_SESSION"
    END_VOICE_SESSION = "END_VOICE_SESSION"
    IGNORE_USER = "IGNORE_USER"
    SUPPRESS_AUDIO = "SUPPRESS_AUDIO"
    SUPPRESS_TRANSCRIPT = "SUPPRESS_TRANSCRIPT"
    SET_PENDING_MESSAGE = "SET_PENDING_MESSAGE"


@dataclass(frozen=True, slots=True)
class Intent:
    """A suggested follow-up, e.g. "switch to voice"."""

    type: IntentType
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, **self.payload}


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """A registered tool: descriptor content plus its bound handler."""

    tool_id: str
    version: str
    description: str
    category: Category
    modes: frozenset[Mode]
    parameters: Mapping[str, Any]
    summary: str = ""
    requires: frozenset[Requirement] = frozenset()
    latency_budget_ms: int | None = None
    handler: ToolHandler | None = field(default=None, compare=False, repr=False)

    def supports(self, mode: Mode) -> bool:
        return mode in self.modes

    def provider_schema(self) -> dict[str, Any]:
        """Function-calling schema in the shape most providers accept."""
        return {
            "name": self.tool_id,
            "description": self.description,
            "parameters": dict(self.parameters),
        }


@dataclass(frozen=True, slots=True)
class ToolContext:
    """What a handler knows about the call beyond its arguments."""

    session_id: str
    mode: Mode
    turn_id: int
    state: SessionStateView
    tool_id: str
    tool_version: str
    category: Category
    user_id: str | None = None
    # Read-only for handlers; the dispatcher records each call after it settles.
    memory: ToolMemory | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True, slots=True)
class HandlerResult:
    """Successful handler output.

    ``empty`` overrides the loop detector's own emptiness check when set.
    """

    data: Any
    intents: tuple[Intent, ...] = ()
    empty: bool | None = None


@runtime_checkable
class ToolHandler(Protocol):
    """Protocol that all tool implementations must satisfy."""

    async def execute(self, args: Mapping[str, Any], context: ToolContext) -> HandlerResult:
        """Execute the tool with validated arguments.

        Raises:
            ToolError: To signal a specific failure kind.
            Exception: Any other failure; classified by the dispatcher.
        """
        ...
