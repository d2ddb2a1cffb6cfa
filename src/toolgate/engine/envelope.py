"""Response envelopes returned for every tool call.

Two tagged variants, :class:`Ok` and :class:`Err`. ``to_dict`` produces the
wire shape consumed by agents::

    {"ok": bool, "data"?: ..., "error"?: {...}, "intents": [...], "meta": {...}}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from toolgate.core.errors import ErrorKind

if TYPE_CHECKING:
    from toolgate.tools.base import Intent


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    """Structured error: kind, human message, retryable flag."""

    kind: ErrorKind
    message: str
    details: dict[str, Any] | None = None

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            out["details"] = dict(self.details)
        return out


@dataclass(frozen=True, slots=True)
class ResponseMeta:
    """Execution metadata attached to every envelope."""

    tool_id: str
    duration_ms: float
    registry_version: str
    mode: str
    tool_version: str | None = None
    category: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "toolId": self.tool_id,
            "duration": round(self.duration_ms, 3),
            "toolVersion": self.tool_version,
            "registryVersion": self.registry_version,
            "category": self.category,
            "mode": self.mode,
        }


@dataclass(frozen=True, slots=True)
class Ok:
    """Successful call."""

    data: Any
    meta: ResponseMeta
    intents: tuple[Intent, ...] = field(default=())
    ok: Literal[True] = field(default=True, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": True,
            "data": self.data,
            "intents": [i.to_dict() for i in self.intents],
            "meta": self.meta.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class Err:
    """Failed call."""

    error: ErrorInfo
    meta: ResponseMeta
    intents: tuple[Intent, ...] = field(default=())
    ok: Literal[False] = field(default=False, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": False,
            "error": self.error.to_dict(),
            "intents": [i.to_dict() for i in self.intents],
            "meta": self.meta.to_dict(),
        }


ToolResponse = Ok | Err
