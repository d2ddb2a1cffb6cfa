"""Session-scoped memory of executed tool calls.

Lets an agent look back at what it already ran instead of running it again.
Records are kept in a sliding window: the newest ``recent`` records keep
their full response, the next ``summarized`` keep only a one-line summary,
and anything older (or past ``max_age`` seconds) is dropped.

Summaries are built by rule from the arguments and the result shape, so
recording never waits on a model.
"""

from __future__ import annotations

import enum
import itertools
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

_RESULT_LIST_KEYS = ("results", "documents", "items")


class TimeRange(enum.Enum):
    LAST_TURN = "last_turn"
    LAST_3_TURNS = "last_3_turns"
    ALL = "all"


@dataclass(slots=True)
class ToolCallRecord:
    """One executed call. ``data`` is None once only the summary is kept."""

    call_id: str
    tool_id: str
    turn_id: int
    arguments: dict[str, Any]
    ok: bool
    summary: str
    recorded_at: float
    duration_ms: float | None = None
    data: Any = None
    error: dict[str, Any] | None = None
    full: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Short form listed to the agent."""
        return {
            "call_id": self.call_id,
            "tool": self.tool_id,
            "args_summary": summarize_arguments(self.arguments),
            "turn": self.turn_id,
            "summary": self.summary,
            "success": self.ok,
            "duration_ms": round(self.duration_ms or 0.0, 3),
        }

    def full_response(self) -> dict[str, Any]:
        out: dict[str, Any] = {"ok": self.ok}
        if self.ok:
            out["data"] = self.data
        else:
            out["error"] = self.error
        return out


# ── Summaries ────────────────────────────────────────────────────


def summarize_arguments(arguments: Mapping[str, Any] | None) -> str:
    """``query='...'`` style digest of the most telling argument."""
    if not arguments:
        return "no arguments"
    for key in ("query", "id"):
        value = arguments.get(key)
        if value:
            return f"{key}='{value}'"
    parts = []
    for key, value in list(arguments.items())[:2]:
        if isinstance(value, str):
            shown = value if len(value) <= 30 else value[:30] + "..."
            parts.append(f"{key}='{shown}'")
        else:
            parts.append(f"{key}={value!r}")
    return ", ".join(parts)


def count_results(data: Any) -> int | None:
    """Number of results in a search-style payload, if it has that shape."""
    if isinstance(data, list):
        return len(data)
    if isinstance(data, dict):
        for key in _RESULT_LIST_KEYS:
            if isinstance(data.get(key), list):
                return len(data[key])
        if isinstance(data.get("count"), int):
            return data["count"]
    return None


def summarize_call(
    tool_id: str,
    arguments: Mapping[str, Any] | None,
    *,
    ok: bool,
    data: Any = None,
    error: Mapping[str, Any] | None = None,
) -> str:
    args = summarize_arguments(arguments)
    if not ok:
        kind = (error or {}).get("kind", "unknown")
        message = (error or {}).get("message", "unknown error")
        return f"{tool_id} failed: {args}. Error: {kind} - {message}"
    if data is None:
        return f"{tool_id} executed: {args}. No data returned."
    found = count_results(data)
    if found is not None:
        return f"{tool_id} executed: {args}. Found {found} result(s)."
    return f"{tool_id} executed: {args}. Completed successfully."


# ── Store ────────────────────────────────────────────────────────


class ToolMemory:
    """Executed calls of one session, newest first on query.

    Mutated only by the dispatcher; handlers read it through
    :class:`~toolgate.tools.base.ToolContext`.
    """

    def __init__(
        self,
        *,
        recent: int = 10,
        summarized: int = 40,
        max_age: float | None = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.recent = recent
        self.summarized = summarized
        self.max_age = max_age
        self._clock = clock
        self._records: list[ToolCallRecord] = []
        self._ids = itertools.count(1)

    def next_call_id(self) -> str:
        return f"call-{next(self._ids)}"

    def record(
        self,
        *,
        call_id: str,
        tool_id: str,
        turn_id: int,
        arguments: Mapping[str, Any] | None,
        ok: bool,
        data: Any = None,
        error: Mapping[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> ToolCallRecord:
        record = ToolCallRecord(
            call_id=call_id,
            tool_id=tool_id,
            turn_id=turn_id,
            arguments=dict(arguments or {}),
            ok=ok,
            summary=summarize_call(tool_id, arguments, ok=ok, data=data, error=error),
            recorded_at=self._clock(),
            duration_ms=duration_ms,
            data=data if ok else None,
            error=dict(error) if error else None,
        )
        self._records.append(record)
        self._apply_window()
        return record

    def query(
        self,
        *,
        tool_id: str | None = None,
        time_range: TimeRange = TimeRange.ALL,
        include_errors: bool = False,
        current_turn: int | None = None,
        exclude: frozenset[str] = frozenset(),
    ) -> list[ToolCallRecord]:
        """Matching records, most recent first.

        ``current_turn`` anchors the time range; it defaults to the latest
        recorded turn.
        """
        self._apply_window()
        turn = current_turn if current_turn is not None else self.current_turn
        oldest = {
            TimeRange.LAST_TURN: turn,
            TimeRange.LAST_3_TURNS: turn - 2,
            TimeRange.ALL: None,
        }[time_range]
        matches = [
            r
            for r in self._records
            if (tool_id is None or r.tool_id == tool_id)
            and (tool_id == r.tool_id or r.tool_id not in exclude)
            and (include_errors or r.ok)
            and (oldest is None or r.turn_id >= oldest)
        ]
        return matches[::-1]

    def get(self, call_id: str) -> ToolCallRecord | None:
        for record in self._records:
            if record.call_id == call_id:
                return record
        return None

    def full_response(self, call_id: str) -> dict[str, Any] | None:
        """The stored response, or None once only the summary is left."""
        record = self.get(call_id)
        if record is None or not record.full:
            return None
        return record.full_response()

    def call_ids(self) -> list[str]:
        return [r.call_id for r in reversed(self._records)]

    @property
    def current_turn(self) -> int:
        return max((r.turn_id for r in self._records), default=0)

    def __len__(self) -> int:
        return len(self._records)

    def _apply_window(self) -> None:
        if self.max_age is not None:
            cutoff = self._clock() - self.max_age
            self._records = [r for r in self._records if r.recorded_at >= cutoff]
        keep = self.recent + self.summarized
        if len(self._records) > keep:
            del self._records[: len(self._records) - keep]
        for record in self._records[: max(0, len(self._records) - self.recent)]:
            if record.full:
                record.full = False
                record.data = None
                record.error = None
