"""Loop detection for tool calls within one conversation turn.

Two patterns are treated as a loop:

1. The same tool with the same arguments requested ``same_call_threshold``
   times (default 3) in one turn. Arguments are hashed over a canonical,
   key-order-independent serialization.
2. The same tool returning an empty result ``empty_result_threshold`` times
   in a row (default 2), whatever the arguments.

One detector belongs to one session and tracks only its current turn;
advancing the turn clears all counts. Callers serialize access per session.
"""

from __future__ import annotations

import enum
import hashlib
import json
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

# Mapping keys that hold the result list for search-style tools.
_RESULT_LIST_KEYS = ("results", "documents", "items")


class LoopType(enum.Enum):
    SAME_CALL_REPEATED = "SAME_CALL_REPEATED"
    EMPTY_RESULTS_REPEATED = "EMPTY_RESULTS_REPEATED"


@dataclass(frozen=True, slots=True)
class LoopVerdict:
    """A detected loop, with a message that coaches the agent."""

    loop_type: LoopType
    tool_id: str
    count: int
    message: str

    def details(self) -> dict[str, Any]:
        return {"loop_type": self.loop_type.value, "count": self.count}


def _normalize(value: Any) -> Any:
    """Stringify mapping keys so mixed or non-string keys can be sorted."""
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_normalize(v) for v in value]
    return value


def hash_arguments(arguments: Mapping[str, Any] | None) -> str:
    """Stable hash of call arguments; key order does not matter."""
    canonical = json.dumps(
        _normalize(dict(arguments or {})),
        sort_keys=True,
        separators=(",", ":"),
        default=str,
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def is_empty_result(data: Any) -> bool:
    """Recognise results that carry nothing useful."""
    if data is None:
        return True
    if isinstance(data, str):
        return not data.strip()
    if isinstance(data, list | tuple | set | frozenset):
        return len(data) == 0
    if isinstance(data, dict):
        if not data:
            return True
        for key in _RESULT_LIST_KEYS:
            value = data.get(key)
            if isinstance(value, list) and not value:
                return True
    return False


def _same_call_message(tool_id: str, count: int) -> str:
    return (
        f"Loop detected: {tool_id} was requested {count} times with identical arguments "
        "in this turn. Stop repeating this call. Use the results you already have, "
        "rephrase the query, or ask the user for clarification."
    )


def _empty_results_message(tool_id: str, count: int) -> str:
    return (
        f"{tool_id} returned empty results {count} times in a row. The information "
        "probably does not exist in this source. Stop searching with this tool; try a "
        "different tool, or tell the user what you could not find and ask for clarification."
    )


def _empty_verdict(tool_id: str, streak: int) -> LoopVerdict:
    return LoopVerdict(
        LoopType.EMPTY_RESULTS_REPEATED, tool_id, streak, _empty_results_message(tool_id, streak)
    )


class LoopDetector:
    """Per-session repetition tracker for the current turn."""

    def __init__(self, same_call_threshold: int = 3, empty_result_threshold: int = 2) -> None:
        self.same_call_threshold = same_call_threshold
        self.empty_result_threshold = empty_result_threshold
        self._turn_id: int | None = None
        self._calls: Counter[tuple[str, str]] = Counter()
        self._empty_streaks: Counter[str] = Counter()

    @property
    def turn_id(self) -> int | None:
        return self._turn_id

    def reset(self, turn_id: int) -> None:
        """Start tracking a new turn, discarding all prior counts."""
        self._turn_id = turn_id
        self._calls.clear()
        self._empty_streaks.clear()

    def admit(self, tool_id: str, arguments: Mapping[str, Any] | None) -> LoopVerdict | None:
        """Count an attempt and return a verdict if it forms a loop.

        Counting happens at admission so that concurrent identical calls
        cannot both pass.
        """
        streak = self._empty_streaks[tool_id]
        if streak >= self.empty_result_threshold:
            return _empty_verdict(tool_id, streak)

        key = (tool_id, hash_arguments(arguments))
        self._calls[key] += 1
        count = self._calls[key]
        if count >= self.same_call_threshold:
            return LoopVerdict(
                LoopType.SAME_CALL_REPEATED, tool_id, count, _same_call_message(tool_id, count)
            )
        return None

    def record_result(self, tool_id: str, *, empty: bool) -> LoopVerdict | None:
        """Track a successful result; return a verdict when empties pile up."""
        if not empty:
            self._empty_streaks[tool_id] = 0
            return None
        self._empty_streaks[tool_id] += 1
        streak = self._empty_streaks[tool_id]
        if streak >= self.empty_result_threshold:
            return _empty_verdict(tool_id, streak)
        return None

    def call_count(self, tool_id: str, arguments: Mapping[str, Any] | None) -> int:
        return self._calls[(tool_id, hash_arguments(arguments))]

    def empty_streak(self, tool_id: str) -> int:
        return self._empty_streaks[tool_id]
