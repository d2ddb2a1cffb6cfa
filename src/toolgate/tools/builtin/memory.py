"""query_tool_memory: let the agent look back at calls it already made."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from toolgate.core.errors import ErrorKind, ToolError, ToolValidationError
from toolgate.engine.memory import TimeRange
from toolgate.tools.base import HandlerResult

if TYPE_CHECKING:
    from collections.abc import Mapping

    from toolgate.tools.base import ToolContext

logger = logging.getLogger(__name__)

TOOL_ID = "query_tool_memory"


class QueryToolMemoryTool:
    """Lists past executions, or returns one call's full response."""

    async def execute(self, args: Mapping[str, Any], context: ToolContext) -> HandlerResult:
        memory = context.memory
        if memory is None:
            raise ToolValidationError("No tool memory is available for this session")

        call_id = args.get("get_full_response_for")
        if call_id:
            response = memory.full_response(call_id)
            if response is None:
                raise ToolError(
                    f"No full response available for call_id: {call_id}. "
                    "Only the most recent calls keep their full response.",
                    kind=ErrorKind.NOT_FOUND,
                    details={"call_id": call_id, "available_call_ids": memory.call_ids()},
                )
            return HandlerResult(data={"call_id": call_id, "full_response": response})

        tool_filter = args.get("filter_tool") or None
        time_range = TimeRange(args.get("filter_time_range", TimeRange.ALL.value))
        records = memory.query(
            tool_id=tool_filter,
            time_range=time_range,
            include_errors=bool(args.get("include_errors", False)),
            current_turn=context.turn_id,
            exclude=frozenset({TOOL_ID}),
        )
        logger.debug("[%s] Tool memory query matched %d call(s)", context.session_id, len(records))

        data: dict[str, Any] = {
            "tool_calls": [r.to_dict() for r in records],
            "count": len(records),
            "filters_applied": {
                "tool": tool_filter,
                "time_range": time_range.value,
                "include_errors": bool(args.get("include_errors", False)),
            },
        }
        if records:
            data["note"] = "Pass a call_id as get_full_response_for to see its full response."
        elif tool_filter:
            data["message"] = f"No {tool_filter} calls found in this conversation."
        else:
            data["message"] = "No tool calls found matching your filters."
        return HandlerResult(data=data, empty=False)
