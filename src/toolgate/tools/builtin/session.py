"""Session control tools.

These handlers never touch session state directly. They return intents;
the dispatcher applies them to the session's state controller once the call
has succeeded.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from toolgate.core.errors import ToolValidationError
from toolgate.tools.base import HandlerResult, Intent, IntentType

if TYPE_CHECKING:
    from collections.abc import Mapping

    from toolgate.tools.base import ToolContext

logger = logging.getLogger(__name__)


class StartVoiceSessionTool:
    """Ask the client to switch the conversation to voice."""

    async def execute(self, args: Mapping[str, Any], context: ToolContext) -> HandlerResult:
        pending = args.get("pending_request") or None
        already_active = context.state.voice_active
        logger.info(
            "[%s] start_voice_session%s",
            context.session_id,
            " (already active)" if already_active else "",
        )
        intents = [Intent(IntentType.START_VOICE_SESSION, {"pending_request": pending})]
        if pending:
            intents.append(Intent(IntentType.SET_PENDING_MESSAGE, {"message": pending}))
        return HandlerResult(
            data={
                "voice_session_requested": True,
                "already_active": already_active,
                "pending_request": pending,
            },
            intents=tuple(intents),
        )


class EndVoiceSessionTool:
    """End the voice sub-session; text chat stays available."""

    async def execute(self, args: Mapping[str, Any], context: ToolContext) -> HandlerResult:
        reason = args["reason"]
        final_message = args.get("final_message") or None
        logger.info("[%s] end_voice_session: %s", context.session_id, reason)
        after = "current_turn" if final_message else "immediate"
        return HandlerResult(
            data={"session_ended": True, "reason": reason, "final_message": final_message},
            intents=(Intent(IntentType.END_VOICE_SESSION, {"after": after}),),
        )


class IgnoreUserTool:
    """Stop responding to an abusive user for a while and end the voice session."""

    async def execute(self, args: Mapping[str, Any], context: ToolContext) -> HandlerResult:
        user_id = args.get("user_id") or context.user_id
        if not user_id:
            msg = "ignore_user needs a user_id argument when the call has no user"
            raise ToolValidationError(msg)
        duration = int(args["duration_seconds"])
        farewell = args["farewell_message"]
        logger.info("[%s] ignoring user %s for %ds", context.session_id, user_id, duration)
        return HandlerResult(
            data={
                "user_id": user_id,
                "duration_seconds": duration,
                "farewell_message": farewell,
            },
            intents=(
                Intent(
                    IntentType.IGNORE_USER,
                    {"user_id": user_id, "duration_seconds": duration},
                ),
                Intent(IntentType.END_VOICE_SESSION, {"after": "current_turn"}),
                Intent(IntentType.SUPPRESS_TRANSCRIPT, {"value": True}),
            ),
        )
