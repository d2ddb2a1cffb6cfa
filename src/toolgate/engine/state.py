"""Session state controller: voice sub-session and ignored users.

Pure logic module. No IO. Tracks orthogonal facts as independent
sub-states instead of one combined enum. The only mutation path is
:meth:`SessionStateController.apply`, which the dispatcher calls with the
intents of a tool call that has just succeeded.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from toolgate.core.errors import SessionInactiveError
from toolgate.tools.base import IntentType, Requirement

if TYPE_CHECKING:
    from collections.abc import Callable

    from toolgate.tools.base import Intent

logger = logging.getLogger(__name__)


class VoiceState(enum.Enum):
    """States of the voice sub-session."""

    INACTIVE = "inactive"
    ACTIVE = "active"


# Transitions allowed per intent. Starting while ACTIVE is an idempotent no-op.
_VALID_TRANSITIONS: dict[IntentType, dict[VoiceState, VoiceState]] = {
    IntentType.START_VOICE_SESSION: {
        VoiceState.INACTIVE: VoiceState.ACTIVE,
        VoiceState.ACTIVE: VoiceState.ACTIVE,
    },
    IntentType.END_VOICE_SESSION: {
        VoiceState.ACTIVE: VoiceState.INACTIVE,
    },
}


@dataclass(frozen=True, slots=True)
class SessionStateView:
    """Read-only snapshot handed to handlers and callers."""

    voice: VoiceState = VoiceState.INACTIVE
    voice_sessions_started: int = 0
    ignored_users: frozenset[str] = frozenset()
    pending_message: str | None = None
    suppress_audio: bool = False
    suppress_transcript: bool = False

    @property
    def voice_active(self) -> bool:
        return self.voice is VoiceState.ACTIVE


@dataclass
class _IgnoredUsers:
    # user id -> monotonic deadline, or None for the rest of the session
    entries: dict[str, float | None] = field(default_factory=dict)

    def add(self, user_id: str, until: float | None) -> None:
        self.entries[user_id] = until

    def active(self, now: float) -> frozenset[str]:
        return frozenset(u for u, until in self.entries.items() if until is None or until > now)


class SessionStateController:
    """Explicit state for one session.

    Voice sub-session: INACTIVE -> ACTIVE via ``START_VOICE_SESSION``
    (idempotent), ACTIVE -> INACTIVE via ``END_VOICE_SESSION``. Ending an
    inactive sub-session raises :class:`SessionInactiveError`.

    Ignored users: inert data read by upstream routing.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._voice = VoiceState.INACTIVE
        self._voice_sessions_started = 0
        self._ignored = _IgnoredUsers()
        self._pending_message: str | None = None
        self._suppress_audio = False
        self._suppress_transcript = False

    @property
    def voice(self) -> VoiceState:
        return self._voice

    def view(self) -> SessionStateView:
        """Immutable snapshot of the current state."""
        return SessionStateView(
            voice=self._voice,
            voice_sessions_started=self._voice_sessions_started,
            ignored_users=self._ignored.active(self._clock()),
            pending_message=self._pending_message,
            suppress_audio=self._suppress_audio,
            suppress_transcript=self._suppress_transcript,
        )

    def is_ignored(self, user_id: str) -> bool:
        return user_id in self._ignored.active(self._clock())

    # ── Guards ────────────────────────────────────────────────

    def check(self, requirement: Requirement) -> str | None:
        """Return an error message if a precondition fails, else None."""
        active = self._voice is VoiceState.ACTIVE
        if requirement is Requirement.VOICE_SESSION_ACTIVE and not active:
            return "No voice session is active"
        if requirement is Requirement.VOICE_SESSION_INACTIVE and active:
            return "A voice session is already active"
        return None

    def can_apply(self, intent: Intent) -> bool:
        """Check if an intent's transition is valid without raising."""
        transitions = _VALID_TRANSITIONS.get(intent.type)
        return transitions is None or self._voice in transitions

    # ── Mutation ──────────────────────────────────────────────

    def apply(self, intent: Intent) -> None:
        """Apply one intent from a successful tool call.

        Raises:
            SessionInactiveError: If the intent ends a voice session that is
                not active.
        """
        if intent.type in _VALID_TRANSITIONS:
            self._transition(intent)
        elif intent.type is IntentType.IGNORE_USER:
            user_id = intent.payload.get("user_id")
            if not isinstance(user_id, str) or not user_id:
                logger.warning("IGNORE_USER intent without user_id; ignored")
                return
            duration = intent.payload.get("duration_seconds")
            until = self._clock() + float(duration) if duration else None
            self._ignored.add(user_id, until)
        elif intent.type is IntentType.SUPPRESS_AUDIO:
            self._suppress_audio = bool(intent.payload.get("value", True))
        elif intent.type is IntentType.SUPPRESS_TRANSCRIPT:
            self._suppress_transcript = bool(intent.payload.get("value", True))
        elif intent.type is IntentType.SET_PENDING_MESSAGE:
            message = intent.payload.get("message")
            if isinstance(message, str) and message:
                self._pending_message = message

    def _transition(self, intent: Intent) -> None:
        current = self._voice
        target = _VALID_TRANSITIONS[intent.type].get(current)
        if target is None:
            msg = f"Cannot apply {intent.type.value}: voice session is {current.value}"
            raise SessionInactiveError(msg)
        if intent.type is IntentType.START_VOICE_SESSION and current is VoiceState.INACTIVE:
            self._voice_sessions_started += 1
        if current is not target:
            logger.debug("Voice session %s -> %s", current.value, target.value)
        self._voice = target
