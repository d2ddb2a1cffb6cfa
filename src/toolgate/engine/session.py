"""Sessions: everything the engine keeps per conversation.

A :class:`Session` exclusively owns its turn counter, budget usage, loop
detector, state controller, metrics and tool memory. :class:`SessionStore`
creates sessions on first use and drops them on request or after an idle
timeout.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from toolgate.config.schema import LoopConfig, MemoryConfig, MetricsConfig
from toolgate.engine.budget import TurnUsage
from toolgate.engine.loop_detector import LoopDetector
from toolgate.engine.memory import ToolMemory
from toolgate.engine.metrics import SessionMetrics
from toolgate.engine.state import SessionStateController

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class Session:
    """Per-conversation engine state.

    ``lock`` serializes admission and recording for this session only;
    handlers run outside it.
    """

    def __init__(
        self,
        session_id: str,
        *,
        loop_config: LoopConfig | None = None,
        metrics_config: MetricsConfig | None = None,
        memory_config: MemoryConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        loop_cfg = loop_config or LoopConfig()
        metrics_cfg = metrics_config or MetricsConfig()
        memory_cfg = memory_config or MemoryConfig()
        self.session_id = session_id
        self.turn_id = 0
        self.turn_cancelled = False
        self.usage = TurnUsage()
        self.loops = LoopDetector(
            same_call_threshold=loop_cfg.same_call_threshold,
            empty_result_threshold=loop_cfg.empty_result_threshold,
        )
        self.loops.reset(self.turn_id)
        self.state = SessionStateController(clock=clock)
        self.metrics = SessionMetrics(
            session_id,
            max_samples=metrics_cfg.max_samples,
            chars_per_token=metrics_cfg.chars_per_token,
        )
        self.memory = ToolMemory(
            recent=memory_cfg.recent,
            summarized=memory_cfg.summarized,
            max_age=memory_cfg.max_age,
            clock=clock,
        )
        self.lock = asyncio.Lock()
        self.in_flight = 0
        self._clock = clock
        self.last_active = clock()

    def touch(self) -> None:
        self.last_active = self._clock()

    def advance_turn(self, turn_id: int) -> bool:
        """Move to ``turn_id`` if it is newer; reset per-turn state.

        Returns True if the turn changed.
        """
        if turn_id <= self.turn_id:
            return False
        self.turn_id = turn_id
        self.turn_cancelled = False
        self.usage = TurnUsage()
        self.loops.reset(turn_id)
        return True

    def closed_reason(self, turn_id: int) -> str | None:
        """Why calls for ``turn_id`` can no longer be admitted, if they can't."""
        if turn_id < self.turn_id:
            return f"Turn {turn_id} is over (current turn is {self.turn_id}); no more tool calls."
        if turn_id == self.turn_id and self.turn_cancelled:
            return f"Turn {turn_id} was cancelled; no more tool calls."
        return None

    def cancel_turn(self, turn_id: int) -> None:
        """Stop admitting calls for ``turn_id``. In-flight calls finish."""
        if turn_id < self.turn_id:
            return
        self.advance_turn(turn_id)
        self.turn_cancelled = True


class SessionStore:
    """Sessions of one dispatcher, keyed by session id."""

    def __init__(
        self,
        *,
        loop_config: LoopConfig | None = None,
        metrics_config: MetricsConfig | None = None,
        memory_config: MemoryConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loop_config = loop_config or LoopConfig()
        self._metrics_config = metrics_config or MetricsConfig()
        self._memory_config = memory_config or MemoryConfig()
        self._clock = clock
        self._sessions: dict[str, Session] = {}

    def get_or_create(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = Session(
                session_id,
                loop_config=self._loop_config,
                metrics_config=self._metrics_config,
                memory_config=self._memory_config,
                clock=self._clock,
            )
            self._sessions[session_id] = session
            logger.debug("Session %s created", session_id)
        return session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def drop(self, session_id: str) -> Session | None:
        return self._sessions.pop(session_id, None)

    def expire_idle(self, idle_timeout: float) -> list[str]:
        """Drop sessions idle for longer than ``idle_timeout`` seconds.

        Sessions with calls in flight are kept.
        """
        cutoff = self._clock() - idle_timeout
        expired = [
            sid
            for sid, s in self._sessions.items()
            if s.last_active < cutoff and s.in_flight == 0
        ]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info("Expired %d idle session(s)", len(expired))
        return expired

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions
