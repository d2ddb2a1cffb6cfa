"""Dispatcher: the single execution path for every tool call.

For each :class:`CallRequest` the dispatcher resolves the tool, validates
arguments, checks session preconditions, the per-turn budget and the loop
detector, invokes the handler with a bounded timeout, records the outcome,
and returns an envelope. Text and voice share the path; only the
:class:`~toolgate.engine.budget.Budget` differs.

No exception escapes :meth:`Dispatcher.execute`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from toolgate.config.schema import ToolgateConfig
from toolgate.core.errors import (
    ErrorKind,
    SessionInactiveError,
    ToolError,
    ToolNotFoundError,
    classify_exception,
)
from toolgate.engine.budget import Budget, budgets_from_config
from toolgate.engine.envelope import Err, ErrorInfo, Ok, ResponseMeta
from toolgate.engine.loop_detector import is_empty_result
from toolgate.engine.metrics import payload_size
from toolgate.engine.session import Session, SessionStore
from toolgate.tools.base import HandlerResult, Mode, ToolContext

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from toolgate.engine.envelope import ToolResponse
    from toolgate.engine.metrics import MetricsSnapshot
    from toolgate.engine.state import SessionStateView
    from toolgate.tools.base import Intent, ToolDefinition
    from toolgate.tools.registry import ToolDescriptor, ToolRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CallRequest:
    """An agent's request to run one tool."""

    tool_id: str
    session_id: str
    turn_id: int
    mode: Mode = Mode.TEXT
    arguments: Mapping[str, Any] = field(default_factory=dict)
    user_id: str | None = None
    call_id: str | None = None


@dataclass(slots=True)
class _Outcome:
    """What happened to one call, before it becomes an envelope."""

    data: Any = None
    error: ErrorInfo | None = None
    intents: tuple[Intent, ...] = ()
    invoked: bool = False
    empty: bool = False
    duration_ms: float | None = None
    missed_target: bool = False


class Dispatcher:
    """Executes tool calls against a registry under per-session policy.

    The registry is held by reference and replaced only through
    :meth:`rebuild_registry`; each call pins the registry it started with.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        config: ToolgateConfig | None = None,
        *,
        sessions: SessionStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._config = config or ToolgateConfig()
        self._budgets = budgets_from_config(self._config.budgets)
        self._sessions = sessions or SessionStore(
            loop_config=self._config.loop,
            metrics_config=self._config.metrics,
            memory_config=self._config.memory,
            clock=clock,
        )

    # ── Registry ──────────────────────────────────────────────

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def rebuild_registry(
        self, descriptors: Iterable[ToolDescriptor | Mapping[str, Any]]
    ) -> ToolRegistry:
        """Swap in a registry rebuilt from ``descriptors``.

        Raises:
            RegistryBuildError: If the new descriptors are invalid; the
                current registry stays in place.
        """
        new = self._registry.rebuild(descriptors)
        old_version = self._registry.version
        self._registry = new
        logger.info("Tool registry replaced: v%s -> v%s", old_version, new.version)
        return new

    def budget(self, mode: Mode) -> Budget:
        return self._budgets[mode]

    # ── Execution ─────────────────────────────────────────────

    async def execute(self, request: CallRequest) -> ToolResponse:
        """Run one tool call and return its envelope."""
        started = time.perf_counter()
        registry = self._registry
        session = self._sessions.get_or_create(request.session_id)
        session.touch()
        session.in_flight += 1
        try:
            return await self._execute(request, registry, session, started)
        except Exception:
            logger.exception("Unexpected dispatcher failure for %s", request.tool_id)
            message = f"Internal error while running {request.tool_id}"
            error = ErrorInfo(ErrorKind.INTERNAL, message)
            return Err(error, self._meta(request, registry, None, started))
        finally:
            session.in_flight -= 1
            session.touch()

    async def _execute(
        self,
        request: CallRequest,
        registry: ToolRegistry,
        session: Session,
        started: float,
    ) -> ToolResponse:
        try:
            definition = registry.resolve(request.tool_id, request.mode)
        except ToolNotFoundError as e:
            logger.warning("[%s] Unknown tool: %s", request.session_id, request.tool_id)
            self._safely(session.metrics.record_unknown_tool)
            error = ErrorInfo(ErrorKind.NOT_FOUND, e.message)
            return Err(error, self._meta(request, registry, None, started))

        raw = request.arguments if request.arguments is not None else {}
        arguments: Any = dict(raw) if hasattr(raw, "keys") else raw
        outcome = self._validate(registry, definition, arguments)
        if outcome is None:
            outcome = await self._admit(request, definition, session, arguments)
        if outcome is None:
            outcome = await self._invoke(request, definition, session, arguments)
            await self._settle(request, definition, session, outcome)

        self._record(request, session, definition, arguments, outcome)
        meta = self._meta(request, registry, definition, started)
        self._audit(request, definition, registry, outcome, meta)

        if outcome.error is not None:
            return Err(outcome.error, meta, outcome.intents)
        return Ok(outcome.data, meta, outcome.intents)

    def _validate(
        self, registry: ToolRegistry, definition: ToolDefinition, arguments: dict[str, Any]
    ) -> _Outcome | None:
        violations = registry.validate_arguments(definition.tool_id, arguments)
        if not violations:
            return None
        message = (
            f"Invalid arguments for {definition.tool_id}: {'; '.join(violations)}. "
            "Fix these arguments before calling again."
        )
        return _Outcome(
            error=ErrorInfo(ErrorKind.VALIDATION, message, {"violations": violations})
        )

    async def _admit(
        self,
        request: CallRequest,
        definition: ToolDefinition,
        session: Session,
        arguments: dict[str, Any],
    ) -> _Outcome | None:
        """Turn, precondition, budget and loop checks; atomic per session."""
        async with session.lock:
            session.advance_turn(request.turn_id)

            for requirement in sorted(definition.requires, key=lambda r: r.value):
                problem = session.state.check(requirement)
                if problem is not None:
                    message = f"Cannot run {definition.tool_id}: {problem}."
                    return _Outcome(error=ErrorInfo(ErrorKind.SESSION_INACTIVE, message))

            closed = session.closed_reason(request.turn_id)
            if closed is not None:
                return _Outcome(error=ErrorInfo(ErrorKind.BUDGET_EXCEEDED, closed))

            refusal = session.usage.try_admit(self._budgets[request.mode], definition.category)
            if refusal is not None:
                logger.warning("[%s] %s", request.session_id, refusal)
                return _Outcome(error=ErrorInfo(ErrorKind.BUDGET_EXCEEDED, refusal))

            verdict = session.loops.admit(definition.tool_id, arguments)
            if verdict is not None:
                session.usage.release(definition.category)
                logger.warning("[%s] %s", request.session_id, verdict.message)
                return _Outcome(
                    error=ErrorInfo(ErrorKind.LOOP_DETECTED, verdict.message, verdict.details())
                )
        return None

    async def _invoke(
        self,
        request: CallRequest,
        definition: ToolDefinition,
        session: Session,
        arguments: dict[str, Any],
    ) -> _Outcome:
        """Call the handler outside the session lock."""
        budget = self._budgets[request.mode]
        context = ToolContext(
            session_id=request.session_id,
            mode=request.mode,
            turn_id=request.turn_id,
            state=session.state.view(),
            tool_id=definition.tool_id,
            tool_version=definition.version,
            category=definition.category,
            user_id=request.user_id,
            memory=session.memory,
        )
        handler = definition.handler
        if handler is None:
            message = f"Tool {definition.tool_id} has no handler"
            return _Outcome(error=ErrorInfo(ErrorKind.INTERNAL, message))

        timeout = budget.hard_timeout
        outcome = _Outcome(invoked=True)
        t0 = time.perf_counter()
        try:
            if timeout is not None:
                result = await asyncio.wait_for(handler.execute(arguments, context), timeout)
            else:
                result = await handler.execute(arguments, context)
        except TimeoutError:
            message = f"{definition.tool_id} timed out"
            if timeout is not None:
                message += f" after {timeout:g}s"
            outcome.error = ErrorInfo(ErrorKind.TRANSIENT, message)
        except ToolError as e:
            outcome.error = ErrorInfo(e.kind, e.message, e.details)
        except Exception as e:
            kind = classify_exception(e)
            if kind is ErrorKind.INTERNAL:
                logger.exception("Unexpected error in handler %s", definition.tool_id)
            outcome.error = ErrorInfo(kind, f"{definition.tool_id} failed: {e}")
        else:
            if isinstance(result, HandlerResult):
                outcome.data = result.data
                outcome.intents = tuple(result.intents)
                outcome.empty = (
                    result.empty if result.empty is not None else is_empty_result(result.data)
                )
            else:
                message = f"{definition.tool_id} returned an invalid response"
                outcome.error = ErrorInfo(ErrorKind.INTERNAL, message)
        outcome.duration_ms = (time.perf_counter() - t0) * 1000

        target_ms = _latency_target_ms(budget, definition)
        if target_ms is not None and outcome.duration_ms > target_ms:
            outcome.missed_target = True
            logger.warning(
                "[%s] %s exceeded latency target: %.0fms > %.0fms",
                request.session_id,
                definition.tool_id,
                outcome.duration_ms,
                target_ms,
            )
        return outcome

    async def _settle(
        self,
        request: CallRequest,
        definition: ToolDefinition,
        session: Session,
        outcome: _Outcome,
    ) -> None:
        """Feed a handler result back into loop tracking and session state."""
        if outcome.error is not None:
            return
        async with session.lock:
            if session.loops.turn_id == request.turn_id:
                verdict = session.loops.record_result(definition.tool_id, empty=outcome.empty)
                if verdict is not None:
                    logger.warning("[%s] %s", request.session_id, verdict.message)
                    outcome.error = ErrorInfo(
                        ErrorKind.LOOP_DETECTED, verdict.message, verdict.details()
                    )
                    outcome.data = None
                    outcome.intents = ()
                    return
            try:
                for intent in outcome.intents:
                    session.state.apply(intent)
            except SessionInactiveError as e:
                outcome.error = ErrorInfo(e.kind, e.message)
                outcome.data = None

    # ── Recording ─────────────────────────────────────────────

    def _record(
        self,
        request: CallRequest,
        session: Session,
        definition: ToolDefinition,
        arguments: Any,
        outcome: _Outcome,
    ) -> None:
        ok = outcome.error is None
        self._safely(
            session.metrics.record_call,
            definition.tool_id,
            ok=ok,
            error_kind=outcome.error.kind if outcome.error else None,
            duration_ms=outcome.duration_ms,
            response_size=_response_size(definition.tool_id, outcome.data) if ok else None,
            missed_latency_target=outcome.missed_target,
        )
        if outcome.invoked:
            self._safely(
                session.memory.record,
                call_id=request.call_id or session.memory.next_call_id(),
                tool_id=definition.tool_id,
                turn_id=request.turn_id,
                arguments=arguments if isinstance(arguments, dict) else {},
                ok=ok,
                data=outcome.data,
                error=outcome.error.to_dict() if outcome.error else None,
                duration_ms=outcome.duration_ms,
            )

    @staticmethod
    def _safely(fn: Callable[..., object], *args: Any, **kwargs: Any) -> None:
        """Run a recording call; a fault is logged and never reaches the caller."""
        try:
            fn(*args, **kwargs)
        except Exception:
            logger.exception("Recording failed for %s", getattr(fn, "__qualname__", fn))

    def _meta(
        self,
        request: CallRequest,
        registry: ToolRegistry,
        definition: ToolDefinition | None,
        started: float,
    ) -> ResponseMeta:
        return ResponseMeta(
            tool_id=request.tool_id,
            duration_ms=(time.perf_counter() - started) * 1000,
            registry_version=registry.version,
            mode=request.mode.value,
            tool_version=definition.version if definition else None,
            category=definition.category.value if definition else None,
        )

    def _audit(
        self,
        request: CallRequest,
        definition: ToolDefinition,
        registry: ToolRegistry,
        outcome: _Outcome,
        meta: ResponseMeta,
    ) -> None:
        logger.info(
            "[%s] %s %s in %.1fms",
            request.session_id,
            definition.tool_id,
            "ok" if outcome.error is None else outcome.error.kind.value,
            meta.duration_ms,
            extra={
                "event": "tool_execution",
                "tool_id": definition.tool_id,
                "tool_version": definition.version,
                "registry_version": registry.version,
                "category": definition.category.value,
                "mode": request.mode.value,
                "session_id": request.session_id,
                "turn_id": request.turn_id,
                "ok": outcome.error is None,
                "error_kind": outcome.error.kind.value if outcome.error else None,
                "invoked": outcome.invoked,
                "duration_ms": round(meta.duration_ms, 3),
            },
        )

    # ── Session operations ────────────────────────────────────

    def begin_turn(self, session_id: str, turn_id: int) -> None:
        """Advance a session to ``turn_id``, resetting budget and loop state."""
        self._sessions.get_or_create(session_id).advance_turn(turn_id)

    def cancel_turn(self, session_id: str, turn_id: int) -> None:
        """Stop admitting calls for a turn; already running calls finish."""
        session = self._sessions.get(session_id)
        if session is not None:
            session.cancel_turn(turn_id)
            logger.info("[%s] Turn %d cancelled", session_id, turn_id)

    def end_session(self, session_id: str) -> MetricsSnapshot | None:
        """Discard a session, returning its final metrics snapshot."""
        session = self._sessions.drop(session_id)
        if session is None:
            return None
        snapshot = session.metrics.snapshot()
        logger.info("[%s] Session ended", session_id, extra={"metrics": snapshot.to_dict()})
        return snapshot

    def snapshot(self, session_id: str) -> MetricsSnapshot | None:
        session = self._sessions.get(session_id)
        return session.metrics.snapshot() if session else None

    def state(self, session_id: str) -> SessionStateView | None:
        session = self._sessions.get(session_id)
        return session.state.view() if session else None

    def is_ignored(self, session_id: str, user_id: str) -> bool:
        """For upstream routing: should messages from ``user_id`` be dropped?"""
        session = self._sessions.get(session_id)
        return session is not None and session.state.is_ignored(user_id)

    def expire_idle_sessions(self) -> list[str]:
        return self._sessions.expire_idle(self._config.sessions.idle_timeout)

    @property
    def sessions(self) -> SessionStore:
        return self._sessions


def _latency_target_ms(budget: Budget, definition: ToolDefinition) -> float | None:
    """Soft latency target for a call: the tool's own, else the mode's."""
    if definition.latency_budget_ms is not None:
        return float(definition.latency_budget_ms)
    if budget.latency_target is not None:
        return budget.latency_target * 1000
    return None


def _response_size(tool_id: str, data: Any) -> int | None:
    """Payload size for metrics; None when the payload cannot be serialized."""
    try:
        return payload_size(data)
    except Exception:
        logger.warning("Cannot size %s response for metrics", tool_id, exc_info=True)
        return None
