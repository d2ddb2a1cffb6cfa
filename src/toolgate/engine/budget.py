"""Per-turn call budgets.

Budgets are read-only configuration; :class:`TurnUsage` holds the counters
of the current turn. ``try_admit`` compares and increments in one step, so a
caller that serializes per session can never admit more calls than the cap.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from toolgate.tools.base import Category, Mode

if TYPE_CHECKING:
    from toolgate.config.schema import BudgetConfig, BudgetsConfig


@dataclass(frozen=True, slots=True)
class Budget:
    """Caps and timeouts for one mode."""

    mode: Mode
    max_retrieval_calls: int
    max_total_calls: int
    request_timeout: float | None = None
    latency_target: float | None = None
    hard_ceiling: float | None = None

    @classmethod
    def from_config(cls, mode: Mode, config: BudgetConfig) -> Budget:
        return cls(
            mode=mode,
            max_retrieval_calls=config.max_retrieval_calls,
            max_total_calls=config.max_total_calls,
            request_timeout=config.request_timeout,
            latency_target=config.latency_target,
            hard_ceiling=config.hard_ceiling,
        )

    @property
    def hard_timeout(self) -> float | None:
        """Seconds after which a handler is abandoned, if any.

        The tighter of ``request_timeout`` and ``hard_ceiling``.
        """
        limits = [t for t in (self.request_timeout, self.hard_ceiling) if t is not None]
        return min(limits) if limits else None


def budgets_from_config(config: BudgetsConfig) -> dict[Mode, Budget]:
    return {
        Mode.TEXT: Budget.from_config(Mode.TEXT, config.text),
        Mode.VOICE: Budget.from_config(Mode.VOICE, config.voice),
    }


class TurnUsage:
    """Calls admitted so far in one turn."""

    def __init__(self) -> None:
        self.total = 0
        self.retrieval = 0

    def try_admit(self, budget: Budget, category: Category) -> str | None:
        """Admit one call, or return why the budget refuses it.

        Counters only move when the call is admitted.
        """
        if self.total >= budget.max_total_calls:
            return (
                f"{budget.mode.value.capitalize()} tool budget exceeded: "
                f"max {budget.max_total_calls} calls per turn. "
                "Answer with the information you already have."
            )
        is_retrieval = category is Category.RETRIEVAL
        if is_retrieval and self.retrieval >= budget.max_retrieval_calls:
            return (
                f"{budget.mode.value.capitalize()} retrieval budget exceeded: "
                f"max {budget.max_retrieval_calls} retrieval calls per turn. "
                "Answer with the information you already have."
            )
        self.total += 1
        if is_retrieval:
            self.retrieval += 1
        return None

    def release(self, category: Category) -> None:
        """Return a slot taken by a call that was refused before invocation."""
        self.total = max(0, self.total - 1)
        if category is Category.RETRIEVAL:
            self.retrieval = max(0, self.retrieval - 1)
