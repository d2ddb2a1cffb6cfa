"""Per-session tool execution metrics.

Lightweight, in-memory, no external dependencies. Tracks outcomes, error
kinds, latency samples (for P50/P95/P99), response sizes and a running token
estimate derived from response size. Sample buffers are bounded so a
long-lived session cannot grow without limit.
"""

from __future__ import annotations

import json
import math
import threading
from collections import Counter, deque
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    from toolgate.core.errors import ErrorKind


def estimate_tokens(size_chars: int, chars_per_token: int = 4) -> int:
    """Deterministic token estimate for a payload of ``size_chars``."""
    if size_chars <= 0:
        return 0
    return math.ceil(size_chars / chars_per_token)


def payload_size(data: Any) -> int:
    """Size in characters of a payload's JSON form."""
    if data is None:
        return 0
    if isinstance(data, str):
        return len(data)
    return len(json.dumps(data, default=str, ensure_ascii=False))


def percentile(values: Sequence[float], pct: float) -> float:
    """Nearest-rank percentile; 0.0 for no samples."""
    if not values:
        return 0.0
    ordered = sorted(values)
    index = math.ceil((pct / 100) * len(ordered)) - 1
    return ordered[max(0, index)]


@dataclass(frozen=True, slots=True)
class LatencySummary:
    p50: float = 0.0
    p95: float = 0.0
    p99: float = 0.0
    max: float = 0.0


@dataclass(frozen=True, slots=True)
class MetricsSnapshot:
    """Aggregated view of one session's tool activity."""

    session_id: str
    total_calls: int = 0
    successes: int = 0
    failures: int = 0
    errors_by_kind: dict[str, int] = field(default_factory=dict)
    calls_by_tool: dict[str, int] = field(default_factory=dict)
    unknown_tool_calls: int = 0
    latency_ms: LatencySummary = field(default_factory=LatencySummary)
    avg_response_size: float = 0.0
    token_estimate: int = 0
    latency_target_misses: int = 0

    @property
    def error_rate(self) -> float:
        if self.total_calls == 0:
            return 0.0
        return self.failures / self.total_calls

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["error_rate"] = round(self.error_rate, 4)
        return data


class SessionMetrics:
    """Thread-safe accumulator for one session."""

    def __init__(self, session_id: str, max_samples: int = 1000, chars_per_token: int = 4) -> None:
        self.session_id = session_id
        self.chars_per_token = chars_per_token
        self._lock = threading.Lock()
        self._successes = 0
        self._failures = 0
        self._errors: Counter[str] = Counter()
        self._by_tool: Counter[str] = Counter()
        self._unknown_tools = 0
        self._latencies: deque[float] = deque(maxlen=max_samples)
        self._sizes: deque[int] = deque(maxlen=max_samples)
        self._tokens = 0
        self._target_misses = 0

    def record_call(
        self,
        tool_id: str,
        *,
        ok: bool,
        error_kind: ErrorKind | None = None,
        duration_ms: float | None = None,
        response_size: int | None = None,
        missed_latency_target: bool = False,
    ) -> None:
        """Record one resolved call.

        ``duration_ms`` and ``response_size`` are only passed for calls that
        reached the handler.
        """
        with self._lock:
            self._by_tool[tool_id] += 1
            if ok:
                self._successes += 1
            else:
                self._failures += 1
                if error_kind is not None:
                    self._errors[error_kind.value] += 1
            if duration_ms is not None:
                self._latencies.append(duration_ms)
            if response_size is not None:
                self._sizes.append(response_size)
                self._tokens += estimate_tokens(response_size, self.chars_per_token)
            if missed_latency_target:
                self._target_misses += 1

    def record_unknown_tool(self) -> None:
        with self._lock:
            self._unknown_tools += 1

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            latencies = list(self._latencies)
            sizes = list(self._sizes)
            return MetricsSnapshot(
                session_id=self.session_id,
                total_calls=self._successes + self._failures,
                successes=self._successes,
                failures=self._failures,
                errors_by_kind=dict(self._errors),
                calls_by_tool=dict(self._by_tool),
                unknown_tool_calls=self._unknown_tools,
                latency_ms=LatencySummary(
                    p50=percentile(latencies, 50),
                    p95=percentile(latencies, 95),
                    p99=percentile(latencies, 99),
                    max=max(latencies, default=0.0),
                ),
                avg_response_size=sum(sizes) / len(sizes) if sizes else 0.0,
                token_estimate=self._tokens,
                latency_target_misses=self._target_misses,
            )
