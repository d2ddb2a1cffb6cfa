"""Tests for per-session tool metrics."""

from __future__ import annotations

import threading

import pytest

from toolgate.core.errors import ErrorKind
from toolgate.engine.metrics import (
    SessionMetrics,
    estimate_tokens,
    payload_size,
    percentile,
)


class TestHelpers:
    def test_estimate_tokens_rounds_up(self) -> None:
        assert estimate_tokens(0) == 0
        assert estimate_tokens(1) == 1
        assert estimate_tokens(4) == 1
        assert estimate_tokens(5) == 2
        assert estimate_tokens(10, chars_per_token=3) == 4

    def test_payload_size(self) -> None:
        assert payload_size(None) == 0
        assert payload_size("abcd") == 4
        assert payload_size({"a": 1}) == len('{"a": 1}')

    def test_percentile_nearest_rank(self) -> None:
        values = [float(v) for v in range(1, 101)]
        assert percentile(values, 50) == 50.0
        assert percentile(values, 95) == 95.0
        assert percentile(values, 99) == 99.0

    def test_percentile_small_sample(self) -> None:
        assert percentile([30.0, 10.0, 20.0], 50) == 20.0
        assert percentile([7.0], 99) == 7.0

    def test_percentile_empty(self) -> None:
        assert percentile([], 50) == 0.0


class TestSessionMetrics:
    def test_empty_snapshot(self) -> None:
        snap = SessionMetrics("s1").snapshot()
        assert snap.session_id == "s1"
        assert snap.total_calls == 0
        assert snap.error_rate == 0.0
        assert snap.latency_ms.p50 == 0.0

    def test_outcomes_and_kinds(self) -> None:
        metrics = SessionMetrics("s1")
        metrics.record_call("kb_search", ok=True, duration_ms=10.0, response_size=40)
        metrics.record_call("kb_search", ok=False, error_kind=ErrorKind.TRANSIENT, duration_ms=5)
        metrics.record_call("kb_get", ok=False, error_kind=ErrorKind.BUDGET_EXCEEDED)
        snap = metrics.snapshot()
        assert snap.total_calls == 3
        assert snap.successes == 1
        assert snap.failures == 2
        assert snap.errors_by_kind == {"TRANSIENT": 1, "BUDGET_EXCEEDED": 1}
        assert snap.calls_by_tool == {"kb_search": 2, "kb_get": 1}
        assert snap.error_rate == pytest.approx(2 / 3)

    def test_latency_only_from_invoked_calls(self) -> None:
        metrics = SessionMetrics("s1")
        metrics.record_call("kb_search", ok=True, duration_ms=10.0)
        metrics.record_call("kb_search", ok=False, error_kind=ErrorKind.LOOP_DETECTED)
        assert metrics.snapshot().latency_ms.max == 10.0

    def test_sizes_and_tokens(self) -> None:
        metrics = SessionMetrics("s1")
        metrics.record_call("kb_get", ok=True, response_size=10)
        metrics.record_call("kb_get", ok=True, response_size=30)
        snap = metrics.snapshot()
        assert snap.avg_response_size == 20.0
        assert snap.token_estimate == 3 + 8

    def test_unknown_tools_and_target_misses(self) -> None:
        metrics = SessionMetrics("s1")
        metrics.record_unknown_tool()
        metrics.record_call("kb_search", ok=True, duration_ms=900.0, missed_latency_target=True)
        snap = metrics.snapshot()
        assert snap.unknown_tool_calls == 1
        assert snap.latency_target_misses == 1

    def test_samples_are_bounded(self) -> None:
        metrics = SessionMetrics("s1", max_samples=10)
        for i in range(100):
            metrics.record_call("kb_search", ok=True, duration_ms=float(i))
        snap = metrics.snapshot()
        assert snap.total_calls == 100
        assert snap.latency_ms.p50 == 94.0
        assert snap.latency_ms.max == 99.0

    def test_to_dict(self) -> None:
        metrics = SessionMetrics("s1")
        metrics.record_call("kb_search", ok=True, duration_ms=1.0, response_size=4)
        out = metrics.snapshot().to_dict()
        assert out["session_id"] == "s1"
        assert out["latency_ms"]["p99"] == 1.0
        assert out["error_rate"] == 0.0

    def test_thread_safe(self) -> None:
        metrics = SessionMetrics("s1")

        def _work() -> None:
            for _ in range(500):
                metrics.record_call("kb_search", ok=True, duration_ms=1.0, response_size=4)

        threads = [threading.Thread(target=_work) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        snap = metrics.snapshot()
        assert snap.total_calls == 2000
        assert snap.token_estimate == 2000
