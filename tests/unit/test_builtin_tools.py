"""Tests for the built-in tools and the default registry."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import pytest

from toolgate.core.errors import (
    ErrorKind,
    RegistryBuildError,
    ToolError,
    ToolRateLimitError,
    ToolTransientError,
    ToolValidationError,
)
from toolgate.engine.memory import ToolMemory
from toolgate.engine.state import SessionStateView, VoiceState
from toolgate.tools.base import Category, IntentType, Mode, ToolContext
from toolgate.tools.builtin import (
    BUILTIN_DESCRIPTORS,
    EndVoiceSessionTool,
    IgnoreUserTool,
    KbGetTool,
    KbSearchTool,
    KnowledgeBase,
    QueryToolMemoryTool,
    StartVoiceSessionTool,
    build_default_registry,
    default_descriptors,
)

if TYPE_CHECKING:
    from pathlib import Path


# ── Helpers ──────────────────────────────────────────────────────


def _context(
    tool_id: str = "kb_search",
    *,
    mode: Mode = Mode.TEXT,
    voice: VoiceState = VoiceState.INACTIVE,
    user_id: str | None = None,
    turn_id: int = 1,
    memory: ToolMemory | None = None,
) -> ToolContext:
    return ToolContext(
        session_id="s1",
        mode=mode,
        turn_id=turn_id,
        state=SessionStateView(voice=voice),
        tool_id=tool_id,
        tool_version="1.0.0",
        category=Category.RETRIEVAL,
        user_id=user_id,
        memory=memory,
    )


# ── kb_search ────────────────────────────────────────────────────


class TestKbSearch:
    def test_fake_satisfies_protocol(self, kb: Any) -> None:
        assert isinstance(kb, KnowledgeBase)

    async def test_results(self, kb: Any) -> None:
        result = await KbSearchTool(kb).execute({"query": " refunds "}, _context())
        assert result.data["query"] == "refunds"
        assert result.data["count"] == 2
        assert kb.search_calls[0] == {"query": "refunds", "top_k": 5, "filters": None}

    async def test_voice_clamps_top_k(self, kb: Any) -> None:
        await KbSearchTool(kb).execute({"query": "x", "top_k": 8}, _context(mode=Mode.VOICE))
        assert kb.search_calls[0]["top_k"] == 3

    async def test_text_keeps_top_k(self, kb: Any) -> None:
        await KbSearchTool(kb).execute({"query": "x", "top_k": 8}, _context())
        assert kb.search_calls[0]["top_k"] == 8

    async def test_filters_passed_through(self, kb: Any) -> None:
        await KbSearchTool(kb).execute(
            {"query": "x", "filters": {"type": "faq"}}, _context()
        )
        assert kb.search_calls[0]["filters"] == {"type": "faq"}

    async def test_duplicate_hits_collapsed(self, kb: Any) -> None:
        kb.hits = [{"id": "a", "score": 0.9}, {"id": "a", "score": 0.8}, {"id": "b"}]
        result = await KbSearchTool(kb).execute({"query": "x"}, _context())
        assert [r["id"] for r in result.data["results"]] == ["a", "b"]

    async def test_results_limited_to_top_k(self, kb: Any) -> None:
        kb.hits = [{"id": str(i)} for i in range(10)]
        result = await KbSearchTool(kb).execute({"query": "x", "top_k": 4}, _context())
        assert result.data["count"] == 4

    @pytest.mark.parametrize(
        ("backend_error", "expected"),
        [
            (RuntimeError("429 Too Many Requests"), ToolRateLimitError),
            (RuntimeError("embedding quota exceeded"), ToolRateLimitError),
            (RuntimeError("upstream timeout"), ToolTransientError),
            (RuntimeError("503 service unavailable"), ToolTransientError),
            (ToolTransientError("already classified"), ToolTransientError),
            (RuntimeError("index corrupted"), RuntimeError),
        ],
    )
    async def test_backend_errors(
        self, kb: Any, backend_error: Exception, expected: type[Exception]
    ) -> None:
        kb.error = backend_error
        with pytest.raises(expected):
            await KbSearchTool(kb).execute({"query": "x"}, _context())


# ── kb_get ───────────────────────────────────────────────────────


class TestKbGet:
    async def test_documents_and_missing(self, kb: Any) -> None:
        result = await KbGetTool(kb).execute({"ids": ["doc-1", "nope"]}, _context("kb_get"))
        assert [d["id"] for d in result.data["documents"]] == ["doc-1"]
        assert result.data["missing"] == ["nope"]

    async def test_duplicate_ids_fetched_once(self, kb: Any) -> None:
        await KbGetTool(kb).execute({"ids": ["doc-1", "doc-1"]}, _context("kb_get"))
        assert kb.get_calls == [["doc-1"]]

    async def test_backend_error(self, kb: Any) -> None:
        kb.error = TimeoutError("read timed out")
        with pytest.raises(ToolTransientError):
            await KbGetTool(kb).execute({"ids": ["doc-1"]}, _context("kb_get"))


# ── Session control ──────────────────────────────────────────────


class TestStartVoiceSession:
    async def test_intents(self) -> None:
        result = await StartVoiceSessionTool().execute(
            {"pending_request": "order status"}, _context("start_voice_session")
        )
        assert [i.type for i in result.intents] == [
            IntentType.START_VOICE_SESSION,
            IntentType.SET_PENDING_MESSAGE,
        ]
        assert result.intents[0].payload == {"pending_request": "order status"}
        assert result.data["already_active"] is False

    async def test_without_pending_request(self) -> None:
        result = await StartVoiceSessionTool().execute({}, _context("start_voice_session"))
        assert [i.type for i in result.intents] == [IntentType.START_VOICE_SESSION]

    async def test_reports_already_active(self) -> None:
        result = await StartVoiceSessionTool().execute(
            {}, _context("start_voice_session", voice=VoiceState.ACTIVE)
        )
        assert result.data["already_active"] is True


class TestEndVoiceSession:
    async def test_immediate_without_final_message(self) -> None:
        result = await EndVoiceSessionTool().execute(
            {"reason": "user_requested"}, _context("end_voice_session", mode=Mode.VOICE)
        )
        assert result.intents[0].type is IntentType.END_VOICE_SESSION
        assert result.intents[0].payload == {"after": "immediate"}
        assert result.data["session_ended"] is True

    async def test_after_turn_with_final_message(self) -> None:
        result = await EndVoiceSessionTool().execute(
            {"reason": "conversation_complete", "final_message": "Talk soon"},
            _context("end_voice_session", mode=Mode.VOICE),
        )
        assert result.intents[0].payload == {"after": "current_turn"}


class TestIgnoreUser:
    async def test_uses_caller_by_default(self) -> None:
        result = await IgnoreUserTool().execute(
            {"duration_seconds": 60, "farewell_message": "Goodbye."},
            _context("ignore_user", mode=Mode.VOICE, user_id="u1"),
        )
        assert [i.type for i in result.intents] == [
            IntentType.IGNORE_USER,
            IntentType.END_VOICE_SESSION,
            IntentType.SUPPRESS_TRANSCRIPT,
        ]
        assert result.intents[0].payload == {"user_id": "u1", "duration_seconds": 60}
        assert result.intents[1].payload == {"after": "current_turn"}

    async def test_explicit_user_id(self) -> None:
        result = await IgnoreUserTool().execute(
            {"user_id": "u7", "duration_seconds": 30, "farewell_message": "Bye."},
            _context("ignore_user", mode=Mode.VOICE, user_id="u1"),
        )
        assert result.data["user_id"] == "u7"

    async def test_no_user_is_a_validation_error(self) -> None:
        with pytest.raises(ToolValidationError, match="user_id"):
            await IgnoreUserTool().execute(
                {"duration_seconds": 60, "farewell_message": "Bye."},
                _context("ignore_user", mode=Mode.VOICE),
            )


# ── query_tool_memory ────────────────────────────────────────────


def _memory() -> ToolMemory:
    memory = ToolMemory(recent=2, summarized=5)
    results = {"results": [{"id": "doc-2"}], "count": 1}
    failure = {"kind": "TRANSIENT", "message": "backend down"}
    calls = [
        ("kb_search", 1, {"query": "refunds"}, True),
        ("kb_get", 2, {"ids": ["doc-2"]}, False),
        ("query_tool_memory", 3, {}, True),
        ("kb_search", 4, {"query": "receipt"}, True),
    ]
    for n, (tool_id, turn_id, arguments, ok) in enumerate(calls, start=1):
        memory.record(
            call_id=f"call-{n}",
            tool_id=tool_id,
            turn_id=turn_id,
            arguments=arguments,
            ok=ok,
            data=results if ok else None,
            error=None if ok else failure,
        )
    return memory


class TestQueryToolMemory:
    async def test_lists_newest_first_without_itself(self) -> None:
        result = await QueryToolMemoryTool().execute(
            {}, _context("query_tool_memory", turn_id=4, memory=_memory())
        )
        assert [c["call_id"] for c in result.data["tool_calls"]] == ["call-4", "call-1"]
        assert result.data["count"] == 2
        assert "get_full_response_for" in result.data["note"]
        assert result.empty is False

    async def test_include_errors(self) -> None:
        result = await QueryToolMemoryTool().execute(
            {"include_errors": True}, _context("query_tool_memory", memory=_memory())
        )
        ids = [c["call_id"] for c in result.data["tool_calls"]]
        assert ids == ["call-4", "call-2", "call-1"]
        assert result.data["filters_applied"] == {
            "tool": None,
            "time_range": "all",
            "include_errors": True,
        }

    async def test_time_range_follows_current_turn(self) -> None:
        result = await QueryToolMemoryTool().execute(
            {"filter_time_range": "last_3_turns", "include_errors": True},
            _context("query_tool_memory", turn_id=4, memory=_memory()),
        )
        assert [c["call_id"] for c in result.data["tool_calls"]] == ["call-4", "call-2"]

    async def test_filter_without_matches(self) -> None:
        result = await QueryToolMemoryTool().execute(
            {"filter_tool": "ignore_user"}, _context("query_tool_memory", memory=_memory())
        )
        assert result.data["count"] == 0
        assert result.data["message"] == "No ignore_user calls found in this conversation."

    async def test_full_response(self) -> None:
        result = await QueryToolMemoryTool().execute(
            {"get_full_response_for": "call-4"}, _context("query_tool_memory", memory=_memory())
        )
        assert result.data == {
            "call_id": "call-4",
            "full_response": {"ok": True, "data": {"results": [{"id": "doc-2"}], "count": 1}},
        }

    @pytest.mark.parametrize("call_id", ["call-1", "call-99"])
    async def test_full_response_not_kept(self, call_id: str) -> None:
        with pytest.raises(ToolError) as excinfo:
            await QueryToolMemoryTool().execute(
                {"get_full_response_for": call_id},
                _context("query_tool_memory", memory=_memory()),
            )
        assert excinfo.value.kind is ErrorKind.NOT_FOUND
        assert excinfo.value.details == {
            "call_id": call_id,
            "available_call_ids": ["call-4", "call-3", "call-2", "call-1"],
        }

    async def test_no_memory_is_a_validation_error(self) -> None:
        with pytest.raises(ToolValidationError, match="memory"):
            await QueryToolMemoryTool().execute({}, _context("query_tool_memory"))


# ── Descriptors and default registry ─────────────────────────────


class TestDefaultRegistry:
    def test_builds(self, kb: Any) -> None:
        registry = build_default_registry(kb)
        assert registry.list_names() == [
            "end_voice_session",
            "ignore_user",
            "kb_get",
            "kb_search",
            "query_tool_memory",
            "start_voice_session",
        ]

    def test_mode_offerings(self, kb: Any) -> None:
        registry = build_default_registry(kb)
        voice = {d.tool_id for d in registry.list_definitions(Mode.VOICE)}
        text = {d.tool_id for d in registry.list_definitions(Mode.TEXT)}
        assert "ignore_user" in voice
        assert "ignore_user" not in text
        assert "start_voice_session" in text
        assert "start_voice_session" not in voice
        assert "query_tool_memory" in text
        assert "query_tool_memory" not in voice

    def test_schemas_are_closed(self) -> None:
        for descriptor in BUILTIN_DESCRIPTORS:
            assert descriptor["parameters"]["additionalProperties"] is False

    def test_stable_fingerprint(self, kb: Any, make_kb: Any) -> None:
        assert build_default_registry(kb).version == build_default_registry(make_kb()).version

    def test_override_from_directory(self, kb: Any, tmp_path: Path) -> None:
        override = dict(BUILTIN_DESCRIPTORS[0], summary="Look things up.")
        (tmp_path / "kb_search.json").write_text(json.dumps(override))
        descriptors = default_descriptors(str(tmp_path))
        assert len(descriptors) == len(BUILTIN_DESCRIPTORS)
        registry = build_default_registry(kb, str(tmp_path))
        assert registry.get("kb_search").summary == "Look things up."
        assert registry.version != build_default_registry(kb).version

    def test_unknown_tool_in_directory_fails(
        self, kb: Any, tmp_path: Path, make_descriptor: Any
    ) -> None:
        (tmp_path / "extra.json").write_text(json.dumps(make_descriptor("weather")))
        with pytest.raises(RegistryBuildError, match="weather: no handler bound"):
            build_default_registry(kb, str(tmp_path))
