"""Shared test fixtures for toolgate."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import pytest

from toolgate.engine.dispatcher import CallRequest, Dispatcher
from toolgate.tools.base import HandlerResult, Mode
from toolgate.tools.builtin import BUILTIN_DESCRIPTORS, builtin_handlers
from toolgate.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping, Sequence

    from toolgate.config.schema import ToolgateConfig
    from toolgate.tools.base import Intent, ToolContext, ToolHandler


DOCS: list[dict[str, Any]] = [
    {"id": "doc-1", "title": "Opening hours", "text": "The office is open 9 to 5 on weekdays."},
    {"id": "doc-2", "title": "Refunds", "text": "Refunds are issued within 14 days."},
    {"id": "doc-3", "title": "Shipping", "text": "Orders ship within 2 business days."},
    {"id": "doc-4", "title": "Returns", "text": "Returns and refunds need a receipt."},
]


class FakeKnowledgeBase:
    """In-memory knowledge base matching on words of the query."""

    def __init__(self, docs: list[dict[str, Any]] | None = None) -> None:
        self.docs = {d["id"]: d for d in (docs if docs is not None else DOCS)}
        self.search_calls: list[dict[str, Any]] = []
        self.get_calls: list[list[str]] = []
        self.error: Exception | None = None
        self.hits: list[dict[str, Any]] | None = None

    async def search(
        self, query: str, *, top_k: int, filters: Mapping[str, Any] | None = None
    ) -> Sequence[Mapping[str, Any]]:
        self.search_calls.append({"query": query, "top_k": top_k, "filters": filters})
        if self.error is not None:
            raise self.error
        if self.hits is not None:
            return self.hits
        words = query.lower().split()
        return [
            {"id": d["id"], "title": d["title"], "snippet": d["text"], "score": 1.0}
            for d in self.docs.values()
            if any(w in d["text"].lower() for w in words)
        ][:top_k]

    async def get(self, ids: Sequence[str]) -> Sequence[Mapping[str, Any]]:
        self.get_calls.append(list(ids))
        if self.error is not None:
            raise self.error
        return [self.docs[i] for i in ids if i in self.docs]


class ScriptedTool:
    """Handler returning a fixed result (or raising), recording every call."""

    def __init__(
        self,
        result: Any = None,
        *,
        raises: BaseException | None = None,
        delay: float = 0.0,
        intents: tuple[Intent, ...] = (),
        empty: bool | None = None,
    ) -> None:
        self.result = result
        self.raises = raises
        self.delay = delay
        self.intents = intents
        self.empty = empty
        self.calls: list[dict[str, Any]] = []
        self.contexts: list[ToolContext] = []

    async def execute(self, args: Mapping[str, Any], context: ToolContext) -> HandlerResult:
        self.calls.append(dict(args))
        self.contexts.append(context)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raises is not None:
            raise self.raises
        data = self.result(args) if callable(self.result) else self.result
        return HandlerResult(data=data, intents=self.intents, empty=self.empty)


@pytest.fixture(autouse=True)
def _reset_toolgate_logger() -> Iterator[None]:
    """Undo ``configure_logging`` so caplog sees toolgate records."""
    yield
    root = logging.getLogger("toolgate")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.NOTSET)
    root.propagate = True


@pytest.fixture
def kb() -> FakeKnowledgeBase:
    return FakeKnowledgeBase()


@pytest.fixture
def make_kb() -> Callable[..., FakeKnowledgeBase]:
    return FakeKnowledgeBase


@pytest.fixture
def scripted_tool() -> Callable[..., ScriptedTool]:
    """Factory fixture for ScriptedTool handlers."""
    return ScriptedTool


@pytest.fixture
def make_descriptor() -> Callable[..., dict[str, Any]]:
    """Factory fixture for descriptor mappings with sensible defaults."""

    def _make(tool_id: str = "echo", **overrides: Any) -> dict[str, Any]:
        defaults: dict[str, Any] = {
            "tool_id": tool_id,
            "version": "1.0.0",
            "description": f"Test tool {tool_id}.\nSecond line.",
            "category": "utility",
            "modes": ["text", "voice"],
            "parameters": {
                "type": "object",
                "properties": {"value": {"type": "string"}},
                "additionalProperties": False,
            },
        }
        defaults.update(overrides)
        return defaults

    return _make


@pytest.fixture
def make_dispatcher(kb: FakeKnowledgeBase) -> Callable[..., Dispatcher]:
    """Factory fixture: built-in tools plus ``tools`` ({id: (descriptor, handler)})."""

    def _make(
        tools: dict[str, tuple[dict[str, Any], ToolHandler]] | None = None,
        config: ToolgateConfig | None = None,
        **kwargs: Any,
    ) -> Dispatcher:
        descriptors: list[dict[str, Any]] = list(BUILTIN_DESCRIPTORS)
        handlers = builtin_handlers(kb)
        for tool_id, (descriptor, handler) in (tools or {}).items():
            descriptors.append(descriptor)
            handlers[tool_id] = handler
        return Dispatcher(ToolRegistry.build(descriptors, handlers), config, **kwargs)

    return _make


@pytest.fixture
def dispatcher(make_dispatcher: Callable[..., Dispatcher]) -> Dispatcher:
    return make_dispatcher()


@pytest.fixture
def call() -> Callable[..., CallRequest]:
    """Factory fixture for CallRequest with sensible defaults."""

    def _make(
        tool_id: str,
        arguments: Mapping[str, Any] | None = None,
        *,
        session_id: str = "s1",
        turn_id: int = 1,
        mode: Mode = Mode.TEXT,
        user_id: str | None = None,
        call_id: str | None = None,
    ) -> CallRequest:
        return CallRequest(
            tool_id=tool_id,
            session_id=session_id,
            turn_id=turn_id,
            mode=mode,
            arguments=arguments if arguments is not None else {},
            user_id=user_id,
            call_id=call_id,
        )

    return _make
