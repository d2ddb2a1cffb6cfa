"""Knowledge base tools: ``kb_search`` and ``kb_get``.

Thin wrappers over a :class:`KnowledgeBase` supplied by the application
(vector search, document storage). They shape arguments and results and
translate backend failures into error kinds; everything else is the
dispatcher's job.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from toolgate.core.errors import (
    ToolError,
    ToolRateLimitError,
    ToolTransientError,
)
from toolgate.tools.base import HandlerResult, Mode

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from toolgate.tools.base import ToolContext

logger = logging.getLogger(__name__)

# Voice answers are spoken; more than a few hits only adds latency.
VOICE_MAX_TOP_K = 3


@runtime_checkable
class KnowledgeBase(Protocol):
    """Backend for knowledge lookups."""

    async def search(
        self, query: str, *, top_k: int, filters: Mapping[str, Any] | None = None
    ) -> Sequence[Mapping[str, Any]]:
        """Return hits ordered by relevance; each has at least an ``id``."""
        ...

    async def get(self, ids: Sequence[str]) -> Sequence[Mapping[str, Any]]:
        """Return the documents found among ``ids``; unknown ids are skipped."""
        ...


def _backend_error(tool_id: str, exc: Exception) -> Exception:
    """Upgrade a backend failure to a specific kind when it says what it is."""
    if isinstance(exc, ToolError):
        return exc
    text = str(exc).lower()
    if "rate limit" in text or "quota" in text or "429" in text:
        return ToolRateLimitError(f"{tool_id}: knowledge base rate limited")
    if "timeout" in text or "timed out" in text or "unavailable" in text or "503" in text:
        return ToolTransientError(f"{tool_id}: knowledge base unavailable: {exc}")
    return exc


class KbSearchTool:
    """Semantic search over the knowledge base."""

    def __init__(self, kb: KnowledgeBase) -> None:
        self._kb = kb

    async def execute(self, args: Mapping[str, Any], context: ToolContext) -> HandlerResult:
        query = str(args["query"]).strip()
        top_k = int(args.get("top_k", 5))
        if context.mode is Mode.VOICE and top_k > VOICE_MAX_TOP_K:
            logger.debug("kb_search: clamping top_k %d -> %d for voice", top_k, VOICE_MAX_TOP_K)
            top_k = VOICE_MAX_TOP_K
        filters = args.get("filters") or None

        try:
            hits = await self._kb.search(query, top_k=top_k, filters=filters)
        except Exception as e:
            converted = _backend_error(context.tool_id, e)
            if converted is e:
                raise
            raise converted from e

        # Backends index chunks; several chunks of one document collapse to one hit.
        results: list[dict[str, Any]] = []
        seen: set[str] = set()
        for hit in hits:
            hit_id = str(hit.get("id", ""))
            if hit_id in seen:
                continue
            seen.add(hit_id)
            results.append(dict(hit))
            if len(results) >= top_k:
                break

        return HandlerResult(data={"query": query, "results": results, "count": len(results)})


class KbGetTool:
    """Fetch knowledge base documents by id."""

    def __init__(self, kb: KnowledgeBase) -> None:
        self._kb = kb

    async def execute(self, args: Mapping[str, Any], context: ToolContext) -> HandlerResult:
        ids = list(dict.fromkeys(str(i) for i in args["ids"]))
        try:
            documents = [dict(d) for d in await self._kb.get(ids)]
        except Exception as e:
            converted = _backend_error(context.tool_id, e)
            if converted is e:
                raise
            raise converted from e

        found = {str(d.get("id")) for d in documents}
        missing = [i for i in ids if i not in found]
        return HandlerResult(data={"documents": documents, "missing": missing})
