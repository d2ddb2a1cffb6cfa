"""Built-in tools: knowledge lookup, session control and tool memory."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from toolgate.tools.builtin.descriptors import BUILTIN_DESCRIPTORS
from toolgate.tools.builtin.knowledge import KbGetTool, KbSearchTool, KnowledgeBase
from toolgate.tools.builtin.memory import QueryToolMemoryTool
from toolgate.tools.builtin.session import (
    EndVoiceSessionTool,
    IgnoreUserTool,
    StartVoiceSessionTool,
)
from toolgate.tools.registry import ToolRegistry, load_descriptors

if TYPE_CHECKING:
    from toolgate.tools.base import ToolHandler

logger = logging.getLogger(__name__)

__all__ = [
    "BUILTIN_DESCRIPTORS",
    "EndVoiceSessionTool",
    "IgnoreUserTool",
    "KbGetTool",
    "KbSearchTool",
    "KnowledgeBase",
    "QueryToolMemoryTool",
    "StartVoiceSessionTool",
    "build_default_registry",
    "builtin_handlers",
    "default_descriptors",
]


def builtin_handlers(kb: KnowledgeBase) -> dict[str, ToolHandler]:
    """Handlers for every built-in descriptor, keyed by tool id."""
    return {
        "kb_search": KbSearchTool(kb),
        "kb_get": KbGetTool(kb),
        "start_voice_session": StartVoiceSessionTool(),
        "end_voice_session": EndVoiceSessionTool(),
        "ignore_user": IgnoreUserTool(),
        "query_tool_memory": QueryToolMemoryTool(),
    }


def default_descriptors(descriptors_path: str = "") -> list[Any]:
    """Built-in descriptors, overlaid with those found in ``descriptors_path``.

    A descriptor file replaces the built-in descriptor with the same tool id
    (to retune descriptions or schemas); other descriptors are appended.

    Raises:
        RegistryBuildError: If the directory cannot be read.
    """
    descriptors: dict[str, Any] = {d["tool_id"]: d for d in BUILTIN_DESCRIPTORS}
    extra: list[Any] = []
    if descriptors_path:
        for raw in load_descriptors(descriptors_path):
            tool_id = raw.get("tool_id")
            if isinstance(tool_id, str) and tool_id in descriptors:
                logger.debug("Descriptor override for %s from %s", tool_id, descriptors_path)
                descriptors[tool_id] = raw
            else:
                extra.append(raw)
    return [*descriptors.values(), *extra]


def build_default_registry(kb: KnowledgeBase, descriptors_path: str = "") -> ToolRegistry:
    """Build the registry of built-in tools.

    A descriptor for a tool without a built-in handler fails the build.

    Raises:
        RegistryBuildError: If any descriptor is invalid.
    """
    return ToolRegistry.build(default_descriptors(descriptors_path), builtin_handlers(kb))
