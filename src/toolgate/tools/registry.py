"""Tool registry: an immutable, versioned catalogue of tool definitions.

A registry is built once from declarative descriptors plus a mapping of
handlers, and never mutated afterwards. Every build computes a content
fingerprint that changes iff any descriptor changes; it is surfaced in every
response envelope so callers can detect stale copies of the tool list.
Rebuilding produces a new registry; readers holding the old one are
unaffected.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import tomllib
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from toolgate.core.errors import RegistryBuildError, ToolNotFoundError
from toolgate.tools.base import (
    Category,
    Mode,
    Requirement,
    ToolDefinition,
    ToolHandler,
)
from toolgate.tools.schema import compile_validator, schema_problems, validate_arguments

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from jsonschema import Draft202012Validator

logger = logging.getLogger(__name__)

REGISTRY_FORMAT_VERSION = "1.0"

_SEMVER = re.compile(r"^\d+\.\d+\.\d+(?:[-+][0-9A-Za-z.-]+)?$")


class ToolDescriptor(BaseModel):
    """Build-time description of a tool, as loaded from TOML/JSON."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tool_id: str = Field(pattern=r"^[a-z][a-z0-9_]*$")
    version: str
    description: str = Field(min_length=1)
    category: Category
    modes: list[Mode]
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    requires: list[Requirement] = Field(default_factory=list)
    summary: str = ""
    latency_budget_ms: int | None = Field(default=None, gt=0)

    def canonical(self) -> dict[str, Any]:
        """Order-independent JSON-safe form used for fingerprinting."""
        data = self.model_dump(mode="json")
        data["modes"] = sorted(data["modes"])
        data["requires"] = sorted(data["requires"])
        return data


def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_fingerprint(descriptors: Iterable[ToolDescriptor]) -> str:
    """Content-derived registry version, e.g. ``"1.0.3f9a0c12be41"``."""
    content = sorted((d.canonical() for d in descriptors), key=lambda d: d["tool_id"])
    digest = hashlib.sha256(_canonical_json(content).encode("utf-8")).hexdigest()
    return f"{REGISTRY_FORMAT_VERSION}.{digest[:12]}"


def _label(raw: Any, index: int) -> str:
    if isinstance(raw, ToolDescriptor):
        return raw.tool_id
    if hasattr(raw, "get") and isinstance(raw.get("tool_id"), str):
        return str(raw["tool_id"])
    return f"descriptor #{index}"


def parse_descriptors(
    raw_descriptors: Iterable[ToolDescriptor | Mapping[str, Any]],
) -> tuple[list[ToolDescriptor], list[str]]:
    """Parse and lint descriptors, collecting every problem found."""
    descriptors: list[ToolDescriptor] = []
    problems: list[str] = []
    seen: set[str] = set()

    for index, raw in enumerate(raw_descriptors):
        label = _label(raw, index)
        if not isinstance(raw, ToolDescriptor) and not hasattr(raw, "keys"):
            problems.append(f"{label}: expected a mapping, got {type(raw).__name__}")
            continue
        try:
            desc = (
                raw
                if isinstance(raw, ToolDescriptor)
                else ToolDescriptor.model_validate(dict(raw))
            )
        except ValidationError as e:
            for err in e.errors():
                loc = ".".join(str(part) for part in err["loc"])
                problems.append(f"{label}: {loc}: {err['msg']}")
            continue

        if desc.tool_id in seen:
            problems.append(f"{desc.tool_id}: duplicate tool_id")
            continue
        seen.add(desc.tool_id)

        if not _SEMVER.match(desc.version):
            problems.append(f"{desc.tool_id}: version {desc.version!r} is not semantic")
        if not desc.modes:
            problems.append(f"{desc.tool_id}: at least one mode is required")
        problems.extend(f"{desc.tool_id}: {p}" for p in schema_problems(desc.parameters))
        descriptors.append(desc)

    return descriptors, problems


class ToolRegistry:
    """Immutable catalogue mapping tool id to :class:`ToolDefinition`.

    Use :meth:`build` to construct one. Safe to share across sessions
    without locking.
    """

    def __init__(
        self,
        descriptors: list[ToolDescriptor],
        handlers: Mapping[str, ToolHandler],
        fingerprint: str,
    ) -> None:
        definitions: dict[str, ToolDefinition] = {}
        validators: dict[str, Draft202012Validator] = {}
        for desc in descriptors:
            definitions[desc.tool_id] = ToolDefinition(
                tool_id=desc.tool_id,
                version=desc.version,
                description=desc.description,
                category=desc.category,
                modes=frozenset(desc.modes),
                parameters=MappingProxyType(dict(desc.parameters)),
                summary=desc.summary or desc.description.strip().splitlines()[0],
                requires=frozenset(desc.requires),
                latency_budget_ms=desc.latency_budget_ms,
                handler=handlers[desc.tool_id],
            )
            validators[desc.tool_id] = compile_validator(desc.parameters)
        self._descriptors = tuple(descriptors)
        self._handlers = MappingProxyType(dict(handlers))
        self._definitions = MappingProxyType(definitions)
        self._validators = MappingProxyType(validators)
        self._fingerprint = fingerprint

    @classmethod
    def build(
        cls,
        descriptors: Iterable[ToolDescriptor | Mapping[str, Any]],
        handlers: Mapping[str, ToolHandler],
    ) -> ToolRegistry:
        """Validate descriptors and bind handlers.

        Raises:
            RegistryBuildError: Listing every problem, if any descriptor is
                malformed, a tool id collides, or handlers do not match
                descriptors one-to-one.
        """
        parsed, problems = parse_descriptors(descriptors)

        declared = {d.tool_id for d in parsed}
        for desc in parsed:
            handler = handlers.get(desc.tool_id)
            if handler is None:
                problems.append(f"{desc.tool_id}: no handler bound")
            elif not isinstance(handler, ToolHandler):
                problems.append(f"{desc.tool_id}: handler has no async execute(args, context)")
        for tool_id in sorted(set(handlers) - declared):
            problems.append(f"{tool_id}: handler bound but no descriptor declared")

        if problems:
            raise RegistryBuildError(problems)

        fingerprint = compute_fingerprint(parsed)
        registry = cls(parsed, handlers, fingerprint)
        logger.info("Tool registry built: v%s (%d tools)", fingerprint, len(registry))
        return registry

    def rebuild(
        self, descriptors: Iterable[ToolDescriptor | Mapping[str, Any]]
    ) -> ToolRegistry:
        """Build a new registry from descriptors, reusing this one's handlers."""
        return type(self).build(descriptors, self._handlers)

    # ── Lookup ────────────────────────────────────────────────

    @property
    def version(self) -> str:
        """Content fingerprint of this registry."""
        return self._fingerprint

    fingerprint = version

    def get(self, tool_id: str) -> ToolDefinition:
        """Get a definition regardless of mode.

        Raises:
            ToolNotFoundError: If the tool is not registered.
        """
        try:
            return self._definitions[tool_id]
        except KeyError:
            raise ToolNotFoundError(tool_id) from None

    def resolve(self, tool_id: str, mode: Mode) -> ToolDefinition:
        """Get a definition enabled for ``mode``.

        Raises:
            ToolNotFoundError: If the tool is unknown or not offered in ``mode``.
        """
        definition = self.get(tool_id)
        if not definition.supports(mode):
            msg = f"Tool {tool_id} is not available in {mode.value} mode"
            raise ToolNotFoundError(tool_id, msg)
        return definition

    def validate_arguments(self, tool_id: str, arguments: Any) -> list[str]:
        """Return schema violations for a call's arguments (empty if valid)."""
        return validate_arguments(self._validators[tool_id], arguments)

    # ── Listing ───────────────────────────────────────────────

    def list_definitions(self, mode: Mode | None = None) -> list[ToolDefinition]:
        """Definitions sorted by tool id, optionally filtered by mode."""
        return [
            d
            for _, d in sorted(self._definitions.items())
            if mode is None or d.supports(mode)
        ]

    def summaries(self, mode: Mode | None = None) -> str:
        """One paragraph per tool, for injection into an agent prompt."""
        return "\n\n".join(
            f"**{d.tool_id}** ({d.category.value}): {d.summary}"
            for d in self.list_definitions(mode)
        )

    @property
    def descriptors(self) -> tuple[ToolDescriptor, ...]:
        return self._descriptors

    def list_names(self) -> list[str]:
        return sorted(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._definitions


def load_descriptors(path: str | Path) -> list[dict[str, Any]]:
    """Read every ``*.toml`` and ``*.json`` descriptor in a directory.

    Files are read in name order. A file may hold one descriptor, or a
    ``tools`` list of descriptors.

    Raises:
        RegistryBuildError: If the directory is missing or a file cannot be
            parsed.
    """
    root = Path(path)
    if not root.is_dir():
        raise RegistryBuildError([f"descriptor directory not found: {root}"])

    raw: list[dict[str, Any]] = []
    problems: list[str] = []
    files = sorted(p for p in root.iterdir() if p.suffix in {".toml", ".json"} and p.is_file())
    for file in files:
        try:
            if file.suffix == ".toml":
                with file.open("rb") as f:
                    data: Any = tomllib.load(f)
            else:
                data = json.loads(file.read_text(encoding="utf-8"))
        except (tomllib.TOMLDecodeError, json.JSONDecodeError, OSError) as e:
            problems.append(f"{file.name}: cannot parse: {e}")
            continue

        if isinstance(data, dict) and isinstance(data.get("tools"), list):
            raw.extend(data["tools"])
        elif isinstance(data, dict):
            raw.append(data)
        else:
            problems.append(f"{file.name}: expected a table/object at top level")

    if problems:
        raise RegistryBuildError(problems)
    return raw
