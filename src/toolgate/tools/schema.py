"""JSON Schema checks for tool parameters.

Descriptor schemas are meta-validated once at registry build; arguments are
validated on every call. Both use Draft 2020-12.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

if TYPE_CHECKING:
    from collections.abc import Mapping


def schema_problems(schema: Mapping[str, Any]) -> list[str]:
    """Return reasons a parameter schema is unusable (empty if fine)."""
    problems: list[str] = []
    try:
        Draft202012Validator.check_schema(dict(schema))
    except SchemaError as e:
        problems.append(f"invalid JSON Schema: {e.message}")
        return problems
    if schema.get("type") != "object":
        problems.append('parameters must have "type": "object"')
    properties = schema.get("properties", {})
    for name in schema.get("required", []):
        if name not in properties:
            problems.append(f'required parameter "{name}" is not declared in properties')
    return problems


def _format_path(path: Any) -> str:
    parts = [str(p) for p in path]
    return "/" + "/".join(parts) if parts else "(root)"


def compile_validator(schema: Mapping[str, Any]) -> Draft202012Validator:
    """Build a reusable validator for an already meta-validated schema."""
    return Draft202012Validator(dict(schema))


def validate_arguments(validator: Draft202012Validator, arguments: Any) -> list[str]:
    """Validate call arguments, returning one message per violation.

    Messages name the offending path so the calling agent can fix the
    argument instead of retrying verbatim.
    """
    errors = sorted(validator.iter_errors(arguments), key=lambda e: list(e.absolute_path))
    return [f"{_format_path(e.absolute_path)}: {e.message}" for e in errors]
