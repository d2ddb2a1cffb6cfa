"""Main CLI application.

Click commands for inspecting tool descriptors: ``tools list``,
``tools validate`` and ``tools schema``.
"""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING, Any

import click
from rich.console import Console
from rich.table import Table

from toolgate import __version__
from toolgate.config.loader import load_config
from toolgate.core.errors import ConfigError, RegistryBuildError
from toolgate.core.log import configure_logging
from toolgate.tools.base import Mode
from toolgate.tools.builtin import default_descriptors
from toolgate.tools.registry import compute_fingerprint, load_descriptors, parse_descriptors

if TYPE_CHECKING:
    from toolgate.config.schema import ToolgateConfig
    from toolgate.tools.registry import ToolDescriptor


# ── Helpers ──────────────────────────────────────────────────────


def _error(msg: str) -> None:
    """Print an error message to stderr and exit."""
    click.echo(f"Error: {msg}", err=True)
    sys.exit(1)


def _load_config(config_path: str | None) -> ToolgateConfig:
    """Load config with user-friendly error handling."""
    try:
        return load_config(path=config_path)
    except ConfigError as e:
        _error(str(e))
        raise  # unreachable, keeps mypy happy


def _parse_or_exit(raw: list[Any]) -> list[ToolDescriptor]:
    descriptors, problems = parse_descriptors(raw)
    if problems:
        for problem in problems:
            click.echo(f"  - {problem}", err=True)
        _error(f"{len(problems)} problem(s) in tool descriptors")
    return descriptors


def _effective_descriptors(config: ToolgateConfig, path: str | None) -> list[ToolDescriptor]:
    """Built-in descriptors overlaid with ``path`` (or the configured directory)."""
    try:
        raw = default_descriptors(path or config.registry.descriptors_path)
    except RegistryBuildError as e:
        _error(str(e))
        raise
    return _parse_or_exit(raw)


def _filter_mode(descriptors: list[ToolDescriptor], mode: str | None) -> list[ToolDescriptor]:
    wanted = Mode(mode) if mode else None
    return sorted(
        (d for d in descriptors if wanted is None or wanted in d.modes),
        key=lambda d: d.tool_id,
    )


# ── Group ────────────────────────────────────────────────────────


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="toolgate")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None) -> None:
    """toolgate - Tool execution and policy engine.

    Inspect and validate the tools offered to text and voice agents.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.group()
@click.pass_context
def tools(ctx: click.Context) -> None:
    """Inspect tool descriptors."""
    config = _load_config(ctx.obj["config_path"])
    configure_logging(config.logging)
    ctx.obj["config"] = config


_descriptors_option = click.option(
    "--descriptors",
    "descriptors_path",
    type=click.Path(exists=True, file_okay=False),
    default=None,
    help="Directory of descriptor files overriding the built-ins.",
)
_mode_option = click.option(
    "--mode",
    type=click.Choice([m.value for m in Mode]),
    default=None,
    help="Only tools offered in this mode.",
)


# ── tools list ───────────────────────────────────────────────────


@tools.command("list")
@_descriptors_option
@_mode_option
@click.pass_context
def list_tools(ctx: click.Context, descriptors_path: str | None, mode: str | None) -> None:
    """List the tools an agent would be offered."""
    all_descriptors = _effective_descriptors(ctx.obj["config"], descriptors_path)
    shown = _filter_mode(all_descriptors, mode)

    table = Table(title=f"Tools (registry v{compute_fingerprint(all_descriptors)})")
    table.add_column("Tool", style="bold cyan", no_wrap=True)
    table.add_column("Version")
    table.add_column("Category")
    table.add_column("Modes")
    table.add_column("Requires")
    table.add_column("Summary")
    for d in shown:
        table.add_row(
            d.tool_id,
            d.version,
            d.category.value,
            ", ".join(sorted(m.value for m in d.modes)),
            ", ".join(sorted(r.value for r in d.requires)) or "-",
            d.summary or d.description.strip().splitlines()[0],
        )
    Console().print(table)


# ── tools validate ───────────────────────────────────────────────


@tools.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
def validate(directory: str) -> None:
    """Validate the descriptor files in DIRECTORY.

    Prints the registry fingerprint, or every problem found.
    """
    try:
        raw = load_descriptors(directory)
    except RegistryBuildError as e:
        for problem in e.problems:
            click.echo(f"  - {problem}", err=True)
        _error(f"cannot read descriptors in {directory}")
        return
    descriptors = _parse_or_exit(raw)
    click.echo(f"{len(descriptors)} tool(s) OK, registry v{compute_fingerprint(descriptors)}")


# ── tools schema ─────────────────────────────────────────────────


@tools.command()
@_descriptors_option
@_mode_option
@click.pass_context
def schema(ctx: click.Context, descriptors_path: str | None, mode: str | None) -> None:
    """Print provider function-calling schemas as JSON."""
    descriptors = _filter_mode(
        _effective_descriptors(ctx.obj["config"], descriptors_path), mode
    )
    payload = [
        {"name": d.tool_id, "description": d.description, "parameters": d.parameters}
        for d in descriptors
    ]
    click.echo(json.dumps(payload, indent=2))
