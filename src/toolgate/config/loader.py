"""Build a :class:`ToolgateConfig` from TOML layers.

Layers are applied lowest priority first: model defaults, the per-user
file, ``toolgate.toml`` in the working directory, the file named by
``$TOOLGATE_CONFIG``, the ``path`` argument, then ``overrides``. A layer
only replaces the keys it sets, so ``[budgets.voice]`` with one key keeps
the other voice defaults.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from toolgate.core.errors import ConfigError

from .schema import ToolgateConfig

ENV_VAR = "TOOLGATE_CONFIG"
PROJECT_FILE = "toolgate.toml"


def _user_file() -> Path:
    root = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(root) / "toolgate" / "config.toml"


def _layer_files(path: str | Path | None) -> list[Path]:
    """Config files to apply, lowest priority first.

    Implicit files are skipped when absent; a file that was asked for by
    name must exist.
    """
    files = [p for p in (_user_file(), Path.cwd() / PROJECT_FILE) if p.is_file()]
    named = os.environ.get(ENV_VAR)
    if named:
        if not Path(named).is_file():
            msg = f"{ENV_VAR} names a file that does not exist: {named}"
            raise ConfigError(msg)
        files.append(Path(named))
    if path is not None:
        if not Path(path).is_file():
            msg = f"Config file not found: {path}"
            raise ConfigError(msg)
        files.append(Path(path))
    return files


def _parse(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {path}: {e}"
        raise ConfigError(msg) from e
    except OSError as e:
        msg = f"Cannot read {path}: {e}"
        raise ConfigError(msg) from e


def _deep_merge(base: dict[str, Any], layer: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` with ``layer`` applied; tables merge key by key."""
    out = dict(base)
    for key, value in layer.items():
        current = out.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            out[key] = _deep_merge(current, value)
        else:
            out[key] = value
    return out


def load_config(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> ToolgateConfig:
    """Merge every config layer and validate the result.

    Raises :class:`~toolgate.core.errors.ConfigError` when a named file is
    missing, a file is not valid TOML, or the merged values fail validation.
    """
    data: dict[str, Any] = ToolgateConfig().model_dump()
    for layer in [*map(_parse, _layer_files(path)), overrides or {}]:
        data = _deep_merge(data, layer)
    try:
        return ToolgateConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Configuration validation failed: {e}"
        raise ConfigError(msg) from e
