"""Tests for logging configuration."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from toolgate.config.schema import LoggingConfig
from toolgate.core.log import JsonFormatter, configure_logging

if TYPE_CHECKING:
    from pathlib import Path


def _record(msg: str = "hello", **extra: object) -> logging.LogRecord:
    record = logging.makeLogRecord(
        {"name": "toolgate.engine", "levelname": "INFO", "levelno": logging.INFO, "msg": msg}
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_basic_fields(self) -> None:
        out = json.loads(JsonFormatter().format(_record()))
        assert out["level"] == "INFO"
        assert out["logger"] == "toolgate.engine"
        assert out["message"] == "hello"
        assert "ts" in out

    def test_extra_fields_included(self) -> None:
        out = json.loads(JsonFormatter().format(_record(event="tool_execution", ok=True)))
        assert out["event"] == "tool_execution"
        assert out["ok"] is True

    def test_reserved_attributes_excluded(self) -> None:
        out = json.loads(JsonFormatter().format(_record()))
        assert "lineno" not in out
        assert "args" not in out


class TestConfigureLogging:
    def test_sets_level_and_handler(self) -> None:
        configure_logging(LoggingConfig(level="debug"))
        root = logging.getLogger("toolgate")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert root.propagate is False

    def test_idempotent(self) -> None:
        configure_logging(LoggingConfig())
        configure_logging(LoggingConfig())
        assert len(logging.getLogger("toolgate").handlers) == 1

    def test_structured_uses_json(self) -> None:
        configure_logging(LoggingConfig(structured=True))
        handler = logging.getLogger("toolgate").handlers[0]
        assert isinstance(handler.formatter, JsonFormatter)

    def test_file_handler(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "toolgate.log"
        configure_logging(LoggingConfig(file=str(log_file), structured=True))
        logging.getLogger("toolgate.test").warning("written", extra={"tool_id": "kb_get"})
        for handler in logging.getLogger("toolgate").handlers:
            handler.flush()
        line = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert line["message"] == "written"
        assert line["tool_id"] == "kb_get"
