"""Tests for setup_logging — handler wiring and rotating log files."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from src.core.config import LoggingConfig
from src.core.logging import setup_logging


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestSetupLogging:
    def test_console_only_by_default(self) -> None:
        setup_logging(config=LoggingConfig(level="WARNING"))
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING

    def test_level_override(self) -> None:
        setup_logging(level="debug", config=LoggingConfig())
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.DEBUG

    def test_noisy_loggers_capped(self) -> None:
        setup_logging(config=LoggingConfig(level="INFO"))
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_file_handlers(self, tmp_path: Path) -> None:
        setup_logging(config=LoggingConfig(level="INFO", log_dir=str(tmp_path)))
        log = structlog.get_logger("test_file_handlers")
        log.info("alert_created", alert_id="a1")
        log.error("alert_store_write_error", path="x")

        combined = [json.loads(line) for line in (tmp_path / "combined.log").read_text().splitlines()]
        errors = [json.loads(line) for line in (tmp_path / "error.log").read_text().splitlines()]
        assert [e["event"] for e in combined] == ["alert_created", "alert_store_write_error"]
        assert [e["event"] for e in errors] == ["alert_store_write_error"]
        assert combined[0]["alert_id"] == "a1"
