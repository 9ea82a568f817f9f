"""
Tests für zapstore.utils.logging – Structured Logging.

Testet:
  - Setup mit verschiedenen Konfigurationen
  - Context-Binding
  - File-Logging
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from zapstore.utils.logging import (
    LOG_FILE_NAME,
    bind_context,
    clear_context,
    get_logger,
    setup_logging,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestLoggingSetup:
    def test_default_setup(self) -> None:
        """Logging initialisiert ohne Fehler."""
        setup_logging(level="INFO", console=True)
        log = get_logger("test")
        log.info("test_event", key="value")

    def test_json_mode(self) -> None:
        setup_logging(level="INFO", json_logs=True, console=True)
        get_logger("test.json").info("json_test", number=42)

    def test_file_logging(self, tmp_path: Path) -> None:
        log_dir = tmp_path / "logs"
        setup_logging(level="DEBUG", log_dir=log_dir, console=False, json_logs=True)
        get_logger("test.file").info("file_event", path=str(tmp_path))
        for handler in logging.root.handlers:
            handler.flush()

        log_file = log_dir / LOG_FILE_NAME
        assert log_file.exists()
        assert "file_event" in log_file.read_text(encoding="utf-8")

    def test_noisy_loggers_capped(self) -> None:
        setup_logging(level="DEBUG", console=True)
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_unknown_level_falls_back(self) -> None:
        setup_logging(level="LOUD", console=True)
        assert logging.root.level == logging.WARNING


class TestContextBinding:
    def test_bind_and_clear(self) -> None:
        setup_logging(level="INFO", console=True)
        bind_context(command="install", app="foo")
        get_logger("test.context").info("with_context")
        clear_context()
        get_logger("test.context").info("without_context")
