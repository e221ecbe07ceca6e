# ruff: noqa: S101
"""Tests for logging setup."""

import logging
import sys
from collections.abc import Generator
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, cast

import pytest

from paysync.config import LoggingConfig
from paysync.logging import setup_logging


@pytest.fixture(autouse=True)
def reset_root_logger() -> Generator[None, Any, None]:
    """Restore root handlers replaced during each test."""
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level
    yield
    for handler in root.handlers:
        if handler not in original_handlers:
            handler.close()
    root.handlers = original_handlers
    root.setLevel(original_level)


def _handlers(kind: type[logging.Handler]) -> list[logging.Handler]:
    return [h for h in logging.getLogger().handlers if isinstance(h, kind)]


@pytest.mark.unit
class TestSetupLogging:
    """Handler configuration."""

    @pytest.mark.parametrize("cli_mode", [False, True])
    def test_console_handler_uses_stderr(self, cli_mode: bool) -> None:
        """Console output stays off stdout so exports can be piped."""
        setup_logging(LoggingConfig(log_to_file=False), cli_mode=cli_mode, force=True)

        consoles = [
            h
            for h in _handlers(logging.StreamHandler)
            if not isinstance(h, logging.FileHandler)
        ]
        assert len(consoles) == 1
        assert cast(Any, consoles[0]).stream is sys.stderr

    def test_cli_mode_prints_bare_messages(self) -> None:
        setup_logging(LoggingConfig(log_to_file=False), cli_mode=True, force=True)

        (console,) = _handlers(logging.StreamHandler)
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "✅ done", None, None)
        assert console.format(record) == "✅ done"

    def test_verbose_overrides_level(self) -> None:
        setup_logging(
            LoggingConfig(level="WARNING", log_to_file=False), verbose=True, force=True
        )
        assert logging.getLogger().level == logging.DEBUG

    def test_file_handler_rotates(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "paysync.log"
        setup_logging(
            LoggingConfig(log_file_path=log_file, max_file_size_mb=1, backup_count=2),
            force=True,
        )

        (file_handler,) = _handlers(RotatingFileHandler)
        assert cast(RotatingFileHandler, file_handler).maxBytes == 1024 * 1024
        assert cast(RotatingFileHandler, file_handler).backupCount == 2
        assert log_file.parent.is_dir()

    def test_http_loggers_are_quieted(self) -> None:
        setup_logging(LoggingConfig(log_to_file=False), force=True)
        assert logging.getLogger("urllib3").level == logging.WARNING
        assert logging.getLogger("requests").level == logging.WARNING


@pytest.mark.unit
def test_defaults_come_from_active_profile(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PAYSYNC_LOGGING__LEVEL", "warning")
    monkeypatch.setenv("PAYSYNC_LOGGING__LOG_TO_FILE", "false")

    setup_logging(force=True)

    assert logging.getLogger().level == logging.WARNING
    assert _handlers(RotatingFileHandler) == []
