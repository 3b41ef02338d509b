from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

import pytest

from agentforce_adk.logging_utils import configure_logging, parse_level


@pytest.fixture
def package_logger():
    logger = logging.getLogger("agentforce_adk")
    handlers, level = list(logger.handlers), logger.level
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)


def test_parse_level() -> None:
    assert parse_level("warn") == logging.WARNING
    assert parse_level(None) == logging.INFO
    assert parse_level("silent") > logging.CRITICAL
    with pytest.raises(ValueError):
        parse_level("loud")


def test_level_and_file_from_environment(monkeypatch, tmp_path: Path, package_logger) -> None:
    log_file = tmp_path / "logs" / "agent.log"
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("LOG_PATH", str(log_file))

    logger = configure_logging()
    logging.getLogger("agentforce_adk.agent.tester").debug("hello file")

    assert logger is package_logger
    assert logger.level == logging.DEBUG
    assert any(isinstance(h, logging.handlers.TimedRotatingFileHandler) for h in logger.handlers)
    assert "hello file" in log_file.read_text(encoding="utf-8")


def test_console_only_without_log_path(package_logger) -> None:
    logger = configure_logging("error")
    assert logger.level == logging.ERROR
    assert len(logger.handlers) == 1
