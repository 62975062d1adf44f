"""Tests for LoggingConfig."""

import logging

import pytest
from pythonjsonlogger.json import JsonFormatter

from app.infra.logging_config import LoggingConfig, get_logger


@pytest.fixture
def fresh_logging(monkeypatch):
    root = logging.getLogger()
    saved = (root.handlers[:], root.level)
    monkeypatch.setattr(LoggingConfig, "_configured", False)
    yield root
    root.handlers, root.level = saved[0], saved[1]
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True


def test_json_output_uses_json_formatter(fresh_logging):
    LoggingConfig(log_level="debug", json_output=True)
    assert fresh_logging.level == logging.DEBUG
    assert isinstance(fresh_logging.handlers[0].formatter, JsonFormatter)


def test_text_output_in_development(fresh_logging):
    LoggingConfig(json_output=False)
    assert not isinstance(fresh_logging.handlers[0].formatter, JsonFormatter)


def test_logger_names():
    assert get_logger().name == "portal_chat"
    assert get_logger("realtime").name == "portal_chat.realtime"
