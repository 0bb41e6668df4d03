"""
Tests for logging setup module.
"""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

import pytest

from core.logging_setup import setup_logging

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def restore_root_logger():
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(level)


def test_setup_logging_creates_log_file(tmp_path):
    """setup_logging should create the log directory and file"""
    with patch('core.logging_setup.Path.home', return_value=tmp_path):
        log_file = setup_logging()

    assert log_file == tmp_path / ".tcg_price_tracker" / "app.log"
    assert log_file.exists()


def test_setup_logging_sets_root_logger_level(tmp_path):
    with patch('core.logging_setup.Path.home', return_value=tmp_path):
        setup_logging(debug=True)
    assert logging.getLogger().level == logging.DEBUG

    with patch('core.logging_setup.Path.home', return_value=tmp_path):
        setup_logging()
    assert logging.getLogger().level == logging.INFO


def test_setup_logging_adds_file_and_console_handlers(tmp_path):
    with patch('core.logging_setup.Path.home', return_value=tmp_path):
        setup_logging()

    handlers = logging.getLogger().handlers
    assert len(handlers) == 2
    assert sum(isinstance(h, RotatingFileHandler) for h in handlers) == 1


def test_setup_logging_is_idempotent(tmp_path):
    """Calling twice must not stack handlers"""
    with patch('core.logging_setup.Path.home', return_value=tmp_path):
        setup_logging()
        setup_logging()

    assert len(logging.getLogger().handlers) == 2


def test_setup_logging_writes_messages(tmp_path):
    with patch('core.logging_setup.Path.home', return_value=tmp_path):
        log_file = setup_logging()

    logging.getLogger("core.price_update_service").info("queued 3 cards")
    for handler in logging.getLogger().handlers:
        handler.flush()

    content = log_file.read_text(encoding="utf-8")
    assert "[INFO] core.price_update_service - queued 3 cards" in content


def test_setup_logging_quiets_urllib3(tmp_path):
    with patch('core.logging_setup.Path.home', return_value=tmp_path):
        setup_logging(debug=True)
    assert logging.getLogger("urllib3").level == logging.WARNING
