"""
Unit tests for the runtime logging helpers.
"""

from __future__ import annotations

import logging

import pytest

from memberscale.core.utils.logging import (
    LOG_LEVEL_ENV,
    configure_runtime_logging,
    install_stdout_logger,
    resolve_level,
)


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    # local-mode actors from earlier tests may have installed one already
    root.handlers[:] = [h for h in handlers if not getattr(h, "_memberscale_stream_handler", False)]
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def test_resolve_level_accepts_names_numbers_and_env(monkeypatch):
    monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)
    assert resolve_level() == logging.INFO
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level(logging.WARNING) == logging.WARNING

    monkeypatch.setenv(LOG_LEVEL_ENV, "error")
    assert resolve_level() == logging.ERROR

    with pytest.raises(ValueError):
        resolve_level("chatty")


def test_configure_runtime_logging_is_idempotent(root_logger):
    before = len(root_logger.handlers)

    configure_runtime_logging("INFO")
    assert configure_runtime_logging("DEBUG") == logging.DEBUG

    assert len(root_logger.handlers) == before + 1
    assert root_logger.handlers[-1].level == logging.DEBUG
    assert root_logger.level <= logging.DEBUG


def test_install_stdout_logger_replaces_previous_handler():
    logger = install_stdout_logger("WARNING", include_timestamp=False, prefix="memberscale-demo")
    again = install_stdout_logger("INFO", prefix="memberscale-demo")

    assert again is logger
    assert len(logger.handlers) == 1
    assert logger.level == logging.INFO
    assert "%(asctime)s" in logger.handlers[0].formatter._fmt
