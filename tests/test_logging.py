"""Tests for logging utilities."""

from __future__ import annotations

import logging

from draftwatch.core.config import LoggingSettings
from draftwatch.core.logging import configure_logging


def test_configure_logging_sets_root_level() -> None:
    """configure_logging should set the root logger level according to settings."""

    settings = LoggingSettings(level="DEBUG", structured=False)
    configure_logging(settings)
    assert logging.getLogger().level == logging.DEBUG


def test_structured_logging_quiets_noisy_libraries() -> None:
    configure_logging(LoggingSettings(level="INFO", structured=True))

    assert logging.getLogger().level == logging.INFO
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("googleapiclient.discovery_cache").level == logging.ERROR


def test_plain_format_names_the_thread() -> None:
    configure_logging(LoggingSettings(level="WARNING", structured=False))

    formats = [
        handler.formatter._fmt  # pylint: disable=protected-access
        for handler in logging.getLogger().handlers
        if handler.formatter is not None
    ]
    assert any("%(threadName)s" in (fmt or "") for fmt in formats)
