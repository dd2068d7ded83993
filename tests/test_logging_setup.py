"""
Tests for logging configuration.
"""

import logging

import pytest
from rich.logging import RichHandler

from bookingslots.logging_setup import NOISY_LOGGERS, configure_logging


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    noisy = {name: logging.getLogger(name).level for name in NOISY_LOGGERS}
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, value in noisy.items():
        logging.getLogger(name).setLevel(value)


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_installs_rich_handler(self):
        configure_logging("INFO")

        root = logging.getLogger()
        assert root.level == logging.INFO
        assert any(isinstance(h, RichHandler) for h in root.handlers)

    def test_third_party_loggers_are_quieted(self):
        configure_logging("INFO")

        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        assert logging.getLogger("uvicorn.access").level == logging.WARNING

    def test_debug_leaves_third_party_loggers_alone(self):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.NOTSET)

        configure_logging("debug")

        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("sqlalchemy.engine").level == logging.NOTSET
