"""Tests for logging handler setup."""

import logging
from logging.handlers import RotatingFileHandler

from docent.common.logging_setup import configure_logging


class TestConfigureLogging:
    def test_console_and_file(self, tmp_path):
        logger = configure_logging("debug", tmp_path / "logs")
        try:
            assert logger.level == logging.DEBUG
            assert any(isinstance(h, RotatingFileHandler) for h in logger.handlers)
            logging.getLogger("docent.test").info("hello file")
            for handler in logger.handlers:
                handler.flush()
            assert "hello file" in (tmp_path / "logs" / "docent.log").read_text()
        finally:
            configure_logging("INFO")

    def test_repeat_calls_replace_handlers(self):
        configure_logging("INFO")
        logger = configure_logging("WARNING")
        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
        configure_logging("INFO")

    def test_unknown_level_defaults_to_info(self):
        assert configure_logging("chatty").level == logging.INFO
