"""Tests for logging setup."""

import json
import logging
import sys

from storymap.utilities.logs import LOGGER_NAME, JsonFormatter, setup_logging


class TestSetupLogging:
    def test_file_receives_json_lines(self, tmp_path):
        log_file = tmp_path / "logs" / "storymap.log"
        logger = setup_logging("INFO", log_file)

        logging.getLogger(f"{LOGGER_NAME}.session").info("Loaded %s", "shop")
        for handler in logger.handlers:
            handler.flush()

        [line] = log_file.read_text(encoding="utf-8").splitlines()
        entry = json.loads(line)
        assert entry["message"] == "Loaded shop"
        assert entry["logger"] == "storymap.session"
        assert entry["level"] == "INFO"

    def test_repeated_setup_replaces_handlers(self):
        setup_logging("DEBUG")
        logger = setup_logging("warning")

        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self):
        assert setup_logging("chatty").level == logging.INFO


class TestJsonFormatter:
    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                "storymap", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
            )

        entry = json.loads(JsonFormatter().format(record))

        assert entry["message"] == "failed"
        assert "ValueError: boom" in entry["exception"]
