"""Tests for DirStore logging configuration."""

import json
import logging
import sys

import pytest

from dirstore.logging_config import JSONFormatter, TextFormatter, configure_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(msg="hello %s", args=("world",), **extra):
    record = logging.LogRecord("dirstore.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "dirstore.test"
        assert entry["message"] == "hello world"
        assert "timestamp" in entry

    def test_request_extras(self):
        record = _record(method="GET", path="/b/k", status=200, duration_ms=1.5, request_id="ABC")
        entry = json.loads(JSONFormatter().format(record))
        assert entry["method"] == "GET"
        assert entry["path"] == "/b/k"
        assert entry["status"] == 200
        assert entry["duration_ms"] == 1.5
        assert entry["request_id"] == "ABC"

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                "dirstore.test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )
        entry = json.loads(JSONFormatter().format(record))
        assert "ValueError: boom" in entry["exception"]


class TestConfigureLogging:
    def test_json_format(self, restore_root_logger):
        configure_logging("DEBUG", "json")
        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, JSONFormatter)

    def test_text_format(self, restore_root_logger):
        configure_logging("warning", "text")
        assert restore_root_logger.level == logging.WARNING
        assert isinstance(restore_root_logger.handlers[0].formatter, TextFormatter)

    def test_unknown_level_defaults_to_info(self, restore_root_logger):
        configure_logging("CHATTY")
        assert restore_root_logger.level == logging.INFO

    def test_unknown_format_rejected(self, restore_root_logger):
        with pytest.raises(ValueError):
            configure_logging("INFO", "xml")


class TestTextFormatter:
    def test_plain_record(self):
        line = TextFormatter().format(_record())
        assert line.endswith("INFO dirstore.test: hello world")

    def test_request_id_tag(self):
        line = TextFormatter().format(_record(request_id="ABCDEF"))
        assert line.endswith("hello world [ABCDEF]")
