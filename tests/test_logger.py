"""Tests for the structured JSON logger."""

import json
import logging
import sys

from pdf_layout_server.logger import (
    StructuredFormatter,
    StructuredLogger,
    clear_context,
    get_context,
    set_context,
)


def _record(msg: str = "layout analysis completed", **extra_fields) -> logging.LogRecord:
    record = logging.LogRecord(
        name="pdf_layout_server",
        level=logging.INFO,
        pathname="/app/src/pdf_layout_server/layout/analyzer.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
        func="analyze",
    )
    if extra_fields:
        record.extra_fields = extra_fields
    return record


class TestStructuredFormatter:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_format(self):
        entry = json.loads(StructuredFormatter().format(_record(page_count=2)))

        assert entry["level"] == "INFO"
        assert entry["msg"] == "layout analysis completed"
        assert entry["source"] == {"function": "analyze", "file": "analyzer.py", "line": 42}
        assert entry["page_count"] == 2
        assert "time" in entry

    def test_context_fields_included(self):
        set_context(fingerprint="9f2c1a")
        entry = json.loads(StructuredFormatter().format(_record()))
        assert entry["fingerprint"] == "9f2c1a"

    def test_non_json_values_stringified(self):
        entry = json.loads(StructuredFormatter().format(_record(path=object)))
        assert "object" in entry["path"]

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()

        entry = json.loads(StructuredFormatter().format(record))

        assert "ValueError: boom" in entry["exception"]


class TestLogContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_set_and_clear(self):
        set_context(a=1)
        set_context(b=2)
        assert get_context() == {"a": 1, "b": 2}
        clear_context()
        assert get_context() == {}


class TestStructuredLogger:
    def test_writes_json_lines(self, capsys):
        log = StructuredLogger("pdf_layout_server.test", level="DEBUG")

        log.debug("cache entry evicted", fingerprint="abc")

        entry = json.loads(capsys.readouterr().out.strip())
        assert entry["level"] == "DEBUG"
        assert entry["fingerprint"] == "abc"
        assert entry["source"]["file"] == "test_logger.py"

    def test_level_filtering(self, capsys):
        log = StructuredLogger("pdf_layout_server.test_level", level="WARNING")

        log.info("hidden")
        log.warn("shown")

        lines = capsys.readouterr().out.strip().splitlines()
        assert [json.loads(line)["msg"] for line in lines] == ["shown"]

    def test_set_level(self, capsys):
        log = StructuredLogger("pdf_layout_server.test_set_level", level="ERROR")
        log.set_level("info")
        log.info("visible")
        assert "visible" in capsys.readouterr().out
