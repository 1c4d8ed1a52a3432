"""Tests for structured logging."""

import json
import logging
import sys

from goodbai.infrastructure.observability.log_messages import LogMessages, LogTemplate
from goodbai.infrastructure.observability.logging import (
    CompactExceptionFormatter,
    CustomJsonFormatter,
    ScanIdFilter,
    configure_logging,
    get_scan_id,
    set_scan_id,
)


def make_record(msg: str = "hello", exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="goodbai.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=10,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestScanId:
    """Test scan id context functionality."""

    def test_set_and_get_scan_id(self):
        """Test setting and getting scan id."""
        result = set_scan_id("scan-123")
        assert result == "scan-123"
        assert get_scan_id() == "scan-123"

    def test_set_scan_id_generates_id_when_none(self):
        """Test that setting None generates a short id."""
        result = set_scan_id(None)
        assert len(result) == 12
        assert get_scan_id() == result

    def test_filter_adds_scan_id(self):
        """Test that ScanIdFilter stamps records with the current scan id."""
        set_scan_id("abc")
        record = make_record()

        assert ScanIdFilter().filter(record) is True
        assert record.scan_id == "abc"


class TestFormatters:
    """Test text and JSON formatters."""

    def test_compact_formatter_prefixes_scan_id(self):
        formatter = CompactExceptionFormatter(fmt="%(scan_prefix)s%(message)s")
        record = make_record()
        record.scan_id = "abc"

        assert formatter.format(record) == "[abc] hello"

    def test_compact_formatter_without_scan_id(self):
        formatter = CompactExceptionFormatter(fmt="%(scan_prefix)s%(message)s")

        assert formatter.format(make_record()) == "hello"

    def test_compact_exception_chain_root_cause_first(self):
        """Test that chained exceptions print the root cause first."""
        try:
            try:
                raise ConnectionError("socket closed")
            except ConnectionError as e:
                raise RuntimeError("fetch failed") from e
        except RuntimeError:
            exc_info = sys.exc_info()

        text = CompactExceptionFormatter().formatException(exc_info)
        lines = [line for line in text.splitlines() if line.startswith("╰─►")]

        assert lines == [
            "╰─► ConnectionError: socket closed",
            "╰─► RuntimeError: fetch failed",
        ]

    def test_json_formatter_fields(self):
        formatter = CustomJsonFormatter("%(message)s")
        record = make_record()
        record.scan_id = "abc"

        data = json.loads(formatter.format(record))

        assert data["message"] == "hello"
        assert data["level"] == "WARNING"
        assert data["logger"] == "goodbai.test"
        assert data["scan_id"] == "abc"


class TestLoggingConfiguration:
    """Test logging configuration."""

    def test_configure_logging_debug_level(self):
        """Test configuring logging with DEBUG level."""
        configure_logging(log_level="DEBUG", json_format=False, app_name="test-app")
        assert logging.getLogger("test").getEffectiveLevel() <= logging.DEBUG

    def test_configure_logging_info_level(self):
        """Test configuring logging with INFO level."""
        configure_logging(log_level="INFO", json_format=False, app_name="test-app")
        assert logging.getLogger("test").getEffectiveLevel() == logging.INFO

    def test_configure_logging_json_format(self):
        """Test configuring logging with JSON format."""
        configure_logging(log_level="INFO", json_format=True, app_name="test-app")
        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, CustomJsonFormatter)

    def test_configure_logging_does_not_stack_handlers(self):
        """Test that repeated configuration replaces the handler."""
        configure_logging(log_level="INFO")
        configure_logging(log_level="INFO")
        assert len(logging.getLogger().handlers) == 1

    def test_http_libraries_quietened(self):
        configure_logging(log_level="DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING


class TestLogMessages:
    """Test structured log templates."""

    def test_template_tree(self):
        text = LogTemplate(icon="✅", title="Done", fields={"A": "1", "B": "{b}"}).format(b=2)

        assert text.splitlines() == ["✅ Done", "├─ A: 1", "└─ B: 2"]

    def test_missing_placeholder(self):
        text = LogTemplate(icon="x", title="T", fields={"A": "{nope}"}).format()

        assert "<missing:" in text

    def test_user_data_braces_are_literal(self):
        """Test that braces in track names are not treated as placeholders."""
        text = LogMessages.track_analysis_failed("Band – {Untitled}", "fetch", "Upstream error: 404")

        assert "├─ Track: Band – {Untitled}" in text
        assert "├─ Stage: fetch" in text
        assert text.endswith("└─ 💡 Track keeps its blocklist-only classification")

    def test_rate_limited_message(self):
        text = LogMessages.rate_limited("https://api/x", 10.0, 1, 3, giving_up=False)

        assert "Wait: 10.0s" in text
        assert "Attempt: 1/3" in text
        assert "Sleeping, then retrying" in text
