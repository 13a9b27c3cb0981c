"""Tests for clai structured logging."""

import json
import logging
import sys

from clai.logging import ClaiFormatter, configure_logging, get_logger


def make_record(name="clai", level=logging.INFO, msg="message"):
    return logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


class TestClaiFormatter:
    def test_human_readable_format(self):
        output = ClaiFormatter(json_output=False).format(make_record("clai.engine.loop", msg="Round started"))
        assert "clai.engine.loop" in output
        assert "Round started" in output
        assert "INFO" in output

    def test_json_format(self):
        output = ClaiFormatter(json_output=True).format(
            make_record("clai.tools.executor", logging.WARNING, "Tool handler crashed")
        )
        data = json.loads(output)
        assert data["logger"] == "clai.tools.executor"
        assert data["message"] == "Tool handler crashed"
        assert data["level"] == "WARNING"
        assert "timestamp" in data

    def test_extra_fields_in_human_format(self):
        record = make_record(msg="Round finished")
        record.provider = "anthropic"  # type: ignore[attr-defined]
        record.round = 3  # type: ignore[attr-defined]
        output = ClaiFormatter(json_output=False).format(record)
        assert "provider=anthropic" in output
        assert "round=3" in output

    def test_extra_fields_in_json_format(self):
        record = make_record(msg="Tool call denied")
        record.tool_name = "write_file"  # type: ignore[attr-defined]
        data = json.loads(ClaiFormatter(json_output=True).format(record))
        assert data["tool_name"] == "write_file"

    def test_unknown_extras_ignored(self):
        record = make_record()
        record.api_key = "sk-secret"  # type: ignore[attr-defined]
        assert "sk-secret" not in ClaiFormatter(json_output=True).format(record)

    def test_exception_included(self):
        try:
            raise ValueError("bad chunk")
        except ValueError:
            record = logging.LogRecord("clai", logging.ERROR, "test.py", 1, "failed", (), sys.exc_info())
        data = json.loads(ClaiFormatter(json_output=True).format(record))
        assert "ValueError: bad chunk" in data["exception"]


class TestGetLogger:
    def test_returns_logger(self):
        logger = get_logger("clai.test")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "clai.test"

    def test_default_name(self):
        assert get_logger().name == "clai"


class TestConfigureLogging:
    def test_configure_info(self):
        configure_logging(level="INFO")
        assert get_logger("clai").level == logging.INFO
        configure_logging()

    def test_default_level_is_warning(self):
        configure_logging()
        assert get_logger("clai").level == logging.WARNING

    def test_configure_json(self):
        """JSON mode should use ClaiFormatter with json_output=True."""
        configure_logging(json_output=True)
        logger = get_logger("clai")
        assert len(logger.handlers) == 1
        formatter = logger.handlers[0].formatter
        assert isinstance(formatter, ClaiFormatter)
        assert formatter._json_output is True

        # Reset to human format
        configure_logging(json_output=False)

    def test_handler_writes_to_stderr(self, capsys):
        configure_logging(level="WARNING")
        get_logger("clai.test").warning("to stderr")
        captured = capsys.readouterr()
        assert "to stderr" in captured.err
        assert captured.out == ""
