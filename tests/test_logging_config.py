"""Tests for structured logging configuration."""

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone

import pytest

from hyperharness.logging_config import (
    JSONFormatter,
    LogContext,
    LogEntry,
    StructuredLogger,
    TextFormatter,
    clear_context,
    configure_logging,
    get_context,
    get_logger,
    set_context,
)

NEW_YEAR = datetime(2026, 1, 1, tzinfo=timezone.utc).timestamp()


def _make_record(msg="Test message", name="test.module", level=logging.INFO, exc_info=None):
    return logging.LogRecord(
        name=name,
        level=level,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestLogEntry:
    """Test LogEntry rendering."""

    def test_basic_entry(self):
        """Test basic serialization keys."""
        entry = LogEntry(created=NEW_YEAR, level="INFO", logger="test", message="Hello world")
        assert entry.to_dict() == {
            "ts": "2026-01-01T00:00:00.000000Z",
            "level": "INFO",
            "logger": "test",
            "msg": "Hello world",
        }

    def test_ids_and_fields(self):
        """Ids and fields both land at the top level."""
        entry = LogEntry(
            created=NEW_YEAR,
            level="DEBUG",
            logger="test",
            message="Spawning",
            ids={"execution_id": "exec-1", "step_id": "plan_0"},
            fields={"harness_id": "codex", "args": 7},
        )
        d = entry.to_dict()
        assert d["execution_id"] == "exec-1"
        assert d["step_id"] == "plan_0"
        assert d["harness_id"] == "codex"
        assert d["args"] == 7

    def test_to_text(self):
        """Text shows the short logger name, step id and shortened execution id."""
        entry = LogEntry(
            created=NEW_YEAR,
            level="WARNING",
            logger="hyperharness.hyperplan.executor",
            message="Step failed",
            ids={"step_id": "review_a_of_b", "execution_id": "0123456789abcdef"},
        )
        assert entry.to_text() == "2026-01-01 00:00:00 [WARNING] [executor] [review_a_of_b] [01234567] Step failed"

    def test_from_record_splits_context(self):
        """Context ids are promoted; other context keys become fields."""
        record = _make_record()
        record.structured_fields = {"pid": 7}
        with LogContext(execution_id="exec-9", harness_id="claude-code"):
            entry = LogEntry.from_record(record)
        assert entry.ids == {"execution_id": "exec-9"}
        assert entry.fields == {"harness_id": "claude-code", "pid": 7}

    def test_from_record_extra_ids(self):
        """Ids passed with extra= are used when the context has none."""
        record = _make_record()
        record.step_id = "plan_2"
        assert LogEntry.from_record(record).ids == {"step_id": "plan_2"}


class TestJSONFormatter:
    """Test JSON log formatter."""

    def test_format_basic(self):
        """Test basic JSON formatting."""
        parsed = json.loads(JSONFormatter().format(_make_record()))
        assert parsed["level"] == "INFO"
        assert parsed["msg"] == "Test message"
        assert parsed["logger"] == "test.module"

    def test_format_with_structured_fields(self):
        """Test JSON formatting with structured fields."""
        log_record = _make_record("Operation completed")
        log_record.structured_fields = {"duration_ms": 123, "status": "success"}
        parsed = json.loads(JSONFormatter().format(log_record))
        assert parsed["duration_ms"] == 123
        assert parsed["status"] == "success"

    def test_format_picks_up_context(self):
        """Context travels into the rendered line."""
        with LogContext(execution_id="exec-9", step_id="plan_1", harness_id="claude-code"):
            parsed = json.loads(JSONFormatter().format(_make_record()))
        assert parsed["execution_id"] == "exec-9"
        assert parsed["step_id"] == "plan_1"
        assert parsed["harness_id"] == "claude-code"

    def test_format_with_exception(self):
        """Test JSON formatting with exception."""
        try:
            raise ValueError("Test error")
        except ValueError:
            exc_info = sys.exc_info()

        parsed = json.loads(JSONFormatter().format(_make_record("Error occurred", level=logging.ERROR, exc_info=exc_info)))
        assert parsed["exception"]["type"] == "ValueError"
        assert parsed["exception"]["message"] == "Test error"
        assert "Traceback" in parsed["exception"]["traceback"]


class TestTextFormatter:
    """Test text log formatter."""

    def test_format_basic(self):
        """Test basic text formatting."""
        output = TextFormatter().format(_make_record())
        assert "[INFO]" in output
        assert "[module]" in output
        assert output.endswith("Test message")

    def test_format_with_fields(self):
        """Test text formatting with fields."""
        log_record = _make_record("Processing", level=logging.DEBUG)
        log_record.structured_fields = {"items": 10}
        assert TextFormatter().format(log_record).endswith("Processing items=10")

    def test_format_with_exception(self):
        try:
            raise KeyError("missing")
        except KeyError:
            exc_info = sys.exc_info()
        output = TextFormatter().format(_make_record("Lookup failed", exc_info=exc_info))
        assert "Lookup failed\nTraceback" in output


class TestStructuredLogger:
    """Test StructuredLogger."""

    def test_wraps_named_logger(self):
        assert StructuredLogger("test.module").logger is logging.getLogger("test.module")

    def test_keyword_arguments_become_fields(self, caplog):
        """Structured fields are attached to the record."""
        logger = StructuredLogger("hyperharness.test")
        with caplog.at_level(logging.INFO, logger="hyperharness.test"):
            logger.info("Spawned %s", "codex", pid=42)
        record = caplog.records[-1]
        assert record.getMessage() == "Spawned codex"
        assert record.structured_fields == {"pid": 42}

    def test_extra_is_kept(self, caplog):
        logger = StructuredLogger("hyperharness.test")
        with caplog.at_level(logging.INFO, logger="hyperharness.test"):
            logger.info("Step done", extra={"step_id": "plan_0"}, status="completed")
        record = caplog.records[-1]
        assert record.step_id == "plan_0"
        assert record.structured_fields == {"status": "completed"}

    def test_disabled_level_is_skipped(self, caplog):
        """Records below the logger level are never built."""
        logger = StructuredLogger("hyperharness.quiet")
        with caplog.at_level(logging.WARNING, logger="hyperharness.quiet"):
            logger.debug("Hidden")
        assert not [r for r in caplog.records if r.name == "hyperharness.quiet"]

    def test_exception_logging(self, caplog):
        """Test exception logging."""
        logger = StructuredLogger("hyperharness.test")
        with caplog.at_level(logging.ERROR, logger="hyperharness.test"):
            try:
                raise RuntimeError("Test error")
            except RuntimeError:
                logger.exception("Operation failed", operation="test")
        record = caplog.records[-1]
        assert record.exc_info is not None
        assert record.structured_fields == {"operation": "test"}

    def test_context_helper(self):
        """logger.context() returns a LogContext."""
        logger = StructuredLogger("test")
        with logger.context(step_id="plan_0"):
            assert get_context()["step_id"] == "plan_0"


class TestLogContext:
    """Test LogContext context manager."""

    def test_context_sets_fields(self):
        """Test that context sets fields."""
        with LogContext(harness_id="codex", execution_id="exec-1"):
            ctx = get_context()
            assert ctx["harness_id"] == "codex"
            assert ctx["execution_id"] == "exec-1"

    def test_context_clears_on_exit(self):
        """Test that context is cleared on exit."""
        with LogContext(temp="value"):
            assert get_context().get("temp") == "value"
        assert get_context().get("temp") is None

    def test_nested_contexts(self):
        """Test nested contexts merge and unwind."""
        with LogContext(outer="1"):
            with LogContext(inner="2"):
                ctx = get_context()
                assert ctx["outer"] == "1"
                assert ctx["inner"] == "2"
            ctx = get_context()
            assert ctx.get("outer") == "1"
            assert ctx.get("inner") is None

    @pytest.mark.asyncio
    async def test_context_is_task_local(self):
        """Concurrent tasks keep their own context."""
        seen = {}

        async def step(step_id):
            with LogContext(step_id=step_id):
                await asyncio.sleep(0)
                seen[step_id] = get_context()["step_id"]

        await asyncio.gather(step("plan_0"), step("plan_1"))
        assert seen == {"plan_0": "plan_0", "plan_1": "plan_1"}


class TestContextFunctions:
    """Test set/get/clear helpers."""

    def test_set_and_clear(self):
        """Test set_context merges and clear_context resets."""
        set_context(a=1)
        set_context(b=2)
        assert get_context() == {"a": 1, "b": 2}
        clear_context()
        assert get_context() == {}


class TestGetLogger:
    """Test get_logger caching."""

    def test_same_instance(self):
        assert get_logger("hyperharness.x") is get_logger("hyperharness.x")
        assert isinstance(get_logger("hyperharness.x"), StructuredLogger)


class TestConfigureLogging:
    """Test configure_logging."""

    @pytest.fixture(autouse=True)
    def restore_root(self, monkeypatch):
        for name in ("HYPERHARNESS_LOG_LEVEL", "HYPERHARNESS_LOG_FORMAT", "HYPERHARNESS_LOG_FILE"):
            monkeypatch.delenv(name, raising=False)
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)
        logging.getLogger("hyperharness").setLevel(logging.NOTSET)
        logging.getLogger("aiohttp.access").setLevel(logging.NOTSET)

    def test_json_output(self):
        """Test JSON formatter is installed on a stderr handler."""
        configure_logging(level="DEBUG", json_output=True)
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert root.handlers[0].stream is sys.stderr
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_text_output(self):
        """Test text formatter is used when json_output is False."""
        configure_logging(level="WARNING", json_output=False)
        root = logging.getLogger()
        assert isinstance(root.handlers[0].formatter, TextFormatter)
        assert logging.getLogger("hyperharness").level == logging.WARNING

    def test_environment_defaults(self, monkeypatch):
        monkeypatch.setenv("HYPERHARNESS_LOG_LEVEL", "error")
        monkeypatch.setenv("HYPERHARNESS_LOG_FORMAT", "JSON")
        configure_logging()
        root = logging.getLogger()
        assert root.level == logging.ERROR
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_access_log_is_quiet(self):
        configure_logging(level="DEBUG", json_output=False)
        assert logging.getLogger("aiohttp.access").level == logging.WARNING

    def test_file_handler(self, tmp_path):
        """Test a rotating file handler is added for log_file."""
        log_file = tmp_path / "harness.log"
        configure_logging(level="INFO", json_output=True, log_file=str(log_file))
        logging.getLogger("hyperharness.test").info("to file")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert json.loads(log_file.read_text().splitlines()[-1])["msg"] == "to file"

    def test_unknown_level_defaults_to_info(self):
        """Test an unknown level name falls back to INFO."""
        configure_logging(level="chatty", json_output=False)
        assert logging.getLogger().level == logging.INFO
