"""Tests for JSON log formatting and logging setup."""

import json
import logging
import logging.handlers
import sys

import pytest

from storage_guard.infra.logging import config as logging_config
from storage_guard.infra.logging.formatters import JSONFormatter


def _record(msg: str = "Storage operation denied by policy", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="storage_guard.core.policy.validator",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    record.__dict__.update(extra)
    return record


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way pytest configured it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    logging_config.shutdown()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_core_fields(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "WARNING"
        assert data["logger"] == "storage_guard.core.policy.validator"
        assert data["message"] == "Storage operation denied by policy"
        assert data["timestamp"].endswith("Z")

    def test_extra_fields_top_level(self):
        """Test that structured extras become top-level keys."""
        record = _record(operation="write", key="private/x.txt", rule="prefix_not_allowed")

        data = json.loads(JSONFormatter().format(record))

        assert data["operation"] == "write"
        assert data["key"] == "private/x.txt"
        assert data["rule"] == "prefix_not_allowed"
        assert "args" not in data
        assert "pathname" not in data

    def test_static_fields(self):
        data = json.loads(JSONFormatter(static={"service": "storage-guard"}).format(_record()))

        assert data["service"] == "storage-guard"

    def test_single_line_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record(msg="failed")
            record.exc_info = sys.exc_info()

        output = JSONFormatter().format(record)

        assert "\n" not in output
        assert "ValueError: boom" in json.loads(output)["exception"]

    def test_non_serializable_extra(self):
        """Test that unknown objects are rendered with str()."""
        data = json.loads(JSONFormatter().format(_record(path=object())))

        assert data["path"].startswith("<object object")


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_writes_jsonl_file(self, tmp_path, restore_root_logger):
        log_file = tmp_path / "logs" / "storage.jsonl"
        logging_config.configure_logging(
            log_level="INFO",
            file_path=log_file,
            console_enabled=False,
        )

        logging.getLogger("storage_guard.test").info("Object uploaded", extra={"key": "a.txt"})
        logging_config.shutdown()

        lines = log_file.read_text(encoding="utf-8").splitlines()
        data = json.loads(lines[-1])
        assert data["message"] == "Object uploaded"
        assert data["key"] == "a.txt"
        assert data["service"] == "storage-guard"

    def test_root_has_single_queue_handler(self, restore_root_logger):
        logging_config.configure_logging(log_level="WARNING", console_enabled=True)

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], logging.handlers.QueueHandler)
