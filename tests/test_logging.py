"""Tests for the structured log formatter."""

import json
import logging
import sys

from casgateway.core.config import settings
from casgateway.core.logging import (
    ContextTextFormatter,
    JsonLogFormatter,
    TEXT_FORMAT,
    content_id_context,
    setup_logging,
)


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("casgateway.test", logging.ERROR, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_emits_single_line_json():
    """Test the base fields and extra fields of a formatted record."""
    line = JsonLogFormatter().format(_record("Upload failed", operation="add", exit_code=1))

    assert "\n" not in line
    entry = json.loads(line)
    assert entry["severity"] == "ERROR"
    assert entry["message"] == "Upload failed"
    assert entry["operation"] == "add"
    assert entry["exit_code"] == 1


def test_formatter_includes_content_id_from_context():
    """Test that the request-scoped content id is attached."""
    token = content_id_context.set("QmContext")
    try:
        entry = json.loads(JsonLogFormatter().format(_record("Retrieving")))
    finally:
        content_id_context.reset(token)

    assert entry["content_id"] == "QmContext"


def test_formatter_includes_exception():
    """Test that exception info is flattened into the entry."""
    try:
        raise RuntimeError("daemon gone")
    except RuntimeError:
        record = logging.LogRecord(
            "casgateway.test", logging.ERROR, __file__, 10, "failed", None, sys.exc_info()
        )

    entry = json.loads(JsonLogFormatter().format(record))

    assert entry["exception_type"] == "RuntimeError"
    assert entry["exception_message"] == "daemon gone"


def test_text_formatter_appends_content_id():
    """Test that plain text lines carry the request's content id."""
    formatter = ContextTextFormatter(TEXT_FORMAT)
    token = content_id_context.set("QmText")
    try:
        line = formatter.format(_record("Retrieving"))
    finally:
        content_id_context.reset(token)

    assert line.endswith("Retrieving [content_id=QmText]")
    assert "[content_id=" not in formatter.format(_record("Idle"))


def test_setup_logging_honours_log_format(monkeypatch):
    """Test that LOG_FORMAT overrides the environment default."""
    monkeypatch.setattr(settings, "ENV", "local")
    monkeypatch.setattr(settings, "LOG_FORMAT", "json")

    setup_logging()

    handler = logging.getLogger().handlers[0]
    assert isinstance(handler.formatter, JsonLogFormatter)
    assert logging.getLogger("httpx").level == logging.WARNING

    monkeypatch.setattr(settings, "LOG_FORMAT", "")
    setup_logging()

    assert isinstance(logging.getLogger().handlers[0].formatter, ContextTextFormatter)
