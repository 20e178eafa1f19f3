"""Logging configuration for the content gateway.

Records are written to stdout either as single-line JSON for log
collectors or as plain text for a terminal. Both formats attach the
content identifier of the request being served, when there is one.
"""

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# Content identifier of the upload or retrieval being served
content_id_context: contextvars.ContextVar[str | None] = contextvars.ContextVar("content_id", default=None)

# Attributes every LogRecord has; anything else arrived through ``extra``
_RECORD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRIBUTES}


class JsonLogFormatter(logging.Formatter):
    """Formats each record as one JSON object per line.

    Fields passed with ``extra={...}`` (operation, exit_code, http_status
    and so on) become top-level keys next to the base fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "severity": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "source": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        content_id = content_id_context.get()
        if content_id:
            log_entry["content_id"] = content_id
        log_entry.update(_extra_fields(record))

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
            log_entry["exception_type"] = record.exc_info[0].__name__
            log_entry["exception_message"] = str(record.exc_info[1])

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ContextTextFormatter(logging.Formatter):
    """Plain text format with the request's content identifier appended."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        content_id = content_id_context.get()
        if content_id:
            line = f"{line} [content_id={content_id}]"
        return line


def _resolve_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging() -> None:
    """Configure stdout logging for the gateway and the uvicorn server.

    ``LOG_FORMAT`` picks ``json`` or ``text``; when unset, local
    development gets text at DEBUG and every other environment gets JSON
    at ``LOG_LEVEL``.
    """
    from casgateway.core.config import settings

    local = settings.ENV == "local"
    log_format = (settings.LOG_FORMAT or ("text" if local else "json")).lower()
    log_level = logging.DEBUG if local else _resolve_level(settings.LOG_LEVEL)

    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(ContextTextFormatter(TEXT_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # httpx logs every RPC call at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    for logger_name in ["uvicorn", "uvicorn.access", "uvicorn.error"]:
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.setLevel(log_level)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.addHandler(handler)
        uvicorn_logger.propagate = False
