from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from crm_actions.context import get_log_context


# Only these `extra=` keys reach the JSON output; anything else stays on the record.
LOGGED_FIELDS = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "crm_backend",
        "action_type",
        "success",
        "requires_confirmation",
        "pipeline_id",
        "stage_id",
        "query",
        "success_count",
        "fail_count",
        "reason",
        "error",
    }
)
MAX_ERROR_LENGTH = 500

_default_factory = logging.getLogRecordFactory()


def _attach_context(record: logging.LogRecord) -> logging.LogRecord:
    for key, value in get_log_context().items():
        if not getattr(record, key, None):
            setattr(record, key, value)
    return record


def _context_record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    return _attach_context(_default_factory(*args, **kwargs))


class RequestContextFilter(logging.Filter):
    """Fills correlation/workspace ids for records created before the factory was installed."""

    def filter(self, record: logging.LogRecord) -> bool:
        _attach_context(record)
        return True


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        fields = {key: value for key, value in record.__dict__.items() if key in LOGGED_FIELDS}
        if isinstance(fields.get("error"), str):
            fields["error"] = fields["error"][:MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        return json.dumps(
            {
                "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "correlation_id": getattr(record, "correlation_id", None),
                "workspace_id": getattr(record, "workspace_id", None),
                "fields": fields,
            },
            default=str,
        )


def configure_logging(level_name: str = "INFO") -> None:
    root = logging.getLogger()
    if any(isinstance(handler.formatter, JsonLogFormatter) for handler in root.handlers):
        return

    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter())
    handler.addFilter(RequestContextFilter())

    logging.setLogRecordFactory(_context_record_factory)
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
