"""Structured JSON logging utilities.

Observability with structured logs:
- JSON format for log aggregation
- Includes request_id, user_id, org_id from context variables
- Standard fields: timestamp, level, message, module, func, line
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from crm_api.context import org_id_var, request_id_var, user_id_var
from crm_api.utils.sanitize import (
    REDACTED,
    is_sensitive_key,
    sanitize_exc,
    sanitize_obj,
    sanitize_str,
)

# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS: frozenset[str] = frozenset({
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "thread",
    "threadName",
    "taskName",
    "exc_info",
    "exc_text",
    "stack_info",
})


class JSONFormatter(logging.Formatter):
    """JSON log formatter with request/tenant context.

    Formats log records as JSON with standard fields:
    - timestamp: ISO 8601 UTC
    - level: log level (INFO, ERROR, etc.)
    - message: log message
    - module: Python module name
    - func: function name
    - line: line number
    - request_id: from context variable (if set)
    - user_id: from context variable (if set)
    - org_id: from context variable (if set)

    Extra fields passed with ``logger.info(..., extra={...})`` are merged in
    after sanitization. An explicit extra wins over the context variable.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": sanitize_str(record.getMessage()),
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
        }

        for key, var in (
            ("request_id", request_id_var),
            ("user_id", user_id_var),
            ("org_id", org_id_var),
        ):
            value = var.get()
            if value:
                log_data[key] = value

        # Sanitize traceback
        if record.exc_info:
            log_data["exc_info"] = sanitize_exc(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            if is_sensitive_key(key):
                log_data[key] = REDACTED
            else:
                log_data[key] = sanitize_obj(value)

        return json.dumps(log_data, default=str)


def configure_json_logging(log_level: str = "INFO") -> None:
    """Configure root logger with JSON formatter.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)
