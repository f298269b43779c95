"""
Structured logging configuration.

Provides JSON output with cursor_stream.* prefixed stream context attributes.
"""

import json
import logging
import sys
from datetime import UTC, datetime

import structlog
from structlog.typing import EventDict, WrappedLogger

from cursor_stream.infra.config import get_settings

SENSITIVE_KEYS = frozenset({"password", "secret", "token", "dsn", "authorization", "api_key"})

# Keys bound by CursorStream that are moved into the cursor_stream.* namespace.
STREAM_CONTEXT_KEYS = ("stream_id", "collection", "generation", "direction")


def filter_sensitive_data(
    _logger: WrappedLogger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Redact values whose keys contain sensitive substrings."""
    for key in list(event_dict.keys()):
        if any(s in key.lower() for s in SENSITIVE_KEYS):
            event_dict[key] = "***REDACTED***"
    return event_dict


def add_stream_context(
    _logger: WrappedLogger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """
    Structlog processor that renames stream keys with a cursor_stream.* prefix.

    Transforms:
    - stream_id -> cursor_stream.id
    - collection -> cursor_stream.collection
    - generation -> cursor_stream.generation
    - direction -> cursor_stream.direction
    """
    for key in STREAM_CONTEXT_KEYS:
        if key in event_dict:
            target = "cursor_stream.id" if key == "stream_id" else f"cursor_stream.{key}"
            event_dict[target] = event_dict.pop(key)
    return event_dict


class JsonFormatter(logging.Formatter):
    """
    Render log records as JSON.

    Extracts all non-standard attributes from the LogRecord (the structlog
    event dict arrives as record attributes) and includes them in the output.
    """

    standard_attrs = frozenset(
        {
            "args",
            "asctime",
            "created",
            "exc_info",
            "exc_text",
            "filename",
            "funcName",
            "levelname",
            "levelno",
            "lineno",
            "module",
            "msecs",
            "message",
            "msg",
            "name",
            "pathname",
            "process",
            "processName",
            "relativeCreated",
            "stack_info",
            "taskName",
            "thread",
            "threadName",
        }
    )

    def format(self, record):
        timestamp = getattr(record, "timestamp", None)
        if not isinstance(timestamp, str):
            if self.datefmt == "iso":
                timestamp = datetime.fromtimestamp(record.created, tz=UTC).isoformat()
            else:
                timestamp = self.formatTime(record, self.datefmt)

        log_record = {
            "timestamp": timestamp,
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in self.standard_attrs and key not in log_record:
                log_record[key] = value

        # structlog passes the event name as 'event'; prefer it as the message.
        if "event" in log_record:
            log_record["msg"] = log_record.pop("event")

        return json.dumps(log_record, sort_keys=True, default=str)


def setup_logging(level: str | None = None) -> None:
    """
    Set up structured logging using structlog, integrated with the standard
    logging library to output JSON on stdout.

    Args:
        level: Log level name. Defaults to StreamSettings.log_level.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            filter_sensitive_data,
            add_stream_context,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter(datefmt="iso"))

    root_logger = logging.getLogger()
    if root_logger.hasHandlers():
        root_logger.handlers.clear()
    root_logger.addHandler(handler)

    level_name = (level or get_settings().log_level).upper()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))
