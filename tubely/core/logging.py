"""Structured logging with correlation IDs.

Every record is emitted as one JSON object carrying the correlation ID of
the request that produced it, so the steps of one ingestion can be followed
across the log stream.
"""

import json
import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord has; anything else was passed through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "correlation_id"}

# Libraries that log every request or part at INFO
QUIET_LOGGERS = (
    "uvicorn.access",
    "sqlalchemy.engine",
    "botocore",
    "boto3",
    "s3transfer",
    "urllib3",
    "multipart",
)


def get_correlation_id() -> str:
    """Return the current correlation ID, creating one outside a request."""
    cid = correlation_id_var.get()
    if cid is None:
        cid = str(uuid.uuid4())
        correlation_id_var.set(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    correlation_id_var.set(None)


class StructuredFormatter(logging.Formatter):
    """Formats records as single-line JSON.

    Fields passed through ``extra`` are collected under ``context``. Values
    that are not JSON serializable are stringified.
    """

    def __init__(self, service: str = "tubely", include_stack_trace: bool = True):
        super().__init__()
        self.service = service
        self.include_stack_trace = include_stack_trace

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        context = {key: _jsonable(value) for key, value in vars(record).items() if key not in _RECORD_ATTRS}
        if context:
            entry["context"] = context

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
            }
            if self.include_stack_trace and exc_tb is not None:
                entry["exception"]["stack_trace"] = traceback.format_exception(exc_type, exc_value, exc_tb)

        return json.dumps(entry, default=str)


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class CorrelationIdFilter(logging.Filter):
    """Stamps each record with the correlation ID of the current context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_stack_trace: bool = True,
    service: str = "tubely",
) -> None:
    """Configure the root logger with a single stdout handler.

    Args:
        level: Log level name
        json_format: Emit JSON lines, otherwise a plain text format
        include_stack_trace: Include tracebacks in JSON error records
        service: Service name written into every JSON record
    """
    numeric_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.addFilter(CorrelationIdFilter())
    if json_format:
        handler.setFormatter(StructuredFormatter(service=service, include_stack_trace=include_stack_trace))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s [%(correlation_id)s] %(message)s"
        ))
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_event(
    logger: logging.Logger,
    level: int,
    message: str,
    exception: Optional[BaseException] = None,
    **context: Any,
) -> None:
    """Log ``message`` with keyword context fields and the correlation ID."""
    context["correlation_id"] = get_correlation_id()
    logger.log(level, message, exc_info=exception, extra=context)


def log_error(
    logger: logging.Logger,
    message: str,
    exception: Optional[BaseException] = None,
    **context: Any,
) -> None:
    log_event(logger, logging.ERROR, message, exception, **context)


def log_warning(logger: logging.Logger, message: str, **context: Any) -> None:
    log_event(logger, logging.WARNING, message, **context)


def log_info(logger: logging.Logger, message: str, **context: Any) -> None:
    log_event(logger, logging.INFO, message, **context)
