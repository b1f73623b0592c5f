"""
Logging setup and structured log helpers.

Every module logs through ``get_logger(__name__)``; keyword arguments become
structured context that the JSON file handler emits as top-level fields.
Audit events (draws, sign-ins) go through ``log_business_event``.
"""
import logging
import logging.config
import json
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from pathlib import Path

# Context keys whose values must never reach a log sink.
REDACTED_KEYS = frozenset({"csrf_token", "token", "verification_code", "session_id"})
REDACTED_VALUE = "[redacted]"

# Loggers that receive the configured handlers directly.
MANAGED_LOGGERS = {
    "app": None,  # follows the requested level
    "uvicorn": "INFO",
    "sqlalchemy.engine": "WARNING",  # SQL echo is too chatty below this
}


def redact(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``data`` with sensitive values masked."""
    return {k: (REDACTED_VALUE if k in REDACTED_KEYS else v) for k, v in data.items()}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, structured context merged at top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
            "pid": record.process,
        }
        context = getattr(record, "context", None)
        if context:
            payload.update(context)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class StructuredLogger:
    """
    Thin wrapper over ``logging.Logger`` accepting keyword context.

    ``None`` values are dropped, sensitive keys are redacted and ``exc_info``
    is handed to the underlying logger rather than stored as context.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _emit(self, level: int, message: str, **context):
        exc_info = context.pop("exc_info", None)
        if not self.logger.isEnabledFor(level):
            return
        clean = redact({k: v for k, v in context.items() if v is not None})
        self.logger.log(level, message, exc_info=exc_info, extra={"context": clean})

    def debug(self, message: str, **context):
        self._emit(logging.DEBUG, message, **context)

    def info(self, message: str, **context):
        self._emit(logging.INFO, message, **context)

    def warning(self, message: str, **context):
        self._emit(logging.WARNING, message, **context)

    def error(self, message: str, **context):
        self._emit(logging.ERROR, message, **context)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_console: bool = True
) -> None:
    """
    Configure application logging via ``dictConfig``.

    Args:
        log_level: Level for application loggers and the root logger
        log_file: Optional path for a rotating JSON log file
        enable_console: Attach a human readable stdout handler
    """
    handlers: Dict[str, Dict[str, Any]] = {}

    if enable_console:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "stream": sys.stdout,
            "formatter": "standard",
            "level": log_level,
        }

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "formatter": "json",
            "level": log_level,
        }

    names = list(handlers)
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JSONFormatter},
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": {
            name: {"level": level or log_level, "handlers": names, "propagate": False}
            for name, level in MANAGED_LOGGERS.items()
        },
        "root": {"level": log_level, "handlers": names},
    })


def get_logger(name: str) -> StructuredLogger:
    """Structured logger namespaced under ``app.``."""
    return StructuredLogger(f"app.{name}")


def log_business_event(
    event_type: str,
    details: Dict[str, Any],
    participant_id: Optional[int] = None,
    request_id: Optional[str] = None
) -> None:
    """
    Record an audit event.

    Args:
        event_type: e.g. 'lottery_drawn', 'participant_verified'
        details: event specific fields
        participant_id: acting participant, when known
        request_id: correlation id of the triggering request
    """
    get_logger("audit").info(
        f"Business event: {event_type}",
        event_type=event_type,
        participant_id=participant_id,
        request_id=request_id,
        **details
    )


def log_performance(
    operation: str,
    duration_ms: float,
    additional_data: Optional[Dict[str, Any]] = None
) -> None:
    """Record how long an operation took, with optional extra context."""
    get_logger("performance").info(
        f"Performance: {operation}",
        operation=operation,
        duration_ms=round(duration_ms, 2),
        **(additional_data or {})
    )
