"""Structured logging for the import engine using structlog.

Configured once on import:
- ISO-8601 timestamps, logger name and level on every event
- JSON rendering
- Redaction of credential-like fields and of inline COPY credentials in SQL
- stdout output plus an optional daily-rotated file

Environment:
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR, CRITICAL. Default: INFO
- LOG_TO_FILE: enable file logging (1, true, yes). Default: disabled
- LOG_FILE_DIR: directory for log files. Default: logs/

Usage:
    >>> from warehouse_import.utils.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("import.started", table="orders", incremental=True)
"""

import logging
import os
import re
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, MutableMapping

import structlog
from pydantic import ValidationError
from structlog.types import EventDict, Processor

from warehouse_import.config import get_settings

SENSITIVE_KEYS = re.compile(
    r"password|token|secret|access_key|credentials|^(database_)?url$", re.IGNORECASE
)

# CREDENTIALS 'aws_access_key_id=..;aws_secret_access_key=..' and AWS_SECRET_KEY = '..'
INLINE_SECRETS = re.compile(
    r"(aws_secret_access_key=|AWS_SECRET_KEY\s*=\s*')[^;']*", re.IGNORECASE
)

REDACTED_VALUE = "[REDACTED]"
LOG_FILE_PREFIX = "warehouse-import"


def sanitize_for_logging(data: Dict[str, Any]) -> Dict[str, Any]:
    """Redact sensitive values from a dictionary before logging.

    Keys that look like credentials lose their value entirely; string values
    keep their text with inline storage secrets masked.

    Example:
        >>> sanitize_for_logging({"password": "secret123", "user": "admin"})
        {'password': '[REDACTED]', 'user': 'admin'}
    """
    sanitized: Dict[str, Any] = {}
    for key, value in data.items():
        if SENSITIVE_KEYS.search(key):
            sanitized[key] = REDACTED_VALUE
        elif isinstance(value, dict):
            sanitized[key] = sanitize_for_logging(value)
        elif isinstance(value, str):
            sanitized[key] = INLINE_SECRETS.sub(rf"\1{REDACTED_VALUE}", value)
        else:
            sanitized[key] = value
    return sanitized


def sanitization_processor(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> MutableMapping[str, Any]:
    return sanitize_for_logging(dict(event_dict))


def _get_log_level() -> int:
    try:
        level_name = get_settings().LOG_LEVEL.upper()
    except ValidationError:
        # broken WHI_* values must not keep logging from coming up
        level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def _log_file_path() -> Path:
    log_dir = Path(os.getenv("LOG_FILE_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f"{LOG_FILE_PREFIX}-{datetime.now():%Y%m%d}.log"


def _build_handlers(level: int) -> List[logging.Handler]:
    """stdout always; a midnight-rotated file with 30 days of history on request."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if os.getenv("LOG_TO_FILE", "").lower() in ("1", "true", "yes"):
        handlers.append(
            TimedRotatingFileHandler(
                filename=str(_log_file_path()),
                when="midnight",
                backupCount=30,
                encoding="utf-8",
            )
        )
    for handler in handlers:
        handler.setLevel(level)
    return handlers


def _configure_structlog() -> None:
    level = _get_log_level()
    logging.basicConfig(format="%(message)s", level=level, handlers=_build_handlers(level))

    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        sanitization_processor,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


_configure_structlog()


def get_logger(name: str) -> Any:
    """Get a structlog BoundLogger for ``name`` (typically ``__name__``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> Any:
    """Create a logger with bound context fields.

    Example:
        >>> logger = bind_context(table="orders", dialect="redshift")
        >>> logger.info("import.started")
    """
    return structlog.get_logger().bind(**kwargs)
