"""
Structured logging for the progress engine.

Every event is a snake_case name plus key/value fields rendered as JSON.
Per-request context lives in structlog contextvars:

- ``request_id``, ``method``, ``path``: bound by the request middleware
- ``user_id``: bound when the caller's identity is resolved
- ``sequence_id``: bound by routes that address a sequence

Engine code outside HTTP (scripts, tests) binds the same fields explicitly
with ``logger.bind``.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from pythonjsonlogger import jsonlogger

from sequence_progress.config import get_settings

# Third-party loggers that are chatty at INFO.
QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncpg", "uvicorn.access")


def add_app_context(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Stamp ``app_name`` and ``app_env`` on each event."""
    settings = get_settings()
    event_dict.setdefault("app_name", settings.app_name)
    event_dict.setdefault("app_env", settings.app_env)
    return event_dict


def bind_progress_context(
    user_id: Optional[str] = None,
    sequence_id: Optional[str] = None,
) -> None:
    """Bind whichever of the progress fields are known for the current request."""
    fields = {
        key: value
        for key, value in (("user_id", user_id), ("sequence_id", sequence_id))
        if value is not None
    }
    if fields:
        structlog.contextvars.bind_contextvars(**fields)


def setup_logging(log_level: Optional[str] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: Overrides ``settings.log_level`` when given
    """
    settings = get_settings()
    level = (log_level or settings.log_level).upper()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            add_app_context,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(getattr(logging, level))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "logging_configured", log_level=level, app_env=settings.app_env
    )
