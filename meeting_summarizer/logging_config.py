"""
Structured logging for the worker and the database scripts.

Application code logs through structlog; records from libraries that use the
standard ``logging`` module (arq, SQLAlchemy, httpx) go to the same stdout
handler so one process writes one stream.
"""
import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, List

import structlog
from pythonjsonlogger import jsonlogger

SERVICE_NAME = "meeting-summarizer"

# Libraries that log every request or poll at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "arq.jobs")


def _add_service(_logger: Any, _method: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _processors(json_logs: bool) -> List[Any]:
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _add_service,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        renderer,
    ]


def _stdlib_formatter(json_logs: bool) -> logging.Formatter:
    if not json_logs:
        return logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    return jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        static_fields={"service": SERVICE_NAME},
    )


def setup_logging(debug: bool = False, json_logs: bool = True) -> None:
    """
    Configure structlog and the root stdlib logger.

    Args:
        debug: Log at DEBUG instead of INFO
        json_logs: JSON lines for log shippers; human-readable console output otherwise
    """
    level = logging.DEBUG if debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_stdlib_formatter(json_logs))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=_processors(json_logs),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    return structlog.get_logger(name)


@contextmanager
def job_log_context(job_id: str, meeting_id: str, attempt: int) -> Iterator[None]:
    """Bind job identity into every log line emitted inside the block."""
    with structlog.contextvars.bound_contextvars(job_id=job_id, meeting_id=meeting_id, attempt=attempt):
        yield
