"""
JSON logging for the billing service.

structlog renders every record, including records from plain
``logging.getLogger()`` loggers (uvicorn, alembic, httpx), as one JSON object
per line. Per-request ids are bound with ``structlog.contextvars`` by
CorrelationMiddleware and merged into every event logged while the request
is in flight.
"""
from __future__ import annotations

import logging
import logging.handlers
import sys
import time
from pathlib import Path
from typing import List, Optional, Union

import structlog

APP_VERSION = "0.4.0"
SERVICE_NAME = "workflowguard-billing"

_started_at = time.monotonic()


def get_uptime_s() -> float:
    return time.monotonic() - _started_at


def _add_service(logger_name: str, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", APP_VERSION)
    return event_dict


def _lowercase_level(logger_name: str, method_name: str, event_dict: dict) -> dict:
    if "level" in event_dict:
        event_dict["level"] = str(event_dict["level"]).lower()
    return event_dict


def _file_handler(log_dir: str, filename: str, max_bytes: int, backup_count: int) -> logging.Handler:
    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        path / filename, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8",
    )


def setup_logging(
    log_dir: Optional[str] = None,
    level: Union[int, str] = logging.INFO,
    filename: str = "workflowguard-billing.jsonl",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Route structlog and stdlib logging through one JSON formatter.

    Call once, before the first log line. ``log_dir`` adds a rotating file
    next to stderr.
    """
    pre_chain: List = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        _lowercase_level,
        structlog.stdlib.add_logger_name,
        _add_service,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[*pre_chain, structlog.stdlib.ExtraAdder()],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
    )

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_error: Optional[OSError] = None
    if log_dir:
        try:
            handlers.append(_file_handler(log_dir, filename, max_bytes, backup_count))
        except OSError as exc:
            file_error = exc

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    # httpx logs every request line at INFO
    for name in ("httpx", "httpcore", "sqlalchemy.engine", "alembic.runtime.migration"):
        logging.getLogger(name).setLevel(logging.WARNING)

    if file_error is not None:
        structlog.get_logger(__name__).warning("log_dir_unwritable", log_dir=log_dir, error=str(file_error))
