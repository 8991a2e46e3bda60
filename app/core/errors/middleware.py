"""
FastAPI exception handler for WorkflowGuardError.

Renders ``{"error": {...}}`` from the registry entry for the raised code.
Only the registry's safe message reaches the client; ``detail`` and
``context`` go to the log. Codes missing from the registry render as a
generic 500.
"""

import logging
from typing import Optional

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.errors import WorkflowGuardError
from app.core.errors.registry import ErrorEntry, error_registry

logger = structlog.get_logger(__name__)

_LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def error_body(entry: Optional[ErrorEntry], code: str) -> dict:
    if entry is None:
        return {
            "code": code,
            "title": "Internal error",
            "message": "An unexpected error occurred.",
            "retryable": False,
            "user_action_required": False,
            "remediation": [],
        }
    return {
        "code": entry.code,
        "title": entry.title,
        "message": entry.safe_message,
        "retryable": entry.retryable,
        "user_action_required": entry.user_action_required,
        "remediation": list(entry.remediation),
    }


async def workflowguard_error_handler(request: Request, exc: WorkflowGuardError) -> JSONResponse:
    entry = error_registry.get(exc.code)
    level = _LOG_LEVELS.get(entry.severity, logging.ERROR) if entry else logging.ERROR

    logger.log(
        level,
        "workflowguard_error" if entry else "unregistered_error_code",
        code=exc.code,
        kind=type(exc).__name__,
        detail=exc.detail,
        path=request.url.path,
        context=exc.context,
    )

    return JSONResponse(
        status_code=entry.http_status if entry else 500,
        content={"error": error_body(entry, exc.code)},
    )
