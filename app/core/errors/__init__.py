"""
Error code system.

WorkflowGuardError is the base exception for all structured errors.
Raise it with an error code from the registry, and the error middleware
will produce a structured JSON response.

Usage:
    from app.core.errors import WorkflowGuardError
    raise WorkflowGuardError("WG-BIL-001", detail="user u_123 has no HubSpot portal ID")

The subclasses below name the failure classes of the billing pipeline; each
carries its default registry code.
"""

from __future__ import annotations

import re

CODE_PATTERN = re.compile(r"^WG-[A-Z]{2,6}-\d{3}$")


class WorkflowGuardError(Exception):
    """Structured application error tied to the error registry.

    Args:
        code: Registry error code, e.g. "WG-BIL-001".
        detail: Internal-only detail message.
        context: Arbitrary key-value context for structured logging.
    """

    default_code: str | None = None

    def __init__(
        self,
        code: str | None = None,
        detail: str | None = None,
        context: dict | None = None,
    ) -> None:
        code = code or self.default_code
        if code is None or not CODE_PATTERN.match(code):
            raise ValueError(f"Invalid error code format: {code!r}")
        self.code = code
        self.detail = detail
        self.context = context or {}
        super().__init__(f"{code}: {detail}" if detail else code)


class ConfigurationError(WorkflowGuardError):
    """Required configuration (e.g. the webhook shared secret) is missing."""

    default_code = "WG-CFG-001"


class AuthenticationError(WorkflowGuardError):
    """Inbound request could not be authenticated (missing/mismatched signature)."""

    default_code = "WG-SEC-001"


class ValidationError(WorkflowGuardError):
    """Request payload is missing required fields or is malformed."""

    default_code = "WG-API-001"


class BulkOperationFailure(WorkflowGuardError):
    """A set-based store write failed; detail carries the underlying message."""

    default_code = "WG-DB-001"
