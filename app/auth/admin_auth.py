"""
Admin API-key guard for back-office billing endpoints.

Session auth lives in the main back office; this service only needs to know
that the caller is an operator. The key is sent as ``X-Admin-Key`` and
compared in constant time against WORKFLOWGUARD_ADMIN_API_KEY.

Auth can only be disabled when BOTH debug is on and auth_enabled is off,
so a single env var cannot open the admin endpoints in production.
"""

import hmac
import logging
from typing import Optional

from fastapi import Header

from app.config import settings
from app.core.errors import WorkflowGuardError

logger = logging.getLogger(__name__)


def _is_auth_enabled() -> bool:
    if settings.auth_enabled:
        return True
    if settings.debug:
        return False
    logger.warning(
        "Ignoring WORKFLOWGUARD_AUTH_ENABLED=false because debug=%s", settings.debug,
    )
    return True


async def require_admin(x_admin_key: Optional[str] = Header(default=None)) -> None:
    """FastAPI dependency: reject the request unless a valid admin key is sent."""
    if not _is_auth_enabled():
        return

    expected = settings.admin_api_key
    if not expected or not x_admin_key:
        raise WorkflowGuardError("WG-SEC-002", detail="Missing admin API key")

    if not hmac.compare_digest(expected.encode("utf-8"), x_admin_key.encode("utf-8")):
        raise WorkflowGuardError("WG-SEC-002", detail="Invalid admin API key")
