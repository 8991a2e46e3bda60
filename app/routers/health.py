"""
Health check endpoints.

- GET /health       — cheap: process alive, version, uptime
- GET /health/deep  — database round-trip (admin only, exposes infrastructure details)
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text

from app.auth.admin_auth import require_admin
from app.core.database import get_engine
from app.core.structured_logging import APP_VERSION, SERVICE_NAME, get_uptime_s

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """Cheap health check — no network calls."""
    return {
        "status": "ok",
        "version": APP_VERSION,
        "service": SERVICE_NAME,
        "uptime_s": round(get_uptime_s(), 1),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/deep", dependencies=[Depends(require_admin)])
async def deep_health_check():
    """Health check including a database round-trip."""
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        database = {"status": "ok"}
    except Exception as exc:
        logger.warning("Deep health: database check failed: %s", exc)
        database = {"status": "error", "error": str(exc)}

    overall = "ok" if database["status"] == "ok" else "degraded"
    return {
        "status": overall,
        "version": APP_VERSION,
        "components": {"database": database},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
