"""
Plan Updater — apply a HubSpot plan change to every user on a portal.

One set-based UPDATE, not a per-user loop: it either commits as a whole or
raises. Store failures are logged and re-raised as BulkOperationFailure with
the underlying message unchanged in ``detail``.
"""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import BulkOperationFailure
from app.services.ledger_store import UserStore


class PlanUpdater:
    def __init__(
        self,
        users: Optional[UserStore] = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ):
        self._users = users or UserStore()
        self._log = logger or structlog.get_logger(__name__)

    def update_plan_for_portal(self, portal_id: str, new_plan_id: str) -> None:
        try:
            updated = self._users.update_plan_for_portal(portal_id, new_plan_id)
        except SQLAlchemyError as exc:
            self._log.error(
                "plan_update_failed",
                portal_id=portal_id,
                new_plan_id=new_plan_id,
                error=str(exc),
            )
            raise BulkOperationFailure(
                detail=str(exc),
                context={"portal_id": portal_id, "new_plan_id": new_plan_id},
            ) from exc

        self._log.info(
            "plan_updated_for_portal",
            portal_id=portal_id,
            new_plan_id=new_plan_id,
            users_updated=updated,
        )
