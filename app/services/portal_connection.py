"""
Portal connection helpers — boundary checks and usage pass-through.

validate_portal_connection never raises: any upstream error reads as
"not valid". update_usage is a straight pass-through to the gateway with no
local state change.
"""

from __future__ import annotations

from typing import Optional

import structlog

from app.models.billing_schemas import UsageReceipt, UsageUpdate
from app.services.billing_gateway import BillingGateway, HubSpotBillingGateway


class PortalConnectionService:
    def __init__(
        self,
        gateway: Optional[BillingGateway] = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ):
        self._gateway = gateway or HubSpotBillingGateway()
        self._log = logger or structlog.get_logger(__name__)

    async def validate_portal_connection(self, portal_id: Optional[str]) -> bool:
        if not portal_id or not portal_id.strip():
            self._log.info("portal_validation_skipped", reason="empty_portal_id")
            return False

        try:
            is_valid = await self._gateway.validate_portal(portal_id)
        except Exception as exc:
            self._log.error("portal_validation_failed", portal_id=portal_id, error=str(exc))
            return False

        self._log.info("portal_validated", portal_id=portal_id, is_valid=is_valid)
        return bool(is_valid)

    async def update_usage(self, usage_update: UsageUpdate) -> UsageReceipt:
        receipt = await self._gateway.update_usage(usage_update)
        self._log.info(
            "usage_updated",
            portal_id=usage_update.portal_id,
            user_id=usage_update.user_id,
            usage_id=receipt.usage_id,
        )
        return receipt
