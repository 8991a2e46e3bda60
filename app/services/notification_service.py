"""
Notification Service — user-facing billing notifications.
==========================================================

Fire-and-forget from the reconciler's point of view: the reconciler catches
and logs anything raised here. Delivery (email, in-app) is owned by the
notification service behind ``notification_webhook_url``; when that is not
configured the notification is only logged.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from app.config import settings
from app.models.billing_schemas import BillingNotification

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def send_billing_notification(self, user_id: str, notification: BillingNotification) -> None: ...


class NotificationService:
    """Posts billing notifications to the delivery service."""

    def __init__(self, webhook_url: Optional[str] = None, timeout: Optional[float] = None):
        self._webhook_url = webhook_url if webhook_url is not None else settings.notification_webhook_url
        self._timeout = timeout if timeout is not None else settings.notification_timeout_s

    async def send_billing_notification(self, user_id: str, notification: BillingNotification) -> None:
        if not self._webhook_url:
            logger.info(
                "Billing notification (no delivery URL configured): user=%s overage=%s ref=%s",
                user_id, notification.overage_id, notification.hubspot_reference,
            )
            return

        body = {
            "userId": user_id,
            "kind": "billing",
            "payload": notification.model_dump(mode="json", by_alias=True),
        }
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(self._webhook_url, json=body)
        response.raise_for_status()
