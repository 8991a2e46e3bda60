"""
Billing Gateway — adapter for the HubSpot billing API.
=======================================================

PURPOSE:
    Submits one billing record (or one usage update) to HubSpot and returns
    the reference it hands back. The reconciler only depends on the
    ``BillingGateway`` protocol, so tests swap in a double.

FAILURE MODEL:
    Every call either returns a receipt or raises ``BillingGatewayError``
    (non-2xx, transport error, timeout, unparsable body). No retries here:
    each reconciliation sweep is a fresh attempt.

CONFIGURATION (env vars with WORKFLOWGUARD_ prefix):
    WORKFLOWGUARD_HUBSPOT_API_BASE            — API root (default https://api.hubapi.com)
    WORKFLOWGUARD_HUBSPOT_ACCESS_TOKEN        — private app token (Bearer)
    WORKFLOWGUARD_BILLING_GATEWAY_TIMEOUT_S   — per-call timeout in seconds
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

import httpx

from app.config import settings
from app.models.billing_schemas import BillingRecord, GatewayReceipt, UsageReceipt, UsageUpdate

logger = logging.getLogger(__name__)

__all__ = [
    "BillingGateway",
    "BillingGatewayError",
    "HubSpotBillingGateway",
]

BILLING_RECORDS_PATH = "/billing/v1/records"
USAGE_PATH = "/billing/v1/usage"
PORTAL_INFO_PATH = "/account-info/v3/details"


class BillingGatewayError(Exception):
    """A billing gateway call failed; the message is safe to surface per item."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


class BillingGateway(Protocol):
    async def create_billing_record(self, record: BillingRecord) -> GatewayReceipt: ...

    async def update_usage(self, update: UsageUpdate) -> UsageReceipt: ...

    async def validate_portal(self, portal_id: str) -> bool: ...


def build_billing_payload(record: BillingRecord) -> Dict[str, Any]:
    """HubSpot request body for one overage billing record."""
    return {
        "portalId": record.hubspot_portal_id,
        "userId": record.user_id,
        "userEmail": record.user_email,
        "billingRecord": {
            "type": "usage_overage",
            "description": record.description,
            "quantity": record.amount,
            "unitPrice": record.unit_price,
            "totalAmount": record.total_amount,
            "billingPeriod": {
                "start": record.period_start.isoformat(),
                "end": record.period_end.isoformat(),
            },
            "metadata": {
                "overageId": record.overage_id,
                "overageType": record.type,
                "source": "workflowguard",
            },
        },
    }


def build_usage_payload(update: UsageUpdate) -> Dict[str, Any]:
    return {
        "portalId": update.portal_id,
        "userId": update.user_id,
        "usage": {
            "type": update.usage_type,
            "amount": update.usage_amount,
            "billingPeriod": update.billing_period,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    }


class HubSpotBillingGateway:
    """Async HTTP client for the HubSpot billing endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self._base_url = (base_url or settings.hubspot_api_base).rstrip("/")
        self._access_token = access_token if access_token is not None else settings.hubspot_access_token
        self._timeout = timeout if timeout is not None else settings.billing_gateway_timeout_s

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(
                    method, url, json=json, params=params, headers=self._headers()
                )
        except httpx.TimeoutException as exc:
            raise BillingGatewayError(
                f"HubSpot request timed out after {self._timeout}s: {method} {path}"
            ) from exc
        except httpx.HTTPError as exc:
            raise BillingGatewayError(f"HubSpot request failed: {exc}") from exc

        if response.status_code >= 400:
            raise BillingGatewayError(
                f"HubSpot returned HTTP {response.status_code} for {method} {path}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise BillingGatewayError(
                f"HubSpot returned a non-JSON body for {method} {path}",
                status_code=response.status_code,
            ) from exc
        return data if isinstance(data, dict) else {}

    async def create_billing_record(self, record: BillingRecord) -> GatewayReceipt:
        """POST one overage billing record; returns HubSpot's reference id."""
        payload = build_billing_payload(record)
        logger.info(
            "Sending billing record to HubSpot: overage=%s portal=%s total=%.2f",
            record.overage_id, record.hubspot_portal_id, record.total_amount,
        )
        data = await self._request("POST", BILLING_RECORDS_PATH, json=payload)

        reference_id = data.get("referenceId") or data.get("id")
        if not reference_id:
            raise BillingGatewayError(
                f"HubSpot response for overage {record.overage_id} had no reference id"
            )
        return GatewayReceipt(
            reference_id=str(reference_id),
            amount=float(data.get("amount", record.total_amount)),
            status=data.get("status", "pending_processing"),
            message=data.get("message"),
        )

    async def update_usage(self, update: UsageUpdate) -> UsageReceipt:
        """POST a usage update. Idempotency is HubSpot's concern, not ours."""
        logger.info(
            "Updating HubSpot usage: portal=%s user=%s type=%s amount=%s",
            update.portal_id, update.user_id, update.usage_type, update.usage_amount,
        )
        data = await self._request("POST", USAGE_PATH, json=build_usage_payload(update))

        usage_id = data.get("usageId") or data.get("id")
        if not usage_id:
            raise BillingGatewayError("HubSpot usage response had no usage id")
        return UsageReceipt(
            success=bool(data.get("success", True)),
            usage_id=str(usage_id),
            message=data.get("message") or "Usage updated successfully",
        )

    async def validate_portal(self, portal_id: str) -> bool:
        """True when HubSpot reports the account behind ``portal_id``."""
        data = await self._request("GET", PORTAL_INFO_PATH, params={"portalId": portal_id})
        return str(data.get("portalId", "")) == str(portal_id)
