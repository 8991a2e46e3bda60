"""
HubSpot billing webhook — plan changes pushed by HubSpot.

Not session-authenticated: the only credential is the HMAC in ``x-signature``
(``x-hubspot-signature`` is accepted from older app configs). Responses use
a flat ``{"message": ...}`` body for every outcome.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.config import settings
from app.core.errors import AuthenticationError, BulkOperationFailure, ConfigurationError, ValidationError
from app.services.plan_updater import PlanUpdater
from app.services.webhook_auth import parse_plan_change_payload, verify_webhook_signature

router = APIRouter()

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("x-signature", "x-hubspot-signature")


def get_plan_updater() -> PlanUpdater:
    return PlanUpdater()


def _signature_from(request: Request):
    for header in SIGNATURE_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return None


@router.post(
    "/billing/webhook",
    summary="HubSpot billing webhook",
    description="Receive plan-change events from HubSpot. Authenticated by HMAC-SHA256 signature only.",
)
async def hubspot_billing_webhook(
    request: Request,
    plan_updater: PlanUpdater = Depends(get_plan_updater),
):
    # Signature is checked over the exact bytes received
    raw_body = await request.body()

    try:
        verify_webhook_signature(raw_body, _signature_from(request), settings.hubspot_client_secret)
    except ConfigurationError:
        return JSONResponse(
            status_code=500,
            content={"message": "HUBSPOT_CLIENT_SECRET not set in environment"},
        )
    except AuthenticationError:
        return JSONResponse(
            status_code=401,
            content={"message": "Invalid HubSpot webhook signature"},
        )

    try:
        payload = parse_plan_change_payload(raw_body)
    except ValidationError as exc:
        return JSONResponse(status_code=400, content={"message": exc.detail})

    try:
        plan_updater.update_plan_for_portal(payload.portal_id, payload.new_plan_id)
    except BulkOperationFailure as exc:
        return JSONResponse(
            status_code=500,
            content={"message": "Failed to process webhook", "error": exc.detail},
        )
    except Exception as exc:
        logger.error("Error processing HubSpot webhook: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"message": "Failed to process webhook", "error": str(exc)},
        )

    logger.info(
        "HubSpot plan change applied: portal=%s plan=%s event=%s",
        payload.portal_id, payload.new_plan_id, payload.event_type,
    )
    return JSONResponse(status_code=200, content={"message": "Plan updated successfully"})
