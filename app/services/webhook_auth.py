"""
Webhook Authenticator — HMAC-SHA256 verification for HubSpot webhooks.
=======================================================================

The signature is ``hex(HMAC-SHA256(secret, raw_body))`` computed over the
request bytes exactly as received, before any JSON parsing. Verification
must pass before any payload field is read.

Check order:
    1. secret configured              else ConfigurationError  (500)
    2. signature present + match      else AuthenticationError (401)
    3. portalId + newPlanId present   else ValidationError     (400)
"""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from app.core.errors import AuthenticationError, ConfigurationError, ValidationError
from app.models.billing_schemas import PlanChangeWebhookPayload

logger = structlog.get_logger(__name__)

MISSING_FIELDS_MESSAGE = "Missing portalId or newPlanId in webhook payload"


def compute_signature(secret: str, raw_body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_webhook_signature(
    raw_body: bytes,
    signature: Optional[str],
    secret: Optional[str],
    log: Optional[structlog.stdlib.BoundLogger] = None,
) -> None:
    """Raise unless ``signature`` is the HMAC of ``raw_body`` under ``secret``."""
    log = log or logger

    if not secret:
        log.error("webhook_secret_missing")
        raise ConfigurationError(detail="HUBSPOT_CLIENT_SECRET not set in environment")

    if not signature:
        log.warning("webhook_signature_rejected", reason="missing")
        raise AuthenticationError(detail="Missing webhook signature")

    expected = compute_signature(secret, raw_body)
    if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
        # Never log the expected value
        log.warning("webhook_signature_rejected", reason="mismatch", body_bytes=len(raw_body))
        raise AuthenticationError(detail="Webhook signature mismatch")


def parse_plan_change_payload(raw_body: bytes) -> PlanChangeWebhookPayload:
    """Decode an already-verified body and check the required fields."""
    try:
        data = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValidationError(detail="Invalid JSON payload") from exc

    if not isinstance(data, dict):
        raise ValidationError(detail=MISSING_FIELDS_MESSAGE)

    try:
        payload = PlanChangeWebhookPayload.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(detail=MISSING_FIELDS_MESSAGE) from exc

    if not payload.is_complete:
        raise ValidationError(detail=MISSING_FIELDS_MESSAGE)
    return payload
