"""
Billing Router — admin endpoints for overage reconciliation.
=============================================================

1. Overage processing:   POST /overages/process
2. Per-user read models: GET  /users/{user_id}/billing-summary
                         GET  /users/{user_id}/billing-history
3. HubSpot helpers:      POST /billing/validate-connection
                         POST /billing/update-usage
                         GET  /billing/status

All routes require the admin key (``X-Admin-Key``). Bulk processing always
answers with a structured summary, even when some items failed.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from app.auth.admin_auth import require_admin
from app.core.errors import WorkflowGuardError
from app.models.billing_schemas import (
    BillingHistory,
    BillingStatus,
    BillingSummary,
    ProcessOveragesRequest,
    ProcessOveragesResponse,
    ProcessSummary,
    UpdateUsageResponse,
    UsageUpdate,
    ValidateConnectionRequest,
    ValidateConnectionResponse,
)
from app.services.billing_gateway import BillingGatewayError
from app.services.overage_reconciler import OverageReconciler
from app.services.portal_connection import PortalConnectionService

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])


def get_reconciler() -> OverageReconciler:
    return OverageReconciler()


def get_portal_service() -> PortalConnectionService:
    return PortalConnectionService()


# ---------------------------------------------------------------------------
# Overage processing
# ---------------------------------------------------------------------------

@router.post(
    "/overages/process",
    response_model=ProcessOveragesResponse,
    response_model_exclude_none=True,
    summary="Report overages to HubSpot",
    description="Report the given overage ids, or every unbilled overage when none are given.",
)
async def process_overages(
    body: Optional[ProcessOveragesRequest] = None,
    reconciler: OverageReconciler = Depends(get_reconciler),
):
    overage_ids = body.overage_ids if body else None
    try:
        if overage_ids:
            results = await reconciler.report_overages(overage_ids)
            summary = ProcessSummary.from_results(results)
            message = "Overages processed successfully"
        else:
            summary = await reconciler.process_all_unbilled()
            message = "All unbilled overages processed"
    except Exception as exc:
        # Per-item failures never get here; this is a failed ledger scan
        logger.error("Overage processing failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to process overages: {exc}",
        )

    return ProcessOveragesResponse(
        message=message,
        total_processed=summary.total_processed,
        successful=summary.successful,
        failed=summary.failed,
        results=summary.results,
    )


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------

@router.get(
    "/users/{user_id}/billing-summary",
    response_model=BillingSummary,
    summary="Billing summary for a user",
)
async def get_user_billing_summary(
    user_id: str,
    reconciler: OverageReconciler = Depends(get_reconciler),
):
    return reconciler.get_user_billing_summary(user_id)


@router.get(
    "/users/{user_id}/billing-history",
    response_model=BillingHistory,
    summary="Local overage history for a user",
)
async def get_billing_history(
    user_id: str,
    reconciler: OverageReconciler = Depends(get_reconciler),
):
    return reconciler.get_billing_history(user_id)


@router.get(
    "/billing/status",
    response_model=BillingStatus,
    summary="Billing pipeline status",
)
async def get_billing_status(reconciler: OverageReconciler = Depends(get_reconciler)):
    return reconciler.get_billing_status()


# ---------------------------------------------------------------------------
# HubSpot helpers
# ---------------------------------------------------------------------------

@router.post(
    "/billing/validate-connection",
    response_model=ValidateConnectionResponse,
    summary="Validate a HubSpot portal id",
)
async def validate_connection(
    body: ValidateConnectionRequest,
    portals: PortalConnectionService = Depends(get_portal_service),
):
    is_valid = await portals.validate_portal_connection(body.portal_id)
    return ValidateConnectionResponse(
        portal_id=body.portal_id,
        is_valid=is_valid,
        message=(
            "HubSpot connection validated successfully"
            if is_valid
            else "Invalid HubSpot portal ID"
        ),
    )


@router.post(
    "/billing/update-usage",
    response_model=UpdateUsageResponse,
    summary="Push a usage update to HubSpot",
)
async def update_usage(
    body: UsageUpdate,
    portals: PortalConnectionService = Depends(get_portal_service),
):
    try:
        receipt = await portals.update_usage(body)
    except BillingGatewayError as exc:
        raise WorkflowGuardError(
            "WG-GW-001",
            detail=str(exc),
            context={"portal_id": body.portal_id, "user_id": body.user_id},
        ) from exc

    return UpdateUsageResponse(
        success=receipt.success,
        usage_id=receipt.usage_id,
        message="Usage updated successfully",
    )
