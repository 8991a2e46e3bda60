"""
Overage Reconciler — report unbilled overages to HubSpot.
==========================================================

PURPOSE:
    Turns locally recorded usage overages into confirmed HubSpot billing
    records:
    1. **report_overages()** — reports a list of overage ids one at a time,
       returning one ReportResult per id in input order.
    2. **process_all_unbilled()** — scans every ``billed = false`` overage
       and reports them (used by the periodic sweep and the admin action).
    3. **get_user_billing_summary()** — billed/unbilled totals for a user.
    4. **get_billing_history()** / **get_billing_status()** — read-only views
       for the back office.

STATE MACHINE (per overage):
    unbilled → billed      (gateway accepted the record, conditional update won)
    unbilled → unbilled    (any failure; retried by the next sweep, no backoff)

ISOLATION:
    Each id is processed sequentially and independently. A failure is
    captured into that id's ReportResult and never aborts its siblings.
    The billed flag for item i is committed before item i+1 starts.

COST CALCULATION:
    total_amount = amount × UNIT_PRICE ($1 per unit), always recomputed.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import structlog

from app.config import settings
from app.core.errors import WorkflowGuardError
from app.models.billing import Overage, User
from app.models.billing_schemas import (
    BILLING_HISTORY_LIMIT,
    UNIT_PRICE,
    BillingHistory,
    BillingHistoryEntry,
    BillingNotification,
    BillingRecord,
    BillingStatus,
    BillingSummary,
    GatewayReceipt,
    ProcessSummary,
    ReportData,
    ReportResult,
)
from app.services.billing_gateway import BillingGateway, HubSpotBillingGateway
from app.services.ledger_store import LedgerStore
from app.services.notification_service import NotificationService, NotificationSink

__all__ = [
    "OverageReconciler",
    "OverageReportError",
    "build_billing_record",
    "hubspot_billing_url",
]

HUBSPOT_MARKETPLACE_URL = "https://app.hubspot.com/ecosystem/{portal_id}/marketplace/apps"


class OverageReportError(Exception):
    """One overage could not be reported. Captured into its ReportResult."""


def build_billing_record(overage: Overage, user: User) -> BillingRecord:
    return BillingRecord(
        user_id=overage.user_id,
        user_email=user.email,
        hubspot_portal_id=user.hubspot_portal_id or "",
        overage_id=overage.id,
        type=overage.type,
        amount=overage.amount,
        period_start=overage.period_start,
        period_end=overage.period_end,
        description=f"WorkflowGuard {overage.type} overage - {overage.amount} units",
        unit_price=UNIT_PRICE,
    )


def hubspot_billing_url(portal_id: Optional[str]) -> Optional[str]:
    if not portal_id:
        return None
    return HUBSPOT_MARKETPLACE_URL.format(portal_id=portal_id)


def _format_period(start: datetime, end: datetime) -> str:
    return f"{start:%Y-%m-%d} - {end:%Y-%m-%d}"


class OverageReconciler:
    """Drives overage reporting and the unbilled → billed transition."""

    def __init__(
        self,
        gateway: Optional[BillingGateway] = None,
        notifier: Optional[NotificationSink] = None,
        ledger: Optional[LedgerStore] = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
        gateway_timeout: Optional[float] = None,
    ):
        self._gateway = gateway or HubSpotBillingGateway()
        self._notifier = notifier or NotificationService()
        self._ledger = ledger or LedgerStore()
        self._log = logger or structlog.get_logger(__name__)
        self._gateway_timeout = (
            gateway_timeout if gateway_timeout is not None else settings.billing_gateway_timeout_s
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def report_overages(self, overage_ids: Sequence[str]) -> List[ReportResult]:
        """Report each overage independently; results keep the input order."""
        results: List[ReportResult] = []

        for overage_id in overage_ids:
            try:
                data = await self._report_single(overage_id)
            except OverageReportError as exc:
                self._log.warning("overage_report_failed", overage_id=overage_id, error=str(exc))
                results.append(ReportResult(overage_id=overage_id, success=False, error=str(exc)))
            except Exception as exc:
                # Gateway and store errors stay scoped to this item
                self._log.error(
                    "overage_report_failed",
                    overage_id=overage_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                results.append(ReportResult(overage_id=overage_id, success=False, error=str(exc)))
            else:
                results.append(ReportResult(overage_id=overage_id, success=True, data=data))

        return results

    async def _report_single(self, overage_id: str) -> ReportData:
        overage = self._ledger.get_overage(overage_id)
        if overage is None:
            raise OverageReportError(f"Overage {overage_id} not found")

        # Never send an already-billed overage to HubSpot twice
        if overage.billed:
            raise OverageReportError(f"Overage {overage_id} is already billed")

        user = self._ledger.get_user(overage.user_id)
        if user is None:
            raise OverageReportError(f"User {overage.user_id} not found")
        if not user.hubspot_portal_id:
            raise OverageReportError(f"User {overage.user_id} has no HubSpot portal ID")

        record = build_billing_record(overage, user)
        receipt = await self._submit(record)

        if not self._ledger.mark_billed(overage.id):
            self._log.error(
                "overage_billed_concurrently",
                overage_id=overage.id,
                hubspot_reference=receipt.reference_id,
            )
            raise OverageReportError(
                f"Overage {overage_id} was billed by a concurrent run "
                f"(duplicate HubSpot reference {receipt.reference_id})"
            )

        await self._notify(user.id, record, receipt)

        self._log.info(
            "overage_reported",
            overage_id=overage.id,
            user_id=user.id,
            hubspot_reference=receipt.reference_id,
            total_amount=record.total_amount,
        )
        return ReportData(
            overage_id=overage.id,
            hubspot_reference=receipt.reference_id,
            amount=record.total_amount,
            status="billed",
        )

    async def _submit(self, record: BillingRecord) -> GatewayReceipt:
        try:
            return await asyncio.wait_for(
                self._gateway.create_billing_record(record),
                timeout=self._gateway_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise OverageReportError(
                f"Billing gateway timed out after {self._gateway_timeout}s"
            ) from exc

    async def _notify(self, user_id: str, record: BillingRecord, receipt: GatewayReceipt) -> None:
        """Dispatch the billing notification; failures are logged only."""
        notification = BillingNotification(
            overage_id=record.overage_id,
            amount=record.amount,
            total_amount=record.total_amount,
            period=_format_period(record.period_start, record.period_end),
            hubspot_reference=receipt.reference_id,
        )
        try:
            await self._notifier.send_billing_notification(user_id, notification)
        except Exception as exc:
            self._log.error(
                "billing_notification_failed",
                overage_id=record.overage_id,
                user_id=user_id,
                error=str(exc),
            )

    async def process_all_unbilled(self) -> ProcessSummary:
        """Report every unbilled overage currently in the ledger."""
        overage_ids = self._ledger.list_unbilled_ids()
        self._log.info("unbilled_overages_processing", count=len(overage_ids))

        results = await self.report_overages(overage_ids)
        summary = ProcessSummary.from_results(results)

        self._log.info(
            "unbilled_overages_processed",
            total=summary.total_processed,
            successful=summary.successful,
            failed=summary.failed,
        )
        return summary

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def _require_user(self, user_id: str) -> User:
        user = self._ledger.get_user(user_id)
        if user is None:
            raise WorkflowGuardError("WG-BIL-002", detail=f"User {user_id} not found", context={"user_id": user_id})
        return user

    def get_user_billing_summary(self, user_id: str) -> BillingSummary:
        """Billed/unbilled totals for a user with a connected HubSpot portal."""
        user = self._require_user(user_id)
        if not user.hubspot_portal_id:
            raise WorkflowGuardError(
                "WG-BIL-001",
                detail=f"User {user_id} has no HubSpot portal ID",
                context={"user_id": user_id},
            )

        overages = self._ledger.list_for_user(user_id)
        billed = [o for o in overages if o.billed]
        unbilled = [o for o in overages if not o.billed]

        return BillingSummary(
            user_id=user.id,
            hubspot_portal_id=user.hubspot_portal_id,
            total_billed=sum(o.amount * UNIT_PRICE for o in billed),
            total_unbilled=sum(o.amount * UNIT_PRICE for o in unbilled),
            overage_count=len(overages),
            billed_count=len(billed),
            unbilled_count=len(unbilled),
        )

    def get_billing_history(self, user_id: str) -> BillingHistory:
        """Latest local overages for a user; the full ledger lives in HubSpot."""
        user = self._require_user(user_id)
        overages = self._ledger.list_for_user(user_id, limit=BILLING_HISTORY_LIMIT)

        return BillingHistory(
            user_id=user.id,
            hubspot_portal_id=user.hubspot_portal_id,
            overages=[
                BillingHistoryEntry(
                    id=o.id,
                    type=o.type,
                    amount=o.amount,
                    period_start=o.period_start,
                    period_end=o.period_end,
                    total_amount=o.amount * UNIT_PRICE,
                    billed=o.billed,
                    created_at=o.created_at,
                )
                for o in overages
            ],
            hubspot_billing_url=hubspot_billing_url(user.hubspot_portal_id),
        )

    def get_billing_status(self) -> BillingStatus:
        unbilled = self._ledger.count_unbilled()
        return BillingStatus(
            status="operational",
            timestamp=datetime.now(timezone.utc),
            unbilled_overages=unbilled,
            message="HubSpot billing system is operational",
        )
