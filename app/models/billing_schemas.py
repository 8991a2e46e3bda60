"""
Billing Schemas
===============

Pydantic models for the overage billing pipeline: gateway payloads, per-item
report results, summaries, and the HTTP request/response bodies.

Python attributes are snake_case; JSON on the wire is camelCase
(``overageId``, ``totalProcessed``). Both spellings are accepted on input.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

# $1 per overage unit
UNIT_PRICE: float = 1.0

# Local history is capped; the full ledger lives in HubSpot
BILLING_HISTORY_LIMIT = 50


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Gateway payloads
# ---------------------------------------------------------------------------

class BillingRecord(CamelModel):
    """What gets sent to the billing gateway for one overage. Never persisted."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    user_id: str
    user_email: str
    hubspot_portal_id: str
    overage_id: str
    type: str
    amount: int
    period_start: datetime
    period_end: datetime
    description: str
    unit_price: float = UNIT_PRICE

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_amount(self) -> float:
        return self.amount * self.unit_price


class GatewayReceipt(CamelModel):
    reference_id: str
    amount: float
    status: str = "pending_processing"
    message: Optional[str] = None


class UsageUpdate(CamelModel):
    portal_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    usage_type: str = Field(..., min_length=1)
    usage_amount: float = Field(..., ge=0)
    billing_period: str = Field(..., min_length=1)


class UsageReceipt(CamelModel):
    success: bool
    usage_id: str
    message: str = "Usage updated successfully"


class BillingNotification(CamelModel):
    overage_id: str
    amount: int
    total_amount: float
    period: str
    hubspot_reference: str


# ---------------------------------------------------------------------------
# Reconciler results
# ---------------------------------------------------------------------------

class ReportData(CamelModel):
    overage_id: str
    hubspot_reference: str
    amount: float
    status: str = "billed"


class ReportResult(CamelModel):
    """Outcome of reporting one overage: ``data`` on success, ``error`` otherwise."""

    overage_id: str
    success: bool
    data: Optional[ReportData] = None
    error: Optional[str] = None


class ProcessSummary(CamelModel):
    total_processed: int
    successful: int
    failed: int
    results: List[ReportResult] = Field(default_factory=list)

    @classmethod
    def from_results(cls, results: List[ReportResult]) -> "ProcessSummary":
        successful = sum(1 for r in results if r.success)
        return cls(
            total_processed=len(results),
            successful=successful,
            failed=len(results) - successful,
            results=results,
        )


class BillingSummary(CamelModel):
    user_id: str
    hubspot_portal_id: str
    total_billed: float
    total_unbilled: float
    overage_count: int
    billed_count: int
    unbilled_count: int


class BillingHistoryEntry(CamelModel):
    id: str
    type: str
    amount: int
    period_start: datetime
    period_end: datetime
    total_amount: float
    billed: bool
    created_at: datetime


class BillingHistory(CamelModel):
    user_id: str
    hubspot_portal_id: Optional[str] = None
    overages: List[BillingHistoryEntry] = Field(default_factory=list)
    hubspot_billing_url: Optional[str] = None


class BillingStatus(CamelModel):
    status: str
    timestamp: datetime
    unbilled_overages: int
    message: str


# ---------------------------------------------------------------------------
# HTTP bodies
# ---------------------------------------------------------------------------

class ProcessOveragesRequest(CamelModel):
    overage_ids: Optional[List[str]] = None

    @field_validator("overage_ids")
    @classmethod
    def _reject_blank_ids(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return value
        cleaned = [v.strip() for v in value]
        if any(not v for v in cleaned):
            raise ValueError("overageIds must not contain empty ids")
        return cleaned


class ProcessOveragesResponse(ProcessSummary):
    message: str


class ValidateConnectionRequest(CamelModel):
    portal_id: str = ""


class ValidateConnectionResponse(CamelModel):
    portal_id: str
    is_valid: bool
    message: str


class UpdateUsageResponse(UsageReceipt):
    pass


class PlanChangeWebhookPayload(CamelModel):
    """Plan-change event pushed by HubSpot. Unknown fields are ignored.

    HubSpot sends portal ids as JSON numbers; they are normalised to strings.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    event_type: Optional[str] = None
    portal_id: Optional[str] = None
    new_plan_id: Optional[str] = None

    @field_validator("portal_id", "new_plan_id", mode="before")
    @classmethod
    def _stringify(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def is_complete(self) -> bool:
        return bool(self.portal_id) and bool(self.new_plan_id)
