"""
Pytest configuration for WorkflowGuard billing tests.
Sets environment variables to disable the admin guard during testing.
"""

import os
import tempfile

# Disable auth for all tests - must be set before any imports
# Auth disable requires debug=True AND auth_enabled=False
os.environ["WORKFLOWGUARD_AUTH_ENABLED"] = "false"
os.environ["WORKFLOWGUARD_DEBUG"] = "true"

# Temp SQLite database so tests never touch ./data
_test_data_dir = tempfile.mkdtemp(prefix="workflowguard_test_")
os.environ["WORKFLOWGUARD_DATABASE_URL"] = f"sqlite:///{_test_data_dir}/test.db"

# Outbound calls must never leave the test process
os.environ.pop("WORKFLOWGUARD_NOTIFICATION_WEBHOOK_URL", None)
os.environ.pop("WORKFLOWGUARD_HUBSPOT_CLIENT_SECRET", None)
os.environ.pop("HUBSPOT_CLIENT_SECRET", None)

from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest
import sqlalchemy as sa
from sqlmodel import Session, SQLModel

from app.core.database import get_engine
from app.models.billing import Overage, User
from app.models.billing_schemas import (
    BillingNotification,
    BillingRecord,
    GatewayReceipt,
    UsageReceipt,
    UsageUpdate,
)

# Ensure DB tables exist for all tests (create via SQLModel metadata)
SQLModel.metadata.create_all(get_engine())

# Load error registry so WorkflowGuardError returns correct HTTP status codes
from app.core.errors.registry import error_registry
error_registry.load()


@pytest.fixture(autouse=True)
def clean_tables():
    """Every test starts from empty users/overages tables."""
    with get_engine().begin() as conn:
        conn.execute(sa.delete(Overage))
        conn.execute(sa.delete(User))
    yield


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------

def make_user(
    user_id: str = "u1",
    portal_id: Optional[str] = "P1",
    plan_id: str = "starter",
    email: Optional[str] = None,
) -> User:
    user = User(
        id=user_id,
        email=email or f"{user_id}@example.com",
        hubspot_portal_id=portal_id,
        plan_id=plan_id,
    )
    with Session(get_engine()) as session:
        session.add(user)
        session.commit()
        session.refresh(user)
    return user


def make_overage(
    overage_id: str,
    user_id: str = "u1",
    amount: int = 10,
    billed: bool = False,
    overage_type: str = "workflow_runs",
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
) -> Overage:
    overage = Overage(
        id=overage_id,
        user_id=user_id,
        type=overage_type,
        amount=amount,
        billed=billed,
        period_start=period_start or datetime(2026, 9, 1, tzinfo=timezone.utc),
        period_end=period_end or datetime(2026, 9, 30, tzinfo=timezone.utc),
    )
    with Session(get_engine()) as session:
        session.add(overage)
        session.commit()
        session.refresh(overage)
    return overage


def is_billed(overage_id: str) -> bool:
    with Session(get_engine()) as session:
        return session.get(Overage, overage_id).billed


def plan_of(user_id: str) -> str:
    with Session(get_engine()) as session:
        return session.get(User, user_id).plan_id


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------

class FakeGateway:
    """In-memory BillingGateway. ``fail_for`` maps overage id -> exception."""

    def __init__(self, fail_for: Optional[Dict[str, Exception]] = None):
        self.fail_for = fail_for or {}
        self.records: List[BillingRecord] = []
        self.usage_updates: List[UsageUpdate] = []
        self.validated: List[str] = []
        self.valid_portals = {"P1"}

    async def create_billing_record(self, record: BillingRecord) -> GatewayReceipt:
        self.records.append(record)
        exc = self.fail_for.get(record.overage_id)
        if exc is not None:
            raise exc
        return GatewayReceipt(reference_id=f"ref-{record.overage_id}", amount=record.total_amount)

    async def update_usage(self, update: UsageUpdate) -> UsageReceipt:
        self.usage_updates.append(update)
        return UsageReceipt(success=True, usage_id=f"usage-{len(self.usage_updates)}")

    async def validate_portal(self, portal_id: str) -> bool:
        self.validated.append(portal_id)
        return portal_id in self.valid_portals


class RecordingNotifier:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.sent: List[tuple] = []

    async def send_billing_notification(self, user_id: str, notification: BillingNotification) -> None:
        self.sent.append((user_id, notification))
        if self.error is not None:
            raise self.error


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()
