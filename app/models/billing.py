"""
Billing Models
==============

SQLModel tables touched by the overage billing pipeline:
- User: only the columns billing reads/writes (portal binding, plan).
- Overage: one unit-of-usage excess per user and billing period.

Both tables are owned by the wider back office; this service never creates
or deletes rows outside of tests and seed scripts.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlmodel import Field, SQLModel


def _new_id() -> str:
    return uuid4().hex


class User(SQLModel, table=True):
    """Back-office user, reduced to the fields the billing pipeline needs."""

    __tablename__ = "users"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=64)
    email: str = Field(index=True, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)
    hubspot_portal_id: Optional[str] = Field(default=None, index=True, max_length=64)
    plan_id: str = Field(default="starter", max_length=64)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Overage(SQLModel, table=True):
    """Usage beyond a user's plan allowance for one billing period.

    ``billed`` only ever flips false -> true, and only after the billing
    gateway confirmed the record.
    """

    __tablename__ = "overages"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=64)
    user_id: str = Field(foreign_key="users.id", index=True, max_length=64)
    type: str = Field(max_length=64)
    amount: int = Field(default=0)
    period_start: datetime
    period_end: datetime
    billed: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
