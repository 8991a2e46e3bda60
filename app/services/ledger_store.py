"""
Ledger Store — persistence for overages and user portal bindings.
==================================================================

PURPOSE:
    Thin SQLModel/SQLAlchemy layer the billing pipeline reads and writes:
    - LedgerStore: point lookups, filtered scans, and the conditional
      ``billed`` flip on the ``overages`` table.
    - UserStore: user lookups and the set-based plan update by portal.

CONCURRENCY:
    ``mark_billed`` is a single-row conditional UPDATE
    (``WHERE id = :id AND billed = false``). Two sweeps racing on the same
    overage can both reach it, but only one sees rowcount == 1.

    Every public method uses its own session/connection (per-operation
    isolation), so each write is committed before the method returns.
"""

from __future__ import annotations

from typing import Callable, List, Optional

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from app.core.database import get_engine
from app.models.billing import Overage, User

__all__ = ["LedgerStore", "UserStore"]


class LedgerStore:
    """Overage ledger backed by the ``overages`` table."""

    def __init__(self, engine_factory: Callable[[], Engine] = get_engine):
        self._engine_factory = engine_factory

    @property
    def engine(self) -> Engine:
        return self._engine_factory()

    def get_overage(self, overage_id: str) -> Optional[Overage]:
        with Session(self.engine) as session:
            return session.get(Overage, overage_id)

    def get_user(self, user_id: str) -> Optional[User]:
        with Session(self.engine) as session:
            return session.get(User, user_id)

    def list_unbilled_ids(self) -> List[str]:
        """Ids of every ``billed = false`` overage, oldest period first."""
        stmt = (
            select(Overage.id)
            .where(Overage.billed == False)  # noqa: E712
            .order_by(Overage.period_start.asc(), Overage.id.asc())
        )
        with Session(self.engine) as session:
            return list(session.exec(stmt).all())

    def count_unbilled(self) -> int:
        stmt = select(sa.func.count()).select_from(Overage).where(Overage.billed == False)  # noqa: E712
        with Session(self.engine) as session:
            return int(session.exec(stmt).one())

    def list_for_user(self, user_id: str, limit: Optional[int] = None) -> List[Overage]:
        """A user's overages, newest period first."""
        stmt = (
            select(Overage)
            .where(Overage.user_id == user_id)
            .order_by(Overage.period_start.desc(), Overage.created_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        with Session(self.engine) as session:
            return list(session.exec(stmt).all())

    def mark_billed(self, overage_id: str) -> bool:
        """Flip ``billed`` to true if it is still false.

        Returns True when this call performed the transition, False when the
        row was already billed (or no longer exists).
        """
        stmt = (
            sa.update(Overage)
            .where(Overage.id == overage_id)
            .where(Overage.billed == False)  # noqa: E712
            .values(billed=True)
        )
        with self.engine.begin() as conn:
            result = conn.execute(stmt)
        return result.rowcount == 1


class UserStore:
    """User lookups and bulk plan updates on the ``users`` table."""

    def __init__(self, engine_factory: Callable[[], Engine] = get_engine):
        self._engine_factory = engine_factory

    @property
    def engine(self) -> Engine:
        return self._engine_factory()

    def get_user(self, user_id: str) -> Optional[User]:
        with Session(self.engine) as session:
            return session.get(User, user_id)

    def update_plan_for_portal(self, portal_id: str, plan_id: str) -> int:
        """Set ``plan_id`` on every user bound to ``portal_id`` in one transaction.

        Returns the number of rows updated. Store errors propagate.
        """
        stmt = (
            sa.update(User)
            .where(User.hubspot_portal_id == portal_id)
            .values(plan_id=plan_id)
        )
        with self.engine.begin() as conn:
            result = conn.execute(stmt)
        return result.rowcount
