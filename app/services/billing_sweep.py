"""
Billing Sweep — periodic processing of unbilled overages.
==========================================================

Re-invokes ``OverageReconciler.process_all_unbilled`` on a fixed interval.
The scheduler owns no state beyond its stop event; every tick is a fresh,
independent attempt (no retry counts, no backoff).

Started from the FastAPI lifespan when WORKFLOWGUARD_BILLING_SWEEP_ENABLED
is true. ``run_once`` is usable on its own (cron, admin scripts, tests).
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import structlog

from app.config import settings
from app.models.billing_schemas import ProcessSummary
from app.services.overage_reconciler import OverageReconciler


class BillingSweepScheduler:
    def __init__(
        self,
        reconciler_factory: Callable[[], OverageReconciler] = OverageReconciler,
        interval_s: Optional[float] = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ):
        self._reconciler_factory = reconciler_factory
        self._interval_s = interval_s if interval_s is not None else settings.billing_sweep_interval_s
        self._log = logger or structlog.get_logger(__name__)
        self._stop = asyncio.Event()

    @property
    def interval_s(self) -> float:
        return self._interval_s

    async def run_once(self) -> Optional[ProcessSummary]:
        """One sweep. Errors are logged so the next tick still runs."""
        try:
            summary = await self._reconciler_factory().process_all_unbilled()
        except Exception as exc:
            self._log.error("billing_sweep_failed", error=str(exc), error_type=type(exc).__name__)
            return None

        self._log.info(
            "billing_sweep_completed",
            total=summary.total_processed,
            successful=summary.successful,
            failed=summary.failed,
        )
        return summary

    async def run_forever(self) -> None:
        """Sweep, then wait ``interval_s`` or until ``stop()`` is called."""
        self._log.info("billing_sweep_started", interval_s=self._interval_s)
        while not self._stop.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval_s)
            except asyncio.TimeoutError:
                continue
        self._log.info("billing_sweep_stopped")

    def stop(self) -> None:
        self._stop.set()
