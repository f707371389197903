"""
TimeoutGuard — hard wall-clock deadline around a whole poll run.

When the deadline wins, the inner poll is cancelled (asyncio.wait_for
delivers CancelledError at its current await: the status call or the
backoff sleep), so no further status calls or record submissions happen.
The result says completed=False: the order's real outcome is unknown.
"""

import asyncio
from typing import Dict, Iterable

from settlement.config import MONITOR_TIMEOUT_MS
from settlement.orders.models import PollingResult
from settlement.orders.poller import MANUAL_CHECK_MESSAGE, PollingOrchestrator

MONITOR_TIMEOUT_ERROR = "payment monitoring timeout"


class TimeoutGuard:

    def __init__(self, orchestrator: PollingOrchestrator, deadline_ms: float = MONITOR_TIMEOUT_MS):
        if deadline_ms <= 0:
            raise ValueError(f"deadline_ms must be > 0, got {deadline_ms}")
        self.orchestrator = orchestrator
        self.deadline_ms = deadline_ms

    async def monitor_payment(self, order_id: str, options=None) -> PollingResult:
        try:
            return await asyncio.wait_for(
                self.orchestrator.poll_order_status(order_id, options),
                timeout=self.deadline_ms / 1000,
            )
        except asyncio.TimeoutError:
            print(f"[GUARD] ⏰ {order_id}: monitoring deadline of {self.deadline_ms / 1000:.0f}s "
                  f"passed — poll cancelled, outcome unknown")
            return PollingResult(
                success=False,
                completed=False,
                timeout_reached=True,
                error=MONITOR_TIMEOUT_ERROR,
                message=MANUAL_CHECK_MESSAGE,
            )

    async def monitor_many(self, order_ids: Iterable[str], options=None) -> Dict[str, PollingResult]:
        """Guard several independent orders concurrently."""
        ids = list(dict.fromkeys(order_ids))
        results = await asyncio.gather(*(self.monitor_payment(oid, options) for oid in ids))
        return dict(zip(ids, results))
