"""
PollingOrchestrator — watches one PayCrest order until it settles, fails,
runs out of attempts, or runs out of time.

Two backoff policies:
  - still processing: base * factor**attempts, capped at max_delay
  - status call raised: base * attempts (linear), capped at max_delay

Only `settled` ends the loop successfully. `validated` means the recipient
was paid but the on-chain leg is not final yet, so polling continues.

Cancellation is plain asyncio task cancellation. CancelledError is not an
Exception subclass, so it passes straight through the status call and the
sleep and nothing further is recorded.
"""

import asyncio
import time
from typing import Callable, Optional

from settlement.orders.models import (
    OrderSnapshot,
    OrderStatus,
    PollAttempt,
    PollingOptions,
    PollingResult,
    SettlementRecord,
)

SETTLED_MESSAGE = "Payment successfully delivered to recipient"
MANUAL_CHECK_MESSAGE = "Check order status manually or contact support"
MONITOR_FAILED_MESSAGE = "Failed to monitor payment status"
MAX_ATTEMPTS_ERROR = "maximum polling attempts reached"

_FAILURE_CLASSIFICATION = {
    OrderStatus.FAILED: "payment processing failed",
    OrderStatus.CANCELLED: "payment was cancelled",
}


def backoff_delay_ms(attempts: int, options: PollingOptions) -> float:
    """Delay after `attempts` consecutive still-processing responses."""
    return min(options.base_delay_ms * options.exponential_factor ** attempts, options.max_delay_ms)


def error_delay_ms(attempts: int, options: PollingOptions) -> float:
    """Delay after the status call failed on attempt number `attempts`."""
    return min(options.base_delay_ms * attempts, options.max_delay_ms)


def failure_classification(status: OrderStatus) -> str:
    return _FAILURE_CLASSIFICATION.get(status, f"payment {status.value}")


def progress_message(order: OrderSnapshot) -> str:
    """Human-readable progress line for a non-terminal order."""
    if any(tx.get("status") == "crypto_deposited" for tx in order.transactions):
        return "Crypto received, processing fiat transfer..."
    if order.status is OrderStatus.INITIATED:
        return "Waiting for crypto deposit..."
    if order.status is OrderStatus.PENDING:
        return "Processing payment through liquidity providers..."
    return "Converting payment..."


class PollingOrchestrator:
    """Owns the retry loop for one order at a time. Holds no per-order state.

    Args:
        client: anything with `async get_order_status(order_id) -> OrderSnapshot`
        sink: anything with `submit(record)`; None disables recording
        clock: monotonic seconds
        sleep: coroutine function taking seconds
    """

    def __init__(self, client, sink=None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable = asyncio.sleep):
        self.client = client
        self.sink = sink
        self._clock = clock
        self._sleep = sleep

    def _submit(self, record):
        if self.sink is None:
            return
        try:
            self.sink.submit(record)
        except Exception as e:
            print(f"[POLL] Failed to queue {type(record).__name__} for {record.order_id}: {e}")

    def _elapsed_ms(self, start: float) -> float:
        return (self._clock() - start) * 1000

    async def poll_order_status(self, order_id: str, options=None) -> PollingResult:
        """Poll until a terminal status, max_attempts or timeout_ms, whichever first."""
        opts = PollingOptions.build(options)
        start = self._clock()
        attempts = 0

        print(f"[POLL] Started {order_id}: max_attempts={opts.max_attempts} "
              f"base={opts.base_delay_ms}ms x{opts.exponential_factor} "
              f"cap={opts.max_delay_ms}ms timeout={opts.timeout_ms}ms")

        while attempts < opts.max_attempts:
            elapsed_ms = self._elapsed_ms(start)
            if elapsed_ms > opts.timeout_ms:
                print(f"[POLL] ⏰ Timeout for {order_id} after {elapsed_ms:.0f}ms "
                      f"({attempts} attempts)")
                return PollingResult(
                    success=False,
                    completed=True,
                    timeout_reached=True,
                    error="timeout",
                    message=MANUAL_CHECK_MESSAGE,
                    attempts=attempts,
                )

            t0 = self._clock()
            try:
                order = await self.client.get_order_status(order_id)
            except Exception as e:
                response_ms = int(self._elapsed_ms(t0))
                attempts += 1
                print(f"[POLL] ❌ Attempt {attempts}/{opts.max_attempts} for {order_id} failed: {e}")
                self._submit(PollAttempt(
                    order_id=order_id,
                    attempt_number=attempts,
                    status="error",
                    response_time_ms=response_ms,
                    error_message=str(e) or type(e).__name__,
                ))

                if attempts >= opts.max_attempts:
                    return PollingResult(
                        success=False,
                        completed=True,
                        error=f"{attempts} attempts exhausted",
                        message=MONITOR_FAILED_MESSAGE,
                        attempts=attempts,
                    )

                delay = error_delay_ms(attempts, opts)
                print(f"[POLL] Retrying {order_id} in {delay / 1000:.1f}s")
                await self._sleep(delay / 1000)
                continue

            response_ms = int(self._elapsed_ms(t0))
            self._submit(PollAttempt(
                order_id=order_id,
                attempt_number=attempts + 1,
                status=order.status.value,
                response_time_ms=response_ms,
            ))
            print(f"[POLL] Attempt {attempts + 1}/{opts.max_attempts} for {order_id}: "
                  f"status={order.status.value} ({response_ms}ms) tx={order.tx_hash} "
                  f"paid={order.amount_paid}")

            if order.status.is_settled:
                total_ms = self._elapsed_ms(start)
                self._submit(SettlementRecord.from_order(order, int(total_ms // 1000), order_id=order_id))
                print(f"[POLL] 🎉 {order_id} settled in {total_ms / 1000:.1f}s "
                      f"after {attempts + 1} attempt(s)")
                return PollingResult(
                    success=True,
                    completed=True,
                    order=order,
                    message=SETTLED_MESSAGE,
                    attempts=attempts + 1,
                )

            if order.status.is_failure:
                reason = failure_classification(order.status)
                print(f"[POLL] ❌ {order_id} ended: {reason}")
                return PollingResult(
                    success=False,
                    completed=True,
                    order=order,
                    error=reason,
                    message=reason[0].upper() + reason[1:],
                    attempts=attempts + 1,
                )

            attempts += 1
            if attempts < opts.max_attempts:
                delay = backoff_delay_ms(attempts, opts)
                print(f"[POLL] ⏳ {order_id}: {progress_message(order)} "
                      f"next poll in {delay / 1000:.1f}s")
                await self._sleep(delay / 1000)

        print(f"[POLL] Max attempts ({opts.max_attempts}) reached for {order_id} "
              f"after {self._elapsed_ms(start):.0f}ms")
        return PollingResult(
            success=False,
            completed=True,
            error=MAX_ATTEMPTS_ERROR,
            message=f"{MAX_ATTEMPTS_ERROR} - status may still be processing",
            attempts=attempts,
        )

    async def check_status(self, order_id: str) -> PollingResult:
        """One status call, no retry, no recording. Errors propagate."""
        order = await self.client.get_order_status(order_id)
        status = order.status
        if status.is_settled:
            message = "Payment completed successfully"
        elif status.is_failure:
            message = failure_classification(status)
        else:
            message = progress_message(order)
        print(f"[POLL] Status check {order_id}: {status.value} — {message}")
        return PollingResult(
            success=status.is_settled,
            completed=status.is_terminal,
            order=order,
            error=failure_classification(status) if status.is_failure else None,
            message=message,
            attempts=1,
        )
