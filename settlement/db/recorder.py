"""
Poll-attempt and settlement recorders, fed through a bounded queue.

The poller never awaits a DB write: it hands records to RecordWriter.submit()
and moves on. A separate writer task resolves the PayCrest order id to our
payment_orders.id and appends the row. Every failure on this path is logged
and dropped — it can never change a polling result.
"""

import asyncio
from typing import Dict, Optional, Union

from settlement.config import RECORD_QUEUE_MAXSIZE
from settlement.orders.models import PollAttempt, SettlementRecord

Record = Union[PollAttempt, SettlementRecord]


class OrderResolver:
    """PayCrest order id → internal payment_orders.id, cached on success."""

    def __init__(self, db):
        self.db = db
        self._cache: Dict[str, str] = {}

    async def resolve(self, paycrest_order_id: str) -> Optional[str]:
        cached = self._cache.get(paycrest_order_id)
        if cached:
            return cached
        try:
            row = await self.db.get_order_by_paycrest_id(paycrest_order_id)
        except Exception as e:
            print(f"[RECORDER] Order lookup failed for {paycrest_order_id}: {e}")
            return None
        if not row or not row.get("id"):
            print(f"[RECORDER] No payment_orders row for {paycrest_order_id} — skipping record")
            return None
        order_db_id = str(row["id"])
        self._cache[paycrest_order_id] = order_db_id
        return order_db_id


class AttemptRecorder:
    """Appends one polling_attempts row per status call."""

    def __init__(self, db):
        self.db = db
        self.recorded = 0
        self.failed = 0

    async def record(self, order_db_id: str, attempt: PollAttempt) -> bool:
        try:
            await self.db.insert_polling_attempt({
                "order_id": order_db_id,
                "paycrest_order_id": attempt.order_id,
                "attempt_number": attempt.attempt_number,
                "status_returned": attempt.status,
                "response_time_ms": attempt.response_time_ms,
                "error_message": attempt.error_message,
                "created_at": attempt.timestamp.isoformat(),
            })
        except Exception as e:
            self.failed += 1
            print(f"[RECORDER] Failed to record attempt #{attempt.attempt_number} "
                  f"for {attempt.order_id}: {e}")
            return False
        self.recorded += 1
        return True


class SettlementRecorder:
    """Appends the settlements row for an order that reached `settled`."""

    def __init__(self, db):
        self.db = db
        self.recorded = 0
        self.failed = 0

    async def record(self, order_db_id: str, settlement: SettlementRecord) -> bool:
        try:
            await self.db.insert_settlement({
                "order_id": order_db_id,
                "status": settlement.status,
                "settlement_time_seconds": settlement.settlement_seconds,
                "tx_hash": settlement.tx_hash,
                "amount_paid": float(settlement.amount_paid) if settlement.amount_paid is not None else None,
                "recipient_phone": settlement.recipient_phone,
                "recipient_name": settlement.recipient_name,
                "currency": settlement.currency,
            })
        except Exception as e:
            self.failed += 1
            print(f"[RECORDER] Failed to record settlement for {settlement.order_id}: {e}")
            return False
        self.recorded += 1
        print(f"[RECORDER] Settlement recorded: {settlement.order_id} "
              f"({settlement.settlement_seconds}s, tx={settlement.tx_hash})")
        return True


class RecordWriter:
    """Bounded hand-off between pollers and the recorders.

    submit() never blocks; run() is the consumer task; drain() writes
    whatever is queued inline (shutdown, tests).
    """

    def __init__(self, resolver: OrderResolver, attempts: AttemptRecorder,
                 settlements: SettlementRecorder, maxsize: int = RECORD_QUEUE_MAXSIZE):
        self.resolver = resolver
        self.attempts = attempts
        self.settlements = settlements
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        # Metrics
        self._submitted = 0
        self._dropped = 0
        self._skipped = 0
        self._write_errors = 0

    @classmethod
    def for_database(cls, db, maxsize: int = RECORD_QUEUE_MAXSIZE) -> "RecordWriter":
        return cls(OrderResolver(db), AttemptRecorder(db), SettlementRecorder(db), maxsize=maxsize)

    def submit(self, record: Record) -> bool:
        """Queue a record for writing. Returns False if it was dropped."""
        try:
            self._queue.put_nowait(record)
        except asyncio.QueueFull:
            self._dropped += 1
            print(f"[RECORDER] Queue full ({self._queue.maxsize}) — dropped "
                  f"{type(record).__name__} for {record.order_id}")
            return False
        self._submitted += 1
        return True

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def run(self):
        """Consume queued records forever."""
        print("[RECORDER] Writer started")
        while True:
            try:
                record = await self._queue.get()
            except asyncio.CancelledError:
                return
            try:
                await self._write(record)
            except Exception as e:
                self._write_errors += 1
                print(f"[RECORDER] Writer error: {e}")
            finally:
                self._queue.task_done()

    async def flush(self):
        """Wait until the running writer has consumed everything queued so far."""
        await self._queue.join()

    async def drain(self) -> int:
        """Write everything currently queued without a writer task."""
        written = 0
        while True:
            try:
                record = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return written
            try:
                await self._write(record)
                written += 1
            except Exception as e:
                self._write_errors += 1
                print(f"[RECORDER] Drain error: {e}")
            finally:
                self._queue.task_done()

    async def _write(self, record: Record):
        order_db_id = await self.resolver.resolve(record.order_id)
        if order_db_id is None:
            self._skipped += 1
            return
        if isinstance(record, SettlementRecord):
            await self.settlements.record(order_db_id, record)
        else:
            await self.attempts.record(order_db_id, record)

    def metrics(self) -> dict:
        return {
            "submitted": self._submitted,
            "dropped": self._dropped,
            "skipped_unresolved": self._skipped,
            "write_errors": self._write_errors,
            "pending": self._queue.qsize(),
            "attempts_recorded": self.attempts.recorded,
            "attempts_failed": self.attempts.failed,
            "settlements_recorded": self.settlements.recorded,
            "settlements_failed": self.settlements.failed,
        }
