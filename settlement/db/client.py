"""
Supabase access for the settlement engine.

Reads payment_orders (id lookup only) and appends to polling_attempts and
settlements. Nothing here updates or deletes. Calls run in a worker thread
with a per-call timeout; transient failures are retried with backoff.
"""

import asyncio
import time
from typing import Optional

from supabase import create_client, Client

ORDERS_TABLE = "payment_orders"
ATTEMPTS_TABLE = "polling_attempts"
SETTLEMENTS_TABLE = "settlements"

DB_CALL_TIMEOUT = 10.0     # seconds per Supabase call
DB_MAX_TRIES = 3
DB_RETRY_BASE_DELAY = 0.5  # seconds, doubled per retry

# Lower-cased fragments of errors worth another try
_RETRYABLE_FRAGMENTS = (
    "timed out", "timeout", "connection", "reset by peer", "broken pipe",
    "temporarily unavailable", "unavailable", "502", "503", "504",
    "too many requests", "rate limit", "network", "socket",
)


def init_supabase(url: str, key: str) -> Client:
    return create_client(url, key)


async def health_check(client: Client) -> bool:
    """True if payment_orders answers a zero-row count query."""
    if client is None or not hasattr(client, "table"):
        return False
    try:
        await asyncio.wait_for(
            asyncio.to_thread(
                lambda: client.table(ORDERS_TABLE).select("id", count="exact").limit(0).execute()
            ),
            timeout=DB_CALL_TIMEOUT,
        )
    except Exception as e:
        print(f"[DB] Health check failed: {e}")
        return False
    return True


def _is_transient(e: Exception) -> bool:
    text = str(e).lower()
    return any(fragment in text for fragment in _RETRYABLE_FRAGMENTS)


class Database:
    """Async facade over the sync Supabase client.

    Only three operations exist: resolve a PayCrest order id, append a
    polling attempt, append a settlement.
    """

    def __init__(self, client: Client, retry_base_delay: float = DB_RETRY_BASE_DELAY):
        self.client = client
        self._retry_base_delay = retry_base_delay
        # Metrics
        self._calls = 0
        self._failures = 0
        self._retries = 0
        self._latency_ms = 0.0
        self._inserted = {ATTEMPTS_TABLE: 0, SETTLEMENTS_TABLE: 0}

    async def _exec(self, fn, label: str = "db_call"):
        """Run `fn` (a blocking execute() chain) off the loop.

        Retries up to DB_MAX_TRIES on timeouts and transient errors; any
        other error, or the last failure, propagates.
        """
        for attempt in range(1, DB_MAX_TRIES + 1):
            started = time.monotonic()
            try:
                result = await asyncio.wait_for(asyncio.to_thread(fn), timeout=DB_CALL_TIMEOUT)
            except asyncio.TimeoutError:
                error = RuntimeError(f"{label} timed out after {DB_CALL_TIMEOUT}s")
            except Exception as e:
                if not _is_transient(e):
                    self._failures += 1
                    raise
                error = e
            else:
                self._calls += 1
                self._latency_ms += (time.monotonic() - started) * 1000
                return result

            self._failures += 1
            if attempt == DB_MAX_TRIES:
                raise error
            delay = self._retry_base_delay * 2 ** (attempt - 1)
            self._retries += 1
            print(f"[DB] {label} failed (try {attempt}/{DB_MAX_TRIES}): {error}. "
                  f"Retrying in {delay:.1f}s")
            await asyncio.sleep(delay)

    async def get_order_by_paycrest_id(self, paycrest_order_id: str) -> Optional[dict]:
        """The payment_orders row (id only) linked to a PayCrest order, if any."""
        result = await self._exec(
            lambda: self.client.table(ORDERS_TABLE)
                .select("id")
                .eq("paycrest_order_id", paycrest_order_id)
                .limit(1)
                .execute(),
            f"lookup {paycrest_order_id[:12]}",
        )
        rows = result.data or []
        return rows[0] if rows else None

    async def insert_polling_attempt(self, row: dict):
        await self._insert(ATTEMPTS_TABLE, row, f"attempt #{row.get('attempt_number')}")

    async def insert_settlement(self, row: dict):
        await self._insert(SETTLEMENTS_TABLE, row, f"settlement {str(row.get('order_id', ''))[:8]}")

    async def _insert(self, table: str, row: dict, label: str):
        await self._exec(lambda: self.client.table(table).insert(row).execute(), label)
        self._inserted[table] += 1

    def metrics(self) -> dict:
        return {
            "calls": self._calls,
            "failures": self._failures,
            "retries": self._retries,
            "avg_latency_ms": round(self._latency_ms / max(self._calls, 1), 1),
            "attempts_inserted": self._inserted[ATTEMPTS_TABLE],
            "settlements_inserted": self._inserted[SETTLEMENTS_TABLE],
        }
