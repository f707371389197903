"""
Shared fakes for the settlement engine tests.

Everything is offline: a scripted status client, a virtual clock whose
sleep() just advances time, and an in-memory record sink.
"""

from decimal import Decimal

import pytest

from settlement.orders.models import OrderSnapshot, OrderStatus, PollAttempt, Recipient, SettlementRecord


class ScriptedClient:
    """Returns (or raises) scripted responses in order; the last one repeats."""

    def __init__(self, responses, clock=None, latency: float = 0.0):
        self._responses = list(responses)
        self._clock = clock
        self._latency = latency
        self.calls = 0

    async def get_order_status(self, order_id):
        item = self._responses[min(self.calls, len(self._responses) - 1)]
        self.calls += 1
        if self._clock is not None and self._latency:
            self._clock.now += self._latency
        if isinstance(item, BaseException):
            raise item
        return item


class VirtualClock:
    """Monotonic clock in seconds; sleep() advances it instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class ListSink:

    def __init__(self):
        self.records = []

    def submit(self, record):
        self.records.append(record)
        return True

    @property
    def attempts(self):
        return [r for r in self.records if isinstance(r, PollAttempt)]

    @property
    def settlements(self):
        return [r for r in self.records if isinstance(r, SettlementRecord)]


def make_order(status="pending", order_id="ord-1", amount="100.00", amount_paid=None,
               tx_hash=None, transactions=()):
    return OrderSnapshot(
        order_id=order_id,
        status=OrderStatus.parse(status),
        amount=Decimal(amount) if amount is not None else None,
        amount_paid=Decimal(amount_paid) if amount_paid is not None else None,
        tx_hash=tx_hash,
        recipient=Recipient(
            account_identifier="+254712345678",
            account_name="Jane Wanjiru",
            currency="KES",
            institution="SAFAKEPC",
        ),
        transactions=tuple(transactions),
        raw_status=status,
    )


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def sink():
    return ListSink()


@pytest.fixture
def order_factory():
    return make_order
