"""
SettlementVerifier — three-layer check on a PayCrest order.

  1. status is `settled`
  2. a transaction hash is present
  3. amount paid matches amount requested within AMOUNT_TOLERANCE
     (skipped when PayCrest has not reported amountPaid)

Read-then-classify only; safe to call at any time, e.g. for audits.
"""

from decimal import Decimal

from settlement.orders.models import OrderSnapshot, OrderStatus, VerificationResult

AMOUNT_TOLERANCE = Decimal("0.01")   # absolute, in the order's currency unit
VERIFIED_REASON = "settlement verified through three-layer check"


class SettlementVerifier:

    def __init__(self, client):
        self.client = client

    async def verify_settlement(self, order_id: str) -> VerificationResult:
        try:
            order = await self.client.get_order_status(order_id)
        except Exception as e:
            print(f"[VERIFY] Could not fetch {order_id}: {e}")
            return VerificationResult(verified=False, reason=f"verification failed: {e}")

        result = self.classify(order)
        if result.verified:
            print(f"[VERIFY] ✅ {order_id} verified: tx={order.tx_hash} "
                  f"amount={order.amount} paid={order.amount_paid}")
        else:
            print(f"[VERIFY] {order_id} not verified: {result.reason}")
        return result

    @staticmethod
    def classify(order: OrderSnapshot) -> VerificationResult:
        """Apply the three layers to an already-fetched snapshot."""
        if order.status is not OrderStatus.SETTLED:
            status = order.status.value
            if order.status is OrderStatus.UNRECOGNIZED and order.raw_status:
                status = order.raw_status
            return VerificationResult(False, f"order not settled (status: {status})", order)

        if not order.tx_hash:
            return VerificationResult(False, "missing transaction hash", order)

        if order.amount_paid is not None:
            if order.amount is None or abs(order.amount - order.amount_paid) >= AMOUNT_TOLERANCE:
                return VerificationResult(
                    False,
                    f"amount mismatch: expected {order.amount}, paid {order.amount_paid}",
                    order,
                )

        return VerificationResult(True, VERIFIED_REASON, order)
