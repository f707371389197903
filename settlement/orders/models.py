"""
Order snapshot, poll attempt, settlement record and result types.

PayCrest reports status as a free-form string. It is translated once, at the
client boundary, into OrderStatus; anything unknown becomes UNRECOGNIZED and
is treated as still processing.
"""

from dataclasses import dataclass, field, replace, fields
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from settlement.config import (
    POLL_MAX_ATTEMPTS,
    POLL_BASE_DELAY_MS,
    POLL_MAX_DELAY_MS,
    POLL_TIMEOUT_MS,
    POLL_EXPONENTIAL_FACTOR,
)
from settlement.paycrest.errors import PaycrestError

# Prefixes PayCrest uses in webhook-style status strings
_STATUS_PREFIXES = ("payment_order.", "order.")


class OrderStatus(str, Enum):
    INITIATED = "initiated"
    PENDING = "pending"
    VALIDATED = "validated"      # paid out to recipient, not yet settled on-chain
    SETTLED = "settled"
    REFUNDED = "refunded"
    EXPIRED = "expired"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "OrderStatus":
        """Map a provider status string to an OrderStatus, never raising."""
        if not raw:
            return cls.UNRECOGNIZED
        value = str(raw).strip().lower()
        for prefix in _STATUS_PREFIXES:
            if value.startswith(prefix):
                value = value[len(prefix):]
                break
        try:
            status = cls(value)
        except ValueError:
            return cls.UNRECOGNIZED
        return status

    @property
    def is_settled(self) -> bool:
        return self is OrderStatus.SETTLED

    @property
    def is_failure(self) -> bool:
        return self in (OrderStatus.FAILED, OrderStatus.CANCELLED)

    @property
    def is_terminal(self) -> bool:
        return self.is_settled or self.is_failure


def parse_amount(value: Any, label: str = "amount") -> Optional[Decimal]:
    """Decimal from a provider amount string. Empty/missing → None."""
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise PaycrestError(f"Malformed {label} in order response: {value!r}")
    if not amount.is_finite():
        raise PaycrestError(f"Malformed {label} in order response: {value!r}")
    return amount


@dataclass(frozen=True)
class Recipient:
    """Payout recipient as reported by PayCrest. Forwarded, never interpreted."""
    account_identifier: Optional[str] = None   # phone number for mobile money
    account_name: Optional[str] = None
    currency: Optional[str] = None
    institution: Optional[str] = None

    @classmethod
    def from_api(cls, data: Optional[Mapping[str, Any]]) -> "Recipient":
        data = data or {}
        return cls(
            account_identifier=data.get("accountIdentifier"),
            account_name=data.get("accountName"),
            currency=data.get("currency"),
            institution=data.get("institution"),
        )


@dataclass(frozen=True)
class OrderSnapshot:
    """Read-only mirror of a PayCrest payment order at one point in time."""
    order_id: str
    status: OrderStatus
    amount: Optional[Decimal] = None          # requested
    amount_paid: Optional[Decimal] = None     # absent until terminal
    tx_hash: Optional[str] = None
    recipient: Recipient = field(default_factory=Recipient)
    transactions: Tuple[dict, ...] = ()
    raw_status: str = ""

    @classmethod
    def from_api(cls, data: Mapping[str, Any], order_id: str = "") -> "OrderSnapshot":
        """Build a snapshot from the `data` object of a /sender/orders response."""
        if not isinstance(data, Mapping):
            raise PaycrestError(f"Unexpected order payload type: {type(data).__name__}")
        raw_status = data.get("status") or ""
        tx_hash = data.get("txHash") or data.get("transactionHash") or None
        logs = data.get("transactions") or data.get("transactionLogs") or ()
        return cls(
            order_id=str(data.get("id") or order_id),
            status=OrderStatus.parse(raw_status),
            amount=parse_amount(data.get("amount"), "amount"),
            amount_paid=parse_amount(data.get("amountPaid"), "amountPaid"),
            tx_hash=tx_hash.strip() if isinstance(tx_hash, str) and tx_hash.strip() else None,
            recipient=Recipient.from_api(data.get("recipient")),
            transactions=tuple(t for t in logs if isinstance(t, Mapping)),
            raw_status=str(raw_status),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.order_id,
            "status": self.status.value,
            "amount": str(self.amount) if self.amount is not None else None,
            "amountPaid": str(self.amount_paid) if self.amount_paid is not None else None,
            "txHash": self.tx_hash,
            "recipient": {
                "accountIdentifier": self.recipient.account_identifier,
                "accountName": self.recipient.account_name,
                "currency": self.recipient.currency,
                "institution": self.recipient.institution,
            },
        }


# camelCase keys as sent in poll request bodies
_CAMEL_OPTION_KEYS = {
    "maxAttempts": "max_attempts",
    "baseDelay": "base_delay_ms",
    "maxDelay": "max_delay_ms",
    "timeoutMs": "timeout_ms",
    "exponentialFactor": "exponential_factor",
}


@dataclass(frozen=True)
class PollingOptions:
    """Polling knobs. All delays in milliseconds.

    base_delay_ms:      first inter-attempt delay under normal backoff
    max_delay_ms:       ceiling for both backoff policies
    exponential_factor: growth rate of the normal (still processing) backoff
    max_attempts:       hard cap on status calls, independent of timeout_ms
    timeout_ms:         wall-clock cap, independent of max_attempts
    """
    max_attempts: int = POLL_MAX_ATTEMPTS
    base_delay_ms: float = POLL_BASE_DELAY_MS
    max_delay_ms: float = POLL_MAX_DELAY_MS
    timeout_ms: float = POLL_TIMEOUT_MS
    exponential_factor: float = POLL_EXPONENTIAL_FACTOR

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must be non-negative")
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be > 0, got {self.timeout_ms}")
        if self.exponential_factor < 1.0:
            raise ValueError(f"exponential_factor must be >= 1.0, got {self.exponential_factor}")

    @classmethod
    def build(cls, overrides: Union["PollingOptions", Mapping[str, Any], None] = None) -> "PollingOptions":
        """Defaults merged with a subset of overrides. None values are ignored."""
        if overrides is None:
            return cls()
        if isinstance(overrides, PollingOptions):
            return overrides
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in overrides.items():
            name = _CAMEL_OPTION_KEYS.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown polling option: {key}")
            if value is not None:
                kwargs[name] = value
        return replace(cls(), **kwargs)


@dataclass(frozen=True)
class PollAttempt:
    """One status call, successful or not. Append-only."""
    order_id: str
    attempt_number: int
    status: str                # OrderStatus value, or "error"
    response_time_ms: int
    error_message: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class SettlementRecord:
    """Created once per order that reaches `settled` during a poll run."""
    order_id: str
    status: str
    settlement_seconds: int
    tx_hash: Optional[str] = None
    amount_paid: Optional[Decimal] = None
    recipient_phone: Optional[str] = None
    recipient_name: Optional[str] = None
    currency: Optional[str] = None

    @classmethod
    def from_order(cls, order: OrderSnapshot, settlement_seconds: int,
                   order_id: Optional[str] = None) -> "SettlementRecord":
        return cls(
            order_id=order_id or order.order_id,
            status=order.status.value,
            settlement_seconds=settlement_seconds,
            tx_hash=order.tx_hash,
            amount_paid=order.amount_paid,
            recipient_phone=order.recipient.account_identifier,
            recipient_name=order.recipient.account_name,
            currency=order.recipient.currency,
        )


@dataclass(frozen=True)
class PollingResult:
    success: bool
    completed: bool
    order: Optional[OrderSnapshot] = None
    error: Optional[str] = None
    message: Optional[str] = None
    timeout_reached: bool = False
    attempts: int = 0

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "completed": self.completed,
            "order": self.order.to_dict() if self.order else None,
            "error": self.error,
            "message": self.message,
            "timeoutReached": self.timeout_reached,
            "attempts": self.attempts,
        }


@dataclass(frozen=True)
class VerificationResult:
    verified: bool
    reason: str
    order: Optional[OrderSnapshot] = None

    def to_dict(self) -> dict:
        return {
            "verified": self.verified,
            "reason": self.reason,
            "order": self.order.to_dict() if self.order else None,
        }
