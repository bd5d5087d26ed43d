"""
Order state machines

An order tracks three statuses that move independently: the order
lifecycle, the payment and the fulfillment. Nothing here couples them;
"paid implies confirmed" style policies belong to the caller.
"""
from enum import Enum
from typing import Dict, FrozenSet, Optional

from errors import INVALID_TRANSITION, INVALID_VALUE, ValidationError


class OrderStatus(str, Enum):
    """Order lifecycle"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    PARTIALLY_SHIPPED = "partially_shipped"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    ON_HOLD = "on_hold"
    FAILED = "failed"


class PaymentStatus(str, Enum):
    """Payment status"""
    PENDING = "pending"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"
    FAILED = "failed"


class FulfillmentStatus(str, Enum):
    """Fulfillment status"""
    UNFULFILLED = "unfulfilled"
    PARTIALLY_FULFILLED = "partially_fulfilled"
    FULFILLED = "fulfilled"
    RETURNED = "returned"


S = OrderStatus
STATUS_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.ON_HOLD, S.CANCELLED, S.FAILED}),
    S.CONFIRMED: frozenset({S.PROCESSING, S.ON_HOLD, S.CANCELLED, S.FAILED}),
    S.PROCESSING: frozenset({S.PARTIALLY_SHIPPED, S.SHIPPED, S.ON_HOLD, S.FAILED, S.REFUNDED}),
    S.PARTIALLY_SHIPPED: frozenset({S.SHIPPED, S.ON_HOLD, S.FAILED, S.REFUNDED}),
    S.SHIPPED: frozenset({S.DELIVERED, S.ON_HOLD, S.FAILED, S.REFUNDED}),
    S.DELIVERED: frozenset({S.COMPLETED, S.REFUNDED}),
    S.COMPLETED: frozenset({S.REFUNDED}),
    S.ON_HOLD: frozenset({S.CONFIRMED, S.PROCESSING, S.CANCELLED, S.FAILED}),
    S.CANCELLED: frozenset(),
    S.REFUNDED: frozenset(),
    S.FAILED: frozenset(),
}

P = PaymentStatus
PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    P.PENDING: frozenset({P.PAID, P.PARTIALLY_PAID, P.FAILED}),
    P.PARTIALLY_PAID: frozenset({P.PAID, P.REFUNDED, P.PARTIALLY_REFUNDED, P.FAILED}),
    P.PAID: frozenset({P.REFUNDED, P.PARTIALLY_REFUNDED}),
    P.PARTIALLY_REFUNDED: frozenset({P.REFUNDED}),
    P.REFUNDED: frozenset(),
    P.FAILED: frozenset(),
}

F = FulfillmentStatus
FULFILLMENT_TRANSITIONS: Dict[FulfillmentStatus, FrozenSet[FulfillmentStatus]] = {
    F.UNFULFILLED: frozenset({F.PARTIALLY_FULFILLED, F.FULFILLED}),
    F.PARTIALLY_FULFILLED: frozenset({F.FULFILLED, F.RETURNED}),
    F.FULFILLED: frozenset({F.RETURNED}),
    F.RETURNED: frozenset(),
}

MACHINES = {
    "status": (OrderStatus, STATUS_TRANSITIONS),
    "payment_status": (PaymentStatus, PAYMENT_TRANSITIONS),
    "fulfillment_status": (FulfillmentStatus, FULFILLMENT_TRANSITIONS),
}

CANCELLABLE = frozenset({S.PENDING, S.CONFIRMED, S.ON_HOLD})

# lifecycle date stamped the first time a machine reaches a state
LIFECYCLE_DATES = {
    ("status", S.CONFIRMED): "confirmed_at",
    ("status", S.SHIPPED): "shipped_at",
    ("status", S.DELIVERED): "delivered_at",
    ("status", S.COMPLETED): "completed_at",
    ("status", S.CANCELLED): "cancelled_at",
    ("payment_status", P.PAID): "paid_at",
}

TIMELINE_EVENTS = {
    ("status", S.CONFIRMED): "confirmed",
    ("status", S.PROCESSING): "processing",
    ("status", S.SHIPPED): "shipped",
    ("status", S.DELIVERED): "delivered",
    ("status", S.CANCELLED): "cancelled",
    ("status", S.REFUNDED): "refunded",
    ("payment_status", P.PAID): "payment_received",
    ("payment_status", P.REFUNDED): "refunded",
}


def parse(machine: str, value: str) -> Enum:
    if machine not in MACHINES:
        raise ValidationError(INVALID_VALUE, machine, f"Unknown order status machine: {machine}")
    enum, _ = MACHINES[machine]
    try:
        return enum(value)
    except ValueError:
        raise ValidationError(INVALID_VALUE, machine, f"{value!r} is not a valid {machine}")


def can_transition(machine: str, current: str, target: str) -> bool:
    _, table = MACHINES[machine]
    current, target = parse(machine, current), parse(machine, target)
    return current == target or target in table[current]


def check_transition(machine: str, current: str, target: str) -> None:
    if not can_transition(machine, current, target):
        raise ValidationError(
            INVALID_TRANSITION, machine,
            f"Cannot move {machine} from {current} to {target}",
        )


def can_be_cancelled(status: Optional[str]) -> bool:
    return status in {s.value for s in CANCELLABLE}


def lifecycle_date(machine: str, target: str) -> Optional[str]:
    return LIFECYCLE_DATES.get((machine, parse(machine, target)))


def timeline_event(machine: str, target: str) -> str:
    return TIMELINE_EVENTS.get((machine, parse(machine, target)), "note_added")
