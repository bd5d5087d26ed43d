import pytest

from errors import INVALID_TRANSITION, INVALID_VALUE, ValidationError
from order_status import (FULFILLMENT_TRANSITIONS, PAYMENT_TRANSITIONS, STATUS_TRANSITIONS, can_be_cancelled,
                          can_transition, check_transition, lifecycle_date, timeline_event)


@pytest.mark.parametrize("current,target", [
    ("pending", "confirmed"),
    ("confirmed", "processing"),
    ("processing", "partially_shipped"),
    ("partially_shipped", "shipped"),
    ("shipped", "delivered"),
    ("delivered", "completed"),
    ("on_hold", "processing"),
    ("processing", "refunded"),
])
def test_forward_status_moves(current, target):
    assert can_transition("status", current, target)


@pytest.mark.parametrize("current,target", [
    ("pending", "shipped"),
    ("delivered", "pending"),
    ("cancelled", "confirmed"),
    ("completed", "cancelled"),
])
def test_rejected_status_moves(current, target):
    assert not can_transition("status", current, target)


def test_staying_put_is_allowed():
    assert can_transition("status", "shipped", "shipped")
    assert can_transition("payment_status", "paid", "paid")


def test_machines_are_independent():
    # paying an order does not need the order lifecycle to move
    assert can_transition("payment_status", "pending", "paid")
    assert can_transition("fulfillment_status", "unfulfilled", "fulfilled")
    assert can_transition("payment_status", "paid", "partially_refunded")
    assert not can_transition("fulfillment_status", "returned", "fulfilled")


def test_terminal_states():
    for table, terminal in ((STATUS_TRANSITIONS, ("cancelled", "refunded", "failed")),
                            (PAYMENT_TRANSITIONS, ("refunded", "failed")),
                            (FULFILLMENT_TRANSITIONS, ("returned",))):
        for state, targets in table.items():
            assert (not targets) == (state.value in terminal)


def test_check_transition_names_the_machine():
    with pytest.raises(ValidationError) as info:
        check_transition("payment_status", "refunded", "paid")
    assert info.value.kind == INVALID_TRANSITION
    assert info.value.field == "payment_status"


def test_unknown_status_value():
    with pytest.raises(ValidationError) as info:
        can_transition("status", "pending", "teleported")
    assert info.value.kind == INVALID_VALUE


@pytest.mark.parametrize("status,expected", [
    ("pending", True), ("confirmed", True), ("on_hold", True),
    ("processing", False), ("shipped", False), ("cancelled", False), (None, False),
])
def test_can_be_cancelled(status, expected):
    assert can_be_cancelled(status) is expected


def test_lifecycle_dates_and_timeline_events():
    assert lifecycle_date("status", "shipped") == "shipped_at"
    assert lifecycle_date("payment_status", "paid") == "paid_at"
    assert lifecycle_date("status", "processing") is None
    assert timeline_event("payment_status", "paid") == "payment_received"
    assert timeline_event("fulfillment_status", "fulfilled") == "note_added"
