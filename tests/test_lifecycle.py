import pytest

from cleanstride.domain import TrackingEntry
from cleanstride.errors import InvalidTransition, ValidationError
from cleanstride.lifecycle import (
    ORDER_TRANSITIONS,
    PROGRESS_STEPS,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    can_transition,
    can_transition_payment,
    ensure_payment_transition,
    ensure_transition,
    is_terminal,
    next_statuses,
    parse_payment_method,
    parse_status,
    payment_method_display,
    payment_status_display,
    progress_index,
    status_display,
)

from conftest import NOW


def test_main_path_is_walkable_step_by_step():
    for current, new in zip(PROGRESS_STEPS, PROGRESS_STEPS[1:]):
        assert can_transition(current, new)


@pytest.mark.parametrize("status", [s for s in OrderStatus if s not in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)])
def test_cancel_reachable_from_every_open_status(status):
    assert can_transition(status, "cancelled")


@pytest.mark.parametrize("terminal", ["delivered", "cancelled"])
def test_terminal_statuses_have_no_way_out(terminal):
    assert is_terminal(terminal)
    assert ORDER_TRANSITIONS[OrderStatus(terminal)] == frozenset()
    for s in OrderStatus:
        assert not can_transition(terminal, s)


def test_delivered_order_cannot_be_reopened():
    with pytest.raises(InvalidTransition):
        ensure_transition("delivered", "pending")


def test_skipping_steps_is_rejected():
    assert not can_transition("pending", "in_process")
    with pytest.raises(ValidationError):
        ensure_transition("confirmed", "delivered")


def test_unknown_statuses_never_transition():
    assert not can_transition("processing", "confirmed")
    assert not can_transition("pending", "qc")


def test_next_statuses_lists_step_before_cancel():
    assert next_statuses("in_process") == [OrderStatus.QUALITY_CHECK, OrderStatus.CANCELLED]
    assert next_statuses("delivered") == []
    assert next_statuses("bogus") == []


@pytest.mark.parametrize(
    "current,new",
    [("pending", "paid"), ("pending", "failed"), ("paid", "refunded"), ("failed", "pending")],
)
def test_allowed_payment_transitions(current, new):
    assert can_transition_payment(current, new)
    ensure_payment_transition(current, new)


@pytest.mark.parametrize(
    "current,new",
    [
        ("paid", "pending"),
        ("failed", "paid"),
        ("refunded", "paid"),
        ("pending", "refunded"),
        ("paid", "failed"),
    ],
)
def test_other_payment_transitions_are_rejected(current, new):
    assert not can_transition_payment(current, new)
    with pytest.raises(InvalidTransition):
        ensure_payment_transition(current, new)


def test_every_known_status_has_its_own_display():
    labels = {status_display(s).label for s in OrderStatus}
    assert len(labels) == len(OrderStatus)
    assert status_display(OrderStatus.DELIVERED).label == "Delivered"
    assert status_display("delivered") == status_display(OrderStatus.DELIVERED)


@pytest.mark.parametrize("value", ["processing", "", None, "PENDING ", "qc"])
def test_unknown_status_falls_back_to_pending_display(value):
    assert status_display(value) == status_display("pending")


def test_payment_displays_fall_back():
    assert payment_status_display("completed") == payment_status_display("pending")
    assert payment_method_display("cod").label == "Cash on Delivery (COD)"
    assert payment_method_display(None).label == "Not chosen"
    assert payment_method_display("paypal").label == "paypal"


def test_parse_helpers():
    assert parse_status(" Confirmed ") == OrderStatus.CONFIRMED
    assert parse_payment_method("cash_on_delivery") == PaymentMethod.COD
    assert parse_payment_method("bank_transfer") == PaymentMethod.BANK_TRANSFER
    assert PaymentStatus("paid") == "paid"
    with pytest.raises(ValueError):
        parse_status("processing")
    with pytest.raises(ValueError):
        parse_payment_method("bitcoin")


def _entry(i, status):
    return TrackingEntry(id=i, order_id=1, status=status, created_at=NOW)


def test_progress_index():
    assert progress_index([]) == -1
    assert progress_index([_entry(1, "pending")]) == 0
    entries = [_entry(1, "pending"), _entry(2, "confirmed"), _entry(3, "picked_up")]
    assert progress_index(entries) == PROGRESS_STEPS.index(OrderStatus.PICKED_UP)
    assert progress_index(reversed(entries)) == 3


def test_progress_index_ignores_cancelled_and_unknown():
    assert progress_index([_entry(1, "cancelled"), _entry(2, "mystery")]) == -1
    assert progress_index([_entry(1, "pending"), _entry(2, "confirmed"), _entry(3, "cancelled")]) == 1


def test_every_payment_method_is_offered_without_fees():
    for method in PaymentMethod:
        label = payment_method_display(method).label
        assert parse_payment_method(method.value) == method
        assert "fee" not in label.lower()
        assert "unavailable" not in label.lower()
    assert payment_method_display("credit_card").label == "Credit / debit card"
