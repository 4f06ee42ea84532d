"""Order lifecycle vocabulary.

Order statuses, payment statuses and payment methods, the transitions allowed
between them, and the display metadata (label, icon, badge color) the
surfaces use instead of comparing raw strings.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Iterable, Protocol

from .errors import InvalidTransition


class OrderStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PICKUP_SCHEDULED = "pickup_scheduled"
    PICKED_UP = "picked_up"
    IN_PROCESS = "in_process"
    QUALITY_CHECK = "quality_check"
    READY_FOR_DELIVERY = "ready_for_delivery"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(StrEnum):
    COD = "cod"
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    DIGITAL_WALLET = "digital_wallet"


class UserRole(StrEnum):
    ADMIN = "admin"
    CUSTOMER = "customer"
    COURIER = "courier"
    WORKSHOP_STAFF = "workshop_staff"


STAFF_ROLES = frozenset({UserRole.ADMIN.value, UserRole.COURIER.value, UserRole.WORKSHOP_STAFF.value})

# main path, in order; cancelled sits outside it
PROGRESS_STEPS: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PICKUP_SCHEDULED,
    OrderStatus.PICKED_UP,
    OrderStatus.IN_PROCESS,
    OrderStatus.QUALITY_CHECK,
    OrderStatus.READY_FOR_DELIVERY,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value})


def _build_order_transitions() -> dict[OrderStatus, frozenset[OrderStatus]]:
    table: dict[OrderStatus, frozenset[OrderStatus]] = {}
    for i, status in enumerate(PROGRESS_STEPS):
        if status.value in TERMINAL_STATUSES:
            table[status] = frozenset()
        else:
            table[status] = frozenset({PROGRESS_STEPS[i + 1], OrderStatus.CANCELLED})
    table[OrderStatus.CANCELLED] = frozenset()
    return table


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = _build_order_transitions()

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    # retrying a failed payment reopens the order first
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.REFUNDED: frozenset(),
}

PAYMENT_METHOD_ALIASES = {
    "cash_on_delivery": PaymentMethod.COD,
    "transfer": PaymentMethod.BANK_TRANSFER,
    "credit": PaymentMethod.CREDIT_CARD,
    "ewallet": PaymentMethod.DIGITAL_WALLET,
}


def parse_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value.strip().lower())
    except ValueError:
        raise ValueError(f"Unknown order status: {value!r}") from None


def parse_payment_status(value: str) -> PaymentStatus:
    try:
        return PaymentStatus(value.strip().lower())
    except ValueError:
        raise ValueError(f"Unknown payment status: {value!r}") from None


def parse_payment_method(value: str) -> PaymentMethod:
    key = value.strip().lower()
    if key in PAYMENT_METHOD_ALIASES:
        return PAYMENT_METHOD_ALIASES[key]
    try:
        return PaymentMethod(key)
    except ValueError:
        raise ValueError(f"Unknown payment method: {value!r}") from None


def is_terminal(status: str) -> bool:
    return str(status) in TERMINAL_STATUSES


def next_statuses(status: str) -> list[OrderStatus]:
    """Statuses an order in `status` may move to, main-path step first."""
    try:
        allowed = ORDER_TRANSITIONS[OrderStatus(status)]
    except ValueError:
        return []
    return sorted(allowed, key=lambda s: (s == OrderStatus.CANCELLED, PROGRESS_STEPS.index(s) if s in PROGRESS_STEPS else 0))


def can_transition(current: str, new: str) -> bool:
    try:
        return OrderStatus(new) in ORDER_TRANSITIONS[OrderStatus(current)]
    except ValueError:
        return False


def can_transition_payment(current: str, new: str) -> bool:
    try:
        return PaymentStatus(new) in PAYMENT_TRANSITIONS[PaymentStatus(current)]
    except ValueError:
        return False


def ensure_transition(current: str, new: str) -> None:
    if not can_transition(current, new):
        raise InvalidTransition("order", current, new)


def ensure_payment_transition(current: str, new: str) -> None:
    if not can_transition_payment(current, new):
        raise InvalidTransition("payment", current, new)


@dataclass(frozen=True)
class StatusDisplay:
    label: str
    icon: str
    color: str


STATUS_DISPLAY: dict[str, StatusDisplay] = {
    OrderStatus.PENDING.value: StatusDisplay("Pending", "clock", "warning"),
    OrderStatus.CONFIRMED.value: StatusDisplay("Confirmed", "clipboard-check", "info"),
    OrderStatus.PICKUP_SCHEDULED.value: StatusDisplay("Pickup scheduled", "calendar", "info"),
    OrderStatus.PICKED_UP.value: StatusDisplay("Picked up", "truck", "primary"),
    OrderStatus.IN_PROCESS.value: StatusDisplay("In process", "wrench", "primary"),
    OrderStatus.QUALITY_CHECK.value: StatusDisplay("Quality check", "check-circle", "secondary"),
    OrderStatus.READY_FOR_DELIVERY.value: StatusDisplay("Ready for delivery", "package", "success"),
    OrderStatus.OUT_FOR_DELIVERY.value: StatusDisplay("Out for delivery", "truck", "success"),
    OrderStatus.DELIVERED.value: StatusDisplay("Delivered", "check-circle", "success"),
    OrderStatus.CANCELLED.value: StatusDisplay("Cancelled", "x-circle", "danger"),
}

PAYMENT_STATUS_DISPLAY: dict[str, StatusDisplay] = {
    PaymentStatus.PENDING.value: StatusDisplay("Waiting", "clock", "secondary"),
    PaymentStatus.PAID.value: StatusDisplay("Paid", "check-circle", "success"),
    PaymentStatus.FAILED.value: StatusDisplay("Failed", "alert-circle", "danger"),
    PaymentStatus.REFUNDED.value: StatusDisplay("Refunded", "rotate-ccw", "dark"),
}

PAYMENT_METHOD_DISPLAY: dict[str, StatusDisplay] = {
    PaymentMethod.COD.value: StatusDisplay("Cash on Delivery (COD)", "banknote", "secondary"),
    PaymentMethod.BANK_TRANSFER.value: StatusDisplay("Bank transfer", "building", "info"),
    PaymentMethod.CREDIT_CARD.value: StatusDisplay("Credit / debit card", "credit-card", "primary"),
    PaymentMethod.DIGITAL_WALLET.value: StatusDisplay("E-wallet", "smartphone", "primary"),
}


def status_display(value: str | None) -> StatusDisplay:
    return STATUS_DISPLAY.get(str(value or ""), STATUS_DISPLAY[OrderStatus.PENDING.value])


def payment_status_display(value: str | None) -> StatusDisplay:
    return PAYMENT_STATUS_DISPLAY.get(str(value or ""), PAYMENT_STATUS_DISPLAY[PaymentStatus.PENDING.value])


def payment_method_display(value: str | None) -> StatusDisplay:
    if value and str(value) in PAYMENT_METHOD_DISPLAY:
        return PAYMENT_METHOD_DISPLAY[str(value)]
    return StatusDisplay(value or "Not chosen", "help-circle", "light")


class HasStatus(Protocol):
    status: str


def progress_index(entries: Iterable[HasStatus]) -> int:
    """Index in PROGRESS_STEPS of the furthest step reached, -1 if none."""
    best = -1
    for entry in entries:
        if entry.status in PROGRESS_STEPS:
            best = max(best, PROGRESS_STEPS.index(entry.status))
    return best
