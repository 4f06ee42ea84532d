from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

OrderStatusValue = Literal[
    "pending",
    "confirmed",
    "pickup_scheduled",
    "picked_up",
    "in_process",
    "quality_check",
    "ready_for_delivery",
    "out_for_delivery",
    "delivered",
    "cancelled",
]
PaymentStatusValue = Literal["pending", "paid", "failed", "refunded"]
PaymentMethodValue = Literal["cod", "bank_transfer", "credit_card", "digital_wallet"]
RoleValue = Literal["admin", "customer", "courier", "workshop_staff"]


class _Record:
    """Builds a dataclass from a DB row dict, ignoring unknown columns."""

    @classmethod
    def from_row(cls, row: dict):
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in row.items() if k in names})


@dataclass(frozen=True)
class Profile(_Record):
    id: int
    full_name: str
    role: RoleValue
    is_active: bool = True
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class Service(_Record):
    id: int
    name: str
    price: Decimal
    duration_days: int
    is_active: bool
    description: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Order(_Record):
    id: int
    order_number: str
    customer_id: int
    service_id: int
    status: OrderStatusValue
    payment_status: PaymentStatusValue
    total_amount: Decimal
    pickup_address: str
    quantity: int = 1
    is_urgent: bool = False
    payment_method: Optional[PaymentMethodValue] = None
    shoe_type: Optional[str] = None
    shoe_condition: Optional[str] = None
    delivery_address: Optional[str] = None
    pickup_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    estimated_completion: Optional[datetime] = None
    special_notes: Optional[str] = None
    courier_id: Optional[int] = None
    workshop_staff_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # joined, read-only
    service_name: Optional[str] = None
    customer_name: Optional[str] = None

    @property
    def awaiting_collection(self) -> bool:
        # the method is only set once a payment row exists
        return self.payment_status == "pending" and self.payment_method is not None


@dataclass(frozen=True)
class TrackingEntry(_Record):
    id: int
    order_id: int
    status: OrderStatusValue
    created_at: datetime
    notes: Optional[str] = None
    updated_by: Optional[int] = None
    updated_by_name: Optional[str] = None


@dataclass(frozen=True)
class Payment(_Record):
    id: int
    order_id: int
    amount: Decimal
    payment_method: PaymentMethodValue
    payment_status: PaymentStatusValue
    transaction_id: Optional[str] = None
    payment_date: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Notification(_Record):
    id: int
    user_id: int
    title: str
    message: str
    is_read: bool = False
    order_id: Optional[int] = None
    created_at: Optional[datetime] = None
