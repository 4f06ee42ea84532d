from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal

from psycopg import Connection

from ..config import BusinessConfig
from ..domain import Order, Profile, TrackingEntry
from ..errors import NotFoundError, PermissionDenied, ValidationError
from ..lifecycle import (
    STAFF_ROLES,
    OrderStatus,
    UserRole,
    ensure_transition,
    parse_status,
    status_display,
)
from ..repositories.notification_repo import NotificationRepository
from ..repositories.order_repo import OrderRepository
from ..repositories.profile_repo import ProfileRepository
from ..repositories.service_repo import ServiceRepository
from ..repositories.tracking_repo import TrackingRepository

logger = logging.getLogger(__name__)

SHOE_TYPES = ("Sneakers", "Formal Shoes", "Boots", "Sandals", "Sports Shoes", "High Heels", "Other")

CENT = Decimal("0.01")

# a customer may still call off an order up to this point
CUSTOMER_CANCELLABLE = (OrderStatus.PENDING, OrderStatus.CONFIRMED)


@dataclass(frozen=True)
class Quote:
    base: Decimal
    surcharge: Decimal
    total: Decimal


def quote(price: Decimal, quantity: int, urgent: bool, rate: Decimal) -> Quote:
    base = (Decimal(price) * quantity).quantize(CENT)
    surcharge = (base * Decimal(rate)).quantize(CENT) if urgent else Decimal("0.00")
    return Quote(base=base, surcharge=surcharge, total=base + surcharge)


@dataclass
class CreateOrderInput:
    customer_name: str
    customer_phone: str
    customer_address: str
    service_id: int
    shoe_type: str
    quantity: int
    pickup_date: date
    pickup_slot: str
    is_urgent: bool = False
    notes: str | None = None
    shoe_condition: str | None = None
    customer_id: int | None = None


def is_staff(profile: Profile) -> bool:
    return str(profile.role) in STAFF_ROLES


def ensure_can_view(actor: Profile, order: Order) -> None:
    if actor.role == UserRole.CUSTOMER and order.customer_id != actor.id:
        raise PermissionDenied("You can only access your own orders.")


class OrderService:
    def __init__(
        self,
        *,
        business: BusinessConfig,
        profile_repo: ProfileRepository,
        service_repo: ServiceRepository,
        order_repo: OrderRepository,
        tracking_repo: TrackingRepository,
        notification_repo: NotificationRepository,
    ) -> None:
        self.business = business
        self.profile_repo = profile_repo
        self.service_repo = service_repo
        self.order_repo = order_repo
        self.tracking_repo = tracking_repo
        self.notification_repo = notification_repo

    def _validate(self, data: CreateOrderInput, today: date) -> None:
        if not data.customer_name.strip():
            raise ValidationError("Customer name cannot be empty.")
        if not data.customer_phone.strip():
            raise ValidationError("Phone number cannot be empty.")
        if not data.customer_address.strip():
            raise ValidationError("Address cannot be empty.")
        if not data.shoe_type.strip():
            raise ValidationError("Shoe type cannot be empty.")
        if isinstance(data.quantity, bool) or not isinstance(data.quantity, int):
            raise ValidationError("Quantity must be a whole number.")
        if data.quantity < 1 or data.quantity > self.business.max_quantity:
            raise ValidationError(f"Quantity must be between 1 and {self.business.max_quantity}.")
        if data.pickup_date < today:
            raise ValidationError("Pickup date cannot be in the past.")
        if data.pickup_slot not in self.business.pickup_slots:
            raise ValidationError(f"Unknown pickup time slot: {data.pickup_slot}")

    def create_order(self, conn: Connection, *, actor: Profile, data: CreateOrderInput, today: date | None = None) -> Order:
        """Create an order and its first tracking entry.

        Runs inside the caller's transaction, so a failure at any step leaves
        neither the order nor the tracking row behind.
        """
        self._validate(data, today or date.today())

        service = self.service_repo.get(conn, data.service_id)
        if service is None or not service.is_active:
            raise NotFoundError("Selected service is not available.")

        name = data.customer_name.strip()
        phone = data.customer_phone.strip()
        address = data.customer_address.strip()

        if actor.role == UserRole.CUSTOMER:
            customer_id = actor.id
            self.profile_repo.update_contact(conn, profile_id=actor.id, phone=phone, address=address)
        elif data.customer_id is not None:
            customer = self.profile_repo.get(conn, data.customer_id)
            if customer is None:
                raise NotFoundError(f"Unknown customer id: {data.customer_id}")
            customer_id = customer.id
        else:
            customer_id = self.profile_repo.create(
                conn, full_name=name, phone=phone, address=address, role=UserRole.CUSTOMER
            )

        q = quote(service.price, data.quantity, data.is_urgent, self.business.urgent_surcharge_rate)
        pickup_at = datetime.combine(data.pickup_date, self.business.slot_time(data.pickup_slot))

        order_number = self.order_repo.next_order_number(conn)
        order_id = self.order_repo.create(
            conn,
            order_number=order_number,
            customer_id=customer_id,
            service_id=service.id,
            quantity=data.quantity,
            is_urgent=data.is_urgent,
            total_amount=q.total,
            shoe_type=data.shoe_type.strip(),
            shoe_condition=(data.shoe_condition.strip() if data.shoe_condition else None),
            pickup_address=address,
            delivery_address=address,
            pickup_date=pickup_at,
            estimated_completion=pickup_at + timedelta(days=service.duration_days),
            special_notes=(data.notes.strip() if data.notes and data.notes.strip() else None),
        )
        self.tracking_repo.create(
            conn,
            order_id=order_id,
            status=OrderStatus.PENDING,
            notes="Order received",
            updated_by=actor.id,
        )
        logger.info("Created order %s (id=%s) total=%s by profile %s", order_number, order_id, q.total, actor.id)
        return self.order_repo.get(conn, order_id)

    def change_status(
        self,
        conn: Connection,
        *,
        actor: Profile,
        order_id: int,
        new_status: str,
        notes: str | None = None,
    ) -> TrackingEntry:
        """Move an order to `new_status` and append the matching tracking entry."""
        try:
            target = parse_status(new_status)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        order = self.order_repo.get(conn, order_id)
        if order is None:
            raise NotFoundError(f"Order not found: {order_id}")

        if not is_staff(actor):
            ensure_can_view(actor, order)
            if target != OrderStatus.CANCELLED or order.status not in CUSTOMER_CANCELLABLE:
                raise PermissionDenied("Customers can only cancel orders that are not yet picked up.")

        try:
            ensure_transition(order.status, target)
        except ValidationError:
            logger.warning("Rejected status change of %s: %s -> %s", order.order_number, order.status, target)
            raise

        self.order_repo.set_status(conn, order_id=order.id, status=target)
        entry = self.tracking_repo.create(
            conn,
            order_id=order.id,
            status=target,
            notes=(notes.strip() if notes and notes.strip() else None),
            updated_by=actor.id,
        )
        label = status_display(target).label
        self.notification_repo.create(
            conn,
            user_id=order.customer_id,
            order_id=order.id,
            title=f"Order {order.order_number}: {label}",
            message=f"Your order {order.order_number} is now '{label}'.",
        )
        logger.info("Order %s moved %s -> %s by profile %s", order.order_number, order.status, target, actor.id)
        return entry

    def assign_staff(
        self,
        conn: Connection,
        *,
        actor: Profile,
        order_id: int,
        courier_id: int | None,
        workshop_staff_id: int | None,
    ) -> None:
        if not actor.is_admin:
            raise PermissionDenied("Only an administrator can assign staff.")
        if self.order_repo.get(conn, order_id) is None:
            raise NotFoundError(f"Order not found: {order_id}")

        for profile_id, role in ((courier_id, UserRole.COURIER), (workshop_staff_id, UserRole.WORKSHOP_STAFF)):
            if profile_id is None:
                continue
            p = self.profile_repo.get(conn, profile_id)
            if p is None or p.role != role or not p.is_active:
                raise ValidationError(f"Profile {profile_id} is not an active {role}.")

        self.order_repo.assign_staff(
            conn, order_id=order_id, courier_id=courier_id, workshop_staff_id=workshop_staff_id
        )

    def list_orders(self, conn: Connection, *, actor: Profile, status: str | None = None, limit: int = 100) -> list[Order]:
        if status:
            try:
                status = parse_status(status)
            except ValueError as e:
                raise ValidationError(str(e)) from e
        customer_id = actor.id if actor.role == UserRole.CUSTOMER else None
        return self.order_repo.list(conn, customer_id=customer_id, status=status, limit=limit)
