from __future__ import annotations

import logging
import secrets
from datetime import datetime

from psycopg import Connection

from ..domain import Order, Payment, Profile
from ..errors import NotFoundError, PermissionDenied, ValidationError
from ..lifecycle import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    UserRole,
    ensure_payment_transition,
    parse_payment_method,
    payment_method_display,
)
from ..repositories.notification_repo import NotificationRepository
from ..repositories.order_repo import OrderRepository
from ..repositories.payment_repo import PaymentRepository
from .order_service import ensure_can_view

logger = logging.getLogger(__name__)

UNPAID = (PaymentStatus.PENDING, PaymentStatus.FAILED)


def new_transaction_id(now: datetime) -> str:
    return f"TRX-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"


class PaymentService:
    """Records how an order is paid. There is no gateway behind it."""

    def __init__(
        self,
        *,
        order_repo: OrderRepository,
        payment_repo: PaymentRepository,
        notification_repo: NotificationRepository,
    ) -> None:
        self.order_repo = order_repo
        self.payment_repo = payment_repo
        self.notification_repo = notification_repo

    def _get_order(self, conn: Connection, actor: Profile, order_id: int) -> Order:
        order = self.order_repo.get(conn, order_id)
        if order is None:
            raise NotFoundError(f"Order not found: {order_id}")
        ensure_can_view(actor, order)
        return order

    def payable_orders(self, conn: Connection, *, actor: Profile, limit: int = 100) -> list[Order]:
        customer_id = actor.id if actor.role == UserRole.CUSTOMER else None
        rows = self.order_repo.list(conn, customer_id=customer_id, payment_statuses=UNPAID, limit=limit)
        return [o for o in rows if o.status != OrderStatus.CANCELLED]

    def open_payment(self, conn: Connection, order_id: int) -> Payment | None:
        """The order's pending payment, if one is waiting to be settled or failed."""
        for p in self.payment_repo.list_for_order(conn, order_id):
            if p.payment_status == PaymentStatus.PENDING:
                return p
        return None

    @staticmethod
    def can_pay(order: Order, payments: list[Payment]) -> bool:
        return (
            order.status != OrderStatus.CANCELLED
            and order.payment_status in UNPAID
            and not any(p.payment_status == PaymentStatus.PENDING for p in payments)
        )

    def record_payment(
        self,
        conn: Connection,
        *,
        actor: Profile,
        order_id: int,
        method: str,
        now: datetime | None = None,
    ) -> Payment:
        try:
            pm = parse_payment_method(method)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        order = self._get_order(conn, actor, order_id)
        if order.payment_status not in UNPAID:
            raise ValidationError(f"Order {order.order_number} is already {order.payment_status}.")
        if order.status == OrderStatus.CANCELLED:
            raise ValidationError(f"Order {order.order_number} is cancelled.")
        pending = self.open_payment(conn, order.id)
        if pending is not None:
            raise ValidationError(
                f"Order {order.order_number} already has an open payment #{pending.id} "
                f"({payment_method_display(pending.payment_method).label}); settle or fail it first."
            )

        now = now or datetime.now()
        # cash is collected on delivery, everything else counts as paid right away
        if pm == PaymentMethod.COD:
            status, paid_at, trx = PaymentStatus.PENDING, None, None
        else:
            status, paid_at, trx = PaymentStatus.PAID, now, new_transaction_id(now)

        current = PaymentStatus(order.payment_status)
        if current == PaymentStatus.FAILED:
            ensure_payment_transition(current, PaymentStatus.PENDING)
            self.order_repo.set_payment(conn, order_id=order.id, method=None, status=PaymentStatus.PENDING)
            current = PaymentStatus.PENDING
        if status != current:
            ensure_payment_transition(current, status)

        payment = self.payment_repo.create(
            conn,
            order_id=order.id,
            amount=order.total_amount,
            method=pm,
            status=status,
            transaction_id=trx,
            payment_date=paid_at,
        )
        self.order_repo.set_payment(conn, order_id=order.id, method=pm, status=status)
        self.notification_repo.create(
            conn,
            user_id=order.customer_id,
            order_id=order.id,
            title=f"Payment for {order.order_number}",
            message=f"{payment_method_display(pm).label}: {status}.",
        )
        logger.info("Recorded %s payment %s for order %s (%s)", pm, payment.id, order.order_number, status)
        return payment

    def _move(
        self,
        conn: Connection,
        *,
        payment_id: int,
        new_status: PaymentStatus,
        now: datetime | None,
    ) -> Payment:
        payment = self.payment_repo.get(conn, payment_id)
        if payment is None:
            raise NotFoundError(f"Payment not found: {payment_id}")
        ensure_payment_transition(payment.payment_status, new_status)

        # only the newest payment of an order drives the order's payment status
        latest = self.payment_repo.list_for_order(conn, payment.order_id)
        if latest and latest[0].id != payment.id:
            raise ValidationError(f"Payment {payment.id} was superseded by payment {latest[0].id}.")
        order = self.order_repo.get(conn, payment.order_id)
        if order is None:
            raise NotFoundError(f"Order not found: {payment.order_id}")
        ensure_payment_transition(order.payment_status, new_status)

        paid_at = (now or datetime.now()) if new_status == PaymentStatus.PAID else None
        self.payment_repo.set_status(conn, payment_id=payment.id, status=new_status, payment_date=paid_at)
        self.order_repo.set_payment(conn, order_id=payment.order_id, method=None, status=new_status)
        logger.info("Payment %s moved %s -> %s", payment.id, payment.payment_status, new_status)
        return self.payment_repo.get(conn, payment.id)

    def settle_payment(self, conn: Connection, *, actor: Profile, payment_id: int, now: datetime | None = None) -> Payment:
        """Mark a pending (cash on delivery) payment as collected."""
        if actor.role not in (UserRole.ADMIN, UserRole.COURIER):
            raise PermissionDenied("Only an administrator or courier can settle payments.")
        return self._move(conn, payment_id=payment_id, new_status=PaymentStatus.PAID, now=now)

    def fail_payment(self, conn: Connection, *, actor: Profile, payment_id: int) -> Payment:
        if not actor.is_admin:
            raise PermissionDenied("Only an administrator can mark payments as failed.")
        return self._move(conn, payment_id=payment_id, new_status=PaymentStatus.FAILED, now=None)

    def refund_payment(self, conn: Connection, *, actor: Profile, payment_id: int) -> Payment:
        if not actor.is_admin:
            raise PermissionDenied("Only an administrator can refund payments.")
        return self._move(conn, payment_id=payment_id, new_status=PaymentStatus.REFUNDED, now=None)

    def payments_for_order(self, conn: Connection, *, actor: Profile, order_id: int) -> list[Payment]:
        order = self._get_order(conn, actor, order_id)
        return self.payment_repo.list_for_order(conn, order.id)
