from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from psycopg import Connection

from ..db import fetch_all, fetch_one
from ..domain import Order

_SELECT = """
    SELECT o.id, o.order_number, o.customer_id, o.service_id, o.courier_id, o.workshop_staff_id,
           o.status::text AS status, o.payment_status::text AS payment_status,
           o.payment_method::text AS payment_method, o.quantity, o.is_urgent, o.total_amount,
           o.shoe_type, o.shoe_condition, o.pickup_address, o.delivery_address, o.pickup_date,
           o.delivery_date, o.estimated_completion, o.special_notes, o.created_at, o.updated_at,
           s.name AS service_name, c.full_name AS customer_name
    FROM orders o
    JOIN service s ON s.id = o.service_id
    JOIN profile c ON c.id = o.customer_id
"""


class OrderRepository:
    def next_order_number(self, conn: Connection) -> str:
        cur = conn.execute("SELECT generate_order_number();")
        return str(cur.fetchone()[0])

    def create(
        self,
        conn: Connection,
        *,
        order_number: str,
        customer_id: int,
        service_id: int,
        quantity: int,
        is_urgent: bool,
        total_amount: Decimal,
        shoe_type: str | None,
        shoe_condition: str | None,
        pickup_address: str,
        delivery_address: str | None,
        pickup_date: datetime | None,
        estimated_completion: datetime | None,
        special_notes: str | None,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO orders(order_number, customer_id, service_id, quantity, is_urgent, total_amount,
                               shoe_type, shoe_condition, pickup_address, delivery_address, pickup_date,
                               estimated_completion, special_notes)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (
                order_number,
                customer_id,
                service_id,
                quantity,
                is_urgent,
                total_amount,
                shoe_type,
                shoe_condition,
                pickup_address,
                delivery_address,
                pickup_date,
                estimated_completion,
                special_notes,
            ),
        )
        return int(cur.fetchone()[0])

    def get(self, conn: Connection, order_id: int) -> Order | None:
        cur = conn.execute(_SELECT + " WHERE o.id = %s;", (order_id,))
        row = fetch_one(cur)
        return Order.from_row(row) if row else None

    def get_by_number(self, conn: Connection, order_number: str) -> Order | None:
        cur = conn.execute(_SELECT + " WHERE o.order_number = %s;", (order_number.strip().upper(),))
        row = fetch_one(cur)
        return Order.from_row(row) if row else None

    def set_status(self, conn: Connection, *, order_id: int, status: str) -> None:
        # delivered orders get their delivery timestamp here
        conn.execute(
            """
            UPDATE orders
            SET status = %s,
                delivery_date = CASE WHEN %s::text = 'delivered' THEN now() ELSE delivery_date END,
                updated_at = now()
            WHERE id = %s;
            """,
            (str(status), str(status), order_id),
        )

    def set_payment(self, conn: Connection, *, order_id: int, method: str | None, status: str) -> None:
        conn.execute(
            """
            UPDATE orders
            SET payment_method = COALESCE(%s, payment_method), payment_status = %s, updated_at = now()
            WHERE id = %s;
            """,
            (str(method) if method else None, str(status), order_id),
        )

    def assign_staff(self, conn: Connection, *, order_id: int, courier_id: int | None, workshop_staff_id: int | None) -> None:
        conn.execute(
            """
            UPDATE orders
            SET courier_id = %s, workshop_staff_id = %s, updated_at = now()
            WHERE id = %s;
            """,
            (courier_id, workshop_staff_id, order_id),
        )

    def list(
        self,
        conn: Connection,
        *,
        customer_id: int | None = None,
        status: str | None = None,
        payment_statuses: tuple[str, ...] | None = None,
        limit: int = 100,
    ) -> list[Order]:
        clauses = []
        params: list = []
        if customer_id is not None:
            clauses.append("o.customer_id = %s")
            params.append(customer_id)
        if status is not None:
            clauses.append("o.status = %s")
            params.append(str(status))
        if payment_statuses:
            clauses.append("o.payment_status::text = ANY(%s)")
            params.append([str(s) for s in payment_statuses])
        where = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        params.append(limit)
        cur = conn.execute(_SELECT + where + " ORDER BY o.created_at DESC, o.id DESC LIMIT %s;", params)
        return [Order.from_row(r) for r in fetch_all(cur)]

    def list_in_window(
        self,
        conn: Connection,
        date_from: datetime,
        date_to: datetime,
        *,
        customer_id: int | None = None,
    ) -> list[Order]:
        cur = conn.execute(
            _SELECT
            + """
            WHERE o.created_at >= %s AND o.created_at < %s
              AND (%s::bigint IS NULL OR o.customer_id = %s)
            ORDER BY o.created_at;
            """,
            (date_from, date_to, customer_id, customer_id),
        )
        return [Order.from_row(r) for r in fetch_all(cur)]
