from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from psycopg import Connection

from ..db import fetch_all, fetch_one
from ..domain import Payment

_RETURNING = """
    id, order_id, amount, payment_method::text AS payment_method,
    payment_status::text AS payment_status, transaction_id, payment_date, notes, created_at
"""


class PaymentRepository:
    def create(
        self,
        conn: Connection,
        *,
        order_id: int,
        amount: Decimal,
        method: str,
        status: str,
        transaction_id: str | None,
        payment_date: datetime | None,
        notes: str | None = None,
    ) -> Payment:
        cur = conn.execute(
            f"""
            INSERT INTO payment(order_id, amount, payment_method, payment_status, transaction_id, payment_date, notes)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {_RETURNING};
            """,
            (order_id, amount, str(method), str(status), transaction_id, payment_date, notes),
        )
        return Payment.from_row(fetch_one(cur))

    def get(self, conn: Connection, payment_id: int) -> Payment | None:
        cur = conn.execute(f"SELECT {_RETURNING} FROM payment WHERE id = %s;", (payment_id,))
        row = fetch_one(cur)
        return Payment.from_row(row) if row else None

    def set_status(self, conn: Connection, *, payment_id: int, status: str, payment_date: datetime | None) -> None:
        conn.execute(
            """
            UPDATE payment
            SET payment_status = %s, payment_date = COALESCE(%s, payment_date)
            WHERE id = %s;
            """,
            (str(status), payment_date, payment_id),
        )

    def list_for_order(self, conn: Connection, order_id: int) -> list[Payment]:
        cur = conn.execute(
            f"SELECT {_RETURNING} FROM payment WHERE order_id = %s ORDER BY created_at DESC, id DESC;",
            (order_id,),
        )
        return [Payment.from_row(r) for r in fetch_all(cur)]
