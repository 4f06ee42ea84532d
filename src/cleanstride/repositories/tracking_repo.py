from __future__ import annotations

from psycopg import Connection

from ..db import fetch_all, fetch_one
from ..domain import TrackingEntry


class TrackingRepository:
    """Append-only log of order status changes."""

    def create(self, conn: Connection, *, order_id: int, status: str, notes: str | None, updated_by: int | None) -> TrackingEntry:
        cur = conn.execute(
            """
            INSERT INTO order_tracking(order_id, status, notes, updated_by)
            VALUES (%s, %s, %s, %s)
            RETURNING id, order_id, status::text AS status, notes, updated_by, created_at;
            """,
            (order_id, str(status), notes, updated_by),
        )
        return TrackingEntry.from_row(fetch_one(cur))

    def list_for_order(self, conn: Connection, order_id: int) -> list[TrackingEntry]:
        cur = conn.execute(
            """
            SELECT t.id, t.order_id, t.status::text AS status, t.notes, t.updated_by,
                   p.full_name AS updated_by_name, t.created_at
            FROM order_tracking t
            LEFT JOIN profile p ON p.id = t.updated_by
            WHERE t.order_id = %s
            ORDER BY t.created_at DESC, t.id DESC;
            """,
            (order_id,),
        )
        return [TrackingEntry.from_row(r) for r in fetch_all(cur)]
