from __future__ import annotations

from decimal import Decimal

from psycopg import Connection

from ..db import fetch_all, fetch_one
from ..domain import Service

_COLUMNS = "id, name, description, price, duration_days, is_active, created_at"


class ServiceRepository:
    def create(
        self,
        conn: Connection,
        *,
        name: str,
        description: str | None,
        price: Decimal,
        duration_days: int,
        is_active: bool = True,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO service(name, description, price, duration_days, is_active)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (name, description, price, duration_days, is_active),
        )
        return int(cur.fetchone()[0])

    def update(
        self,
        conn: Connection,
        *,
        service_id: int,
        name: str,
        description: str | None,
        price: Decimal,
        duration_days: int,
    ) -> bool:
        cur = conn.execute(
            """
            UPDATE service
            SET name = %s, description = %s, price = %s, duration_days = %s, updated_at = now()
            WHERE id = %s;
            """,
            (name, description, price, duration_days, service_id),
        )
        return cur.rowcount == 1

    def set_active(self, conn: Connection, *, service_id: int, is_active: bool) -> bool:
        cur = conn.execute(
            "UPDATE service SET is_active = %s, updated_at = now() WHERE id = %s;",
            (is_active, service_id),
        )
        return cur.rowcount == 1

    def delete(self, conn: Connection, service_id: int) -> bool:
        cur = conn.execute("DELETE FROM service WHERE id = %s;", (service_id,))
        return cur.rowcount == 1

    def get(self, conn: Connection, service_id: int) -> Service | None:
        cur = conn.execute(f"SELECT {_COLUMNS} FROM service WHERE id = %s;", (service_id,))
        row = fetch_one(cur)
        return Service.from_row(row) if row else None

    def list(self, conn: Connection, *, include_inactive: bool = True) -> list[Service]:
        where = "" if include_inactive else "WHERE is_active"
        cur = conn.execute(f"SELECT {_COLUMNS} FROM service {where} ORDER BY price, name;")
        return [Service.from_row(r) for r in fetch_all(cur)]
