from __future__ import annotations

from psycopg import Connection

from ..db import fetch_all, fetch_one
from ..domain import Profile

_COLUMNS = "id, full_name, phone, address, role::text AS role, is_active, created_at"


class ProfileRepository:
    def create(
        self,
        conn: Connection,
        *,
        full_name: str,
        phone: str | None,
        address: str | None,
        role: str = "customer",
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO profile(full_name, phone, address, role)
            VALUES (%s, %s, %s, %s)
            RETURNING id;
            """,
            (full_name, phone, address, str(role)),
        )
        return int(cur.fetchone()[0])

    def get(self, conn: Connection, profile_id: int) -> Profile | None:
        cur = conn.execute(f"SELECT {_COLUMNS} FROM profile WHERE id = %s;", (profile_id,))
        row = fetch_one(cur)
        return Profile.from_row(row) if row else None

    def list(self, conn: Connection, *, role: str | None = None, limit: int = 100) -> list[Profile]:
        if role is None:
            cur = conn.execute(
                f"SELECT {_COLUMNS} FROM profile ORDER BY full_name LIMIT %s;",
                (limit,),
            )
        else:
            cur = conn.execute(
                f"SELECT {_COLUMNS} FROM profile WHERE role = %s ORDER BY full_name LIMIT %s;",
                (str(role), limit),
            )
        return [Profile.from_row(r) for r in fetch_all(cur)]

    def update_contact(self, conn: Connection, *, profile_id: int, phone: str | None, address: str | None) -> None:
        conn.execute(
            """
            UPDATE profile
            SET phone = COALESCE(%s, phone), address = COALESCE(%s, address), updated_at = now()
            WHERE id = %s;
            """,
            (phone, address, profile_id),
        )

    def create_account(self, conn: Connection, *, profile_id: int, email: str, password_hash: str) -> None:
        conn.execute(
            "INSERT INTO auth_account(profile_id, email, password_hash) VALUES (%s, %s, %s);",
            (profile_id, email, password_hash),
        )

    def get_account(self, conn: Connection, email: str) -> dict | None:
        cur = conn.execute(
            "SELECT profile_id, email, password_hash FROM auth_account WHERE email = %s;",
            (email,),
        )
        return fetch_one(cur)
