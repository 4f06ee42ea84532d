from __future__ import annotations

from psycopg import Connection

from ..db import fetch_all
from ..domain import Notification


class NotificationRepository:
    def create(self, conn: Connection, *, user_id: int, order_id: int | None, title: str, message: str) -> int:
        cur = conn.execute(
            """
            INSERT INTO notification(user_id, order_id, title, message)
            VALUES (%s, %s, %s, %s)
            RETURNING id;
            """,
            (user_id, order_id, title, message),
        )
        return int(cur.fetchone()[0])

    def list_for_user(self, conn: Connection, user_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
        cur = conn.execute(
            """
            SELECT id, user_id, order_id, title, message, is_read, created_at
            FROM notification
            WHERE user_id = %s AND (NOT %s OR NOT is_read)
            ORDER BY created_at DESC, id DESC
            LIMIT %s;
            """,
            (user_id, unread_only, limit),
        )
        return [Notification.from_row(r) for r in fetch_all(cur)]

    def mark_read(self, conn: Connection, *, user_id: int, notification_id: int | None = None) -> int:
        # no id marks everything read
        cur = conn.execute(
            """
            UPDATE notification SET is_read = true
            WHERE user_id = %s AND (%s::bigint IS NULL OR id = %s) AND NOT is_read;
            """,
            (user_id, notification_id, notification_id),
        )
        return cur.rowcount

    def unread_count(self, conn: Connection, user_id: int) -> int:
        cur = conn.execute(
            "SELECT COUNT(*) FROM notification WHERE user_id = %s AND NOT is_read;",
            (user_id,),
        )
        return int(cur.fetchone()[0])
