from __future__ import annotations

from dataclasses import dataclass

from psycopg import Connection

from ..domain import Order, Profile, TrackingEntry
from ..errors import NotFoundError
from ..lifecycle import PROGRESS_STEPS, StatusDisplay, progress_index, status_display
from ..repositories.order_repo import OrderRepository
from ..repositories.tracking_repo import TrackingRepository
from .order_service import ensure_can_view


@dataclass(frozen=True)
class TrackingStep:
    status: str
    display: StatusDisplay
    completed: bool


@dataclass(frozen=True)
class TrackingView:
    order: Order
    entries: list[TrackingEntry]
    current: StatusDisplay
    progress: int
    steps: list[TrackingStep]

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def is_cancelled(self) -> bool:
        return self.order.status == "cancelled"


def build_tracking_view(order: Order, entries: list[TrackingEntry]) -> TrackingView:
    # newest first regardless of how the rows arrived
    ordered = sorted(entries, key=lambda e: (e.created_at, e.id), reverse=True)
    reached = progress_index(ordered)
    steps = [
        TrackingStep(status=str(s), display=status_display(s), completed=i <= reached)
        for i, s in enumerate(PROGRESS_STEPS)
    ]
    return TrackingView(
        order=order,
        entries=ordered,
        current=status_display(order.status),
        progress=reached,
        steps=steps,
    )


class TrackingService:
    def __init__(self, *, order_repo: OrderRepository, tracking_repo: TrackingRepository) -> None:
        self.order_repo = order_repo
        self.tracking_repo = tracking_repo

    def get_tracking(
        self,
        conn: Connection,
        *,
        actor: Profile,
        order_id: int | None = None,
        order_number: str | None = None,
    ) -> TrackingView:
        """Read one order and its status history. Nothing is cached, every call re-reads."""
        if order_id is not None:
            order = self.order_repo.get(conn, order_id)
        elif order_number and order_number.strip():
            order = self.order_repo.get_by_number(conn, order_number)
        else:
            raise NotFoundError("Enter an order number.")
        if order is None:
            raise NotFoundError("Order not found.")
        ensure_can_view(actor, order)
        return build_tracking_view(order, self.tracking_repo.list_for_order(conn, order.id))
