from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Iterable

from psycopg import Connection

from .domain import Order, Profile
from .errors import ValidationError
from .lifecycle import OrderStatus, PaymentStatus, UserRole, is_terminal
from .repositories.order_repo import OrderRepository

REPORT_WINDOWS: dict[str, timedelta] = {
    "7days": timedelta(days=7),
    "30days": timedelta(days=30),
    "3months": timedelta(days=90),
    "6months": timedelta(days=182),
    "1year": timedelta(days=365),
}

DEFAULT_WINDOW = "30days"


@dataclass(frozen=True)
class BreakdownRow:
    key: str
    count: int
    amount: Decimal
    percentage: float


@dataclass(frozen=True)
class OrderReport:
    total_orders: int
    total_revenue: Decimal
    paid_revenue: Decimal
    by_status: list[BreakdownRow] = field(default_factory=list)
    by_service: list[BreakdownRow] = field(default_factory=list)
    by_month: list[BreakdownRow] = field(default_factory=list)
    window: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


def window_start(key: str, now: datetime) -> datetime:
    try:
        return now - REPORT_WINDOWS[key]
    except KeyError:
        raise ValidationError(f"Unknown report window: {key}") from None


def _breakdown(orders: list[Order], key_of: Callable[[Order], str]) -> list[BreakdownRow]:
    counts: dict[str, int] = defaultdict(int)
    amounts: dict[str, Decimal] = defaultdict(Decimal)
    for o in orders:
        k = key_of(o)
        counts[k] += 1
        amounts[k] += o.total_amount
    total = len(orders)
    return [
        BreakdownRow(key=k, count=counts[k], amount=amounts[k], percentage=round(counts[k] * 100.0 / total, 2))
        for k in counts
    ]


def _month_of(o: Order) -> str:
    return f"{o.created_at:%Y-%m}" if o.created_at else "unknown"


def aggregate_orders(orders: Iterable[Order]) -> OrderReport:
    """Count and sum already fetched orders by status, service and month."""
    orders = list(orders)
    by_status = _breakdown(orders, lambda o: str(o.status))
    by_status.sort(key=lambda r: (-r.count, r.key))
    by_service = _breakdown(orders, lambda o: o.service_name or f"service #{o.service_id}")
    by_service.sort(key=lambda r: (-r.count, r.key))
    by_month = _breakdown(orders, _month_of)
    by_month.sort(key=lambda r: r.key)
    return OrderReport(
        total_orders=len(orders),
        total_revenue=sum((o.total_amount for o in orders), Decimal("0")),
        paid_revenue=sum(
            (o.total_amount for o in orders if o.payment_status == PaymentStatus.PAID), Decimal("0")
        ),
        by_status=by_status,
        by_service=by_service,
        by_month=by_month,
    )


def top_services(report: OrderReport, limit: int = 5) -> list[BreakdownRow]:
    return sorted(report.by_service, key=lambda r: (-r.amount, r.key))[:limit]


def build_report(
    conn: Connection,
    order_repo: OrderRepository,
    *,
    viewer: Profile,
    window: str = DEFAULT_WINDOW,
    now: datetime | None = None,
) -> OrderReport:
    # customers only ever see their own orders
    now = now or datetime.now()
    date_from = window_start(window, now)
    customer_id = viewer.id if viewer.role == UserRole.CUSTOMER else None
    orders = order_repo.list_in_window(conn, date_from, now, customer_id=customer_id)
    return replace(aggregate_orders(orders), window=window, date_from=date_from, date_to=now)


@dataclass(frozen=True)
class DashboardSummary:
    total_orders: int
    in_progress: int
    delivered: int
    revenue_today: Decimal
    recent: list[Order]


def dashboard_summary(orders: Iterable[Order], today: date) -> DashboardSummary:
    orders = sorted(orders, key=lambda o: o.id, reverse=True)
    in_progress = [o for o in orders if o.status != OrderStatus.PENDING and not is_terminal(o.status)]
    delivered = [o for o in orders if o.status == OrderStatus.DELIVERED]
    revenue_today = sum(
        (
            o.total_amount
            for o in orders
            if o.created_at and o.created_at.date() == today and o.status != OrderStatus.CANCELLED
        ),
        Decimal("0"),
    )
    return DashboardSummary(
        total_orders=len(orders),
        in_progress=len(in_progress),
        delivered=len(delivered),
        revenue_today=revenue_today,
        recent=orders[:5],
    )
