from __future__ import annotations

import itertools
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from cleanstride.config import BusinessConfig
from cleanstride.domain import Notification, Order, Payment, Profile, Service, TrackingEntry
from cleanstride.services.catalog_service import CatalogService
from cleanstride.services.order_service import CreateOrderInput, OrderService
from cleanstride.services.payment_service import PaymentService
from cleanstride.services.tracking_service import TrackingService

TODAY = date(2024, 6, 10)
NOW = datetime(2024, 6, 10, 12, 0)


class Store:
    """Shared in-memory tables for the fake repositories."""

    def __init__(self) -> None:
        self.ids = itertools.count(1)
        self.clock = itertools.count()
        self.profiles: dict[int, Profile] = {}
        self.accounts: dict[str, dict] = {}
        self.services: dict[int, Service] = {}
        self.orders: dict[int, dict] = {}
        self.tracking: list[TrackingEntry] = []
        self.payments: dict[int, Payment] = {}
        self.notifications: list[Notification] = []

    def next_id(self) -> int:
        return next(self.ids)

    def tick(self) -> datetime:
        return NOW + timedelta(minutes=next(self.clock))


class FakeProfileRepository:
    def __init__(self, store: Store) -> None:
        self.store = store

    def create(self, conn, *, full_name, phone, address, role="customer"):
        pid = self.store.next_id()
        self.store.profiles[pid] = Profile(
            id=pid, full_name=full_name, phone=phone, address=address, role=str(role), created_at=NOW
        )
        return pid

    def get(self, conn, profile_id):
        return self.store.profiles.get(profile_id)

    def list(self, conn, *, role=None, limit=100):
        return [p for p in self.store.profiles.values() if role is None or p.role == role][:limit]

    def update_contact(self, conn, *, profile_id, phone, address):
        p = self.store.profiles[profile_id]
        self.store.profiles[profile_id] = replace(p, phone=phone or p.phone, address=address or p.address)

    def create_account(self, conn, *, profile_id, email, password_hash):
        self.store.accounts[email] = {"profile_id": profile_id, "email": email, "password_hash": password_hash}

    def get_account(self, conn, email):
        return self.store.accounts.get(email)


class FakeServiceRepository:
    def __init__(self, store: Store) -> None:
        self.store = store
        self.referenced: set[int] = set()

    def create(self, conn, *, name, description, price, duration_days, is_active=True):
        sid = self.store.next_id()
        self.store.services[sid] = Service(
            id=sid, name=name, description=description, price=Decimal(price),
            duration_days=duration_days, is_active=is_active,
        )
        return sid

    def update(self, conn, *, service_id, name, description, price, duration_days):
        s = self.store.services.get(service_id)
        if s is None:
            return False
        self.store.services[service_id] = replace(
            s, name=name, description=description, price=price, duration_days=duration_days
        )
        return True

    def set_active(self, conn, *, service_id, is_active):
        s = self.store.services.get(service_id)
        if s is None:
            return False
        self.store.services[service_id] = replace(s, is_active=is_active)
        return True

    def delete(self, conn, service_id):
        from psycopg import errors as pg_errors

        if service_id in self.referenced:
            raise pg_errors.ForeignKeyViolation("service is referenced")
        return self.store.services.pop(service_id, None) is not None

    def get(self, conn, service_id):
        return self.store.services.get(service_id)

    def list(self, conn, *, include_inactive=True):
        return [s for s in self.store.services.values() if include_inactive or s.is_active]


class FakeOrderRepository:
    def __init__(self, store: Store) -> None:
        self.store = store
        self.numbers = itertools.count(1)

    def _joined(self, row: dict) -> Order:
        service = self.store.services.get(row["service_id"])
        customer = self.store.profiles.get(row["customer_id"])
        return Order.from_row(
            dict(row, service_name=service.name if service else None, customer_name=customer.full_name if customer else None)
        )

    def next_order_number(self, conn):
        return f"CLS-240610-{next(self.numbers):04d}"

    def create(self, conn, **kw):
        oid = self.store.next_id()
        self.store.orders[oid] = dict(
            kw, id=oid, status="pending", payment_status="pending", payment_method=None,
            created_at=self.store.tick(), updated_at=NOW,
        )
        return oid

    def get(self, conn, order_id):
        row = self.store.orders.get(order_id)
        return self._joined(row) if row else None

    def get_by_number(self, conn, order_number):
        for row in self.store.orders.values():
            if row["order_number"] == order_number.strip().upper():
                return self._joined(row)
        return None

    def set_status(self, conn, *, order_id, status):
        self.store.orders[order_id]["status"] = str(status)

    def set_payment(self, conn, *, order_id, method, status):
        row = self.store.orders[order_id]
        if method:
            row["payment_method"] = str(method)
        row["payment_status"] = str(status)

    def assign_staff(self, conn, *, order_id, courier_id, workshop_staff_id):
        self.store.orders[order_id].update(courier_id=courier_id, workshop_staff_id=workshop_staff_id)

    def list(self, conn, *, customer_id=None, status=None, payment_statuses=None, limit=100):
        rows = [
            r for r in self.store.orders.values()
            if (customer_id is None or r["customer_id"] == customer_id)
            and (status is None or r["status"] == str(status))
            and (not payment_statuses or r["payment_status"] in [str(s) for s in payment_statuses])
        ]
        rows.sort(key=lambda r: r["id"], reverse=True)
        return [self._joined(r) for r in rows[:limit]]

    def list_in_window(self, conn, date_from, date_to, *, customer_id=None):
        return [
            self._joined(r) for r in self.store.orders.values()
            if date_from <= r["created_at"] < date_to and (customer_id is None or r["customer_id"] == customer_id)
        ]


class FakeTrackingRepository:
    def __init__(self, store: Store) -> None:
        self.store = store

    def create(self, conn, *, order_id, status, notes, updated_by):
        entry = TrackingEntry(
            id=self.store.next_id(), order_id=order_id, status=str(status), notes=notes,
            updated_by=updated_by, created_at=self.store.tick(),
        )
        self.store.tracking.append(entry)
        return entry

    def list_for_order(self, conn, order_id):
        # oldest first on purpose, the projection sorts
        return [e for e in self.store.tracking if e.order_id == order_id]


class FakePaymentRepository:
    def __init__(self, store: Store) -> None:
        self.store = store

    def create(self, conn, *, order_id, amount, method, status, transaction_id, payment_date, notes=None):
        pid = self.store.next_id()
        p = Payment(
            id=pid, order_id=order_id, amount=amount, payment_method=str(method), payment_status=str(status),
            transaction_id=transaction_id, payment_date=payment_date, notes=notes, created_at=self.store.tick(),
        )
        self.store.payments[pid] = p
        return p

    def get(self, conn, payment_id):
        return self.store.payments.get(payment_id)

    def set_status(self, conn, *, payment_id, status, payment_date):
        p = self.store.payments[payment_id]
        self.store.payments[payment_id] = replace(
            p, payment_status=str(status), payment_date=payment_date or p.payment_date
        )

    def list_for_order(self, conn, order_id):
        return sorted((p for p in self.store.payments.values() if p.order_id == order_id), key=lambda p: -p.id)


class FakeNotificationRepository:
    def __init__(self, store: Store) -> None:
        self.store = store

    def create(self, conn, *, user_id, order_id, title, message):
        nid = self.store.next_id()
        self.store.notifications.append(
            Notification(id=nid, user_id=user_id, order_id=order_id, title=title, message=message, created_at=NOW)
        )
        return nid

    def list_for_user(self, conn, user_id, *, unread_only=False, limit=50):
        return [n for n in self.store.notifications if n.user_id == user_id and not (unread_only and n.is_read)][:limit]

    def mark_read(self, conn, *, user_id, notification_id=None):
        changed = 0
        for i, n in enumerate(self.store.notifications):
            if n.user_id == user_id and not n.is_read and notification_id in (None, n.id):
                self.store.notifications[i] = replace(n, is_read=True)
                changed += 1
        return changed

    def unread_count(self, conn, user_id):
        return sum(1 for n in self.store.notifications if n.user_id == user_id and not n.is_read)


class FakeDb:
    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0

    @contextmanager
    def session(self):
        yield None

    @contextmanager
    def transaction(self):
        try:
            yield None
            self.commits += 1
        except Exception:
            self.rollbacks += 1
            raise


class Repos:
    def __init__(self, store: Store) -> None:
        self.profile = FakeProfileRepository(store)
        self.service = FakeServiceRepository(store)
        self.order = FakeOrderRepository(store)
        self.tracking = FakeTrackingRepository(store)
        self.payment = FakePaymentRepository(store)
        self.notification = FakeNotificationRepository(store)


@pytest.fixture
def store():
    return Store()


@pytest.fixture
def repos(store):
    return Repos(store)


@pytest.fixture
def business():
    return BusinessConfig(urgent_surcharge_rate=Decimal("0.5"))


@pytest.fixture
def admin(repos, store):
    pid = repos.profile.create(None, full_name="Admin", phone=None, address=None, role="admin")
    return store.profiles[pid]


@pytest.fixture
def courier(repos, store):
    pid = repos.profile.create(None, full_name="Kurir", phone=None, address=None, role="courier")
    return store.profiles[pid]


@pytest.fixture
def customer(repos, store):
    pid = repos.profile.create(None, full_name="Ahmad Rizki", phone="08123456789", address="Jl. Sudirman 123", role="customer")
    return store.profiles[pid]


@pytest.fixture
def other_customer(repos, store):
    pid = repos.profile.create(None, full_name="Siti Nurhaliza", phone="0811", address="Jl. Thamrin 1", role="customer")
    return store.profiles[pid]


@pytest.fixture
def basic_service(repos, store):
    sid = repos.service.create(None, name="Basic Clean", description=None, price=Decimal("25000"), duration_days=3)
    return store.services[sid]


@pytest.fixture
def premium_service(repos, store):
    sid = repos.service.create(None, name="Premium Clean", description=None, price=Decimal("45000"), duration_days=2)
    return store.services[sid]


@pytest.fixture
def order_service(repos, business):
    return OrderService(
        business=business,
        profile_repo=repos.profile,
        service_repo=repos.service,
        order_repo=repos.order,
        tracking_repo=repos.tracking,
        notification_repo=repos.notification,
    )


@pytest.fixture
def tracking_service(repos):
    return TrackingService(order_repo=repos.order, tracking_repo=repos.tracking)


@pytest.fixture
def payment_service(repos):
    return PaymentService(order_repo=repos.order, payment_repo=repos.payment, notification_repo=repos.notification)


@pytest.fixture
def catalog_service(repos):
    return CatalogService(service_repo=repos.service)


def make_input(service_id: int, **overrides) -> CreateOrderInput:
    values = dict(
        customer_name="Ahmad Rizki",
        customer_phone="08123456789",
        customer_address="Jl. Sudirman 123",
        service_id=service_id,
        shoe_type="Sneakers",
        quantity=1,
        pickup_date=TODAY,
        pickup_slot="09:00",
    )
    values.update(overrides)
    return CreateOrderInput(**values)


@pytest.fixture
def placed_order(order_service, customer, basic_service):
    return order_service.create_order(None, actor=customer, data=make_input(basic_service.id, quantity=2), today=TODAY)


@pytest.fixture
def fake_db():
    return FakeDb()
