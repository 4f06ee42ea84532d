from __future__ import annotations

import getpass
import logging
from datetime import date, datetime

from .auth import SIGNED_IN, AuthContext, AuthError, AuthService, AuthSession
from .config import AppConfig
from .db import Db
from .errors import PermissionDenied, ValidationError
from .lifecycle import next_statuses, payment_method_display, payment_status_display, status_display
from .reports import REPORT_WINDOWS, build_report, top_services
from .repositories.notification_repo import NotificationRepository
from .repositories.order_repo import OrderRepository
from .repositories.payment_repo import PaymentRepository
from .repositories.profile_repo import ProfileRepository
from .repositories.service_repo import ServiceRepository
from .repositories.tracking_repo import TrackingRepository
from .services.catalog_service import CatalogService
from .services.order_service import SHOE_TYPES, CreateOrderInput, OrderService, quote
from .services.payment_service import PaymentService
from .services.tracking_service import TrackingService

logger = logging.getLogger(__name__)


def _prompt(msg: str) -> str:
    return input(msg).strip()


def _credentials() -> tuple[str, str]:
    email = _prompt("e-mail: ")
    password = getpass.getpass("password: ")
    return email, password


def _announce(event: str, session: AuthSession | None) -> None:
    if event == SIGNED_IN and session:
        print(f"Signed in as {session.profile.full_name} ({session.profile.role})")
    else:
        print("Signed out.")


def run_cli(db: Db, cfg: AppConfig, auth: AuthContext | None = None) -> None:
    profile_repo = ProfileRepository()
    service_repo = ServiceRepository()
    order_repo = OrderRepository()
    tracking_repo = TrackingRepository()
    payment_repo = PaymentRepository()
    notification_repo = NotificationRepository()

    auth = auth or AuthContext()
    unsubscribe = auth.subscribe(_announce)

    auth_service = AuthService(profile_repo=profile_repo)
    catalog = CatalogService(service_repo=service_repo)
    orders = OrderService(
        business=cfg.business,
        profile_repo=profile_repo,
        service_repo=service_repo,
        order_repo=order_repo,
        tracking_repo=tracking_repo,
        notification_repo=notification_repo,
    )
    tracking = TrackingService(order_repo=order_repo, tracking_repo=tracking_repo)
    payments = PaymentService(order_repo=order_repo, payment_repo=payment_repo, notification_repo=notification_repo)
    rate = cfg.business.urgent_surcharge_rate

    try:
        while True:
            who = auth.profile.full_name if auth.profile else "not signed in"
            print(f"\n=== {cfg.name} ({who}) ===")
            print("1) Sign in")
            print("2) Sign out")
            print("3) List services")
            print("4) Create order")
            print("5) Track order")
            print("6) Change order status")
            print("7) Pay order")
            print("8) Settle / refund payment")
            print("9) Report")
            print("10) Notifications")
            print("11) Add service")
            print("0) Exit")

            choice = _prompt("> ")
            try:
                if choice == "0":
                    return

                elif choice == "1":
                    email, password = _credentials()
                    with db.session() as conn:
                        auth.set_session(auth_service.sign_in(conn, email=email, password=password))

                elif choice == "2":
                    auth.clear()

                elif choice == "3":
                    with db.session() as conn:
                        rows = catalog.list_services(conn)
                    for s in rows:
                        flag = "" if s.is_active else " [inactive]"
                        print(f"#{s.id} {s.name} price={s.price} duration={s.duration_days}d{flag}")

                elif choice == "4":
                    actor = auth.require_profile()
                    with db.session() as conn:
                        services = catalog.active_services(conn)
                    for s in services:
                        print(f"  #{s.id} {s.name} {s.price}")
                    service_id = int(_prompt("service id: "))
                    name = _prompt("customer name: ") if actor.role != "customer" else actor.full_name
                    phone = _prompt("phone: ")
                    address = _prompt("address: ")
                    print("shoe types: " + ", ".join(SHOE_TYPES))
                    shoe_type = _prompt("shoe type: ")
                    quantity = int(_prompt("quantity: ") or "1")
                    pickup = date.fromisoformat(_prompt("pickup date (YYYY-MM-DD): "))
                    slot = _prompt(f"pickup slot {list(cfg.business.pickup_slots)}: ")
                    urgent = _prompt(f"express (+{rate * 100:.0f}%)? (y/n): ").lower() == "y"
                    notes = _prompt("notes (optional): ") or None

                    chosen = next((s for s in services if s.id == service_id), None)
                    if chosen:
                        q = quote(chosen.price, quantity, urgent, rate)
                        print(f"Quote: base={q.base} surcharge={q.surcharge} total={q.total}")
                        if _prompt("Submit? (y/n): ").lower() != "y":
                            continue

                    data = CreateOrderInput(
                        customer_name=name,
                        customer_phone=phone,
                        customer_address=address,
                        service_id=service_id,
                        shoe_type=shoe_type,
                        quantity=quantity,
                        pickup_date=pickup,
                        pickup_slot=slot,
                        is_urgent=urgent,
                        notes=notes,
                    )
                    # order + first tracking entry in one transaction
                    with db.transaction() as conn:
                        order = orders.create_order(conn, actor=actor, data=data)
                    print(f"Created order {order.order_number} total={order.total_amount}")

                elif choice == "5":
                    actor = auth.require_profile()
                    number = _prompt("order number: ")
                    with db.session() as conn:
                        view = tracking.get_tracking(conn, actor=actor, order_number=number)
                    o = view.order
                    print(f"{o.order_number} {o.service_name} x{o.quantity} total={o.total_amount}")
                    print(f"status: {view.current.label}  payment: {payment_status_display(o.payment_status).label}")
                    if not view.is_cancelled:
                        for step in view.steps:
                            print(f"  [{'x' if step.completed else ' '}] {step.display.label}")
                    if view.is_empty:
                        print("  No tracking history yet.")
                    for e in view.entries:
                        print(f"  {e.created_at:%Y-%m-%d %H:%M} {status_display(e.status).label} {e.notes or ''}")

                elif choice == "6":
                    actor = auth.require_profile()
                    order_id = int(_prompt("order id: "))
                    with db.session() as conn:
                        current = order_repo.get(conn, order_id)
                    if current:
                        allowed = ", ".join(next_statuses(current.status)) or "none"
                        print(f"current={current.status} allowed: {allowed}")
                    new_status = _prompt("new status: ")
                    notes = _prompt("note (optional): ") or None
                    with db.transaction() as conn:
                        entry = orders.change_status(
                            conn, actor=actor, order_id=order_id, new_status=new_status, notes=notes
                        )
                    print(f"Order moved to {status_display(entry.status).label}")

                elif choice == "7":
                    actor = auth.require_profile()
                    with db.session() as conn:
                        payable = payments.payable_orders(conn, actor=actor)
                    if not payable:
                        print("Nothing to pay.")
                        continue
                    for o in payable:
                        hold = ", awaiting collection" if o.awaiting_collection else ""
                        print(f"  #{o.id} {o.order_number} {o.total_amount} ({o.payment_status}{hold})")
                    order_id = int(_prompt("order id: "))
                    method = _prompt("method (cod/bank_transfer/credit_card/digital_wallet): ")
                    with db.transaction() as conn:
                        p = payments.record_payment(conn, actor=actor, order_id=order_id, method=method)
                    print(
                        f"Payment #{p.id} {payment_method_display(p.payment_method).label}: "
                        f"{payment_status_display(p.payment_status).label}"
                    )

                elif choice == "8":
                    actor = auth.require_profile()
                    payment_id = int(_prompt("payment id: "))
                    action = _prompt("settle / fail / refund: ").lower()
                    with db.transaction() as conn:
                        if action == "settle":
                            p = payments.settle_payment(conn, actor=actor, payment_id=payment_id)
                        elif action == "fail":
                            p = payments.fail_payment(conn, actor=actor, payment_id=payment_id)
                        elif action == "refund":
                            p = payments.refund_payment(conn, actor=actor, payment_id=payment_id)
                        else:
                            print("Unknown action.")
                            continue
                    print(f"Payment #{p.id} is now {p.payment_status}")

                elif choice == "9":
                    actor = auth.require_profile()
                    window = _prompt(f"window {list(REPORT_WINDOWS)} (default 30days): ") or "30days"
                    with db.session() as conn:
                        rep = build_report(conn, order_repo, viewer=actor, window=window, now=datetime.now())
                    print(f"Orders: {rep.total_orders} revenue={rep.total_revenue} paid={rep.paid_revenue}")
                    for title, rows in (("By status", rep.by_status), ("By month", rep.by_month)):
                        print(title + ":")
                        for r in rows:
                            print(f"  {r.key}: {r.count} ({r.percentage}%) {r.amount}")
                    print("Top services:")
                    for r in top_services(rep):
                        print(f"  {r.key}: {r.count} orders, {r.amount}")

                elif choice == "10":
                    actor = auth.require_profile()
                    with db.transaction() as conn:
                        items = notification_repo.list_for_user(conn, actor.id)
                        notification_repo.mark_read(conn, user_id=actor.id)
                    for n in items:
                        print(f"{'  ' if n.is_read else '* '}{n.created_at:%Y-%m-%d %H:%M} {n.title}: {n.message}")

                elif choice == "11":
                    actor = auth.require_profile()
                    name = _prompt("name: ")
                    description = _prompt("description (optional): ") or None
                    price = _prompt("price: ")
                    duration = _prompt("duration (days): ")
                    with db.transaction() as conn:
                        service_id = catalog.create_service(
                            conn, actor=actor, name=name, description=description, price=price, duration_days=duration
                        )
                    print(f"Created service #{service_id}")

                else:
                    print("Unknown choice.")

            except ValidationError as e:
                print(f"[INPUT ERROR] {e}")
            except (AuthError, PermissionDenied) as e:
                print(f"[ACCESS] {e}")
            except ValueError as e:
                print(f"[VALUE ERROR] {e}")
            except Exception as e:
                logger.exception("Menu action %s failed", choice)
                print(f"[ERROR] {type(e).__name__}: {e}")
    finally:
        unsubscribe()
