from __future__ import annotations

import logging
from datetime import date, datetime
from functools import wraps
from urllib.parse import urljoin, urlparse

from flask import Flask, flash, g, redirect, render_template, request, session, url_for

from .auth import AuthError, AuthService
from .config import AppConfig, ConfigError, load_config
from .db import Db, DbError
from .errors import NotFoundError, PermissionDenied, ValidationError
from .lifecycle import (
    PaymentMethod,
    next_statuses,
    payment_method_display,
    payment_status_display,
    status_display,
)
from .main import config_path, configure_logging
from .reports import DEFAULT_WINDOW, REPORT_WINDOWS, build_report, dashboard_summary, top_services
from .repositories.notification_repo import NotificationRepository
from .repositories.order_repo import OrderRepository
from .repositories.payment_repo import PaymentRepository
from .repositories.profile_repo import ProfileRepository
from .repositories.service_repo import ServiceRepository
from .repositories.tracking_repo import TrackingRepository
from .services.catalog_service import CatalogService
from .services.order_service import SHOE_TYPES, CreateOrderInput, OrderService, is_staff
from .services.payment_service import PaymentService
from .services.tracking_service import TrackingService

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = "change-this-secret-key-in-production"

db: Db = None
cfg: AppConfig = None
profile_repo = ProfileRepository()
service_repo = ServiceRepository()
order_repo = OrderRepository()
tracking_repo = TrackingRepository()
payment_repo = PaymentRepository()
notification_repo = NotificationRepository()
auth_service = AuthService(profile_repo=profile_repo)
catalog_service = CatalogService(service_repo=service_repo)
tracking_service = TrackingService(order_repo=order_repo, tracking_repo=tracking_repo)
payment_service = PaymentService(order_repo=order_repo, payment_repo=payment_repo, notification_repo=notification_repo)
order_service: OrderService = None


def init_app(config: AppConfig, database: Db) -> Flask:
    global cfg, db, order_service
    cfg = config
    db = database
    app.secret_key = config.secret_key
    order_service = OrderService(
        business=config.business,
        profile_repo=profile_repo,
        service_repo=service_repo,
        order_repo=order_repo,
        tracking_repo=tracking_repo,
        notification_repo=notification_repo,
    )
    return app


app.jinja_env.globals.update(
    status_display=status_display,
    payment_status_display=payment_status_display,
    payment_method_display=payment_method_display,
)


def is_safe_url(target: str) -> bool:
    ref_url = urlparse(request.host_url)
    test_url = urlparse(urljoin(request.host_url, target))
    return test_url.scheme in ("http", "https") and ref_url.netloc == test_url.netloc


@app.before_request
def load_profile():
    g.profile = None
    profile_id = session.get("profile_id")
    if profile_id is None:
        return
    try:
        with db.session() as conn:
            g.profile = auth_service.load_profile(conn, int(profile_id))
    except DbError as e:
        # keep the session, the database may be back on the next request
        logger.error("Cannot load profile %s: %s", profile_id, e)
        return
    if g.profile is None:
        session.pop("profile_id", None)


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.profile is None:
            flash("Please sign in first.", "warning")
            return redirect(url_for("login", next=request.path))
        return f(*args, **kwargs)

    return decorated_function


def admin_required(f):
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if not g.profile.is_admin:
            flash("Only administrators can do that.", "danger")
            return redirect(url_for("index"))
        return f(*args, **kwargs)

    return decorated_function


@app.route("/login", methods=["GET", "POST"])
def login():
    next_url = request.values.get("next") or url_for("index")
    if request.method == "POST":
        email = request.form.get("email", "").strip()
        password = request.form.get("password", "")
        if not email or not password:
            flash("E-mail and password are required", "warning")
            return render_template("login.html", next=next_url)
        try:
            with db.session() as conn:
                auth = auth_service.sign_in(conn, email=email, password=password)
        except AuthError as e:
            flash(str(e), "danger")
            return render_template("login.html", next=next_url)
        except DbError as e:
            flash(f"DB error: {e}", "danger")
            return render_template("login.html", next=next_url)
        session.clear()
        session["profile_id"] = auth.profile.id
        flash(f"Welcome, {auth.profile.full_name}", "success")
        return redirect(next_url if is_safe_url(next_url) else url_for("index"))
    return render_template("login.html", next=next_url)


@app.route("/register", methods=["GET", "POST"])
def register():
    if request.method == "POST":
        try:
            with db.transaction() as conn:
                profile_id = auth_service.sign_up(
                    conn,
                    email=request.form.get("email", ""),
                    password=request.form.get("password", ""),
                    full_name=request.form.get("full_name", ""),
                    phone=request.form.get("phone", "").strip() or None,
                    address=request.form.get("address", "").strip() or None,
                )
            session.clear()
            session["profile_id"] = profile_id
            flash("Account created", "success")
            return redirect(url_for("index"))
        except ValidationError as e:
            flash(f"Validation error: {e}", "warning")
        except Exception as e:
            logger.exception("Sign-up failed")
            flash(f"Error: {e}", "danger")
    return render_template("register.html")


@app.route("/logout", methods=["POST", "GET"])
def logout():
    session.clear()
    flash("Signed out", "info")
    return redirect(url_for("login"))


@app.route("/")
@login_required
def index():
    try:
        with db.session() as conn:
            rows = order_service.list_orders(conn, actor=g.profile, limit=500)
            unread = notification_repo.unread_count(conn, g.profile.id)
        summary = dashboard_summary(rows, date.today())
        return render_template("dashboard.html", summary=summary, unread=unread)
    except DbError as e:
        flash(f"DB error: {e}", "danger")
        return render_template("dashboard.html", summary=None, unread=0)


@app.route("/orders")
@login_required
def orders_list():
    status = request.args.get("status") or None
    try:
        with db.session() as conn:
            rows = order_service.list_orders(conn, actor=g.profile, status=status, limit=200)
        return render_template("orders_list.html", orders=rows, status=status)
    except ValidationError as e:
        flash(f"Validation error: {e}", "warning")
        return redirect(url_for("orders_list"))
    except DbError as e:
        flash(f"DB error: {e}", "danger")
        return redirect(url_for("index"))


@app.route("/orders/new", methods=["GET", "POST"])
@login_required
def orders_new():
    if request.method == "POST":
        try:
            customer_id = request.form.get("customer_id", "").strip()
            data = CreateOrderInput(
                customer_name=request.form.get("customer_name", "").strip() or g.profile.full_name,
                customer_phone=request.form.get("phone", "").strip(),
                customer_address=request.form.get("address", "").strip(),
                service_id=int(request.form.get("service_id", 0) or 0),
                shoe_type=request.form.get("shoe_type", "").strip(),
                quantity=int(request.form.get("quantity", 1) or 1),
                pickup_date=date.fromisoformat(request.form.get("pickup_date", "")),
                pickup_slot=request.form.get("pickup_slot", "").strip(),
                is_urgent=request.form.get("urgent") == "on",
                notes=request.form.get("notes", "").strip() or None,
                shoe_condition=request.form.get("shoe_condition", "").strip() or None,
                customer_id=int(customer_id) if customer_id and is_staff(g.profile) else None,
            )
            with db.transaction() as conn:
                order = order_service.create_order(conn, actor=g.profile, data=data)
            flash(f"Order {order.order_number} created", "success")
            return redirect(url_for("orders_detail", order_id=order.id))
        except ValidationError as e:
            flash(f"Validation error: {e}", "warning")
        except ValueError as e:
            flash(f"Invalid value: {e}", "warning")
        except Exception as e:
            logger.exception("Order creation failed")
            flash(f"Error: {e}", "danger")

    try:
        with db.session() as conn:
            services = catalog_service.active_services(conn)
        return render_template(
            "orders_new.html",
            services=services,
            shoe_types=SHOE_TYPES,
            slots=cfg.business.pickup_slots,
            rate=cfg.business.urgent_surcharge_rate,
            max_quantity=cfg.business.max_quantity,
            today=date.today().isoformat(),
            staff=is_staff(g.profile),
        )
    except DbError as e:
        flash(f"DB error: {e}", "danger")
        return redirect(url_for("index"))


@app.route("/track")
@login_required
def orders_track():
    number = request.args.get("number", "").strip()
    if not number:
        return render_template("track.html")
    try:
        with db.session() as conn:
            view = tracking_service.get_tracking(conn, actor=g.profile, order_number=number)
        return redirect(url_for("orders_detail", order_id=view.order.id))
    except (NotFoundError, PermissionDenied):
        flash(f"No order {number} found", "warning")
        return render_template("track.html")
    except DbError as e:
        flash(f"DB error: {e}", "danger")
        return render_template("track.html")


@app.route("/orders/<int:order_id>")
@login_required
def orders_detail(order_id):
    try:
        with db.session() as conn:
            view = tracking_service.get_tracking(conn, actor=g.profile, order_id=order_id)
            payments = payment_service.payments_for_order(conn, actor=g.profile, order_id=order_id)
        return render_template(
            "order_detail.html",
            view=view,
            payments=payments,
            next_statuses=next_statuses(view.order.status) if is_staff(g.profile) else [],
            methods=list(PaymentMethod),
            can_pay=payment_service.can_pay(view.order, payments),
            staff=is_staff(g.profile),
        )
    except (NotFoundError, PermissionDenied) as e:
        flash(str(e), "warning")
        return redirect(url_for("orders_list"))
    except DbError as e:
        flash(f"DB error: {e}", "danger")
        return redirect(url_for("orders_list"))


@app.route("/orders/<int:order_id>/status", methods=["POST"])
@login_required
def orders_status(order_id):
    try:
        with db.transaction() as conn:
            entry = order_service.change_status(
                conn,
                actor=g.profile,
                order_id=order_id,
                new_status=request.form.get("status", ""),
                notes=request.form.get("notes", "").strip() or None,
            )
        flash(f"Status changed to {status_display(entry.status).label}", "success")
    except ValidationError as e:
        flash(f"Validation error: {e}", "warning")
    except PermissionDenied as e:
        flash(str(e), "danger")
    except Exception as e:
        logger.exception("Status change of order %s failed", order_id)
        flash(f"Error: {e}", "danger")
    return redirect(url_for("orders_detail", order_id=order_id))


@app.route("/orders/<int:order_id>/pay", methods=["POST"])
@login_required
def orders_pay(order_id):
    try:
        with db.transaction() as conn:
            p = payment_service.record_payment(
                conn, actor=g.profile, order_id=order_id, method=request.form.get("method", "")
            )
        flash(
            f"Payment recorded: {payment_method_display(p.payment_method).label}, "
            f"{payment_status_display(p.payment_status).label}",
            "success",
        )
    except ValidationError as e:
        flash(f"Validation error: {e}", "warning")
    except PermissionDenied as e:
        flash(str(e), "danger")
    except Exception as e:
        logger.exception("Payment for order %s failed", order_id)
        flash(f"Error: {e}", "danger")
    return redirect(url_for("orders_detail", order_id=order_id))


@app.route("/payments")
@login_required
def payments_list():
    try:
        with db.session() as conn:
            rows = payment_service.payable_orders(conn, actor=g.profile)
        return render_template("payments.html", orders=rows, methods=list(PaymentMethod))
    except DbError as e:
        flash(f"DB error: {e}", "danger")
        return redirect(url_for("index"))


@app.route("/payments/<int:payment_id>/<action>", methods=["POST"])
@login_required
def payments_action(payment_id, action):
    order_id = request.form.get("order_id", type=int)
    actions = {
        "settle": payment_service.settle_payment,
        "fail": payment_service.fail_payment,
        "refund": payment_service.refund_payment,
    }
    if action not in actions:
        flash("Unknown payment action", "warning")
    else:
        try:
            with db.transaction() as conn:
                p = actions[action](conn, actor=g.profile, payment_id=payment_id)
            flash(f"Payment #{p.id} is now {payment_status_display(p.payment_status).label}", "success")
        except ValidationError as e:
            flash(f"Validation error: {e}", "warning")
        except PermissionDenied as e:
            flash(str(e), "danger")
        except Exception as e:
            logger.exception("Payment action %s on %s failed", action, payment_id)
            flash(f"Error: {e}", "danger")
    if order_id:
        return redirect(url_for("orders_detail", order_id=order_id))
    return redirect(url_for("payments_list"))


@app.route("/services")
@login_required
def services_list():
    try:
        with db.session() as conn:
            rows = catalog_service.list_services(conn, include_inactive=g.profile.is_admin)
        return render_template("services_list.html", services=rows)
    except DbError as e:
        flash(f"DB error: {e}", "danger")
        return redirect(url_for("index"))


@app.route("/services/new", methods=["GET", "POST"])
@admin_required
def services_new():
    if request.method == "POST":
        try:
            with db.transaction() as conn:
                catalog_service.create_service(
                    conn,
                    actor=g.profile,
                    name=request.form.get("name", ""),
                    description=request.form.get("description"),
                    price=request.form.get("price", ""),
                    duration_days=request.form.get("duration_days", ""),
                )
            flash("Service created", "success")
            return redirect(url_for("services_list"))
        except ValidationError as e:
            flash(f"Validation error: {e}", "warning")
        except Exception as e:
            logger.exception("Service creation failed")
            flash(f"Error: {e}", "danger")
    return render_template("services_form.html", service=None)


@app.route("/services/<int:service_id>/edit", methods=["GET", "POST"])
@admin_required
def services_edit(service_id):
    if request.method == "POST":
        try:
            with db.transaction() as conn:
                catalog_service.update_service(
                    conn,
                    actor=g.profile,
                    service_id=service_id,
                    name=request.form.get("name", ""),
                    description=request.form.get("description"),
                    price=request.form.get("price", ""),
                    duration_days=request.form.get("duration_days", ""),
                )
            flash("Service updated", "success")
            return redirect(url_for("services_list"))
        except ValidationError as e:
            flash(f"Validation error: {e}", "warning")
        except Exception as e:
            logger.exception("Service %s update failed", service_id)
            flash(f"Error: {e}", "danger")
    try:
        with db.session() as conn:
            service = catalog_service.get_service(conn, service_id)
        return render_template("services_form.html", service=service)
    except NotFoundError as e:
        flash(str(e), "warning")
        return redirect(url_for("services_list"))


@app.route("/services/<int:service_id>/toggle", methods=["POST"])
@admin_required
def services_toggle(service_id):
    try:
        with db.transaction() as conn:
            service = catalog_service.get_service(conn, service_id)
            catalog_service.set_active(conn, actor=g.profile, service_id=service_id, is_active=not service.is_active)
        flash(f"Service {service.name} {'deactivated' if service.is_active else 'activated'}", "success")
    except ValidationError as e:
        flash(f"Validation error: {e}", "warning")
    except Exception as e:
        logger.exception("Service %s toggle failed", service_id)
        flash(f"Error: {e}", "danger")
    return redirect(url_for("services_list"))


@app.route("/services/<int:service_id>/delete", methods=["POST"])
@admin_required
def services_delete(service_id):
    try:
        with db.transaction() as conn:
            catalog_service.delete_service(conn, actor=g.profile, service_id=service_id)
        flash("Service deleted", "success")
    except ValidationError as e:
        flash(f"Validation error: {e}", "warning")
    except Exception as e:
        logger.exception("Service %s delete failed", service_id)
        flash(f"Error: {e}", "danger")
    return redirect(url_for("services_list"))


@app.route("/reports")
@login_required
def reports():
    window = request.args.get("window", DEFAULT_WINDOW)
    if window not in REPORT_WINDOWS:
        window = DEFAULT_WINDOW
    try:
        with db.session() as conn:
            rep = build_report(conn, order_repo, viewer=g.profile, window=window, now=datetime.now())
        return render_template(
            "reports.html", report=rep, windows=list(REPORT_WINDOWS), top=top_services(rep, limit=5)
        )
    except DbError as e:
        flash(f"DB error: {e}", "danger")
        return redirect(url_for("index"))


@app.route("/notifications", methods=["GET", "POST"])
@login_required
def notifications():
    try:
        if request.method == "POST":
            with db.transaction() as conn:
                notification_repo.mark_read(
                    conn, user_id=g.profile.id, notification_id=request.form.get("id", type=int)
                )
            return redirect(url_for("notifications"))
        with db.session() as conn:
            items = notification_repo.list_for_user(conn, g.profile.id)
        return render_template("notifications.html", items=items)
    except DbError as e:
        flash(f"DB error: {e}", "danger")
        return redirect(url_for("index"))


def main() -> int:
    try:
        config = load_config(config_path())
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        return 2
    configure_logging(config.log_level)
    init_app(config, Db(config.db))
    app.run(debug=config.web.debug, host=config.web.host, port=config.web.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
