"""Flask application exposing the salon booking, payment and analytics API."""

from __future__ import annotations

import io
import logging
import random
import sqlite3
from typing import Any

import click
from flask import (
    Blueprint,
    Flask,
    jsonify,
    render_template,
    request,
    send_file,
)
from flask_cors import CORS

from salonbooking.salon import catalogue
from salonbooking.salon.config import Settings, load_settings
from salonbooking.salon.database import DatabaseUnavailable
from salonbooking.salon.export import EXPORT_FILENAME, XLSX_MIMETYPE, export_visits
from salonbooking.salon.payments import (
    GatewayNotConfigured,
    PaymentGatewayError,
    PaymentService,
)
from salonbooking.salon.seed import seed_visits
from salonbooking.salon.system import SalonSystem, ValidationError

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _range_args() -> dict[str, str | None]:
    return {"date_from": request.args.get("from"), "date_to": request.args.get("to")}


def create_app(
    settings: Settings | None = None,
    *,
    system: SalonSystem | None = None,
    payments: PaymentService | None = None,
) -> Flask:
    """Create and configure the Flask application."""

    settings = settings or load_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    app = Flask(
        __name__,
        template_folder="templates",
        static_folder="static",
    )
    app.config["SECRET_KEY"] = settings.secret_key
    app.config["SALON_SETTINGS"] = settings

    CORS(
        app,
        resources={r"/api/*": {"origins": settings.frontend_url}},
        methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        supports_credentials=True,
    )

    system = system or SalonSystem(settings.database_path)
    payments = payments or PaymentService(settings)

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------
    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError) -> Any:
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(GatewayNotConfigured)
    def handle_gateway_not_configured(exc: GatewayNotConfigured) -> Any:
        log.error("Payment request rejected: %s", exc)
        return jsonify({"error": str(exc), "details": "Razorpay credentials are not set"}), 503

    @app.errorhandler(DatabaseUnavailable)
    def handle_database_unavailable(exc: DatabaseUnavailable) -> Any:
        return jsonify({"error": "Database unavailable", "details": str(exc)}), 503

    @app.errorhandler(PaymentGatewayError)
    def handle_gateway_error(exc: PaymentGatewayError) -> Any:
        return jsonify({"error": "Payment provider error", "details": str(exc)}), 500

    @app.errorhandler(sqlite3.Error)
    def handle_database_error(exc: sqlite3.Error) -> Any:
        log.exception("Database error")
        return jsonify({"error": "Database error", "details": str(exc)}), 500

    # ------------------------------------------------------------------
    # Service routes
    # ------------------------------------------------------------------
    @app.get("/")
    def index() -> Any:
        return jsonify({"service": "Hair Salon Backend API", "status": "running"})

    @app.get("/api/health")
    def health() -> Any:
        return jsonify({"status": "ok"})

    @app.get("/api/form-data")
    def form_data() -> Any:
        return jsonify(catalogue.form_data())

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------
    @app.post("/api/create-order")
    def create_order() -> Any:
        data = request.get_json(silent=True) or {}
        try:
            order = payments.create_order(
                name=data.get("name"),
                phone=data.get("phone"),
                amount=data.get("amount"),
            )
        except PaymentGatewayError as exc:
            return jsonify({"error": "Failed to create order", "details": str(exc)}), 500
        return jsonify(order)

    @app.post("/api/verify-order-payment")
    def verify_order_payment() -> Any:
        data = request.get_json(silent=True) or {}
        try:
            result = payments.verify_order_payment(
                order_id=data.get("razorpay_order_id"),
                payment_id=data.get("razorpay_payment_id"),
                signature=data.get("razorpay_signature"),
                name=data.get("name"),
                phone=data.get("phone"),
                amount=data.get("amount"),
            )
        except ValidationError as exc:
            return jsonify({"success": False, "error": str(exc)}), 400
        return jsonify(result)

    @app.post("/api/create-payment-link")
    def create_payment_link() -> Any:
        data = request.get_json(silent=True) or {}
        try:
            link = payments.create_payment_link(
                name=data.get("name"),
                phone=data.get("phone"),
                amount=data.get("amount"),
            )
        except PaymentGatewayError as exc:
            return jsonify({"error": "Failed to create payment link", "details": str(exc)}), 500
        return jsonify(link)

    @app.get("/api/verify-payment")
    def verify_payment() -> Any:
        args = request.args
        try:
            result = payments.verify_payment_link(
                payment_id=args.get("razorpay_payment_id"),
                link_id=args.get("razorpay_payment_link_id"),
                reference_id=args.get("razorpay_payment_link_reference_id"),
                status=args.get("razorpay_payment_link_status"),
                signature=args.get("razorpay_signature"),
            )
        except ValidationError as exc:
            return jsonify({"success": False, "error": str(exc)}), 400
        except PaymentGatewayError as exc:
            return (
                jsonify(
                    {
                        "success": False,
                        "error": "Failed to fetch payment details",
                        "details": str(exc),
                    }
                ),
                500,
            )
        return jsonify(result)

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------
    analytics = Blueprint("analytics", __name__, url_prefix="/api/analytics")

    @analytics.before_request
    def ensure_database() -> None:
        try:
            system.ensure_connected()
        except DatabaseUnavailable as exc:
            log.error("[analytics] DB unavailable: %s", exc)
            raise

    @analytics.get("/summary")
    def summary() -> Any:
        return jsonify(system.summary(**_range_args()))

    @analytics.get("/top-services")
    def top_services() -> Any:
        return jsonify(system.top_services(**_range_args()))

    @analytics.get("/employees")
    def employees() -> Any:
        return jsonify(system.employee_leaderboard(**_range_args()))

    @analytics.get("/employee/<path:name>")
    def employee(name: str) -> Any:
        return jsonify(system.employee_detail(name, **_range_args()))

    @analytics.get("/repeat-customers")
    def repeat_customers() -> Any:
        return jsonify(system.repeat_customers(**_range_args()))

    @analytics.get("/export")
    def export() -> Any:
        visits = system.list_visits(**_range_args())
        return send_file(
            io.BytesIO(export_visits(visits)),
            mimetype=XLSX_MIMETYPE,
            as_attachment=True,
            download_name=EXPORT_FILENAME,
        )

    @analytics.get("/health")
    def analytics_health() -> Any:
        return jsonify({"status": "analytics ok"})

    app.register_blueprint(analytics)

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------
    @app.get("/book")
    def booking_page() -> Any:
        return render_template("booking.html", catalogue=catalogue.form_data())

    @app.get("/payment-status")
    def payment_status_page() -> Any:
        return render_template("payment_status.html")

    @app.get("/analytics")
    def analytics_page() -> Any:
        start, end = system.date_range()
        return render_template(
            "analytics.html",
            default_from=start.isoformat(),
            default_to=end.isoformat(),
            artists=catalogue.ARTISTS,
        )

    # ------------------------------------------------------------------
    # CLI
    # ------------------------------------------------------------------
    @app.cli.command("seed")
    @click.option("--count", default=150, show_default=True, help="Visits to insert.")
    @click.option("--days", default=90, show_default=True, help="Spread visits over this many days.")
    @click.option("--reset", is_flag=True, help="Delete existing visits first.")
    @click.option("--random-seed", type=int, default=None, help="Seed for reproducible data.")
    def seed_command(count: int, days: int, reset: bool, random_seed: int | None) -> None:
        """Insert generated salon visits."""

        visits = seed_visits(
            system, count=count, days=days, reset=reset, rng=random.Random(random_seed)
        )
        click.echo(f"Inserted {len(visits)} visits")

    return app


__all__ = ["create_app"]
