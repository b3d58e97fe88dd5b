import logging
from zoneinfo import ZoneInfo

import click
from flask import Flask, request, jsonify

from config import Config
from routes import health_bp, auth_bp, admin_bp, booking_bp, payments_bp, webhook_bp

from models import db
from flask_migrate import Migrate
from models.user import User
from security.csrf import csrf_protect
from security.password import hash_password, validate_password
from security.rbac import CoachPolicy
from services import get_lifecycle
from services.errors import BookingError
from services.notifier import EmailNotifier
from services.payments import StripePaymentBridge
from services.settings import make_clock
from utils.auth_context import load_current_user

logger = logging.getLogger(__name__)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhook_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Collaborators; tests swap these for fakes
    app.extensions["payment_bridge"] = StripePaymentBridge.from_config(app.config)
    app.extensions["notifier"] = EmailNotifier(app.config["COACH_EMAIL"])
    app.extensions["coach_policy"] = CoachPolicy(app.config["COACH_EMAIL"])
    app.extensions["booking_clock"] = make_clock(ZoneInfo(app.config["BOOKING_TIMEZONE"]))

    @app.before_request
    def _load_user():
        load_current_user()

    app.before_request(csrf_protect)

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", exc.code, request.method, request.path, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        # JSON API only; the frontend is served separately
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app


def register_cli(app):
    @app.cli.command("sweep-stale-bookings")
    def sweep_stale_bookings():
        """Delete pending online bookings whose checkout was abandoned."""
        removed = get_lifecycle().sweep_stale_bookings()
        click.echo(f"Removed {len(removed)} stale booking(s)")

    @app.cli.command("create-coach")
    @click.argument("password")
    @click.option("--name", default=None, help="Display name")
    def create_coach(password, name):
        """Create the account for the configured COACH_EMAIL (bootstrap)."""
        email = app.config["COACH_EMAIL"].strip().lower()
        if User.query.filter_by(email=email).first():
            click.echo(f"{email} already exists")
            return
        errors = validate_password(password)
        if errors:
            raise click.BadParameter(errors[0], param_hint="password")

        db.session.add(User(email=email, name=name, password_hash=hash_password(password)))
        db.session.commit()
        click.echo(f"Coach account {email} created")


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
