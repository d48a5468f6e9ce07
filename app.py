import logging

import click
from flask import Flask, jsonify
from flask_migrate import Migrate
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from models import db
from routes import (
    health_bp, court_bp, prices_bp, availability_bp,
    reservations_bp, recurring_bp, payments_bp, webhook_bp,
)
from services.errors import BookingError
from utils.auth_context import load_current_user

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(court_bp)
    app.register_blueprint(prices_bp)
    app.register_blueprint(availability_bp)
    app.register_blueprint(reservations_bp)
    app.register_blueprint(recurring_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhook_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    @app.before_request
    def _load_user():
        load_current_user()

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_error_handlers(app)
    register_cli(app)
    configure_logging(app)

    return app


def register_error_handlers(app):
    @app.errorhandler(BookingError)
    def booking_error(exc):
        return jsonify(**exc.to_dict()), exc.status_code

    @app.errorhandler(SQLAlchemyError)
    def database_error(exc):
        db.session.rollback()
        app.logger.exception("database error")
        return jsonify(error="Internal server error"), 500


def configure_logging(app):
    level = getattr(logging, str(app.config.get("LOG_LEVEL") or "INFO").upper(), logging.INFO)
    app.logger.setLevel(level)

    # services.* and the audit trail log through their own loggers
    for name in ("services", "routes", "audit"):
        logging.getLogger(name).setLevel(level)

    if app.debug or app.testing:
        return

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)

    log_file = app.config.get("LOG_FILE")
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT + " [in %(pathname)s:%(lineno)d]"))
        file_handler.setLevel(level)
        root.addHandler(file_handler)
        app.logger.addHandler(file_handler)

    app.logger.info("courtbook startup")


#-------------------------
def register_cli(app):
    @app.cli.command("expire-holds")
    def expire_holds():
        """Expire every HOLD past its TTL (run from cron)."""
        from services.reservations import expire_stale_holds
        from services.settings import current_settings

        count = expire_stale_holds(current_settings())
        click.echo(f"{count} stale holds expired")

    @app.cli.command("create-db")
    def create_db():
        """Create all tables without migrations (development)."""
        db.create_all()
        click.echo("Database tables created")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
