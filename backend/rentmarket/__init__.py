# backend/rentmarket/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate



def create_app(config_object=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp, cart_bp
    from .routes.orders import orders_bp  # Rental order lifecycle
    from .routes.invoices import invoices_bp
    from .routes.payments import payments_bp
    from .routes.coupons import coupons_bp
    from .routes.vendor import vendor_bp  # Vendor catalog + coupons
    from .routes.notifications import notifications_bp  # Rental expiry reminders
    from .routes.reports import reports_bp
    from .routes.settings import settings_bp  # Public settings + rental periods
    from .routes.admin import admin_bp  # Admin: users, settings, scheduler

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(coupons_bp)
    app.register_blueprint(vendor_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(admin_bp)

    @app.after_request
    def discard_failed_writes(response):
        # Error responses never leave pending changes in the session
        if response.status_code >= 400:
            db.session.rollback()
        return response

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config.get("CORS_ALLOWED_ORIGINS", set()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config.get("AUTO_START_SCHEDULER") and not app.testing:
        from .services.scheduler import get_scheduler
        get_scheduler(app).start(interval_minutes=app.config["EXPIRY_CHECK_INTERVAL_MINUTES"])

    return app
