# backend/deliveryhub/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Outbound provider clients; services receive these as arguments
    from .services.dispatch_client import DispatchClient
    from .services.payment_gateway import PaymentGateway

    app.extensions["dispatch_client"] = DispatchClient(
        base_url=app.config["DISPATCH_API_URL"],
        api_key=app.config["DISPATCH_API_KEY"],
        timeout=app.config["DISPATCH_TIMEOUT_SECONDS"],
    )
    app.extensions["payment_gateway"] = PaymentGateway(
        secret_key=app.config["STRIPE_SECRET_KEY"],
        webhook_secret=app.config["STRIPE_WEBHOOK_SECRET"],
        tolerance=app.config["STRIPE_WEBHOOK_TOLERANCE"],
    )

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.accounts import accounts_bp
    from .routes.orders import orders_bp
    from .routes.admin import admin_bp
    from .routes.billing import billing_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(accounts_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(billing_bp)

    allowed_origins = set(app.config["CORS_ALLOWED_ORIGINS"])

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
