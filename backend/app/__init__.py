# backend/app/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate



def create_app(**config_overrides) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides (tests, scripts) must land before extensions read the config
    app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.bookings import bookings_bp
    from .routes.transactions import transactions_bp
    from .routes.promotions import promotions_bp
    from .routes.photographers import photographers_bp
    from .routes.requests import booking_requests_bp, refund_requests_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(bookings_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(promotions_bp)
    app.register_blueprint(photographers_bp)
    app.register_blueprint(booking_requests_bp)
    app.register_blueprint(refund_requests_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-Actor-Id, X-Actor-Role"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
