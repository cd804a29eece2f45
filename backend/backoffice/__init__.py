# backend/backoffice/__init__.py
from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import FormError
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

    # Register blueprints
    from .routes.auth import auth_bp
    from .routes.forms import stock_corrections_bp, sales_invoices_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(stock_corrections_bp)
    app.register_blueprint(sales_invoices_bp)

    @app.errorhandler(FormError)
    def handle_form_error(e):
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        if isinstance(e, HTTPException):
            return e
        db.session.rollback()
        current_app.logger.exception("Unhandled error")
        return jsonify({"error": "Internal server error"}), 500

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
