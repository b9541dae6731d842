# backend/taproom/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.ledger_store import LedgerStore
    app.extensions["ledger_store"] = LedgerStore()

    # Register blueprints
    from .routes.system import system_bp
    from .routes.sales import sales_bp
    from .routes.kegs import kegs_bp
    from .routes.timekeeping import timekeeping_bp
    from .routes.purchasing import purchasing_bp
    from .routes.activity import activity_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(kegs_bp)
    app.register_blueprint(timekeeping_bp)
    app.register_blueprint(purchasing_bp)
    app.register_blueprint(activity_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
