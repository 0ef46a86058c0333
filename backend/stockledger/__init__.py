# backend/stockledger/__init__.py
import logging

from flask import Flask

from .config import Config, LedgerSettings
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config())
    if config_overrides:
        app.config.update(config_overrides)

    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if isinstance(level, int):
        app.logger.setLevel(level)
        logging.getLogger("stockledger").setLevel(level)

    # Ledger policy, loaded once per app
    app.extensions["stockledger"] = LedgerSettings.from_mapping(app.config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.movements import movements_bp
    from .routes.stock import stock_bp
    from .routes.pricing import pricing_bp
    from .routes.series import series_bp
    from .routes.locations import locations_bp
    from .routes.deposits import deposits_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(movements_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(pricing_bp)
    app.register_blueprint(series_bp)
    app.register_blueprint(locations_bp)
    app.register_blueprint(deposits_bp)
    app.register_blueprint(reports_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
