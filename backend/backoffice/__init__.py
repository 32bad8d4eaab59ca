# Overview: application factory for the back-office ledger API.

from flask import Flask, request

from .config import Config
from .extensions import db, migrate

# (module, blueprint attribute); the generic /api/<entity> routes go last so
# the dedicated prefixes match first.
BLUEPRINTS = (
    ("system", "system_bp"),
    ("products", "products_bp"),
    ("inventory", "inventory_bp"),
    ("transfers", "transfers_bp"),
    ("purchases", "purchases_bp"),
    ("sales", "sales_bp"),
    ("discount_codes", "discount_codes_bp"),
    ("customers", "customers_bp"),
    ("suppliers", "suppliers_bp"),
    ("master_data", "master_data_bp"),
)


def _register_blueprints(app: Flask) -> None:
    from importlib import import_module

    for module_name, attr in BLUEPRINTS:
        module = import_module(f"{__name__}.routes.{module_name}")
        app.register_blueprint(getattr(module, attr))


def _install_cors(app: Flask) -> None:
    allowed = set(app.config.get("CORS_ORIGINS") or ())

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,PATCH,DELETE,OPTIONS"
        return response


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)
    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)
    migrate.init_app(app, db)
    # Models must be imported before create_all / Alembic autogenerate
    from . import models  # noqa: F401

    _register_blueprints(app)
    _install_cors(app)

    from .cli import register_commands
    register_commands(app)

    app.logger.debug("Back office started against %s", app.config["SQLALCHEMY_DATABASE_URI"])
    return app
