import os
import uuid
import logging
from flask import Flask, g, request
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import DeclarativeBase
from datetime import datetime

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


db = SQLAlchemy(model_class=Base)


def _env_flag(name, default):
    return os.environ.get(name, default).lower() in ('true', '1', 'yes')


def create_app(config_overrides=None):
    # Create the app
    app = Flask(__name__)
    app.secret_key = os.environ.get("SESSION_SECRET", "fleetx-dev-secret")

    # Configure the database - use PostgreSQL in production, SQLite for development
    database_url = os.environ.get("DATABASE_URL") or "sqlite:///fleetx.db"

    if database_url.startswith(("postgresql://", "postgres://")):
        # Ensure psycopg2 driver is specified
        if database_url.startswith("postgresql://"):
            database_url = database_url.replace("postgresql://", "postgresql+psycopg2://", 1)
        elif database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql+psycopg2://", 1)

        app.config["SQLALCHEMY_DATABASE_URI"] = database_url
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "pool_size": 10,
            "pool_recycle": 280,
            "pool_pre_ping": True,
            "max_overflow": 15,
            "pool_timeout": 20,
            "connect_args": {
                "connect_timeout": 10,
                "application_name": "fleetx_manifest",
            }
        }
    else:
        app.config["SQLALCHEMY_DATABASE_URI"] = database_url
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "pool_pre_ping": True,
        }

    # POD upload configuration
    app.config["UPLOAD_FOLDER"] = os.environ.get("UPLOAD_FOLDER", "uploads")
    app.config["MAX_CONTENT_LENGTH"] = 16 * 1024 * 1024

    app.config["APP_TIMEZONE"] = os.environ.get("APP_TIMEZONE", "Asia/Singapore")

    # Billing tariff, overridable per region
    app.config["BILLING_TAX_RATE"] = float(os.environ.get("BILLING_TAX_RATE", "0.09"))
    app.config["BILLING_BASE_RATE_24FT"] = float(os.environ.get("BILLING_BASE_RATE_24FT", "150"))
    app.config["BILLING_BASE_RATE_DEFAULT"] = float(os.environ.get("BILLING_BASE_RATE_DEFAULT", "80"))
    app.config["BILLING_PALLET_RATE"] = float(os.environ.get("BILLING_PALLET_RATE", "15"))
    app.config["BILLING_HELPER_FEE"] = float(os.environ.get("BILLING_HELPER_FEE", "40"))
    app.config["BILLING_POD_FEE"] = float(os.environ.get("BILLING_POD_FEE", "10"))
    app.config["BILLING_CURRENCY"] = os.environ.get("BILLING_CURRENCY", "SGD")
    app.config["BILLING_REQUIRE_COMPLETED_TRIP"] = _env_flag("BILLING_REQUIRE_COMPLETED_TRIP", "true")

    # Trip lifecycle
    app.config["TRIP_ENFORCE_TRANSITIONS"] = _env_flag("TRIP_ENFORCE_TRANSITIONS", "true")

    # Logging
    app.config["LOG_LEVEL"] = os.environ.get("LOG_LEVEL", "INFO")
    app.config["USE_JSON_LOGGING"] = _env_flag("USE_JSON_LOGGING", "false")

    if config_overrides:
        app.config.update(config_overrides)

    from utils.logging_config import setup_logging
    setup_logging(app)

    # Initialize extensions
    db.init_app(app)

    from utils.config_validator import check_billing_config
    check_billing_config(app.config)

    # Register blueprints
    from trip_routes import trip_bp
    from invoice_routes import invoice_bp

    app.register_blueprint(trip_bp, url_prefix='/api/v1/web')
    app.register_blueprint(invoice_bp, url_prefix='/api/v1/web')

    with app.app_context():
        import models  # noqa: F401
        db.create_all()

    # Correlation id for log lines and audit entries
    @app.before_request
    def assign_correlation_id():
        g.correlation_id = request.headers.get('X-Request-ID') or uuid.uuid4().hex

    @app.after_request
    def echo_correlation_id(response):
        if hasattr(g, 'correlation_id'):
            response.headers['X-Request-ID'] = g.correlation_id
        return response

    # Health check endpoint for deployment
    @app.route('/health')
    def health():
        """Simple health check endpoint for deployment readiness"""
        return {'status': 'ok', 'timestamp': datetime.utcnow().isoformat()}, 200

    logger.info(f"FleetX manifest engine ready (database: {app.config['SQLALCHEMY_DATABASE_URI'].split('://')[0]})")
    return app
