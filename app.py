# app.py

import logging
import os

from dotenv import load_dotenv
from flask import Flask, jsonify
from sqlalchemy import event

# Load environment variables from .env file first
load_dotenv()

# Module imports after load_dotenv() - E402 is intentional
from config import DevelopmentConfig, ProductionConfig, TestingConfig  # noqa: E402
from config.monitoring import (  # noqa: E402
    DevelopmentMonitoringConfig,
    ProductionMonitoringConfig,
    TestingMonitoringConfig,
)
from config.validation import validate_and_exit  # noqa: E402
from onboarding_app.campaigns import init_campaigns  # noqa: E402
from onboarding_app.models import db  # noqa: E402
from onboarding_app.utils.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger(__name__)

_CONFIG_BY_ENV = {
    "production": (ProductionConfig, ProductionMonitoringConfig),
    "testing": (TestingConfig, TestingMonitoringConfig),
}


def _configure_sqlite_connection_factory(*, enable_foreign_keys: bool):
    """Return a connection hook applying concurrency-friendly pragmas."""

    def _configure_sqlite_connection(dbapi_connection, connection_record):  # pragma: no cover - instrumentation
        try:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            if enable_foreign_keys:
                cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
        except Exception as exc:
            logger.warning("Failed to apply SQLite PRAGMAs: %s", exc)

    return _configure_sqlite_connection


def create_app(flask_env=None, **overrides):
    """Build the Flask app for ``flask_env`` (defaults to ``FLASK_ENV``)."""
    flask_env = flask_env or os.environ.get("FLASK_ENV", "development")
    if flask_env == "production":
        validate_and_exit(flask_env)

    instance_path = overrides.pop("INSTANCE_PATH", None)
    app = Flask(__name__, instance_path=instance_path) if instance_path else Flask(__name__)

    config_cls, monitoring_cls = _CONFIG_BY_ENV.get(flask_env, (DevelopmentConfig, DevelopmentMonitoringConfig))
    app.config.from_object(config_cls)
    app.config.from_object(monitoring_cls)
    app.config.update(overrides)

    db.init_app(app)
    setup_logging(app)

    with app.app_context():
        engine = db.engine
        if engine.url.drivername.startswith("sqlite"):
            if not getattr(engine, "_sqlite_pragmas_configured", False):
                pragma_hook = _configure_sqlite_connection_factory(
                    enable_foreign_keys=not app.config.get("TESTING", False)
                )
                event.listen(engine, "connect", pragma_hook)
                engine._sqlite_pragmas_configured = True  # type: ignore[attr-defined]
        # Tests create their own schema per test
        if not app.config.get("TESTING", False):
            db.create_all()

    init_campaigns(app)

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(413)
    def too_large_error(error):
        limit = app.config.get("CAMPAIGNS_MAX_UPLOAD_MB")
        return jsonify({"error": f"Uploaded file exceeds the {limit} MB limit."}), 413

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500

    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port)
