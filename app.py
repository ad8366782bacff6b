# app.py

import logging
import os

from dotenv import load_dotenv
from flask import Flask, jsonify, render_template, request
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
from community_app.importer import init_importer  # noqa: E402
from community_app.models import db  # noqa: E402
from community_app.routes import init_routes  # noqa: E402
from community_app.store import init_store  # noqa: E402
from community_app.utils.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger(__name__)

app = Flask(__name__, template_folder=os.path.join("community_app", "templates"))

# Validate environment variables before any I/O (fatal in production)
flask_env = os.environ.get("FLASK_ENV", "development")
if flask_env == "production":
    validate_and_exit(flask_env)

# Load configuration based on the environment
if flask_env == "production":
    app.config.from_object(ProductionConfig)
    app.config.from_object(ProductionMonitoringConfig)
elif flask_env == "testing":
    app.config.from_object(TestingConfig)
    app.config.from_object(TestingMonitoringConfig)
else:
    app.config.from_object(DevelopmentConfig)
    app.config.from_object(DevelopmentMonitoringConfig)

# Initialize extensions
db.init_app(app)
setup_logging(app)


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


with app.app_context():
    engine = db.engine
    if engine.url.drivername.startswith("sqlite"):
        if not getattr(engine, "_sqlite_pragmas_configured", False):
            pragma_hook = _configure_sqlite_connection_factory(
                enable_foreign_keys=not app.config.get("TESTING", False)
            )
            event.listen(engine, "connect", pragma_hook)
            engine._sqlite_pragmas_configured = True  # type: ignore[attr-defined]
    # The import-run ledger tables; tests create their own
    if not app.config.get("TESTING", False):
        db.create_all()

# Content store, importer CLI and routes
init_store(app)
init_importer(app)
init_routes(app)


def _wants_json():
    return request.path.startswith("/api/")


# Register error handlers
@app.errorhandler(404)
def not_found_error(error):
    if _wants_json():
        return jsonify({"ok": False, "error": "Not found"}), 404
    return render_template("errors/404.html"), 404


@app.errorhandler(405)
def method_not_allowed_error(error):
    if _wants_json():
        return jsonify({"ok": False, "error": "Method not allowed"}), 405
    return error


@app.errorhandler(500)
def internal_error(error):
    db.session.rollback()
    logger.error("Unhandled error on %s: %s", request.path, getattr(error, "original_exception", error))
    if _wants_json():
        return jsonify({"ok": False, "error": "Internal server error"}), 500
    return render_template("errors/500.html"), 500


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port)
