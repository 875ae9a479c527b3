"""
ScanTrack — Production Scan Reconciliation.

    from scantrack import create_app
    app = create_app()            # APP_ENV, else "development"
    app = create_app("testing")

create_app wires logging, extensions, blueprints, the ``flask sync-now`` /
``flask sweep-tracking`` commands and the background job scheduler.
"""

import importlib
import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as sa_engine, event as sa_event

from scantrack.config import config
from scantrack.models import db
from scantrack.middleware.logging_config import configure_logging
from scantrack.middleware.timing import init_request_timing
from scantrack.middleware.diagnostics import run_startup_diagnostics
from scantrack.middleware.rate_limiter import init_rate_limits
from scantrack.utils.errors import E, error_body

logger = logging.getLogger(__name__)

MODEL_MODULES = ("machine", "work_order", "tracking", "completion", "scheduling")

migrate = Migrate()
# Limits are attached per blueprint in init_rate_limits
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


@sa_event.listens_for(sa_engine.Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, connection_record):
    # SQLite ships with FK enforcement off; the ON DELETE CASCADE clauses need it
    if "sqlite" not in type(dbapi_conn).__module__:
        return
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)


def _create_tables(app, config_name):
    for name in MODEL_MODULES:
        importlib.import_module(f"scantrack.models.{name}")

    if config_name != "testing":
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        try:
            db.create_all()
        except Exception as exc:
            app.logger.warning("Table bootstrap failed, run 'flask db upgrade': %s", exc)
        else:
            app.logger.info("Database tables ready")


def _register_blueprints(app):
    from scantrack.blueprints.production_completion_bp import production_completion_bp
    from scantrack.blueprints.barcode_bp import barcode_bp
    from scantrack.blueprints.scheduler_bp import scheduler_bp
    from scantrack.blueprints.health_bp import health_bp

    for bp in (production_completion_bp, barcode_bp, scheduler_bp, health_bp):
        app.register_blueprint(bp)


def _register_commands(app):
    @app.cli.command("sync-now")
    def sync_now_cmd():
        """Run one production sync tick immediately."""
        from scantrack.services.production_sync import sync_orchestrator
        summary = sync_orchestrator.run_tick(trigger="cli")
        click.echo(
            f"Sync {summary['status']}: {summary.get('work_orders', 0)} work orders, "
            f"{summary.get('updated', 0)} updated, {summary.get('errors', 0)} errors, "
            f"{summary.get('invalid_scans', 0)} new invalid scans"
        )

    @app.cli.command("sweep-tracking")
    @click.option("--days", type=int, default=None, help="Retention window in days.")
    def sweep_tracking_cmd(days):
        """Delete scan-log production days older than the retention window."""
        from scantrack.services.retention_service import sweep_tracking_data
        result = sweep_tracking_data(retention_days=days)
        click.echo(
            f"Deleted {result['production_days']} production days "
            f"({result['scans']} scans) before {result['cutoff']}"
        )


def _register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(e):
        return error_body(E.NOT_FOUND, "Not found", {"path": request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return error_body(E.METHOD_NOT_ALLOWED, "Method not allowed", {"path": request.path}), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return error_body(E.RATE_LIMITED, "Too many requests", {"limit": e.description}), 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled error on %s: %s", request.path, e, exc_info=True)
        return error_body(E.INTERNAL, "Internal server error"), 500


def _init_scheduler(app):
    # Importing the jobs module fills the @register_job registry
    importlib.import_module("scantrack.services.scheduled_jobs")
    from scantrack.services.scheduler_service import SchedulerService

    SchedulerService.init_app(app)
    if app.config.get("SCHEDULER_ENABLED"):
        SchedulerService.start()


def create_app(config_name=None):
    """Build the Flask app for ``config_name`` (development, testing, production)."""
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_cls = config[config_name]
    # ProductionConfig validates its environment on instantiation
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

    configure_logging(app)
    _init_extensions(app)
    init_request_timing(app)
    _create_tables(app, config_name)
    _register_blueprints(app)
    _register_commands(app)
    _register_error_handlers(app)
    run_startup_diagnostics(app)
    init_rate_limits(app, limiter)
    _init_scheduler(app)
    return app
