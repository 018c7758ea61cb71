"""
SMS Micro-Coaching Platform
Flask Application Factory.

Usage:
    from microcoach import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os
import sys
from datetime import date

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from microcoach.config import config
from microcoach.core.exceptions import NotFoundError, ValidationError
from microcoach.models import db
from microcoach.middleware.auth import init_jwt_middleware
from microcoach.middleware.logging_config import configure_logging
from microcoach.middleware.rate_limiter import init_rate_limits
from microcoach.middleware.security_headers import init_security_headers
from microcoach.middleware.timing import init_request_timing
from microcoach.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # per-blueprint limits only; storage from RATELIMIT_STORAGE_URI
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse missing settings
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    init_security_headers(app)
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from microcoach.models import organization as _organization_models  # noqa: F401
    from microcoach.models import cohort as _cohort_models              # noqa: F401
    from microcoach.models import engagement as _engagement_models      # noqa: F401
    from microcoach.models import scheduling as _scheduling_models      # noqa: F401

    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
    if db_uri.startswith("sqlite:///") and ":memory:" not in db_uri:
        os.makedirs(app.instance_path, exist_ok=True)

    with app.app_context():
        try:
            db.create_all()
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from microcoach.blueprints.analytics_bp import analytics_bp
    from microcoach.blueprints.auth_bp import auth_bp
    from microcoach.blueprints.cohort_bp import cohort_bp
    from microcoach.blueprints.health_bp import health_bp
    from microcoach.blueprints.org_bp import org_bp
    from microcoach.blueprints.reflection_bp import reflection_bp
    from microcoach.blueprints.sms_bp import sms_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(cohort_bp)
    app.register_blueprint(analytics_bp)
    app.register_blueprint(reflection_bp)
    app.register_blueprint(org_bp)
    app.register_blueprint(sms_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(NotFoundError)
    def _not_found_error(e):
        return api_error(E.NOT_FOUND, str(e))

    @app.errorhandler(ValidationError)
    def _validation_error(e):
        return api_error(E.VALIDATION_RULE, str(e), details=e.details)

    @app.errorhandler(404)
    def not_found(e):
        if request.path.startswith("/api/"):
            return {"error": "Not found", "path": request.path}, 404
        return e

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        if request.path.startswith("/api/"):
            return {"error": "Internal server error"}, 500
        return "Internal Server Error", 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    import importlib
    importlib.import_module("microcoach.services.daily_dispatch")  # registers @register_job handlers
    from microcoach.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("send-daily-lessons")
    @click.option("--date", "run_date", default=None,
                  help="Run as if today were YYYY-MM-DD (default: database CURRENT_DATE).")
    def send_daily_lessons_cmd(run_date):
        """Send today's lesson to every active learner (safe to re-run)."""
        kwargs = {}
        if run_date:
            try:
                kwargs["today"] = date.fromisoformat(run_date)
            except ValueError:
                raise click.BadParameter("expected YYYY-MM-DD", param_hint="--date")

        outcome = SchedulerService.run_job("daily_lesson_send", **kwargs)
        if outcome["status"] != "success":
            click.echo(f"Daily send failed: {outcome.get('error')}", err=True)
            sys.exit(1)
        result = outcome["result"]
        click.echo(f"attempted={result['attempted']} sent={result['sent']}")

    @app.cli.command("list-jobs")
    def list_jobs_cmd():
        """Show registered jobs and their last run."""
        for job in SchedulerService.list_jobs():
            record = job["db_record"] or {}
            click.echo(
                f"{job['job_name']}: last_run={record.get('last_run_at')} "
                f"status={record.get('last_run_status')} runs={record.get('run_count', 0)}"
            )

    return app
