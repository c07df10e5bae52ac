"""
StoryDesk
Flask Application Factory.

Usage:
    from storydesk import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from storydesk.config import config
from storydesk.models import db
from storydesk.middleware.logging_config import configure_logging
from storydesk.middleware.rate_limiter import init_rate_limits
from storydesk.middleware.timing import init_request_timing

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
    default_limits=[],                     # no global limit, applied per blueprint
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
    app.config.from_object(config[config_name])

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

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Request guards (input length) ────────────────────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Import all models so Alembic can detect them ─────────────────────
    from storydesk.models import project as _project_models       # noqa: F401
    from storydesk.models import stakeholder as _stakeholder_models  # noqa: F401
    from storydesk.models import narrative as _narrative_models   # noqa: F401
    from storydesk.models import follow_up as _follow_up_models   # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    os.makedirs(app.instance_path, exist_ok=True)  # dev SQLite file lives here
    with app.app_context():
        db.create_all()
        app.logger.info("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from storydesk.blueprints.follow_up_bp import follow_up_bp
    from storydesk.blueprints.health_bp import health_bp
    from storydesk.blueprints.narrative_bp import narrative_bp
    from storydesk.blueprints.project_bp import project_bp
    from storydesk.blueprints.stakeholder_bp import maintenance_bp, stakeholder_bp

    app.register_blueprint(project_bp)
    app.register_blueprint(stakeholder_bp)
    app.register_blueprint(maintenance_bp)
    app.register_blueprint(narrative_bp)
    app.register_blueprint(follow_up_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("deduplicate-stakeholders")
    @click.option("--name", default=None, help="Only merge rows matching this name.")
    @click.option("--project-id", type=int, default=None, help="With --name, restrict the merge to one project.")
    def deduplicate_stakeholders_cmd(name, project_id):
        """Merge stakeholder rows that share a normalized name."""
        from storydesk.services.stakeholder_service import deduplicate_all, deduplicate_by_name
        if name:
            result = deduplicate_by_name(name, project_id=project_id)
        else:
            result = deduplicate_all()
        click.echo(
            f"Removed {result['affected']} duplicate stakeholder(s); "
            f"kept ids: {result['kept_ids']}"
        )

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
