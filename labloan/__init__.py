# labloan/__init__.py
import atexit

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides=None, *, identity_resolver=None, notifier=None, clock=None) -> Flask:
    """
    Application factory.

    identity_resolver, notifier and clock are the external collaborators;
    when omitted the defaults are a SECRET_KEY-signed token resolver, the
    database inbox notifier and the system clock.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .scheduler import SweepScheduler, app_session_scope, build_default_jobs
    from .services.identity_service import SignedTokenResolver
    from .services.notification_service import DatabaseNotifier
    from .time_utils import SystemClock

    clock = clock or SystemClock()
    if notifier is None:
        notifier = DatabaseNotifier(lambda: db.session)
    if identity_resolver is None:
        identity_resolver = SignedTokenResolver(
            app.config["SECRET_KEY"],
            max_age_seconds=app.config["TOKEN_MAX_AGE_SECONDS"],
        )

    scheduler = SweepScheduler(
        app_session_scope(app),
        build_default_jobs(app.config, notifier=notifier),
        clock=clock,
        tick_interval_seconds=app.config["SCHEDULER_TICK_SECONDS"],
    )

    app.extensions["labloan"] = {
        "clock": clock,
        "notifier": notifier,
        "identity_resolver": identity_resolver,
        "scheduler": scheduler,
    }

    # Register blueprints
    from .routes.system import system_bp
    from .routes.requests import requests_bp
    from .routes.materials import materials_bp
    from .routes.debts import debts_bp
    from .routes.maintenance import maintenance_bp
    from .routes.notifications import notifications_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(requests_bp)
    app.register_blueprint(materials_bp)
    app.register_blueprint(debts_bp)
    app.register_blueprint(maintenance_bp)
    app.register_blueprint(notifications_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config.get("CORS_ORIGINS", ()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config["SCHEDULER_ENABLED"] and not app.config.get("TESTING"):
        scheduler.start()
        atexit.register(scheduler.stop, 5.0)

    return app
