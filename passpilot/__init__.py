"""
Application factory for PassPilot.

This module provides create_app() which initializes Flask, extensions,
logging, background tasks, and registers blueprints.
"""

import os
import logging
from logging.handlers import RotatingFileHandler

from flask import Flask, request
from dotenv import load_dotenv

from passpilot.utils.settings import env_flag, env_int

# Load environment variables
load_dotenv()


# Validate required environment variables
required_env_vars = ["SECRET_KEY", "DATABASE_URL", "FLASK_ENV"]
missing_vars = [var for var in required_env_vars if not os.getenv(var)]
if missing_vars:
    raise RuntimeError(
        "Missing required environment variables: " + ", ".join(missing_vars)
    )


def create_app():
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # -------------------- CONFIGURATION --------------------
    app.config.from_mapping(
        DEBUG=False,
        ENV=os.environ["FLASK_ENV"],
        SECRET_KEY=os.environ["SECRET_KEY"],
        SQLALCHEMY_DATABASE_URI=os.environ["DATABASE_URL"],
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SESSION_COOKIE_SECURE=os.environ["FLASK_ENV"] == "production",
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        PASS_EXPIRY_CHECK_SECONDS=env_int("PASS_EXPIRY_CHECK_SECONDS", 30, minimum=1),
        ACTIVE_PASS_REFRESH_SECONDS=env_int("ACTIVE_PASS_REFRESH_SECONDS", 10, minimum=1),
        PASS_EXPIRY_WARNING_MINUTES=env_int("PASS_EXPIRY_WARNING_MINUTES", 5, minimum=1),
        PASS_NOTIFY_DEDUPE=env_flag("PASS_NOTIFY_DEDUPE", False),
        DAILY_RESET_ENABLED=env_flag("DAILY_RESET_ENABLED", True),
        DEFAULT_PASS_DURATION=env_int("DEFAULT_PASS_DURATION", 10, minimum=1),
        SCHOOL_TIMEZONE=os.getenv("SCHOOL_TIMEZONE", "America/Los_Angeles"),
        TRIAL_LENGTH_DAYS=env_int("TRIAL_LENGTH_DAYS", 30, minimum=1),
        NOTIFICATION_FEED_SIZE=env_int("NOTIFICATION_FEED_SIZE", 50, minimum=1),
    )

    # -------------------- EXTENSIONS --------------------
    from passpilot.extensions import db, migrate, csrf, limiter, notification_feed
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    limiter.init_app(app)
    notification_feed.max_size = app.config["NOTIFICATION_FEED_SIZE"]

    # -------------------- LOGGING --------------------
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_name, logging.INFO)
    log_format = os.getenv(
        "LOG_FORMAT",
        "[%(asctime)s] %(levelname)s in %(module)s: %(message)s",
    )

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(logging.Formatter(log_format))

    app.logger.setLevel(log_level)
    # Prevent duplicate log entries by clearing handlers first
    app.logger.handlers.clear()
    app.logger.addHandler(stream_handler)

    # Background jobs log through their own logger; passpilot.* modules
    # propagate to app.logger, which is named after the package
    task_logger = logging.getLogger("scheduled_tasks")
    task_logger.setLevel(log_level)
    task_logger.handlers.clear()
    task_logger.addHandler(stream_handler)

    if os.getenv("FLASK_ENV", app.config.get("ENV")) == "production":
        log_file = os.getenv("LOG_FILE", "passpilot.log")
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        app.logger.addHandler(file_handler)
        task_logger.addHandler(file_handler)

    # -------------------- REGISTER BLUEPRINTS --------------------
    from passpilot.routes.main import main_bp
    from passpilot.routes.api import api_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(api_bp)

    # -------------------- ERROR HANDLERS --------------------
    from flask_wtf.csrf import CSRFError

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF validation failed on {request.path}: {e.description}")
        return {"status": "error", "message": e.description}, 400

    @app.errorhandler(429)
    def handle_rate_limit(e):
        return {"status": "error", "message": "Too many requests. Please slow down."}, 429

    @app.errorhandler(404)
    def handle_not_found(e):
        return {"status": "error", "message": "Not found"}, 404

    @app.errorhandler(500)
    def handle_server_error(e):
        app.logger.error(f"Unhandled error on {request.path}: {e}")
        return {"status": "error", "message": "Internal server error"}, 500

    # -------------------- SECURITY HEADERS --------------------
    @app.after_request
    def set_security_headers(response):
        """
        Add security headers to all HTTP responses.

        - HSTS: Force HTTPS connections
        - X-Frame-Options: Prevent clickjacking
        - X-Content-Type-Options: Prevent MIME sniffing attacks
        """
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        response.headers['X-Frame-Options'] = 'SAMEORIGIN'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Content-Security-Policy'] = "default-src 'self'; frame-ancestors 'self'"
        return response

    # -------------------- CLI COMMANDS --------------------
    from passpilot import cli_commands
    cli_commands.init_app(app)

    # -------------------- SCHEDULED TASKS --------------------
    if not app.config.get("TESTING") and app.config.get("ENV") != "testing":
        from passpilot.scheduled_tasks import init_scheduled_tasks
        app.extensions["passpilot_tasks"] = init_scheduled_tasks(app)

    return app


# Create a default application instance for `flask --app passpilot` and wsgi
app = create_app()

# Re-export commonly used objects for convenience
from passpilot.extensions import db  # noqa: E402
from passpilot.models import School, Staff, Student, HallPass  # noqa: E402

__all__ = [
    "app",
    "create_app",
    "db",
    "School",
    "Staff",
    "Student",
    "HallPass",
]
