"""
Main routes for PassPilot.

Contains public-facing utility routes (no authentication required).
"""

from flask import Blueprint, jsonify, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from passpilot.extensions import db, scheduler

# Create blueprint
main_bp = Blueprint('main', __name__)


@main_bp.route('/')
def home():
    """Service banner for uptime checks and API discovery."""
    return jsonify({"service": "PassPilot", "api": "/api"})


@main_bp.route('/health')
def health_check():
    """Simple health check endpoint for uptime monitoring."""
    try:
        db.session.execute(text('SELECT 1'))
        return 'ok', 200
    except SQLAlchemyError:
        current_app.logger.exception('Health check failed')
        return jsonify(error='Database error'), 500


@main_bp.route('/health/scheduler')
def scheduler_health():
    """Report which background tasks are registered."""
    return jsonify({
        "running": scheduler.running,
        "tasks": scheduler.task_names,
    })
