"""
Shared Flask extension instances.

Centralized to avoid circular imports. Extensions are initialized
here but configured in create_app().
"""

import os
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_wtf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from passpilot.notifications import NotificationFeed
from passpilot.polling import PollingScheduler

# Initialize extensions (without binding to an app yet)
db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()
scheduler = PollingScheduler()
notification_feed = NotificationFeed()


def get_real_ip_for_limiter():
    """Get real IP for rate limiting, honoring a proxy's X-Forwarded-For."""
    try:
        from flask import request
        forwarded_for = request.headers.get('X-Forwarded-For')
        if forwarded_for:
            return forwarded_for.split(',')[0].strip()
        return request.remote_addr
    except RuntimeError:
        return get_remote_address()


# Use memory storage in CI/testing environments, Redis in production
if os.environ.get('RATELIMIT_STORAGE_URI'):
    storage_uri = os.environ.get('RATELIMIT_STORAGE_URI')
elif os.environ.get('CI') or os.environ.get('GITHUB_ACTIONS'):
    storage_uri = 'memory://'
elif os.environ.get('REDIS_URL'):
    storage_uri = os.environ.get('REDIS_URL')
else:
    storage_uri = 'redis://localhost:6379'

limiter = Limiter(
    key_func=get_real_ip_for_limiter,
    default_limits=["20000 per day", "2000 per hour"],
    storage_uri=storage_uri,
    strategy="fixed-window"
)
