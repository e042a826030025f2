"""
WSGI entry point for PassPilot.

For gunicorn: wsgi:app
"""

import atexit

from passpilot import app
from passpilot.extensions import scheduler


@atexit.register
def _stop_background_tasks():
    # Shutdown hooks close the expiry check before every periodic task is disposed
    scheduler.shutdown(wait=False)


if __name__ == "__main__":
    app.run()
