"""
Shared plumbing for scheduled Celery tasks.

Each scheduled task wraps a Django management command so operators can
run the same work by hand. The schedule itself is CELERY_BEAT_SCHEDULE in
``config.settings.base``.

To run the worker:
    celery -A config worker --loglevel=info

To run the beat scheduler:
    celery -A config beat --loglevel=info
"""

import logging
from datetime import UTC
from datetime import datetime
from io import StringIO

from django.core.management import call_command
from django.db import OperationalError

logger = logging.getLogger(__name__)

# Exceptions that indicate transient failures worth retrying.
RETRYABLE_EXCEPTIONS = (
    OperationalError,  # Database connection issues
    ConnectionError,
    TimeoutError,
    OSError,
)


def run_management_command(command_name: str, *args: str) -> dict:
    """
    Run a Django management command and return its output.

    Exceptions propagate so Celery's autoretry_for can handle the
    retryable ones.
    """
    out = StringIO()
    call_command(command_name, *args, stdout=out)
    return {
        "status": "completed",
        "command": command_name,
        "output": out.getvalue().strip(),
        "timestamp": datetime.now(tz=UTC).isoformat(),
    }
