"""
Celery application configuration for Tracksub.

Tasks are defined using the @shared_task decorator so they run inline
under CELERY_TASK_ALWAYS_EAGER in tests.

Components:
  - Worker: Processes background tasks (`celery -A config worker`)
  - Beat: Triggers periodic tasks (`celery -A config beat`)

Configuration:
  - Broker: Redis (CELERY_BROKER_URL)
  - Result backend: None (fire-and-forget, all state in Django models)
  - Task serialization: JSON
  - Periodic tasks: CELERY_BEAT_SCHEDULE in config/settings/base.py

Usage:
    # Run worker
    celery -A config worker --loglevel=info

    # Run beat scheduler
    celery -A config beat --loglevel=info
"""

import logging
import os

from celery import Celery

logger = logging.getLogger(__name__)

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.local")

app = Celery("tracksub")

# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()
