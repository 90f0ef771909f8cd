"""
Scheduled billing tasks.

Default schedule (CELERY_BEAT_SCHEDULE):
    expire_subscriptions  - Daily at 09:05
    cleanup_payments      - Hourly at :00
"""

import logging

from celery import shared_task

from tracksub.core.tasks import RETRYABLE_EXCEPTIONS
from tracksub.core.tasks import run_management_command

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    name="tracksub.expire_subscriptions",
    autoretry_for=RETRYABLE_EXCEPTIONS,
    max_retries=3,
    retry_backoff=60,
    retry_backoff_max=600,
    acks_late=True,
)
def expire_subscriptions(self) -> dict:
    """Flip overdue ACTIVE subscriptions to EXPIRED."""
    logger.info("Starting subscription expiry sweep (task_id=%s)", self.request.id)
    result = run_management_command("expire_subscriptions")
    logger.info("Subscription expiry sweep completed: %s", result["output"])
    return result


@shared_task(
    bind=True,
    name="tracksub.cleanup_payments",
    autoretry_for=RETRYABLE_EXCEPTIONS,
    max_retries=3,
    retry_backoff=60,
    retry_backoff_max=600,
    acks_late=True,
)
def cleanup_payments(self) -> dict:
    """Delete FAILED and CANCELLED payments past PAYMENT_RETENTION_DAYS."""
    logger.info("Starting payment cleanup (task_id=%s)", self.request.id)
    result = run_management_command("cleanup_payments")
    logger.info("Payment cleanup completed: %s", result["output"])
    return result
