import logging

from celery import shared_task

from tracksub.core.tasks import RETRYABLE_EXCEPTIONS
from tracksub.core.tasks import run_management_command

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    name="tracksub.send_expiry_reminders",
    autoretry_for=RETRYABLE_EXCEPTIONS,
    max_retries=3,
    retry_backoff=60,
    retry_backoff_max=600,
    acks_late=True,
)
def send_expiry_reminders(self) -> dict:
    """
    Email subscribers whose plan ends within SUBSCRIPTION_REMINDER_DAYS.

    Default schedule: Daily at 09:00
    """
    logger.info("Starting expiry reminders (task_id=%s)", self.request.id)
    result = run_management_command("send_expiry_reminders")
    logger.info("Expiry reminders completed: %s", result["output"])
    return result
