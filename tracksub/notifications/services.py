"""
Notification feed and reminder services.

``record`` writes one feed entry. ``send_expiry_reminders`` is the daily
sweep behind the ``send_expiry_reminders`` command and Celery task.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from tracksub.billing.services import SubscriptionService
from tracksub.notifications.emails import send_expiry_reminder_email
from tracksub.notifications.models import Notification
from tracksub.notifications.models import NotificationKind

if TYPE_CHECKING:
    from datetime import datetime

    from django.db.models import QuerySet

logger = logging.getLogger(__name__)

FEED_LIMIT = 50


def record(
    user_id: int,
    kind: str,
    title: str,
    message: str = "",
    data: dict | None = None,
) -> Notification:
    return Notification.objects.create(
        user_id=user_id,
        kind=kind,
        title=title,
        message=message,
        data=data or {},
    )


def feed_for(user, *, unread_only: bool = False) -> QuerySet[Notification]:
    notifications = Notification.objects.filter(user=user)
    if unread_only:
        notifications = notifications.filter(read_at__isnull=True)
    return notifications.order_by("-created", "-pk")[:FEED_LIMIT]


@dataclass(frozen=True)
class ReminderRun:
    candidates: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0


def send_expiry_reminders(
    days: int | None = None,
    now: datetime | None = None,
) -> ReminderRun:
    """
    Email every ACTIVE subscriber whose plan ends within ``days``.

    A subscription is reminded at most once per end date, so running the
    sweep daily does not repeat the email for the same term.
    """
    days = settings.SUBSCRIPTION_REMINDER_DAYS if days is None else days
    now = now or timezone.now()
    subscriptions = SubscriptionService().subscriptions_expiring_within(days, now)

    candidates = sent = skipped = failed = 0
    for subscription in subscriptions:
        candidates += 1
        end_date = subscription.end_date.isoformat()
        already_reminded = Notification.objects.filter(
            user_id=subscription.user_id,
            kind=NotificationKind.EXPIRY_REMINDER,
            data__subscriptionId=subscription.pk,
            data__endDate=end_date,
        ).exists()
        if already_reminded:
            skipped += 1
            continue

        if not send_expiry_reminder_email(subscription):
            failed += 1
            continue

        record(
            subscription.user_id,
            NotificationKind.EXPIRY_REMINDER,
            title=f"Your {subscription.plan.name} subscription expires soon",
            message=f"Your subscription ends on {subscription.end_date:%Y-%m-%d}.",
            data={
                "subscriptionId": subscription.pk,
                "planName": subscription.plan.name,
                "endDate": end_date,
            },
        )
        sent += 1

    logger.info(
        "Expiry reminders: %s candidates, %s sent, %s already sent, %s failed",
        candidates,
        sent,
        skipped,
        failed,
    )
    return ReminderRun(candidates=candidates, sent=sent, skipped=skipped, failed=failed)
