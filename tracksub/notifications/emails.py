"""
Email notifications for subscriptions.

Usage:
    from tracksub.notifications.emails import send_expiry_reminder_email
    send_expiry_reminder_email(subscription)
"""

from __future__ import annotations

import logging
from smtplib import SMTPException
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.mail import send_mail
from django.utils.html import escape
from django.utils.translation import gettext as _

if TYPE_CHECKING:
    from tracksub.billing.models import Subscription

logger = logging.getLogger(__name__)


def get_frontend_url() -> str:
    return settings.FRONTEND_URL.rstrip("/")


def send_expiry_reminder_email(subscription: Subscription) -> bool:
    """
    Tell the subscriber their plan ends soon.

    Returns:
        True if the mail backend accepted the message.
    """
    user = subscription.user
    if not user.email:
        logger.warning("User %s has no email; skipping expiry reminder", user.pk)
        return False

    renew_url = f"{get_frontend_url()}/subscription"
    context = {
        "name": user.name or user.email,
        "plan": subscription.plan.name,
        "end_date": subscription.end_date.strftime("%Y-%m-%d"),
        "days": subscription.days_remaining,
        "url": renew_url,
    }

    subject = _("Your %(plan)s subscription expires in %(days)s day(s)") % context

    plain_message = (
        _(
            "Hello %(name)s,\n\n"
            "Your %(plan)s subscription ends on %(end_date)s. "
            "Renew it to keep tracking your devices:\n\n"
            "%(url)s\n",
        )
        % context
    )

    html_context = {key: escape(value) for key, value in context.items()}
    html_message = (
        _(
            "<p>Hello %(name)s,</p>"
            "<p>Your <strong>%(plan)s</strong> subscription ends on "
            "%(end_date)s. Renew it to keep tracking your devices:</p>"
            '<p><a href="%(url)s">%(url)s</a></p>',
        )
        % html_context
    )

    try:
        sent = send_mail(
            subject=subject,
            message=plain_message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[user.email],
            html_message=html_message,
        )
    except (SMTPException, OSError):
        logger.exception("Failed to send expiry reminder to %s", user.email)
        return False

    if sent == 0:
        logger.error("Expiry reminder to %s was not sent", user.email)
        return False

    logger.info(
        "Sent expiry reminder to %s for subscription %s",
        user.email,
        subscription.pk,
    )
    return True
