"""
Aggregates for the staff dashboard, computed on request.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from django.conf import settings
from django.db.models import Count
from django.db.models import Q
from django.db.models import Sum
from django.utils import timezone

from tracksub.billing.constants import NEEDS_ATTENTION_STATUSES
from tracksub.billing.constants import PaymentStatus
from tracksub.billing.constants import SubscriptionStatus
from tracksub.billing.invoices import format_amount
from tracksub.billing.models import Payment
from tracksub.billing.models import Subscription
from tracksub.devices.exceptions import TrackingServiceError
from tracksub.devices.models import Device
from tracksub.devices.traccar import TraccarClient
from tracksub.users.models import User

logger = logging.getLogger(__name__)


def system_stats(now=None) -> dict:
    now = now or timezone.now()
    reminder_window = now + timedelta(days=settings.SUBSCRIPTION_REMINDER_DAYS)

    subscriptions = Subscription.objects.aggregate(
        active=Count("pk", filter=Q(status=SubscriptionStatus.ACTIVE)),
        expiring=Count(
            "pk",
            filter=Q(
                status=SubscriptionStatus.ACTIVE,
                end_date__gte=now,
                end_date__lte=reminder_window,
            ),
        ),
    )
    payments = Payment.objects.aggregate(
        total=Count("pk"),
        completed=Count("pk", filter=Q(status=PaymentStatus.COMPLETED)),
        failed=Count("pk", filter=Q(status=PaymentStatus.FAILED)),
        pending=Count("pk", filter=Q(status=PaymentStatus.PENDING)),
        revenue=Sum("amount", filter=Q(status=PaymentStatus.COMPLETED)),
        needs_attention=Count(
            "pk",
            filter=Q(activation_status__in=NEEDS_ATTENTION_STATUSES),
        ),
    )

    success_rate = (
        round(payments["completed"] * 100 / payments["total"])
        if payments["total"]
        else 0
    )
    return {
        "totalUsers": User.objects.count(),
        "activeSubscriptions": subscriptions["active"],
        "expiringSubscriptions": subscriptions["expiring"],
        "totalDevices": Device.objects.active().count(),
        "totalRevenue": format_amount(payments["revenue"]),
        "totalOrders": payments["total"],
        "completedOrders": payments["completed"],
        "failedOrders": payments["failed"],
        "pendingOrders": payments["pending"],
        "successRate": success_rate,
        "needsAttention": payments["needs_attention"],
    }


def tracking_server_stats() -> dict:
    """Device counts as Traccar sees them; ``reachable`` is False when it is down."""
    try:
        with TraccarClient() as client:
            stats = client.get_device_stats()
    except TrackingServiceError:
        logger.warning("Tracking server unreachable for dashboard statistics")
        return {"reachable": False}
    return {"reachable": True, **stats}
