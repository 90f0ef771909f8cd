"""
Signal receivers that turn billing and device events into feed entries.
"""

from __future__ import annotations

from django.dispatch import receiver

from tracksub.billing.constants import PaymentStatus
from tracksub.billing.events import PaymentUpdated
from tracksub.billing.events import SubscriptionChanged
from tracksub.billing.events import payment_updated
from tracksub.billing.events import subscription_changed
from tracksub.devices.events import DeviceStatusChanged
from tracksub.devices.events import device_status_changed
from tracksub.notifications.models import NotificationKind
from tracksub.notifications.services import record


SUBSCRIPTION_TITLES = {
    "created": "Welcome to the {plan} plan",
    "plan_changed": "You are now on the {plan} plan",
    "payment_completed": "Your {plan} plan is active",
    "cancelled": "Your {plan} subscription was cancelled",
    "expired": "Your {plan} subscription has expired",
}

PAYMENT_TITLES = {
    PaymentStatus.COMPLETED: "Payment received",
    PaymentStatus.FAILED: "Payment failed",
    PaymentStatus.CANCELLED: "Payment cancelled",
}


@receiver(subscription_changed)
def on_subscription_changed(sender, event: SubscriptionChanged, **kwargs):
    title = SUBSCRIPTION_TITLES.get(event.reason, "Your subscription changed")
    record(
        event.user_id,
        NotificationKind.SUBSCRIPTION_UPDATE,
        title=title.format(plan=event.plan_name),
        message=f"Status: {event.status}, ends {event.end_date:%Y-%m-%d}.",
        data={
            "subscriptionId": event.subscription_id,
            "planId": event.plan_id,
            "planName": event.plan_name,
            "status": event.status,
            "endDate": event.end_date.isoformat(),
            "reason": event.reason,
        },
    )


@receiver(payment_updated)
def on_payment_updated(sender, event: PaymentUpdated, **kwargs):
    title = PAYMENT_TITLES.get(event.status)
    if title is None:
        # Pending orders are not interesting to the user.
        return
    record(
        event.user_id,
        NotificationKind.PAYMENT_UPDATE,
        title=title,
        message=f"Order {event.order_id}: {event.amount} {event.currency}.",
        data={
            "orderId": event.order_id,
            "status": event.status,
            "amount": str(event.amount),
            "currency": event.currency,
            "gateway": event.gateway,
        },
    )


@receiver(device_status_changed)
def on_device_status_changed(sender, event: DeviceStatusChanged, **kwargs):
    record(
        event.user_id,
        NotificationKind.DEVICE_STATUS,
        title=f"{event.device_name} is {event.status}",
        data={
            "deviceId": event.device_id,
            "status": event.status,
            "previousStatus": event.previous_status,
            "changedAt": event.changed_at.isoformat(),
        },
    )
