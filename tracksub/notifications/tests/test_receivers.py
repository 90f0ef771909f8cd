"""
Tests for the billing and device event receivers.

Events are published after commit, so service calls run inside
``django_capture_on_commit_callbacks(execute=True)``.
"""

from datetime import UTC
from datetime import datetime
from decimal import Decimal

import pytest
from django.db import transaction

from tracksub.billing.constants import PaymentStatus
from tracksub.billing.events import PaymentUpdated
from tracksub.billing.events import publish
from tracksub.billing.services import SubscriptionService
from tracksub.devices.events import DeviceStatusChanged
from tracksub.devices.events import publish as publish_device_event
from tracksub.notifications.models import Notification
from tracksub.notifications.models import NotificationKind

pytestmark = pytest.mark.django_db


def payment_event(user, status):
    return PaymentUpdated(
        user_id=user.pk,
        order_id="ORDER_1",
        status=status,
        amount=Decimal("299.99"),
        currency="ETB",
        gateway="stripe",
    )


class TestSubscriptionReceiver:
    def test_cancellation_is_recorded(
        self,
        subscribed_user,
        django_capture_on_commit_callbacks,
    ):
        with django_capture_on_commit_callbacks(execute=True):
            SubscriptionService().cancel(subscribed_user)

        notification = Notification.objects.get(user=subscribed_user)
        assert notification.kind == NotificationKind.SUBSCRIPTION_UPDATE
        assert notification.title == "Your Free subscription was cancelled"
        assert notification.data["reason"] == "cancelled"
        assert notification.data["status"] == "CANCELLED"

    def test_paid_activation_is_recorded(
        self,
        subscribed_user,
        plans,
        django_capture_on_commit_callbacks,
    ):
        with django_capture_on_commit_callbacks(execute=True), transaction.atomic():
            SubscriptionService().activate(
                subscribed_user,
                plans.premium,
                reason="payment_completed",
            )

        notification = Notification.objects.get(user=subscribed_user)
        assert notification.title == "Your Premium plan is active"
        assert notification.data["planName"] == "Premium"


class TestPaymentReceiver:
    @pytest.mark.parametrize(
        ("status", "title"),
        [
            (PaymentStatus.COMPLETED, "Payment received"),
            (PaymentStatus.FAILED, "Payment failed"),
            (PaymentStatus.CANCELLED, "Payment cancelled"),
        ],
    )
    def test_terminal_statuses_are_recorded(self, user, status, title):
        publish(payment_event(user, status))

        notification = Notification.objects.get(user=user)
        assert notification.kind == NotificationKind.PAYMENT_UPDATE
        assert notification.title == title
        assert notification.data["amount"] == "299.99"

    def test_pending_is_not_recorded(self, user):
        publish(payment_event(user, PaymentStatus.PENDING))

        assert not Notification.objects.exists()


def test_device_status_is_recorded(user):
    publish_device_event(
        DeviceStatusChanged(
            user_id=user.pk,
            device_id=4,
            device_name="Van",
            status="offline",
            previous_status="online",
            changed_at=datetime(2026, 10, 19, 8, tzinfo=UTC),
        ),
    )

    notification = Notification.objects.get(user=user)
    assert notification.kind == NotificationKind.DEVICE_STATUS
    assert notification.title == "Van is offline"
    assert notification.data["previousStatus"] == "online"
