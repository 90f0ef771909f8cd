"""
Tests for the staff dashboard API.

These tests cover:
- every endpoint refuses non-staff users
- system statistics
- list filters and pagination
- deleting any user's device
- finishing a deferred activation
- invoices for completed orders
- sending expiry reminders on demand
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.urls import reverse
from django.utils import timezone
from rest_framework import status

from tracksub.billing.constants import ActivationStatus
from tracksub.billing.constants import PaymentStatus
from tracksub.billing.constants import SubscriptionStatus
from tracksub.billing.models import Subscription
from tracksub.billing.tests.factories import PaymentFactory
from tracksub.billing.tests.factories import SubscriptionFactory
from tracksub.dashboard.services import system_stats
from tracksub.devices.exceptions import TrackingServiceError
from tracksub.devices.tests.factories import DeviceFactory
from tracksub.users.tests.factories import UserFactory

pytestmark = pytest.mark.django_db


@pytest.mark.parametrize(
    ("method", "name", "args"),
    [
        ("get", "api:admin-stats", []),
        ("get", "api:admin-users", []),
        ("get", "api:admin-subscriptions", []),
        ("get", "api:admin-devices", []),
        ("delete", "api:admin-device-delete", [1]),
        ("get", "api:admin-payments", []),
        ("post", "api:admin-payment-activate", ["ORDER_1"]),
        ("get", "api:admin-order-invoice", ["ORDER_1"]),
        ("post", "api:admin-send-reminders", []),
    ],
)
def test_staff_only(auth_client, method, name, args):
    response = getattr(auth_client, method)(reverse(name, args=args))
    assert response.status_code == status.HTTP_403_FORBIDDEN


class TestStats:
    def test_system_stats(self, plans):
        now = timezone.now()
        SubscriptionFactory(plan=plans.basic, end_date=now + timedelta(days=2))
        SubscriptionFactory(plan=plans.basic, end_date=now + timedelta(days=25))
        SubscriptionFactory(plan=plans.free, status=SubscriptionStatus.EXPIRED)
        DeviceFactory()
        DeviceFactory(is_active=False)
        PaymentFactory(status=PaymentStatus.COMPLETED)
        PaymentFactory(
            status=PaymentStatus.COMPLETED,
            amount=Decimal("799.99"),
            activation_status=ActivationStatus.DEFERRED,
        )
        PaymentFactory(status=PaymentStatus.FAILED)
        PaymentFactory(status=PaymentStatus.PENDING)

        stats = system_stats(now=now)

        assert stats["activeSubscriptions"] == 2  # noqa: PLR2004
        assert stats["expiringSubscriptions"] == 1
        assert stats["totalDevices"] == 1
        assert stats["totalRevenue"] == "1099.98"
        assert stats["totalOrders"] == 4  # noqa: PLR2004
        assert stats["completedOrders"] == 2  # noqa: PLR2004
        assert stats["failedOrders"] == 1
        assert stats["pendingOrders"] == 1
        assert stats["successRate"] == 50  # noqa: PLR2004
        assert stats["needsAttention"] == 1

    @patch("tracksub.dashboard.services.TraccarClient")
    def test_empty_system(self, client_class, staff_client):
        client = client_class.return_value.__enter__.return_value
        client.get_device_stats.return_value = {"total": 0, "online": 0, "offline": 0}

        stats = staff_client.get(reverse("api:admin-stats")).json()["stats"]

        assert stats["totalOrders"] == 0
        assert stats["successRate"] == 0
        assert stats["totalRevenue"] == "0.00"

    @patch("tracksub.dashboard.services.TraccarClient")
    def test_tracking_server_counts(self, client_class, staff_client):
        client = client_class.return_value.__enter__.return_value
        client.get_device_stats.return_value = {"total": 3, "online": 1, "offline": 2}

        response = staff_client.get(reverse("api:admin-stats"))

        assert response.json()["trackingServer"] == {
            "reachable": True,
            "total": 3,
            "online": 1,
            "offline": 2,
        }

    @patch("tracksub.dashboard.services.TraccarClient")
    def test_tracking_server_down(self, client_class, staff_client):
        client = client_class.return_value.__enter__.return_value
        client.get_device_stats.side_effect = TrackingServiceError

        response = staff_client.get(reverse("api:admin-stats"))

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["trackingServer"] == {"reachable": False}


class TestLists:
    def test_users_with_counts_and_search(self, staff_client, plans):
        abebe = UserFactory(name="Abebe Kebede")
        SubscriptionFactory(user=abebe, plan=plans.basic)
        DeviceFactory.create_batch(2, user=abebe)
        PaymentFactory(user=abebe)
        UserFactory(name="Someone Else")

        response = staff_client.get(reverse("api:admin-users"), {"search": "abebe"})

        assert response.status_code == status.HTTP_200_OK
        [row] = response.json()["results"]
        assert row["email"] == abebe.email
        assert row["deviceCount"] == 2  # noqa: PLR2004
        assert row["paymentCount"] == 1
        assert row["subscription"]["plan"]["name"] == "Basic"

    def test_user_without_subscription(self, staff_client, staff_user):
        response = staff_client.get(reverse("api:admin-users"))

        [row] = response.json()["results"]
        assert row["id"] == staff_user.pk
        assert row["subscription"] is None

    def test_pagination(self, staff_client):
        UserFactory.create_batch(4)

        response = staff_client.get(
            reverse("api:admin-users"),
            {"limit": 2, "page": 2},
        )

        data = response.json()
        assert data["count"] == 5  # noqa: PLR2004
        assert len(data["results"]) == 2  # noqa: PLR2004

    def test_subscriptions_by_status(self, staff_client, plans):
        SubscriptionFactory(plan=plans.basic)
        cancelled = SubscriptionFactory(
            plan=plans.basic,
            status=SubscriptionStatus.CANCELLED,
        )

        response = staff_client.get(
            reverse("api:admin-subscriptions"),
            {"status": "CANCELLED"},
        )

        [row] = response.json()["results"]
        assert row["id"] == cancelled.pk
        assert row["user"]["email"] == cancelled.user.email

    def test_subscriptions_unknown_status(self, staff_client):
        response = staff_client.get(
            reverse("api:admin-subscriptions"),
            {"status": "PAUSED"},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_expiring_subscriptions(self, staff_client, plans):
        soon = SubscriptionFactory(
            plan=plans.basic,
            end_date=timezone.now() + timedelta(days=3),
        )
        SubscriptionFactory(plan=plans.basic)

        response = staff_client.get(
            reverse("api:admin-subscriptions"),
            {"expiring": "true"},
        )

        assert [row["id"] for row in response.json()["results"]] == [soon.pk]

    def test_devices_by_user(self, staff_client, user):
        device = DeviceFactory(user=user)
        DeviceFactory()

        response = staff_client.get(reverse("api:admin-devices"), {"userId": user.pk})

        [row] = response.json()["results"]
        assert row["id"] == device.pk
        assert row["user"]["id"] == user.pk

    @pytest.mark.parametrize("name", ["api:admin-devices", "api:admin-payments"])
    def test_non_numeric_user_id_is_400(self, staff_client, name):
        response = staff_client.get(reverse(name), {"userId": "abebe"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "userId" in response.json()

    def test_payments_filters(self, staff_client, user):
        deferred = PaymentFactory(
            user=user,
            status=PaymentStatus.COMPLETED,
            activation_status=ActivationStatus.DEFERRED,
        )
        PaymentFactory(user=user, status=PaymentStatus.FAILED)
        PaymentFactory(gateway="telebirr")
        url = reverse("api:admin-payments")

        def count(**params):
            return staff_client.get(url, params).json()["count"]

        assert count(status="ALL") == 3  # noqa: PLR2004
        assert count(status="FAILED") == 1
        assert count(gateway="telebirr") == 1
        assert count(userId=user.pk) == 2  # noqa: PLR2004

        [row] = staff_client.get(url, {"needs_attention": "true"}).json()["results"]
        assert row["orderId"] == deferred.order_id
        assert row["needsAttention"] is True

        searched = staff_client.get(url, {"search": deferred.invoice_number})
        assert searched.json()["count"] == 1


class TestDeviceDelete:
    @patch("tracksub.devices.services.TraccarClient")
    def test_deletes_any_users_device(self, client_class, staff_client):
        device = DeviceFactory()

        response = staff_client.delete(
            reverse("api:admin-device-delete", args=[device.pk]),
        )

        assert response.status_code == status.HTTP_200_OK
        device.refresh_from_db()
        assert not device.is_active
        client_class.return_value.delete_device.assert_called_once_with(
            device.traccar_id,
        )

    def test_unknown_device_is_404(self, staff_client):
        response = staff_client.delete(
            reverse("api:admin-device-delete", args=[999]),
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestPaymentActivate:
    def test_activates_deferred_payment(self, staff_client, plans, user):
        payment = PaymentFactory(
            user=user,
            status=PaymentStatus.COMPLETED,
            activation_status=ActivationStatus.DEFERRED,
        )

        response = staff_client.post(
            reverse("api:admin-payment-activate", args=[payment.order_id]),
            {"planId": str(plans.premium.pk)},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["payment"]["activationStatus"] == ActivationStatus.ACTIVATED
        assert data["payment"]["metadata"]["planName"] == "Premium"
        assert data["subscription"]["plan"]["name"] == "Premium"
        assert Subscription.objects.get(user=user).plan == plans.premium

    def test_payment_not_deferred(self, staff_client, plans):
        payment = PaymentFactory(status=PaymentStatus.PENDING)

        response = staff_client.post(
            reverse("api:admin-payment-activate", args=[payment.order_id]),
            {"planId": str(plans.premium.pk)},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "activation_not_deferred"

    def test_unknown_plan(self, staff_client):
        payment = PaymentFactory(
            status=PaymentStatus.COMPLETED,
            activation_status=ActivationStatus.DEFERRED,
        )

        response = staff_client.post(
            reverse("api:admin-payment-activate", args=[payment.order_id]),
            {"planId": "12345"},
            format="json",
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["code"] == "plan_not_found"


class TestInvoice:
    def test_completed_order(self, staff_client, plans, user):
        payment = PaymentFactory(
            user=user,
            plan=plans.basic,
            status=PaymentStatus.COMPLETED,
            transaction_id="pi_1",
            completed_at=timezone.now(),
        )

        response = staff_client.get(
            reverse("api:admin-order-invoice", args=[payment.order_id]),
        )

        assert response.status_code == status.HTTP_200_OK
        invoice = response.json()
        assert invoice["invoiceNumber"] == payment.invoice_number
        assert invoice["customer"]["email"] == user.email
        assert invoice["plan"]["name"] == "Basic"
        assert invoice["transactionId"] == "pi_1"

    def test_pending_order_has_no_invoice(self, staff_client):
        payment = PaymentFactory()

        response = staff_client.get(
            reverse("api:admin-order-invoice", args=[payment.order_id]),
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "invoice_unavailable"


def test_send_reminders(staff_client, plans, mailoutbox):
    SubscriptionFactory(plan=plans.basic, end_date=timezone.now() + timedelta(days=2))

    response = staff_client.post(reverse("api:admin-send-reminders"))

    assert response.json()["message"] == "Reminder emails sent to 1 users"
    assert response.json()["count"] == 1
    assert len(mailoutbox) == 1
