"""
Tests for the Payment admin's needs-attention filter and activation action.
"""

import pytest
from django.urls import reverse

from tracksub.billing.constants import ActivationStatus
from tracksub.billing.constants import PaymentStatus
from tracksub.billing.models import Subscription
from tracksub.billing.tests.factories import PaymentFactory

pytestmark = pytest.mark.django_db

CHANGELIST = "admin:billing_payment_changelist"


def deferred_payment(**kwargs):
    return PaymentFactory(
        status=PaymentStatus.COMPLETED,
        activation_status=ActivationStatus.DEFERRED,
        activation_error="Could not resolve plan.",
        **kwargs,
    )


class TestNeedsAttentionFilter:
    def test_lists_deferred_and_paid_after_close(self, admin_client):
        deferred = deferred_payment()
        late = PaymentFactory(
            status=PaymentStatus.CANCELLED,
            activation_status=ActivationStatus.PAID_AFTER_CLOSE,
        )
        settled = PaymentFactory(status=PaymentStatus.COMPLETED)

        response = admin_client.get(reverse(CHANGELIST), {"needs_attention": "yes"})

        assert response.status_code == 200  # noqa: PLR2004
        content = response.content.decode()
        assert deferred.order_id in content
        assert late.order_id in content
        assert settled.order_id not in content


class TestActivateWithMetadataPlan:
    def _run_action(self, admin_client, *payments):
        return admin_client.post(
            reverse(CHANGELIST),
            {
                "action": "activate_with_metadata_plan",
                "_selected_action": [p.pk for p in payments],
            },
            follow=True,
        )

    def test_activates_plan_from_metadata(self, admin_client, plans):
        payment = deferred_payment(plan=plans.basic)

        response = self._run_action(admin_client, payment)

        assert "Activated 1 payment(s)." in response.content.decode()
        payment.refresh_from_db()
        assert payment.activation_status == ActivationStatus.ACTIVATED
        assert payment.activation_error == ""
        assert Subscription.objects.get(user=payment.user).plan == plans.basic

    def test_warns_when_metadata_has_no_plan(self, admin_client, plans):
        payment = deferred_payment()

        response = self._run_action(admin_client, payment)

        assert "metadata has no valid plan" in response.content.decode()
        payment.refresh_from_db()
        assert payment.activation_status == ActivationStatus.DEFERRED
        assert not Subscription.objects.filter(user=payment.user).exists()

    def test_skips_payments_that_are_not_deferred(self, admin_client, plans):
        payment = PaymentFactory(status=PaymentStatus.COMPLETED, plan=plans.basic)

        self._run_action(admin_client, payment)

        assert not Subscription.objects.filter(user=payment.user).exists()
