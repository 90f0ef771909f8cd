"""
Typed billing events.

Services publish these after their transaction commits; subscribers (the
notifications app, or a realtime push layer) connect to the matching
Django signal. Each signal is sent with ``event=<dataclass instance>``::

    @receiver(subscription_changed)
    def on_subscription_changed(sender, event: SubscriptionChanged, **kwargs):
        ...

Events are snapshots taken when the change was made, so receivers never
see a half-applied row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import transaction
from django.dispatch import Signal

if TYPE_CHECKING:
    from tracksub.billing.models import Payment
    from tracksub.billing.models import Subscription

logger = logging.getLogger(__name__)

subscription_changed = Signal()
payment_updated = Signal()


@dataclass(frozen=True)
class SubscriptionChanged:
    user_id: int
    subscription_id: int
    plan_id: str
    plan_name: str
    status: str
    end_date: datetime
    reason: str

    @classmethod
    def from_subscription(
        cls,
        subscription: Subscription,
        reason: str,
    ) -> SubscriptionChanged:
        return cls(
            user_id=subscription.user_id,
            subscription_id=subscription.pk,
            plan_id=str(subscription.plan_id),
            plan_name=subscription.plan.name,
            status=subscription.status,
            end_date=subscription.end_date,
            reason=reason,
        )


@dataclass(frozen=True)
class PaymentUpdated:
    user_id: int
    order_id: str
    status: str
    amount: Decimal
    currency: str
    gateway: str

    @classmethod
    def from_payment(cls, payment: Payment) -> PaymentUpdated:
        return cls(
            user_id=payment.user_id,
            order_id=payment.order_id,
            status=payment.status,
            amount=payment.amount,
            currency=payment.currency,
            gateway=payment.gateway,
        )


_SIGNALS = {
    SubscriptionChanged: subscription_changed,
    PaymentUpdated: payment_updated,
}


def publish(event: SubscriptionChanged | PaymentUpdated) -> None:
    """
    Send ``event`` to its signal's receivers.

    Receiver failures are logged and swallowed: the state change that
    produced the event has already been committed.
    """
    signal = _SIGNALS[type(event)]
    for receiver, response in signal.send_robust(sender=type(event), event=event):
        if isinstance(response, Exception):
            logger.error(
                "Receiver %r failed for %s: %s",
                receiver,
                type(event).__name__,
                response,
            )


def publish_on_commit(*events: SubscriptionChanged | PaymentUpdated) -> None:
    """Publish ``events`` once the surrounding transaction commits."""
    for event in events:
        transaction.on_commit(lambda event=event: publish(event))
