"""
Apply verified gateway callbacks to the order ledger and subscriptions.

Gateways retry callbacks until they get a 2xx, may deliver the same event
several times, and may deliver two copies at once. The handler therefore:

1. Rejects callbacks without an order id (400).
2. Rejects unknown order ids (404). Orders are never created from a
   callback.
3. Acknowledges callbacks for orders that are already terminal (200) and
   does nothing else. This check is repeated under a row lock so two
   concurrent deliveries cannot both apply. The exception is a successful
   payment for an order we already cancelled or failed: the order stays
   closed but is flagged PAID_AFTER_CLOSE and logged as an error so an
   operator can refund or activate by hand.
4. Moves the order to COMPLETED or FAILED and records the gateway's
   transaction reference.
5. On COMPLETED, resolves the plan from the gateway metadata, falling back
   to the order metadata, and activates it for ``plan.duration_days`` from
   now. Steps 4 and 5 share one transaction.
6. Publishes payment and subscription events after commit.

If the plan cannot be resolved the payment is still recorded as COMPLETED
and flagged DEFERRED for an operator, see ``activate_deferred``.

The callback views are thin wrappers around this service.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from http import HTTPStatus
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from tracksub.billing.constants import ActivationStatus
from tracksub.billing.constants import PaymentStatus
from tracksub.billing.events import PaymentUpdated
from tracksub.billing.events import publish_on_commit
from tracksub.billing.exceptions import BillingError
from tracksub.billing.models import Payment
from tracksub.billing.models import Plan
from tracksub.billing.services import SubscriptionService

if TYPE_CHECKING:
    from tracksub.billing.gateways.base import GatewayCallback
    from tracksub.billing.models import Subscription

logger = logging.getLogger(__name__)


class ReconciliationOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    MALFORMED = "malformed"
    NOT_FOUND = "not_found"
    ACTIVATION_DEFERRED = "activation_deferred"
    PAID_AFTER_CLOSE = "paid_after_close"


@dataclass(frozen=True)
class ReconciliationResult:
    outcome: ReconciliationOutcome
    status_code: int
    payment: Payment | None = None
    subscription: Subscription | None = None
    message: str = ""

    def as_response_data(self) -> dict:
        data = {"received": True, "outcome": self.outcome.value}
        if self.message:
            data["message"] = self.message
        return data


class ReconciliationService:
    """
    Usage:
        callback = get_gateway("stripe").verify_callback(body, headers)
        if callback is not None:
            result = ReconciliationService().handle_gateway_callback(callback)
            return Response(result.as_response_data(), status=result.status_code)
    """

    def __init__(self, subscriptions: SubscriptionService | None = None):
        self.subscriptions = subscriptions or SubscriptionService()

    def handle_gateway_callback(
        self,
        callback: GatewayCallback,
    ) -> ReconciliationResult:
        if not callback.order_id:
            logger.warning("%s callback without order id rejected", callback.gateway)
            return ReconciliationResult(
                outcome=ReconciliationOutcome.MALFORMED,
                status_code=HTTPStatus.BAD_REQUEST,
                message="Callback has no order id.",
            )

        payment = Payment.objects.filter(order_id=callback.order_id).first()
        if payment is None:
            logger.warning(
                "%s callback for unknown order %s rejected",
                callback.gateway,
                callback.order_id,
            )
            return ReconciliationResult(
                outcome=ReconciliationOutcome.NOT_FOUND,
                status_code=HTTPStatus.NOT_FOUND,
                message="Unknown order.",
            )

        if payment.is_terminal:
            return self._already_closed(payment, callback)

        if callback.amount is not None and callback.amount != payment.amount:
            logger.warning(
                "Order %s: %s reported amount %s, expected %s",
                payment.order_id,
                callback.gateway,
                callback.amount,
                payment.amount,
            )

        now = timezone.now()
        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            if payment.is_terminal:
                return self._already_closed(payment, callback)

            if not callback.succeeded:
                payment.save(
                    update_fields=payment.transition_to(
                        PaymentStatus.FAILED,
                        transaction_id=callback.transaction_id,
                    ),
                )
                publish_on_commit(PaymentUpdated.from_payment(payment))
                logger.info(
                    "Order %s failed at %s (%s)",
                    payment.order_id,
                    callback.gateway,
                    callback.gateway_status,
                )
                return ReconciliationResult(
                    outcome=ReconciliationOutcome.APPLIED,
                    status_code=HTTPStatus.OK,
                    payment=payment,
                )

            fields = payment.transition_to(
                PaymentStatus.COMPLETED,
                transaction_id=callback.transaction_id,
                now=now,
            )
            plan = Plan.objects.lookup(callback.plan_id) or Plan.objects.lookup(
                payment.metadata_plan_id,
            )

            if plan is None:
                payment.activation_status = ActivationStatus.DEFERRED
                payment.activation_error = (
                    f"Could not resolve plan (gateway={callback.plan_id!r}, "
                    f"order={payment.metadata_plan_id!r})."
                )
                payment.save(
                    update_fields=[*fields, "activation_status", "activation_error"],
                )
                publish_on_commit(PaymentUpdated.from_payment(payment))
                logger.error(
                    "Order %s completed but no plan could be resolved; "
                    "activation deferred for operator review",
                    payment.order_id,
                )
                return ReconciliationResult(
                    outcome=ReconciliationOutcome.ACTIVATION_DEFERRED,
                    status_code=HTTPStatus.OK,
                    payment=payment,
                    message="Payment recorded; activation pending review.",
                )

            subscription = self.subscriptions.activate(
                payment.user,
                plan,
                reason="payment_completed",
                now=now,
            )
            payment.activation_status = ActivationStatus.ACTIVATED
            payment.save(update_fields=[*fields, "activation_status"])
            publish_on_commit(PaymentUpdated.from_payment(payment))

        logger.info(
            "Order %s completed via %s; %s plan active for user %s",
            payment.order_id,
            callback.gateway,
            plan.name,
            payment.user_id,
        )
        return ReconciliationResult(
            outcome=ReconciliationOutcome.APPLIED,
            status_code=HTTPStatus.OK,
            payment=payment,
            subscription=subscription,
        )

    def activate_deferred(self, payment: Payment, plan: Plan) -> ReconciliationResult:
        """
        Finish a COMPLETED payment whose activation was deferred.

        Raises:
            BillingError: the payment is not a deferred activation.
        """
        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            if (
                payment.status != PaymentStatus.COMPLETED
                or payment.activation_status != ActivationStatus.DEFERRED
            ):
                raise BillingError(
                    f"Order {payment.order_id} has no deferred activation.",
                    code="activation_not_deferred",
                )

            subscription = self.subscriptions.activate(
                payment.user,
                plan,
                reason="payment_completed",
            )
            payment.activation_status = ActivationStatus.ACTIVATED
            payment.activation_error = ""
            payment.metadata = {
                **payment.metadata,
                "planId": str(plan.pk),
                "planName": plan.name,
            }
            payment.save(
                update_fields=[
                    "activation_status",
                    "activation_error",
                    "metadata",
                    "modified",
                ],
            )
            publish_on_commit(PaymentUpdated.from_payment(payment))

        logger.info(
            "Operator activated %s plan for deferred order %s",
            plan.name,
            payment.order_id,
        )
        return ReconciliationResult(
            outcome=ReconciliationOutcome.APPLIED,
            status_code=HTTPStatus.OK,
            payment=payment,
            subscription=subscription,
        )

    def _already_closed(
        self,
        payment: Payment,
        callback: GatewayCallback,
    ) -> ReconciliationResult:
        if not callback.succeeded or payment.status == PaymentStatus.COMPLETED:
            return self._duplicate(payment, callback)

        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            if payment.activation_status == ActivationStatus.PAID_AFTER_CLOSE:
                return self._duplicate(payment, callback)
            reference = callback.transaction_id or "no reference"
            payment.activation_status = ActivationStatus.PAID_AFTER_CLOSE
            payment.activation_error = (
                f"{callback.gateway} reported a successful payment ({reference}) "
                f"after the order was {payment.status}."
            )
            payment.metadata = {
                **payment.metadata,
                "lateTransactionId": callback.transaction_id,
            }
            payment.save(
                update_fields=[
                    "activation_status",
                    "activation_error",
                    "metadata",
                    "modified",
                ],
            )

        logger.error(
            "Order %s is %s but %s reports it paid (%s); flagged for operator review",
            payment.order_id,
            payment.status,
            callback.gateway,
            reference,
        )
        return ReconciliationResult(
            outcome=ReconciliationOutcome.PAID_AFTER_CLOSE,
            status_code=HTTPStatus.OK,
            payment=payment,
            message="Order was closed; payment flagged for review.",
        )

    def _duplicate(
        self,
        payment: Payment,
        callback: GatewayCallback,
    ) -> ReconciliationResult:
        logger.info(
            "Duplicate %s callback for order %s (already %s)",
            callback.gateway,
            payment.order_id,
            payment.status,
        )
        return ReconciliationResult(
            outcome=ReconciliationOutcome.DUPLICATE,
            status_code=HTTPStatus.OK,
            payment=payment,
            message="Already processed.",
        )
