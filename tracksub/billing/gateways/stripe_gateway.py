"""
Stripe card checkout.

We use Stripe Checkout (hosted or embedded) in one-off ``payment`` mode
with inline ``price_data``, so no Stripe Products or Prices need to exist.
The order id travels as ``client_reference_id`` and in the session
metadata, and comes back on every checkout webhook.

Webhook events handled:
- checkout.session.completed (paid): order completed
- checkout.session.async_payment_succeeded: order completed
- checkout.session.async_payment_failed: order failed
- checkout.session.expired: order failed

To test locally:
    stripe listen --forward-to localhost:8000/api/v1/payment/webhook/stripe/
"""

from __future__ import annotations

import json
import logging
from decimal import ROUND_HALF_UP
from decimal import Decimal
from typing import TYPE_CHECKING
from typing import Any

import stripe
from django.conf import settings

from tracksub.billing.constants import PaymentGatewayChoice
from tracksub.billing.exceptions import CallbackVerificationError
from tracksub.billing.exceptions import CheckoutCompletedError
from tracksub.billing.exceptions import GatewayError
from tracksub.billing.exceptions import GatewayNotConfiguredError
from tracksub.billing.gateways.base import CheckoutSession
from tracksub.billing.gateways.base import GatewayCallback
from tracksub.billing.gateways.base import PaymentGateway

if TYPE_CHECKING:
    from collections.abc import Mapping

    from tracksub.billing.models import Payment
    from tracksub.billing.models import Plan

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Stripe-Signature"

SUCCEEDED_EVENTS = frozenset({"checkout.session.async_payment_succeeded"})
FAILED_EVENTS = frozenset(
    {
        "checkout.session.async_payment_failed",
        "checkout.session.expired",
    },
)


def to_minor_units(amount: Decimal) -> int:
    """Convert a decimal amount to integer cents for Stripe."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripeGateway(PaymentGateway):
    """
    Usage:
        gateway = StripeGateway()
        session = gateway.create_checkout_session(
            payment=payment,
            plan=plan,
            customer_email=user.email,
            return_url="https://example.com/payment/success?order_id=...",
            cancel_url="https://example.com/payment/cancel?order_id=...",
        )
    """

    name = PaymentGatewayChoice.STRIPE

    def __init__(self):
        stripe.api_key = settings.STRIPE_SECRET_KEY

    def create_checkout_session(
        self,
        *,
        payment: Payment,
        plan: Plan,
        customer_email: str,
        return_url: str,
        cancel_url: str,
        embedded: bool = False,
    ) -> CheckoutSession:
        if not settings.STRIPE_SECRET_KEY:
            raise GatewayNotConfiguredError("Stripe is not configured.")

        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": payment.currency.lower(),
                        "product_data": {
                            "name": plan.name,
                            "description": f"GPS Tracking Subscription - {plan.name}",
                        },
                        "unit_amount": to_minor_units(payment.amount),
                    },
                    "quantity": 1,
                },
            ],
            "customer_email": customer_email,
            "client_reference_id": payment.order_id,
            "metadata": {
                "orderId": payment.order_id,
                "userId": str(payment.user_id),
                "planId": str(plan.pk),
            },
        }
        if embedded:
            params["ui_mode"] = "embedded"
            params["return_url"] = return_url
        else:
            params["success_url"] = return_url
            params["cancel_url"] = cancel_url

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            logger.exception(
                "Stripe checkout session failed for order %s",
                payment.order_id,
            )
            raise GatewayError(f"Stripe error: {e}") from e

        logger.info(
            "Created Stripe checkout session %s for order %s (embedded=%s)",
            session.id,
            payment.order_id,
            embedded,
        )

        if embedded:
            return CheckoutSession(
                session_id=session.id,
                client_secret=session.client_secret or "",
            )
        return CheckoutSession(session_id=session.id, checkout_url=session.url or "")

    def close_checkout_session(self, session_id: str) -> None:
        if not session_id:
            return
        if not settings.STRIPE_SECRET_KEY:
            raise GatewayNotConfiguredError("Stripe is not configured.")

        try:
            stripe.checkout.Session.expire(session_id)
        except stripe.InvalidRequestError:
            # Only open sessions can be expired.
            status = self._session_status(session_id)
            if status == "complete":
                logger.warning("Stripe session %s was already paid", session_id)
                raise CheckoutCompletedError from None
            logger.info("Stripe session %s already %s", session_id, status)
            return
        except stripe.StripeError as e:
            logger.exception("Could not expire Stripe session %s", session_id)
            raise GatewayError(f"Stripe error: {e}") from e

        logger.info("Expired Stripe checkout session %s", session_id)

    def _session_status(self, session_id: str) -> str:
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as e:
            logger.exception("Could not retrieve Stripe session %s", session_id)
            raise GatewayError(f"Stripe error: {e}") from e
        return session.status or ""

    def verify_callback(
        self,
        raw_body: bytes,
        headers: Mapping[str, str],
    ) -> GatewayCallback | None:
        secret = settings.STRIPE_WEBHOOK_SECRET
        if not secret:
            logger.error("Rejecting Stripe webhook: STRIPE_WEBHOOK_SECRET is not set")
            raise CallbackVerificationError("Stripe webhook secret is not configured.")

        signature = headers.get(SIGNATURE_HEADER, "")
        if not signature:
            raise CallbackVerificationError("Missing Stripe-Signature header.")

        try:
            stripe.Webhook.construct_event(raw_body, signature, secret)
            event = json.loads(raw_body)
        except ValueError as e:
            raise CallbackVerificationError("Invalid Stripe payload.") from e
        except stripe.SignatureVerificationError as e:
            raise CallbackVerificationError("Invalid Stripe signature.") from e

        return self._to_callback(event)

    def _to_callback(self, event: dict[str, Any]) -> GatewayCallback | None:
        event_type = event.get("type", "")
        session = (event.get("data") or {}).get("object") or {}

        if event_type == "checkout.session.completed":
            if session.get("payment_status") != "paid":
                # Delayed payment methods complete the session before the
                # money moves; async_payment_succeeded follows.
                logger.info(
                    "Stripe session %s completed but unpaid, waiting",
                    session.get("id"),
                )
                return None
            succeeded = True
        elif event_type in SUCCEEDED_EVENTS:
            succeeded = True
        elif event_type in FAILED_EVENTS:
            succeeded = False
        else:
            logger.debug("Ignoring Stripe event %s", event_type)
            return None

        metadata = session.get("metadata") or {}
        order_id = metadata.get("orderId") or session.get("client_reference_id") or ""
        amount_total = session.get("amount_total")

        return GatewayCallback(
            gateway=self.name,
            order_id=order_id,
            succeeded=succeeded,
            gateway_status=event_type,
            transaction_id=session.get("payment_intent") or session.get("id") or "",
            plan_id=metadata.get("planId") or "",
            amount=(
                Decimal(amount_total) / 100 if amount_total is not None else None
            ),
            payload=event,
        )
