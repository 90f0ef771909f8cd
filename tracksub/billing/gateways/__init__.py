"""
Payment gateway adapters.

Usage:
    from tracksub.billing.gateways import get_gateway

    gateway = get_gateway("telebirr")
    session = gateway.create_checkout_session(...)
"""

from __future__ import annotations

from tracksub.billing.constants import PaymentGatewayChoice
from tracksub.billing.exceptions import BillingError
from tracksub.billing.gateways.base import CheckoutSession
from tracksub.billing.gateways.base import GatewayCallback
from tracksub.billing.gateways.base import PaymentGateway
from tracksub.billing.gateways.stripe_gateway import StripeGateway
from tracksub.billing.gateways.telebirr import TelebirrGateway

GATEWAYS: dict[str, type[PaymentGateway]] = {
    PaymentGatewayChoice.STRIPE: StripeGateway,
    PaymentGatewayChoice.TELEBIRR: TelebirrGateway,
}


def get_gateway(name: str) -> PaymentGateway:
    try:
        gateway_class = GATEWAYS[name]
    except KeyError:
        raise BillingError(
            f"Unsupported payment gateway {name!r}.",
            code="unsupported_gateway",
        ) from None
    return gateway_class()


__all__ = [
    "GATEWAYS",
    "CheckoutSession",
    "GatewayCallback",
    "PaymentGateway",
    "get_gateway",
]
