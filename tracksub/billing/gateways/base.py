"""
Common interface for payment gateways.

A gateway does two things for us: it opens a checkout session for a
PENDING payment, and it authenticates the callbacks it later sends about
that payment. Everything after authentication (state transitions,
subscription activation) lives in ``tracksub.billing.reconciliation`` and
is identical for every gateway.
"""

from __future__ import annotations

from abc import ABC
from abc import abstractmethod
from dataclasses import dataclass
from dataclasses import field
from decimal import Decimal
from typing import TYPE_CHECKING
from typing import Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from tracksub.billing.models import Payment
    from tracksub.billing.models import Plan


@dataclass(frozen=True)
class CheckoutSession:
    """
    Handle returned by a gateway for a new checkout.

    ``checkout_url`` is set for redirect flows, ``client_secret`` for
    embedded flows. ``session_id`` is stored on the payment.
    """

    session_id: str
    checkout_url: str = ""
    client_secret: str = ""


@dataclass(frozen=True)
class GatewayCallback:
    """
    A verified notification from a gateway about one order.

    Only gateways construct these, and only after the signature checked
    out. ``plan_id`` is whatever the gateway echoed back from the order
    metadata and may be empty.
    """

    gateway: str
    order_id: str
    succeeded: bool
    gateway_status: str
    transaction_id: str = ""
    plan_id: str = ""
    amount: Decimal | None = None
    payload: dict[str, Any] = field(default_factory=dict, compare=False)


class PaymentGateway(ABC):
    name: str = ""

    @abstractmethod
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
        """
        Open a checkout for ``payment``.

        Raises:
            GatewayError: the gateway rejected the request or could not be
                reached.
            GatewayNotConfiguredError: credentials are missing.
        """

    @abstractmethod
    def verify_callback(
        self,
        raw_body: bytes,
        headers: Mapping[str, str],
    ) -> GatewayCallback | None:
        """
        Authenticate and decode a callback.

        Returns None for authentic events we do not act on.

        Raises:
            CallbackVerificationError: signature, payload or configuration
                problem. Nothing may be applied.
        """

    def close_checkout_session(self, session_id: str) -> None:
        """
        Stop a checkout session from accepting payment.

        Gateways without a way to close a session do nothing; a payment that
        still arrives is flagged by reconciliation.

        Raises:
            CheckoutCompletedError: the customer already paid.
            GatewayError: the gateway could not be reached.
        """
