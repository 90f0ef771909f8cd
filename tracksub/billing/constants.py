"""
Billing constants.

These enums define the subscription lifecycle, the payment ledger states
and the gateways we accept money through.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class SubscriptionStatus(models.TextChoices):
    """
    Subscription lifecycle states.

    Typical flow:
        ACTIVE → EXPIRED (end date passes without renewal)
        ACTIVE → CANCELLED (user cancels)
        EXPIRED/CANCELLED → ACTIVE (a new payment completes)
    """

    ACTIVE = "ACTIVE", _("Active")
    EXPIRED = "EXPIRED", _("Expired")
    CANCELLED = "CANCELLED", _("Cancelled")


class PaymentStatus(models.TextChoices):
    """
    Payment ledger states.

    Only PENDING may transition. COMPLETED, FAILED and CANCELLED are
    terminal; a callback arriving for a terminal order is a duplicate.
    """

    PENDING = "PENDING", _("Pending")
    COMPLETED = "COMPLETED", _("Completed")
    FAILED = "FAILED", _("Failed")
    CANCELLED = "CANCELLED", _("Cancelled")


TERMINAL_PAYMENT_STATUSES = frozenset(
    {
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    },
)


class PaymentGatewayChoice(models.TextChoices):
    STRIPE = "stripe", _("Stripe")
    TELEBIRR = "telebirr", _("Telebirr")


class ActivationStatus(models.TextChoices):
    """
    Whether a completed payment produced a subscription change.

    DEFERRED means the money was recorded but the plan could not be
    resolved; an operator has to activate it by hand.

    PAID_AFTER_CLOSE means the gateway reported a successful payment for an
    order we had already cancelled or failed. The order stays closed and an
    operator has to refund or activate by hand.
    """

    NOT_APPLICABLE = "NOT_APPLICABLE", _("Not applicable")
    ACTIVATED = "ACTIVATED", _("Activated")
    DEFERRED = "DEFERRED", _("Deferred")
    PAID_AFTER_CLOSE = "PAID_AFTER_CLOSE", _("Paid after close")


NEEDS_ATTENTION_STATUSES = frozenset(
    {
        ActivationStatus.DEFERRED,
        ActivationStatus.PAID_AFTER_CLOSE,
    },
)


# A device_limit of -1 means the plan allows any number of devices.
UNLIMITED_DEVICES = -1

# Payment history endpoint returns at most this many rows.
PAYMENT_HISTORY_LIMIT = 50
