"""
Billing models for the Tracksub subscription system.

Key design decisions:
- Plan is a catalog table (Free, Basic, Premium); rows are deactivated,
  never deleted, because subscriptions and payment metadata point at them
- Subscription is 1:1 with User and has FK to Plan
- Payment is the order ledger; order_id is the key the gateways echo back
- InvoiceSequence hands out per-month invoice numbers atomically

Relationship: User ──1:1── Subscription ──N:1── Plan
              User ──1:N── Payment
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone
from model_utils.models import TimeStampedModel

from tracksub.billing.constants import NEEDS_ATTENTION_STATUSES
from tracksub.billing.constants import TERMINAL_PAYMENT_STATUSES
from tracksub.billing.constants import UNLIMITED_DEVICES
from tracksub.billing.constants import ActivationStatus
from tracksub.billing.constants import PaymentGatewayChoice
from tracksub.billing.constants import PaymentStatus
from tracksub.billing.constants import SubscriptionStatus
from tracksub.billing.exceptions import PaymentStateError


class PlanQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)

    def lookup(self, plan_id) -> Plan | None:
        """Return the plan with this id, or None for unknown or malformed ids."""
        if not plan_id:
            return None
        try:
            return self.filter(pk=plan_id).first()
        except (ValueError, ValidationError):
            return None

    def free(self):
        return self.active().filter(price=0)


class Plan(TimeStampedModel):
    """
    Catalog entry for a subscription tier.

    This is the single source of truth for device limits and durations.
    A subscription activated from this plan runs for ``duration_days``
    from the moment of activation.

    Populated via ``manage.py seed_plans``.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=50, unique=True)
    description = models.TextField(blank=True)
    device_limit = models.IntegerField(
        default=1,
        help_text="Maximum active devices. -1 = unlimited.",
    )
    duration_days = models.PositiveIntegerField(default=30)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Price per period in PAYMENT_CURRENCY. 0 = free tier.",
    )
    is_active = models.BooleanField(default=True)

    objects = PlanQuerySet.as_manager()

    class Meta:
        ordering = ["price", "name"]

    def __str__(self) -> str:
        return self.name

    @property
    def is_free(self) -> bool:
        return self.price == 0

    @property
    def has_unlimited_devices(self) -> bool:
        return self.device_limit == UNLIMITED_DEVICES

    def allows_device_count(self, count: int) -> bool:
        """Return True if a user on this plan may hold ``count`` devices."""
        return self.has_unlimited_devices or count <= self.device_limit


class Subscription(TimeStampedModel):
    """
    A user's current entitlement.

    There is exactly one row per user; plan changes update it in place.
    Status is stored, but an ACTIVE row whose end_date has passed is treated
    as expired everywhere (``is_expired``) and flipped to EXPIRED on read by
    ``SubscriptionService.get_current``.

    Usage:
        sub = user.subscription
        if sub.is_usable and sub.plan.allows_device_count(n + 1):
            ...
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="subscription",
    )
    plan = models.ForeignKey(
        Plan,
        on_delete=models.PROTECT,
        related_name="subscriptions",
    )
    status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.ACTIVE,
    )
    start_date = models.DateTimeField(default=timezone.now)
    end_date = models.DateTimeField()
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created"]
        indexes = [
            models.Index(
                fields=["status", "end_date"],
                name="subscription_status_end_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user} - {self.plan.name} ({self.status})"

    @property
    def is_expired(self) -> bool:
        return self.end_date < timezone.now()

    @property
    def is_usable(self) -> bool:
        """ACTIVE and not past its end date."""
        return self.status == SubscriptionStatus.ACTIVE and not self.is_expired

    @property
    def days_remaining(self) -> int:
        remaining = self.end_date - timezone.now()
        if remaining <= timedelta(0):
            return 0
        # Round partial days up so "ends tomorrow morning" reads as 1.
        partial_day = remaining.seconds or remaining.microseconds
        return remaining.days + (1 if partial_day else 0)


class Payment(TimeStampedModel):
    """
    One purchase attempt (an "order").

    Rows are created PENDING before the gateway is contacted and move to a
    terminal status exactly once, either from a verified gateway callback
    or when the user cancels on the way back from checkout. Use
    ``transition_to`` rather than assigning ``status`` directly.
    """

    order_id = models.CharField(max_length=64, unique=True)
    invoice_number = models.CharField(max_length=32, unique=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="payments",
    )
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3)
    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    gateway = models.CharField(max_length=20, choices=PaymentGatewayChoice.choices)
    gateway_session_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe checkout session id or Telebirr prepay id.",
    )
    transaction_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Gateway transaction reference, set once the gateway confirms.",
    )
    description = models.CharField(max_length=255, blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    activation_status = models.CharField(
        max_length=20,
        choices=ActivationStatus.choices,
        default=ActivationStatus.NOT_APPLICABLE,
    )
    activation_error = models.TextField(blank=True, default="")
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created"]
        indexes = [
            models.Index(
                fields=["user", "-created"],
                name="payment_user_created_idx",
            ),
            models.Index(
                fields=["status", "modified"],
                name="payment_status_modified_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PAYMENT_STATUSES

    @property
    def metadata_plan_id(self) -> str:
        return str(self.metadata.get("planId") or "")

    @property
    def needs_attention(self) -> bool:
        return self.activation_status in NEEDS_ATTENTION_STATUSES

    def transition_to(
        self,
        status: str,
        *,
        transaction_id: str = "",
        now=None,
    ) -> list[str]:
        """
        Move a PENDING payment to ``status`` and return the changed fields.

        Does not save; callers persist with ``save(update_fields=...)``
        inside their own transaction.

        Raises:
            PaymentStateError: if the payment is already terminal or the
                target status is PENDING.
        """
        if self.is_terminal:
            raise PaymentStateError(
                f"Payment {self.order_id} is already {self.status}.",
            )
        if status not in TERMINAL_PAYMENT_STATUSES:
            raise PaymentStateError(
                f"Payment {self.order_id} cannot move to {status}.",
            )

        self.status = status
        fields = ["status", "modified"]
        if transaction_id:
            self.transaction_id = transaction_id
            fields.append("transaction_id")
        if status == PaymentStatus.COMPLETED:
            self.completed_at = now or timezone.now()
            fields.append("completed_at")
        return fields


class InvoiceSequence(models.Model):
    """
    Monotonic invoice counter for one calendar month.

    ``next_invoice_number`` locks the row for the month, increments
    ``last_value`` and formats it, so two orders created at the same time
    never receive the same number.
    """

    period = models.CharField(max_length=7, unique=True, help_text="YYYY-MM")
    last_value = models.PositiveIntegerField(default=0)

    def __str__(self) -> str:
        return f"{self.period}: {self.last_value}"
