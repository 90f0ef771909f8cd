"""
Subscription and payment services.

This module provides the operations behind the subscription and payment
endpoints:
- SubscriptionService: free-plan assignment at registration, reading the
  current subscription, usage against the device limit, plan changes,
  cancellation and the expiry sweep
- PaymentService: opening a checkout for a paid plan, user-initiated
  cancellation, payment history and ledger cleanup

Completing a payment is not done here; that only happens from a verified
gateway callback, see ``tracksub.billing.reconciliation``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING
from urllib.parse import urlencode

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from tracksub.billing.constants import PAYMENT_HISTORY_LIMIT
from tracksub.billing.constants import PaymentStatus
from tracksub.billing.constants import SubscriptionStatus
from tracksub.billing.events import PaymentUpdated
from tracksub.billing.events import SubscriptionChanged
from tracksub.billing.events import publish_on_commit
from tracksub.billing.exceptions import GatewayError
from tracksub.billing.exceptions import InvalidPlanChangeError
from tracksub.billing.exceptions import PaymentNotFoundError
from tracksub.billing.exceptions import PlanNotFoundError
from tracksub.billing.exceptions import PlanNotPurchasableError
from tracksub.billing.exceptions import SubscriptionNotFoundError
from tracksub.billing.gateways import get_gateway
from tracksub.billing.invoices import describe_order
from tracksub.billing.invoices import generate_order_id
from tracksub.billing.invoices import next_invoice_number
from tracksub.billing.models import Payment
from tracksub.billing.models import Plan
from tracksub.billing.models import Subscription

if TYPE_CHECKING:
    from datetime import datetime

    from django.db.models import QuerySet

    from tracksub.users.models import User

logger = logging.getLogger(__name__)


def list_active_plans() -> QuerySet[Plan]:
    return Plan.objects.active().order_by("price", "name")


def get_free_plan() -> Plan | None:
    """The plan new users start on: the cheapest active plan priced at 0."""
    return Plan.objects.free().order_by("price", "created").first()


# =============================================================================
# Subscriptions
# =============================================================================


@dataclass(frozen=True)
class SubscriptionUsage:
    devices_used: int
    device_limit: int
    can_add_device: bool
    utilization_percentage: int | None


@dataclass(frozen=True)
class PlanChangeResult:
    """
    Outcome of a plan change request.

    When ``requires_payment`` is True nothing changed yet; the client must
    start a payment for ``plan`` through the payment endpoint.
    """

    plan: Plan
    requires_payment: bool
    subscription: Subscription | None = None
    message: str = ""


class SubscriptionService:
    """
    Service for the subscription lifecycle.

    Usage:
        service = SubscriptionService()
        subscription = service.get_current(request.user)
        result = service.request_plan_change(request.user, plan_id)
        if result.requires_payment:
            ...  # client calls /payment/pay/
    """

    def create_initial_subscription(self, user: User) -> Subscription | None:
        """
        Put a newly registered user on the free plan.

        Safe to call more than once; an existing subscription is returned
        unchanged. Returns None when no free plan is configured.
        """
        plan = get_free_plan()
        if plan is None:
            logger.warning(
                "No active free plan; user %s registered without a subscription",
                user.pk,
            )
            return None

        now = timezone.now()
        subscription, created = Subscription.objects.get_or_create(
            user=user,
            defaults={
                "plan": plan,
                "status": SubscriptionStatus.ACTIVE,
                "start_date": now,
                "end_date": now + timedelta(days=plan.duration_days),
            },
        )
        if created:
            logger.info("Assigned %s plan to new user %s", plan.name, user.pk)
            publish_on_commit(
                SubscriptionChanged.from_subscription(subscription, reason="created"),
            )
        return subscription

    def get_current(self, user: User) -> Subscription:
        """
        Return the user's subscription, marking it EXPIRED if its end date
        has passed.

        Raises:
            SubscriptionNotFoundError: the user has no subscription row.
        """
        subscription = (
            Subscription.objects.select_related("plan").filter(user=user).first()
        )
        if subscription is None:
            raise SubscriptionNotFoundError

        if subscription.status == SubscriptionStatus.ACTIVE and subscription.is_expired:
            updated = Subscription.objects.filter(
                pk=subscription.pk,
                status=SubscriptionStatus.ACTIVE,
            ).update(status=SubscriptionStatus.EXPIRED, modified=timezone.now())
            subscription.status = SubscriptionStatus.EXPIRED
            if updated:
                logger.info("Subscription %s expired on read", subscription.pk)
                event = SubscriptionChanged.from_subscription(
                    subscription,
                    reason="expired",
                )
                publish_on_commit(event)
        return subscription

    def get_usage(self, user: User) -> SubscriptionUsage:
        subscription = self.get_current(user)
        plan = subscription.plan
        devices_used = user.devices.filter(is_active=True).count()

        if plan.has_unlimited_devices:
            utilization = None
        elif plan.device_limit > 0:
            utilization = round(devices_used / plan.device_limit * 100)
        else:
            utilization = 100 if devices_used else 0

        return SubscriptionUsage(
            devices_used=devices_used,
            device_limit=plan.device_limit,
            can_add_device=(
                subscription.is_usable and plan.allows_device_count(devices_used + 1)
            ),
            utilization_percentage=utilization,
        )

    def request_plan_change(self, user: User, plan_id) -> PlanChangeResult:
        """
        Validate a move to ``plan_id``.

        Free targets are applied immediately. Paid targets only return
        ``requires_payment``; activation happens when the payment completes.

        Raises:
            PlanNotFoundError: unknown plan id.
            PlanNotPurchasableError: the plan is deactivated.
            InvalidPlanChangeError: same plan, or a cheaper plan while the
                current one is still active.
        """
        plan = Plan.objects.lookup(plan_id)
        if plan is None:
            raise PlanNotFoundError
        if not plan.is_active:
            raise PlanNotPurchasableError("This plan is no longer offered.")

        current = Subscription.objects.select_related("plan").filter(user=user).first()
        if current is not None and current.is_usable:
            if current.plan_id == plan.pk:
                raise InvalidPlanChangeError(
                    f"You are already on the {plan.name} plan.",
                    code="same_plan",
                )
            if plan.price < current.plan.price:
                raise InvalidPlanChangeError(
                    "Downgrades are available once your current plan ends.",
                    code="downgrade_not_allowed",
                )

        if plan.is_free:
            with transaction.atomic():
                subscription = self.activate(user, plan, reason="plan_changed")
            return PlanChangeResult(
                plan=plan,
                requires_payment=False,
                subscription=subscription,
                message="Subscription updated successfully.",
            )

        return PlanChangeResult(
            plan=plan,
            requires_payment=True,
            subscription=current,
            message="Payment required for upgrade.",
        )

    def activate(
        self,
        user: User,
        plan: Plan,
        *,
        reason: str,
        now: datetime | None = None,
    ) -> Subscription:
        """
        Put ``user`` on ``plan`` from now for ``plan.duration_days``.

        Remaining time on a previous plan is not carried over. Must be
        called inside ``transaction.atomic()``; the change event is
        published when that transaction commits.
        """
        now = now or timezone.now()
        end_date = now + timedelta(days=plan.duration_days)

        subscription, created = Subscription.objects.select_for_update().get_or_create(
            user=user,
            defaults={
                "plan": plan,
                "status": SubscriptionStatus.ACTIVE,
                "start_date": now,
                "end_date": end_date,
            },
        )
        if not created:
            subscription.plan = plan
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.start_date = now
            subscription.end_date = end_date
            subscription.cancelled_at = None
            subscription.save(
                update_fields=[
                    "plan",
                    "status",
                    "start_date",
                    "end_date",
                    "cancelled_at",
                    "modified",
                ],
            )

        logger.info(
            "Activated %s plan for user %s until %s",
            plan.name,
            user.pk,
            end_date.isoformat(),
        )
        publish_on_commit(
            SubscriptionChanged.from_subscription(subscription, reason=reason),
        )
        return subscription

    def cancel(self, user: User) -> Subscription:
        """
        Cancel the user's subscription. Devices are left as they are.

        Cancelling an already cancelled subscription is a no-op.
        """
        subscription = self.get_current(user)
        if subscription.status == SubscriptionStatus.CANCELLED:
            return subscription

        subscription.status = SubscriptionStatus.CANCELLED
        subscription.cancelled_at = timezone.now()
        subscription.save(update_fields=["status", "cancelled_at", "modified"])
        logger.info("Subscription %s cancelled by user %s", subscription.pk, user.pk)
        publish_on_commit(
            SubscriptionChanged.from_subscription(subscription, reason="cancelled"),
        )
        return subscription

    def expire_overdue(self, now: datetime | None = None) -> int:
        """Flip every ACTIVE subscription past its end date to EXPIRED."""
        now = now or timezone.now()
        with transaction.atomic():
            overdue = list(
                Subscription.objects.select_related("plan").filter(
                    status=SubscriptionStatus.ACTIVE,
                    end_date__lt=now,
                ),
            )
            if not overdue:
                return 0
            count = Subscription.objects.filter(
                pk__in=[s.pk for s in overdue],
                status=SubscriptionStatus.ACTIVE,
            ).update(status=SubscriptionStatus.EXPIRED, modified=now)
            for subscription in overdue:
                subscription.status = SubscriptionStatus.EXPIRED
            publish_on_commit(
                *(
                    SubscriptionChanged.from_subscription(s, reason="expired")
                    for s in overdue
                ),
            )

        logger.info("Expired %s overdue subscriptions", count)
        return count

    def subscriptions_expiring_within(
        self,
        days: int,
        now: datetime | None = None,
    ) -> QuerySet[Subscription]:
        now = now or timezone.now()
        return Subscription.objects.select_related("plan", "user").filter(
            status=SubscriptionStatus.ACTIVE,
            end_date__gte=now,
            end_date__lte=now + timedelta(days=days),
        )


# =============================================================================
# Payments
# =============================================================================


@dataclass(frozen=True)
class PaymentInitiation:
    order_id: str
    invoice_number: str
    session_id: str
    client_secret: str = ""
    checkout_url: str = ""


def _frontend_url(path: str, **params: str) -> str:
    base = settings.FRONTEND_URL.rstrip("/")
    return f"{base}{path}?{urlencode(params)}"


class PaymentService:
    """
    Service for the order ledger.

    Usage:
        service = PaymentService()
        initiation = service.initiate_payment(
            user=request.user,
            plan_id=plan_id,
            gateway_choice="stripe",
            use_embedded=True,
        )
    """

    def initiate_payment(
        self,
        *,
        user: User,
        plan_id,
        gateway_choice: str,
        use_embedded: bool = False,
    ) -> PaymentInitiation:
        """
        Create a PENDING order for ``plan_id`` and open a gateway checkout.

        Raises:
            PlanNotFoundError: unknown plan id.
            PlanNotPurchasableError: plan is inactive or free.
            BillingError: unsupported gateway name.
            GatewayError: the gateway call failed; the order is FAILED.
        """
        plan = Plan.objects.lookup(plan_id)
        if plan is None:
            raise PlanNotFoundError
        if not plan.is_active:
            raise PlanNotPurchasableError("This plan is no longer offered.")
        if plan.is_free:
            raise PlanNotPurchasableError(
                "Free plans do not require payment.",
            )

        gateway = get_gateway(gateway_choice)

        with transaction.atomic():
            payment = Payment.objects.create(
                order_id=generate_order_id(user),
                invoice_number=next_invoice_number(),
                user=user,
                amount=plan.price,
                currency=settings.PAYMENT_CURRENCY,
                gateway=gateway.name,
                description=describe_order(plan),
                metadata={
                    "planId": str(plan.pk),
                    "planName": plan.name,
                    "userId": str(user.pk),
                },
            )
        logger.info(
            "Created order %s (%s) for user %s: %s %s via %s",
            payment.order_id,
            payment.invoice_number,
            user.pk,
            payment.amount,
            payment.currency,
            gateway.name,
        )

        return_url = _frontend_url("/payment/success", order_id=payment.order_id)
        if use_embedded:
            # Stripe substitutes the literal placeholder on redirect.
            return_url += "&session_id={CHECKOUT_SESSION_ID}"
        cancel_url = _frontend_url("/payment/cancel", order_id=payment.order_id)

        try:
            session = gateway.create_checkout_session(
                payment=payment,
                plan=plan,
                customer_email=user.email,
                return_url=return_url,
                cancel_url=cancel_url,
                embedded=use_embedded,
            )
        except GatewayError:
            with transaction.atomic():
                payment.save(
                    update_fields=payment.transition_to(PaymentStatus.FAILED),
                )
                publish_on_commit(PaymentUpdated.from_payment(payment))
            logger.warning("Order %s failed at gateway checkout", payment.order_id)
            raise

        payment.gateway_session_id = session.session_id
        payment.save(update_fields=["gateway_session_id", "modified"])

        return PaymentInitiation(
            order_id=payment.order_id,
            invoice_number=payment.invoice_number,
            session_id=session.session_id,
            client_secret=session.client_secret,
            checkout_url=session.checkout_url,
        )

    def status(self, user: User, order_id: str) -> Payment:
        payment = Payment.objects.filter(user=user, order_id=order_id).first()
        if payment is None:
            raise PaymentNotFoundError
        return payment

    def history(self, user: User) -> QuerySet[Payment]:
        return Payment.objects.filter(user=user).order_by("-created")[
            :PAYMENT_HISTORY_LIMIT
        ]

    def cancel_pending(self, user: User, order_id: str) -> Payment:
        """
        Cancel an order the user walked away from at checkout.

        The gateway session is closed first so it can no longer take money.
        The subscription is not touched. Orders that already reached a
        terminal status are returned unchanged.

        Raises:
            CheckoutCompletedError: the customer already paid; the order
                stays PENDING until the gateway callback completes it.
            GatewayError: the session could not be closed.
        """
        payment = self.status(user, order_id)
        if payment.is_terminal:
            return payment

        if payment.gateway_session_id:
            get_gateway(payment.gateway).close_checkout_session(
                payment.gateway_session_id,
            )

        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            if payment.is_terminal:
                return payment
            payment.save(update_fields=payment.transition_to(PaymentStatus.CANCELLED))
            publish_on_commit(PaymentUpdated.from_payment(payment))

        logger.info("Order %s cancelled by user %s", order_id, user.pk)
        return payment

    def cleanup_old_payments(
        self,
        retention_days: int,
        now: datetime | None = None,
    ) -> int:
        """
        Delete FAILED and CANCELLED orders older than ``retention_days``.

        PENDING orders are kept because a late callback may still arrive
        for them; COMPLETED orders are the financial record.
        """
        now = now or timezone.now()
        cutoff = now - timedelta(days=retention_days)
        deleted, _ = Payment.objects.filter(
            status__in=[PaymentStatus.FAILED, PaymentStatus.CANCELLED],
            created__lt=cutoff,
        ).delete()
        logger.info(
            "Deleted %s failed/cancelled payments older than %s days",
            deleted,
            retention_days,
        )
        return deleted
