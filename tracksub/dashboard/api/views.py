"""
Staff dashboard API.

Every view requires ``is_staff``. Lists are paginated with ``?page=`` and
``?limit=``; filters are plain query parameters.
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.db.models import Count
from django.db.models import Q
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema
from rest_framework import generics
from rest_framework.exceptions import ValidationError
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from tracksub.billing.api.serializers import PlanChoiceSerializer
from tracksub.billing.api.serializers import SubscriptionSerializer
from tracksub.billing.constants import NEEDS_ATTENTION_STATUSES
from tracksub.billing.constants import PaymentStatus
from tracksub.billing.constants import SubscriptionStatus
from tracksub.billing.exceptions import BillingError
from tracksub.billing.exceptions import PlanNotFoundError
from tracksub.billing.invoices import build_invoice
from tracksub.billing.models import Payment
from tracksub.billing.models import Plan
from tracksub.billing.models import Subscription
from tracksub.billing.reconciliation import ReconciliationService
from tracksub.billing.services import SubscriptionService
from tracksub.dashboard.api.serializers import AdminDeviceSerializer
from tracksub.dashboard.api.serializers import AdminPaymentSerializer
from tracksub.dashboard.api.serializers import AdminSubscriptionSerializer
from tracksub.dashboard.api.serializers import AdminUserSerializer
from tracksub.dashboard.services import system_stats
from tracksub.dashboard.services import tracking_server_stats
from tracksub.devices.models import Device
from tracksub.devices.services import DeviceService
from tracksub.notifications.services import send_expiry_reminders
from tracksub.users.models import User

logger = logging.getLogger(__name__)


def user_id_param(params) -> int | None:
    """The optional ``userId`` filter as an integer; 400 when malformed."""
    value = params.get("userId")
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError({"userId": "Must be an integer."}) from None


class DashboardPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "limit"
    max_page_size = 100


class StatsView(APIView):
    permission_classes = [IsAdminUser]

    @extend_schema(summary="System statistics", tags=["Admin"])
    def get(self, request):
        return Response(
            {"stats": system_stats(), "trackingServer": tracking_server_stats()},
        )


class UserListView(generics.ListAPIView):
    permission_classes = [IsAdminUser]
    serializer_class = AdminUserSerializer
    pagination_class = DashboardPagination

    def get_queryset(self):
        users = (
            User.objects.select_related("subscription__plan")
            .annotate(
                device_count=Count(
                    "devices",
                    filter=Q(devices__is_active=True),
                    distinct=True,
                ),
                payment_count=Count("payments", distinct=True),
            )
            .order_by("-date_joined")
        )
        search = self.request.query_params.get("search")
        if search:
            users = users.filter(Q(name__icontains=search) | Q(email__icontains=search))
        return users


class SubscriptionListView(generics.ListAPIView):
    """
    Subscriptions ordered by end date.

    ``?expiring=true`` narrows to ACTIVE subscriptions ending within
    SUBSCRIPTION_REMINDER_DAYS.
    """

    permission_classes = [IsAdminUser]
    serializer_class = AdminSubscriptionSerializer
    pagination_class = DashboardPagination

    def get_queryset(self):
        params = self.request.query_params
        if params.get("expiring") == "true":
            return SubscriptionService().subscriptions_expiring_within(
                settings.SUBSCRIPTION_REMINDER_DAYS,
            ).order_by("end_date")

        subscriptions = Subscription.objects.select_related("plan", "user")
        status_filter = params.get("status")
        if status_filter:
            if status_filter not in SubscriptionStatus.values:
                raise ValidationError({"status": "Unknown subscription status."})
            subscriptions = subscriptions.filter(status=status_filter)
        return subscriptions.order_by("end_date")


class DeviceListView(generics.ListAPIView):
    permission_classes = [IsAdminUser]
    serializer_class = AdminDeviceSerializer
    pagination_class = DashboardPagination

    def get_queryset(self):
        devices = Device.objects.active().select_related("user").order_by("-created")
        user_id = user_id_param(self.request.query_params)
        if user_id is not None:
            devices = devices.filter(user_id=user_id)
        return devices


class DeviceDeleteView(APIView):
    permission_classes = [IsAdminUser]

    @extend_schema(summary="Delete any user's device", tags=["Admin"])
    def delete(self, request, device_id):
        device = get_object_or_404(Device.objects.active(), pk=device_id)
        with DeviceService() as service:
            service.deactivate(device)
        logger.info("Staff user %s deleted device %s", request.user.pk, device.pk)
        return Response({"success": True, "message": "Device deleted successfully"})


class PaymentListView(generics.ListAPIView):
    """
    The order ledger, newest first.

    Filters: ``status``, ``gateway``, ``userId``, ``needs_attention=true``
    (deferred activations and payments that arrived after the order closed)
    and ``search``
    over order id, invoice number and customer.
    """

    permission_classes = [IsAdminUser]
    serializer_class = AdminPaymentSerializer
    pagination_class = DashboardPagination

    def get_queryset(self):
        params = self.request.query_params
        payments = Payment.objects.select_related("user").order_by("-created")

        status_filter = params.get("status")
        if status_filter and status_filter != "ALL":
            if status_filter not in PaymentStatus.values:
                raise ValidationError({"status": "Unknown payment status."})
            payments = payments.filter(status=status_filter)
        if params.get("gateway"):
            payments = payments.filter(gateway=params["gateway"])
        user_id = user_id_param(params)
        if user_id is not None:
            payments = payments.filter(user_id=user_id)
        if params.get("needs_attention") == "true":
            payments = payments.filter(activation_status__in=NEEDS_ATTENTION_STATUSES)
        search = params.get("search")
        if search:
            payments = payments.filter(
                Q(order_id__icontains=search)
                | Q(invoice_number__icontains=search)
                | Q(user__email__icontains=search)
                | Q(user__name__icontains=search),
            )
        return payments


class PaymentActivateView(APIView):
    """Complete a deferred activation by naming the plan the customer bought."""

    permission_classes = [IsAdminUser]

    @extend_schema(
        summary="Activate a deferred payment",
        request=PlanChoiceSerializer,
        tags=["Admin"],
    )
    def post(self, request, order_id):
        payment = get_object_or_404(Payment, order_id=order_id)
        serializer = PlanChoiceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        plan = Plan.objects.lookup(serializer.validated_data["planId"])
        if plan is None:
            raise PlanNotFoundError

        result = ReconciliationService().activate_deferred(payment, plan)
        logger.info(
            "Staff user %s activated %s for order %s",
            request.user.pk,
            plan.name,
            order_id,
        )
        return Response(
            {
                "success": True,
                "payment": AdminPaymentSerializer(result.payment).data,
                "subscription": SubscriptionSerializer(result.subscription).data,
            },
        )


class InvoiceView(APIView):
    permission_classes = [IsAdminUser]

    @extend_schema(summary="Invoice for a completed order", tags=["Admin"])
    def get(self, request, order_id):
        payment = get_object_or_404(
            Payment.objects.select_related("user"),
            order_id=order_id,
        )
        if payment.status != PaymentStatus.COMPLETED:
            raise BillingError(
                "Invoice only available for completed orders.",
                code="invoice_unavailable",
            )
        return Response(build_invoice(payment))


class SendRemindersView(APIView):
    permission_classes = [IsAdminUser]

    @extend_schema(summary="Send expiry reminders now", request=None, tags=["Admin"])
    def post(self, request):
        run = send_expiry_reminders()
        return Response(
            {
                "success": True,
                "message": f"Reminder emails sent to {run.sent} users",
                "count": run.sent,
                "skipped": run.skipped,
                "failed": run.failed,
            },
        )
