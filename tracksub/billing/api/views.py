"""
Subscription and payment API.

Views are thin wrappers around ``SubscriptionService``, ``PaymentService``
and ``ReconciliationService``. Domain exceptions propagate and are rendered
by ``tracksub.core.api.exception_handler``.

The gateway callback endpoints authenticate by signature, not by session
or token, and read the raw request body because signatures are computed
over the exact bytes the gateway sent.
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import extend_schema
from drf_spectacular.utils import inline_serializer
from rest_framework import serializers
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from tracksub.billing.api.serializers import PaymentSerializer
from tracksub.billing.api.serializers import PayRequestSerializer
from tracksub.billing.api.serializers import PlanChoiceSerializer
from tracksub.billing.api.serializers import PlanSerializer
from tracksub.billing.api.serializers import SubscriptionSerializer
from tracksub.billing.api.serializers import UsageSerializer
from tracksub.billing.constants import PaymentGatewayChoice
from tracksub.billing.exceptions import CallbackVerificationError
from tracksub.billing.gateways import get_gateway
from tracksub.billing.reconciliation import ReconciliationService
from tracksub.billing.services import PaymentService
from tracksub.billing.services import SubscriptionService
from tracksub.billing.services import list_active_plans

logger = logging.getLogger(__name__)


# =============================================================================
# Subscription
# =============================================================================


class PlanListView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    @extend_schema(
        summary="List plans",
        responses={200: PlanSerializer(many=True)},
        tags=["Subscription"],
    )
    def get(self, request):
        return Response({"plans": PlanSerializer(list_active_plans(), many=True).data})


class CurrentSubscriptionView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Current subscription",
        responses={200: SubscriptionSerializer},
        tags=["Subscription"],
    )
    def get(self, request):
        subscription = SubscriptionService().get_current(request.user)
        return Response({"subscription": SubscriptionSerializer(subscription).data})


class UsageView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Device usage",
        responses={200: UsageSerializer},
        tags=["Subscription"],
    )
    def get(self, request):
        usage = SubscriptionService().get_usage(request.user)
        return Response({"usage": UsageSerializer(usage).data})


class UpgradeView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Change plan",
        description=(
            "Free plans are applied immediately. For paid plans the response "
            "has requiresPayment=true and the client starts a payment with "
            "/payment/pay/."
        ),
        request=PlanChoiceSerializer,
        tags=["Subscription"],
    )
    def post(self, request):
        serializer = PlanChoiceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = SubscriptionService().request_plan_change(
            request.user,
            serializer.validated_data["planId"],
        )
        data = {
            "success": True,
            "requiresPayment": result.requires_payment,
            "plan": PlanSerializer(result.plan).data,
            "message": result.message,
        }
        if not result.requires_payment:
            data["subscription"] = SubscriptionSerializer(result.subscription).data
        return Response(data)


class CancelSubscriptionView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Cancel subscription", tags=["Subscription"])
    def post(self, request):
        subscription = SubscriptionService().cancel(request.user)
        return Response(
            {
                "success": True,
                "message": "Subscription cancelled successfully",
                "subscription": SubscriptionSerializer(subscription).data,
            },
        )


# =============================================================================
# Payment
# =============================================================================


class PayView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Start a payment",
        request=PayRequestSerializer,
        responses={
            200: inline_serializer(
                name="PaymentInitiationResponse",
                fields={
                    "orderId": serializers.CharField(),
                    "invoiceNumber": serializers.CharField(),
                    "sessionId": serializers.CharField(),
                    "clientSecret": serializers.CharField(required=False),
                    "checkoutUrl": serializers.CharField(required=False),
                },
            ),
        },
        tags=["Payment"],
    )
    def post(self, request):
        serializer = PayRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        initiation = PaymentService().initiate_payment(
            user=request.user,
            plan_id=serializer.validated_data["planId"],
            gateway_choice=serializer.validated_data["paymentGateway"],
            use_embedded=serializer.validated_data["useEmbedded"],
        )
        data = {
            "success": True,
            "orderId": initiation.order_id,
            "invoiceNumber": initiation.invoice_number,
            "sessionId": initiation.session_id,
        }
        if initiation.client_secret:
            data["clientSecret"] = initiation.client_secret
        if initiation.checkout_url:
            data["checkoutUrl"] = initiation.checkout_url
        return Response(data)


class PaymentHistoryView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Payment history",
        responses={200: PaymentSerializer(many=True)},
        tags=["Payment"],
    )
    def get(self, request):
        payments = PaymentService().history(request.user)
        return Response({"payments": PaymentSerializer(payments, many=True).data})


class PaymentStatusView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Payment status",
        responses={200: PaymentSerializer},
        tags=["Payment"],
    )
    def get(self, request, order_id):
        payment = PaymentService().status(request.user, order_id)
        return Response({"payment": PaymentSerializer(payment).data})


class PaymentCancelView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Cancel a pending payment",
        responses={200: PaymentSerializer},
        tags=["Payment"],
    )
    def post(self, request, order_id):
        payment = PaymentService().cancel_pending(request.user, order_id)
        return Response({"success": True, "payment": PaymentSerializer(payment).data})


class GatewayCallbackView(APIView):
    """
    Receive a gateway's payment notification.

    Responses:
        200: applied, duplicate, deferred, or an authentic event we ignore
        400: signature/payload verification failed or no order id
        404: the order id is unknown
    """

    # Callbacks are authenticated by their signature.
    authentication_classes = []
    permission_classes = [AllowAny]
    gateway_name: str = ""

    @extend_schema(request=None, tags=["Payment"])
    def post(self, request):
        gateway = get_gateway(self.gateway_name)
        try:
            callback = gateway.verify_callback(request.body, request.headers)
        except CallbackVerificationError as e:
            logger.warning("Rejected %s callback: %s", self.gateway_name, e.detail)
            return Response(
                {"detail": e.detail, "code": e.code},
                status=status.HTTP_400_BAD_REQUEST,
            )

        if callback is None:
            return Response({"received": True, "outcome": "ignored"})

        result = ReconciliationService().handle_gateway_callback(callback)
        return Response(result.as_response_data(), status=result.status_code)


class StripeWebhookView(GatewayCallbackView):
    gateway_name = PaymentGatewayChoice.STRIPE


class TelebirrCallbackView(GatewayCallbackView):
    gateway_name = PaymentGatewayChoice.TELEBIRR
