"""
Account API: registration, profile, password, account deletion and per-user
statistics.

Registration is public and answers with an API token. The new user's
free-plan subscription is created by ``tracksub.users.signals`` once the
registration transaction commits.
"""

import logging

from django.contrib.auth import update_session_auth_hash
from django.db import transaction
from django.db.models import Count
from django.db.models import Q
from django.db.models import Sum
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.permissions import AllowAny
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from tracksub.billing.constants import PaymentStatus
from tracksub.billing.invoices import format_amount
from tracksub.billing.models import Subscription
from tracksub.devices.services import DeviceService
from tracksub.users.api.serializers import AccountDeleteSerializer
from tracksub.users.api.serializers import PasswordChangeSerializer
from tracksub.users.api.serializers import RegisterSerializer
from tracksub.users.api.serializers import UserSerializer

logger = logging.getLogger(__name__)


class RegisterView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    @extend_schema(
        summary="Register",
        request=RegisterSerializer,
        responses={201: UserSerializer},
        tags=["Auth"],
    )
    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            user = serializer.save()
            token = Token.objects.create(user=user)
        return Response(
            {"user": UserSerializer(user).data, "token": token.key},
            status=status.HTTP_201_CREATED,
        )


class ProfileView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Profile", responses={200: UserSerializer}, tags=["Users"])
    def get(self, request):
        return Response({"user": UserSerializer(request.user).data})

    @extend_schema(
        summary="Update profile",
        request=UserSerializer,
        responses={200: UserSerializer},
        tags=["Users"],
    )
    def put(self, request):
        serializer = UserSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        return Response(
            {
                "success": True,
                "user": UserSerializer(user).data,
                "message": "Profile updated successfully",
            },
        )

    @extend_schema(
        summary="Delete account",
        description=(
            "Removes the account with its subscription, payments and devices. "
            "Devices are also removed from the tracking server."
        ),
        request=AccountDeleteSerializer,
        tags=["Users"],
    )
    def delete(self, request):
        serializer = AccountDeleteSerializer(
            data=request.data,
            context={"request": request},
        )
        serializer.is_valid(raise_exception=True)
        user = request.user

        with DeviceService() as service:
            for device in user.devices.filter(is_active=True):
                service.deactivate(device)
        user_id = user.pk
        user.delete()
        logger.info("User %s deleted their account", user_id)
        return Response({"success": True, "message": "Account deleted successfully"})


class PasswordChangeView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Change password",
        request=PasswordChangeSerializer,
        tags=["Users"],
    )
    def put(self, request):
        serializer = PasswordChangeSerializer(
            data=request.data,
            context={"request": request},
        )
        serializer.is_valid(raise_exception=True)
        user = request.user
        user.set_password(serializer.validated_data["newPassword"])
        user.save(update_fields=["password"])
        update_session_auth_hash(request, user)
        return Response({"success": True, "message": "Password changed successfully"})


class UserStatsView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Account statistics", tags=["Users"])
    def get(self, request):
        user = request.user
        payments = user.payments.aggregate(
            total=Count("pk"),
            successful=Count("pk", filter=Q(status=PaymentStatus.COMPLETED)),
            spent=Sum("amount", filter=Q(status=PaymentStatus.COMPLETED)),
        )
        subscription = (
            Subscription.objects.select_related("plan").filter(user=user).first()
        )
        return Response(
            {
                "stats": {
                    "deviceCount": user.devices.filter(is_active=True).count(),
                    "totalPayments": payments["total"],
                    "successfulPayments": payments["successful"],
                    "totalSpent": format_amount(payments["spent"]),
                    "currentPlan": subscription.plan.name if subscription else None,
                    "subscriptionStatus": (
                        subscription.status if subscription else None
                    ),
                    "subscriptionEndDate": (
                        subscription.end_date if subscription else None
                    ),
                    "memberSince": user.date_joined,
                },
            },
        )
