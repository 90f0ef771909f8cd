from rest_framework import serializers

from tracksub.billing.constants import PaymentGatewayChoice
from tracksub.billing.models import Payment
from tracksub.billing.models import Plan
from tracksub.billing.models import Subscription


class PlanSerializer(serializers.ModelSerializer[Plan]):
    deviceLimit = serializers.IntegerField(source="device_limit")  # noqa: N815
    durationDays = serializers.IntegerField(source="duration_days")  # noqa: N815
    isActive = serializers.BooleanField(source="is_active")  # noqa: N815
    isFree = serializers.BooleanField(source="is_free")  # noqa: N815

    class Meta:
        model = Plan
        fields = [
            "id",
            "name",
            "description",
            "deviceLimit",
            "durationDays",
            "price",
            "isActive",
            "isFree",
        ]


class SubscriptionSerializer(serializers.ModelSerializer[Subscription]):
    plan = PlanSerializer()
    startDate = serializers.DateTimeField(source="start_date")  # noqa: N815
    endDate = serializers.DateTimeField(source="end_date")  # noqa: N815
    cancelledAt = serializers.DateTimeField(source="cancelled_at")  # noqa: N815
    daysRemaining = serializers.IntegerField(source="days_remaining")  # noqa: N815
    isExpired = serializers.BooleanField(source="is_expired")  # noqa: N815

    class Meta:
        model = Subscription
        fields = [
            "id",
            "plan",
            "status",
            "startDate",
            "endDate",
            "cancelledAt",
            "daysRemaining",
            "isExpired",
        ]


class UsageSerializer(serializers.Serializer):
    devicesUsed = serializers.IntegerField(source="devices_used")  # noqa: N815
    deviceLimit = serializers.IntegerField(source="device_limit")  # noqa: N815
    canAddDevice = serializers.BooleanField(source="can_add_device")  # noqa: N815
    utilizationPercentage = serializers.IntegerField(  # noqa: N815
        source="utilization_percentage",
        allow_null=True,
    )


class PaymentSerializer(serializers.ModelSerializer[Payment]):
    orderId = serializers.CharField(source="order_id")  # noqa: N815
    invoiceNumber = serializers.CharField(source="invoice_number")  # noqa: N815
    paymentMethod = serializers.CharField(source="gateway")  # noqa: N815
    transactionId = serializers.CharField(source="transaction_id")  # noqa: N815
    activationStatus = serializers.CharField(source="activation_status")  # noqa: N815
    createdAt = serializers.DateTimeField(source="created")  # noqa: N815
    completedAt = serializers.DateTimeField(source="completed_at")  # noqa: N815

    class Meta:
        model = Payment
        fields = [
            "orderId",
            "invoiceNumber",
            "amount",
            "currency",
            "status",
            "paymentMethod",
            "transactionId",
            "description",
            "metadata",
            "activationStatus",
            "createdAt",
            "completedAt",
        ]


class PlanChoiceSerializer(serializers.Serializer):
    planId = serializers.CharField()  # noqa: N815


class PayRequestSerializer(PlanChoiceSerializer):
    paymentGateway = serializers.ChoiceField(  # noqa: N815
        choices=PaymentGatewayChoice.choices,
    )
    useEmbedded = serializers.BooleanField(default=False)  # noqa: N815
