from rest_framework import serializers

from tracksub.billing.api.serializers import PaymentSerializer
from tracksub.billing.api.serializers import SubscriptionSerializer
from tracksub.devices.api.serializers import DeviceSerializer
from tracksub.users.models import User


class OwnerSerializer(serializers.ModelSerializer[User]):
    class Meta:
        model = User
        fields = ["id", "name", "email"]


class AdminUserSerializer(serializers.ModelSerializer[User]):
    isStaff = serializers.BooleanField(source="is_staff")  # noqa: N815
    createdAt = serializers.DateTimeField(source="date_joined")  # noqa: N815
    subscription = SubscriptionSerializer(read_only=True)
    deviceCount = serializers.IntegerField(source="device_count")  # noqa: N815
    paymentCount = serializers.IntegerField(source="payment_count")  # noqa: N815

    class Meta:
        model = User
        fields = [
            "id",
            "name",
            "email",
            "isStaff",
            "createdAt",
            "subscription",
            "deviceCount",
            "paymentCount",
        ]


class AdminSubscriptionSerializer(SubscriptionSerializer):
    user = OwnerSerializer()

    class Meta(SubscriptionSerializer.Meta):
        fields = [*SubscriptionSerializer.Meta.fields, "user"]


class AdminDeviceSerializer(DeviceSerializer):
    user = OwnerSerializer()

    class Meta(DeviceSerializer.Meta):
        fields = [*DeviceSerializer.Meta.fields, "user"]


class AdminPaymentSerializer(PaymentSerializer):
    user = OwnerSerializer()
    gatewaySessionId = serializers.CharField(source="gateway_session_id")  # noqa: N815
    activationError = serializers.CharField(source="activation_error")  # noqa: N815
    needsAttention = serializers.BooleanField(source="needs_attention")  # noqa: N815

    class Meta(PaymentSerializer.Meta):
        fields = [
            *PaymentSerializer.Meta.fields,
            "user",
            "gatewaySessionId",
            "activationError",
            "needsAttention",
        ]
