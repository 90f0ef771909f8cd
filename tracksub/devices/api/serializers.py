from rest_framework import serializers

from tracksub.devices.models import Device


class DeviceSerializer(serializers.ModelSerializer[Device]):
    uniqueId = serializers.CharField(source="unique_id")  # noqa: N815
    traccarId = serializers.IntegerField(source="traccar_id")  # noqa: N815
    isActive = serializers.BooleanField(source="is_active")  # noqa: N815
    lastUpdate = serializers.DateTimeField(source="last_update")  # noqa: N815
    createdAt = serializers.DateTimeField(source="created")  # noqa: N815

    class Meta:
        model = Device
        fields = [
            "id",
            "name",
            "uniqueId",
            "traccarId",
            "isActive",
            "status",
            "latitude",
            "longitude",
            "speed",
            "course",
            "lastUpdate",
            "createdAt",
        ]


class DeviceSnapshotSerializer(serializers.Serializer):
    """A device with the live data fetched from Traccar for the list view."""

    def to_representation(self, instance):
        data = DeviceSerializer(instance.device, context=self.context).data
        data["isOnline"] = instance.online
        data["position"] = instance.position
        data["traccarData"] = instance.traccar
        return data


class DeviceCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    uniqueId = serializers.CharField(max_length=64)  # noqa: N815


class DeviceUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)


class PositionQuerySerializer(serializers.Serializer):
    # "from" is a keyword, so the field is declared through the fields dict.
    to = serializers.DateTimeField(required=False)

    def get_fields(self):
        fields = super().get_fields()
        fields["from"] = serializers.DateTimeField(required=False)
        return fields

    def validate(self, attrs):
        start, end = attrs.get("from"), attrs.get("to")
        if start and end and start > end:
            raise serializers.ValidationError("'from' must be before 'to'.")
        return attrs


class TripSummarySerializer(serializers.Serializer):
    totalDistance = serializers.FloatField(source="total_distance_km")  # noqa: N815
    maxSpeed = serializers.FloatField(source="max_speed_kmh")  # noqa: N815
    averageSpeed = serializers.FloatField(source="average_speed_kmh")  # noqa: N815
    totalTime = serializers.IntegerField(source="total_minutes")  # noqa: N815
    movingTime = serializers.IntegerField(source="moving_minutes")  # noqa: N815
    stoppedTime = serializers.IntegerField(source="stopped_minutes")  # noqa: N815
    positionCount = serializers.IntegerField(source="position_count")  # noqa: N815


class DeviceReportSerializer(serializers.Serializer):
    """Distances in km, speeds in km/h, times in minutes."""

    summary = TripSummarySerializer()
    positions = serializers.ListField(child=serializers.DictField())

    def to_representation(self, instance):
        data = super().to_representation(instance)
        device = instance.device
        data["device"] = {
            "id": device.pk,
            "name": device.name,
            "uniqueId": device.unique_id,
        }
        return data
