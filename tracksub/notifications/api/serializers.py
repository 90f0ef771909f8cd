from rest_framework import serializers

from tracksub.notifications.models import Notification


class NotificationSerializer(serializers.ModelSerializer[Notification]):
    type = serializers.CharField(source="kind")
    isRead = serializers.BooleanField(source="is_read")  # noqa: N815
    readAt = serializers.DateTimeField(source="read_at")  # noqa: N815
    createdAt = serializers.DateTimeField(source="created")  # noqa: N815

    class Meta:
        model = Notification
        fields = [
            "id",
            "type",
            "title",
            "message",
            "data",
            "isRead",
            "readAt",
            "createdAt",
        ]
        read_only_fields = fields
