from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter
from drf_spectacular.utils import extend_schema
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from tracksub.notifications.api.serializers import NotificationSerializer
from tracksub.notifications.models import Notification
from tracksub.notifications.services import feed_for


class NotificationListView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Notification feed",
        parameters=[
            OpenApiParameter(
                "unread",
                OpenApiTypes.BOOL,
                description="Only unread notifications",
            ),
        ],
        responses={200: NotificationSerializer(many=True)},
        tags=["Notifications"],
    )
    def get(self, request):
        unread_only = request.query_params.get("unread", "").lower() in {"1", "true"}
        notifications = feed_for(request.user, unread_only=unread_only)
        unread_count = Notification.objects.filter(
            user=request.user,
            read_at__isnull=True,
        ).count()
        return Response(
            {
                "notifications": NotificationSerializer(notifications, many=True).data,
                "unreadCount": unread_count,
            },
        )


class NotificationReadView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Mark a notification read",
        request=None,
        responses={200: NotificationSerializer},
        tags=["Notifications"],
    )
    def post(self, request, notification_id):
        notification = Notification.objects.filter(
            user=request.user,
            pk=notification_id,
        ).first()
        if notification is None:
            raise NotFound("Notification not found.")
        notification.mark_read()
        return Response({"notification": NotificationSerializer(notification).data})
