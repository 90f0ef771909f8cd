from django.urls import path

from tracksub.notifications.api.views import NotificationListView
from tracksub.notifications.api.views import NotificationReadView

urlpatterns = [
    path("", NotificationListView.as_view(), name="notifications"),
    path(
        "<int:notification_id>/read/",
        NotificationReadView.as_view(),
        name="notification-read",
    ),
]
