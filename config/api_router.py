"""
Public API router.

Each app owns its routes in `<app>/api/urls.py`; this module mounts them
under /api/v1/. Gateway callbacks live under `payment/` and authenticate by
signature rather than by session or token.
"""

from django.urls import include
from django.urls import path

from tracksub.core.health import health_check

app_name = "api"
urlpatterns = [
    path("health/", health_check, name="health"),
    path("", include("tracksub.users.api.urls")),
    path("", include("tracksub.billing.api.urls")),
    path("devices/", include("tracksub.devices.api.urls")),
    path("notifications/", include("tracksub.notifications.api.urls")),
    path("admin/", include("tracksub.dashboard.api.urls")),
]
