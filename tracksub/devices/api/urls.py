from django.urls import path

from tracksub.devices.api.views import DeviceDetailView
from tracksub.devices.api.views import DeviceListCreateView
from tracksub.devices.api.views import DevicePositionsView
from tracksub.devices.api.views import DeviceReportView

urlpatterns = [
    path("", DeviceListCreateView.as_view(), name="devices"),
    path("<int:device_id>/", DeviceDetailView.as_view(), name="device-detail"),
    path(
        "<int:device_id>/positions/",
        DevicePositionsView.as_view(),
        name="device-positions",
    ),
    path(
        "<int:device_id>/reports/",
        DeviceReportView.as_view(),
        name="device-reports",
    ),
]
