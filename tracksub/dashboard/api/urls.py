from django.urls import path

from tracksub.dashboard.api.views import DeviceDeleteView
from tracksub.dashboard.api.views import DeviceListView
from tracksub.dashboard.api.views import InvoiceView
from tracksub.dashboard.api.views import PaymentActivateView
from tracksub.dashboard.api.views import PaymentListView
from tracksub.dashboard.api.views import SendRemindersView
from tracksub.dashboard.api.views import StatsView
from tracksub.dashboard.api.views import SubscriptionListView
from tracksub.dashboard.api.views import UserListView

urlpatterns = [
    path("stats/", StatsView.as_view(), name="admin-stats"),
    path("users/", UserListView.as_view(), name="admin-users"),
    path(
        "subscriptions/",
        SubscriptionListView.as_view(),
        name="admin-subscriptions",
    ),
    path("devices/", DeviceListView.as_view(), name="admin-devices"),
    path(
        "devices/<int:device_id>/",
        DeviceDeleteView.as_view(),
        name="admin-device-delete",
    ),
    path("payments/", PaymentListView.as_view(), name="admin-payments"),
    path(
        "payments/<str:order_id>/activate/",
        PaymentActivateView.as_view(),
        name="admin-payment-activate",
    ),
    path(
        "orders/<str:order_id>/invoice/",
        InvoiceView.as_view(),
        name="admin-order-invoice",
    ),
    path(
        "send-reminders/",
        SendRemindersView.as_view(),
        name="admin-send-reminders",
    ),
]
