from django.urls import path

from tracksub.billing.api import views

urlpatterns = [
    # Subscription
    path(
        "subscription/plans/",
        views.PlanListView.as_view(),
        name="subscription-plans",
    ),
    path(
        "subscription/current/",
        views.CurrentSubscriptionView.as_view(),
        name="subscription-current",
    ),
    path("subscription/usage/", views.UsageView.as_view(), name="subscription-usage"),
    path(
        "subscription/upgrade/",
        views.UpgradeView.as_view(),
        name="subscription-upgrade",
    ),
    path(
        "subscription/cancel/",
        views.CancelSubscriptionView.as_view(),
        name="subscription-cancel",
    ),
    # Payment
    path("payment/pay/", views.PayView.as_view(), name="payment-pay"),
    path(
        "payment/history/",
        views.PaymentHistoryView.as_view(),
        name="payment-history",
    ),
    path(
        "payment/status/<str:order_id>/",
        views.PaymentStatusView.as_view(),
        name="payment-status",
    ),
    path(
        "payment/cancel/<str:order_id>/",
        views.PaymentCancelView.as_view(),
        name="payment-cancel",
    ),
    # Gateway callbacks
    path(
        "payment/webhook/stripe/",
        views.StripeWebhookView.as_view(),
        name="payment-webhook-stripe",
    ),
    path(
        "payment/callback/telebirr/",
        views.TelebirrCallbackView.as_view(),
        name="payment-callback-telebirr",
    ),
]
