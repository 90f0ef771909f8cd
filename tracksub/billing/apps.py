from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class BillingConfig(AppConfig):
    """
    Django app configuration for the billing app.

    Owns the plan catalog, subscriptions, the payment ledger and the
    gateway integrations (Stripe and Telebirr).
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "tracksub.billing"
    verbose_name = _("Billing")
