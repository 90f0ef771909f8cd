from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class DashboardConfig(AppConfig):
    """Staff-only reporting and operations API."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "tracksub.dashboard"
    verbose_name = _("Dashboard")
