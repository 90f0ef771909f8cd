from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class NotificationsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "tracksub.notifications"
    verbose_name = _("Notifications")

    def ready(self):
        """Connect receivers for billing and device events."""
        from tracksub.notifications import receivers  # noqa: F401
