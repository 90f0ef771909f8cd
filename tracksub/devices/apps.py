from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class DevicesConfig(AppConfig):
    """
    Django app configuration for the devices app.

    Keeps the local device registry in step with the Traccar tracking
    server and mirrors live positions from its WebSocket feed.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "tracksub.devices"
    verbose_name = _("Devices")
