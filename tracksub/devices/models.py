from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _
from model_utils.models import TimeStampedModel


class DeviceStatus(models.TextChoices):
    ONLINE = "online", _("Online")
    OFFLINE = "offline", _("Offline")
    UNKNOWN = "unknown", _("Unknown")


class DeviceQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)


class Device(TimeStampedModel):
    """
    A GPS tracker registered by a user.

    The tracking server owns the device; this row links it to its owner
    (``traccar_id``) and caches the last position and status pushed over
    the position feed. Deleting a device only clears ``is_active``, which
    also frees its ``unique_id`` for registration again.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="devices",
    )
    traccar_id = models.IntegerField(unique=True)
    name = models.CharField(max_length=255)
    unique_id = models.CharField(
        max_length=64,
        help_text=_("Identifier the tracker reports with, usually its IMEI."),
    )
    is_active = models.BooleanField(default=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    status = models.CharField(
        max_length=16,
        choices=DeviceStatus.choices,
        default=DeviceStatus.UNKNOWN,
    )
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)
    speed = models.FloatField(null=True, blank=True)
    course = models.FloatField(null=True, blank=True)
    last_update = models.DateTimeField(null=True, blank=True)

    objects = DeviceQuerySet.as_manager()

    class Meta:
        ordering = ["-created"]
        constraints = [
            models.UniqueConstraint(
                fields=["unique_id"],
                condition=Q(is_active=True),
                name="uniq_active_device_unique_id",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.unique_id})"

    @property
    def is_online(self) -> bool:
        return self.status == DeviceStatus.ONLINE
